# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_roles
from ..responses import get_json_body, get_page_params, success
from ..services import customers_service
from ..services.activity_service import log_activity

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    """
    Query params: search, customer_type, status (default active, or all),
    city, sort_by, sort_order, page, limit.
    """
    return success(customers_service.list_customers(request.args, get_page_params()), "Customers retrieved")


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    return success({"customer": customers_service.customer_detail(customer_id)}, "Customer retrieved")


@customers_bp.post("")
@require_auth
def create_customer():
    customer = customers_service.create_customer(get_json_body())
    log_activity("customer_created", {"customer_id": customer.id}, user_id=g.current_user.id)
    return success({"customer": customer.to_dict()}, "Customer created successfully", 201)


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_roles("admin", "manager")
def update_customer(customer_id: int):
    customer = customers_service.update_customer(customer_id, get_json_body())
    log_activity("customer_updated", {"customer_id": customer.id}, user_id=g.current_user.id)
    return success({"customer": customer.to_dict()}, "Customer updated successfully")
