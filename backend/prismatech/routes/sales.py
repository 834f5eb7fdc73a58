# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/prismatech/routes/sales.py
"""
Sales routes.

- Any authenticated role may create and list sales; employees only ever
  see the sales they made themselves
- Statistics and status transitions are for admin and manager
"""
from flask import Blueprint, g, request

from ..decorators import rate_limit, require_auth, require_roles
from ..responses import get_json_body, get_page_params, success
from ..services import sales_service
from ..services.activity_service import log_activity
from ..validation import parse_bool

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales():
    result = sales_service.list_sales(request.args, get_page_params(), g.current_user)
    return success(result, "Sales retrieved")


@sales_bp.get("/stats")
@require_auth
@require_roles("admin", "manager")
def sales_stats():
    return success(sales_service.sales_statistics(), "Sales statistics retrieved")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    sale = sales_service.get_sale(
        sale_id,
        g.current_user,
        include_items=parse_bool(request.args.get("include_items")),
        include_history=parse_bool(request.args.get("include_history")),
    )
    return success({"sale": sale}, "Sale retrieved")


@sales_bp.post("")
@require_auth
@rate_limit("sale_create", 60, 60)
def create_sale():
    """
    Record a sale (or a quote with ?quote=1).

    Body: customer_name, payment_method, items[{product_id, quantity,
    discount_percentage?, unit_price?}], plus optional customer contact,
    customer_id, tax_rate, discount_amount, payment_status, notes.
    """
    quote = parse_bool(request.args.get("quote"))
    sale = sales_service.create_sale(get_json_body(), g.current_user, quote=quote)
    log_activity(
        "sale_created",
        {"sale_id": sale.id, "sale_number": sale.sale_number, "total": sale.total, "status": sale.sale_status},
        user_id=g.current_user.id,
    )
    message = "Quote created successfully" if sale.sale_status == "draft" else "Sale created successfully"
    return success({"sale": sale.to_dict(include_items=True)}, message, 201)


@sales_bp.post("/<int:sale_id>/status")
@require_auth
@require_roles("admin", "manager")
def update_sale_status(sale_id: int):
    sale = sales_service.update_sale_status(sale_id, get_json_body(), g.current_user)
    log_activity("sale_status_changed", {"sale_id": sale.id, "sale_status": sale.sale_status}, user_id=g.current_user.id)
    return success({"sale": sale.to_dict(include_items=True)}, "Sale status updated")
