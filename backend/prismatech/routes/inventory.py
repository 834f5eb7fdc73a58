# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_roles
from ..responses import get_json_body, get_page_params, success
from ..services import inventory_service
from ..services.activity_service import log_activity

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/movements")
@require_auth
@require_roles("admin", "manager")
def list_movements():
    """Filters: product_id, movement_type, reference_type, date_from, date_to."""
    return success(inventory_service.list_movements(request.args, get_page_params()), "Movements retrieved")


@inventory_bp.post("/movements")
@require_auth
@require_roles("admin", "manager")
def create_movement():
    result = inventory_service.create_manual_movement(get_json_body(), g.current_user.id)
    log_activity(
        "stock_adjusted",
        {
            "product_id": result["product"]["id"],
            "movement_type": result["movement"]["movement_type"],
            "quantity": result["movement"]["quantity"],
        },
        user_id=g.current_user.id,
    )
    return success(result, "Inventory movement recorded", 201)
