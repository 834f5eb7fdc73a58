# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/prismatech/routes/products.py
"""
Product catalog routes.

Reads are public and only ever expose active products. Writes require a
bearer token:
- create / update / delete / trash / restore: admin, manager
- PATCH: admin, manager, employee
- bulk create / bulk delete / permanent delete: admin
"""
from flask import Blueprint, g, request

from ..decorators import rate_limit, require_auth, require_roles
from ..responses import get_json_body, get_page_params, success
from ..services import products_service
from ..services.activity_service import log_activity
from ..validation import AuthorizationError, parse_bool

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Public catalog listing.

    Query params: category, category_id, search, brand, min_price, max_price,
    in_stock, stock_status, featured, sort_by, sort_order, page, limit,
    include_stats.
    """
    result = products_service.list_products(request.args, get_page_params())
    return success(result, "Products retrieved")


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    return success(products_service.get_public_product(product_id=product_id), "Product retrieved")


@products_bp.get("/slug/<slug>")
def get_product_by_slug(slug: str):
    return success(products_service.get_public_product(slug=slug), "Product retrieved")


@products_bp.get("/part/<part_number>")
def get_product_by_part_number(part_number: str):
    return success(products_service.get_public_product(part_number=part_number), "Product retrieved")


@products_bp.post("")
@require_auth
@require_roles("admin", "manager")
@rate_limit("product_create", 30, 60)
def create_product():
    product = products_service.create_product(get_json_body(), g.current_user.id)
    log_activity("product_created", {"product_id": product.id, "sku": product.sku}, user_id=g.current_user.id)
    return success({"product": product.to_dict()}, "Product created successfully", 201)


@products_bp.post("/bulk")
@require_auth
@require_roles("admin")
@rate_limit("product_bulk_create", 5, 60)
def bulk_create_products():
    result = products_service.bulk_create_products(get_json_body(), g.current_user.id)
    log_activity("products_bulk_created", result["summary"], user_id=g.current_user.id)
    return success(result, "Bulk create processed", 201 if result["created_products"] else 200)


@products_bp.put("/<int:product_id>")
@require_auth
@require_roles("admin", "manager")
def replace_product(product_id: int):
    result = products_service.update_product(product_id, get_json_body(), g.current_user.id, partial=False)
    log_activity("product_updated", {"product_id": product_id, "fields": result["updated_fields"]}, user_id=g.current_user.id)
    return success(result, "Product updated successfully")


@products_bp.patch("/<int:product_id>")
@require_auth
@require_roles("admin", "manager", "employee")
def patch_product(product_id: int):
    result = products_service.update_product(product_id, get_json_body(), g.current_user.id, partial=True)
    log_activity("product_updated", {"product_id": product_id, "fields": result["updated_fields"]}, user_id=g.current_user.id)
    return success(result, "Product updated successfully")


@products_bp.put("/stock")
@require_auth
@require_roles("admin", "manager")
def bulk_update_stock():
    result = products_service.bulk_update_stock(get_json_body(), g.current_user.id)
    log_activity("stock_bulk_updated", result["summary"], user_id=g.current_user.id)
    return success(result, "Bulk stock update processed")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_roles("admin", "manager")
def delete_product(product_id: int):
    """
    Soft delete by default.

    ?permanent=1 hard-deletes after dependency checks, ?force=1 hard-deletes
    regardless; both are admin only.
    """
    permanent = parse_bool(request.args.get("permanent"))
    force = parse_bool(request.args.get("force"))
    if (permanent or force) and g.current_user.role != "admin":
        raise AuthorizationError("Only administrators can permanently delete products")

    result = products_service.delete_product(product_id, g.current_user.id, permanent=permanent, force=force)
    log_activity("product_deleted", {"product": result["product"], "type": result["deletion"]["type"]}, user_id=g.current_user.id)
    return success(result, "Product deleted successfully")


@products_bp.delete("/bulk")
@require_auth
@require_roles("admin")
@rate_limit("product_bulk_delete", 5, 60)
def bulk_delete_products():
    result = products_service.bulk_delete_products(get_json_body(), g.current_user.id)
    log_activity("products_bulk_deleted", {**result["summary"], "force": result["force"]}, user_id=g.current_user.id)
    return success(result, "Bulk delete processed")


@products_bp.get("/trash")
@require_auth
@require_roles("admin", "manager")
def list_trash():
    return success(products_service.list_trash(get_page_params()), "Deleted products retrieved")


@products_bp.post("/<int:product_id>/restore")
@require_auth
@require_roles("admin", "manager")
def restore_product(product_id: int):
    product = products_service.restore_product(product_id, g.current_user.id)
    log_activity("product_restored", {"product_id": product.id}, user_id=g.current_user.id)
    return success({"product": product.to_dict()}, "Product restored successfully")
