# Overview: Flask API routes for categories operations; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_roles
from ..responses import get_json_body, success
from ..services import categories_service
from ..services.activity_service import log_activity

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    """Public. ?status=active|inactive|all (default active), ?search=."""
    categories = categories_service.list_categories(request.args)
    return success({"categories": categories, "total": len(categories)}, "Categories retrieved")


@categories_bp.get("/<int:category_id>")
def get_category(category_id: int):
    category = categories_service.get_category(category_id)
    return success({"category": category.to_dict()}, "Category retrieved")


@categories_bp.post("")
@require_auth
@require_roles("admin", "manager")
def create_category():
    category = categories_service.create_category(get_json_body())
    log_activity("category_created", {"category_id": category.id}, user_id=g.current_user.id)
    return success({"category": category.to_dict()}, "Category created successfully", 201)


@categories_bp.patch("/<int:category_id>")
@require_auth
@require_roles("admin", "manager")
def update_category(category_id: int):
    category = categories_service.update_category(category_id, get_json_body())
    log_activity("category_updated", {"category_id": category.id}, user_id=g.current_user.id)
    return success({"category": category.to_dict()}, "Category updated successfully")
