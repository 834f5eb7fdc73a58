# Overview: Service-layer operations for categories; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import Category, Product
from ..validation import (
    ConflictError,
    FieldErrors,
    NotFoundError,
    ValidationError,
    check_choice,
    is_blank,
    optional_text,
    require_text,
)
from .products_service import unique_slug
from .transactions import atomic


CATEGORY_STATUSES = {"active", "inactive"}
DEFAULT_CATEGORY_ICON = "fas fa-tag"
EDITABLE_FIELDS = {"name", "description", "icon", "status"}


def _name_taken(name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def list_categories(args) -> list[dict]:
    """Categories with total and active product counts, ordered by name."""
    products_count = func.count(Product.id)
    active_count = func.coalesce(func.sum(case((Product.status == "active", 1), else_=0)), 0)

    query = db.session.query(Category, products_count, active_count).outerjoin(
        Product, Product.category_id == Category.id
    ).group_by(Category.id)

    status = args.get("status") or "active"
    if status != "all":
        if status not in CATEGORY_STATUSES:
            raise ValidationError(
                "Invalid status filter",
                {"errors": [{"field": "status", "message": "status must be active, inactive or all"}]},
            )
        query = query.filter(Category.status == status)

    search = args.get("search")
    if not is_blank(search):
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Category.name.ilike(pattern), Category.description.ilike(pattern)))

    rows = query.order_by(Category.name.asc()).all()
    result = []
    for category, total, active in rows:
        data = category.to_dict()
        data["products_count"] = int(total or 0)
        data["active_products_count"] = int(active or 0)
        result.append(data)
    return result


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found", {"id": category_id})
    return category


def _clean(payload: dict, *, partial: bool, current: Category | None = None) -> dict:
    errors = FieldErrors()
    cleaned: dict = {}

    if partial:
        if not payload:
            raise ValidationError("No data to update")
        for key in sorted(set(payload) - EDITABLE_FIELDS):
            errors.add(key, f"{key} cannot be updated")

    if not partial or "name" in payload:
        name = require_text(payload, "name", errors, min_length=2, max_length=100)
        if name is not None:
            cleaned["name"] = name
    if "description" in payload:
        cleaned["description"] = optional_text(payload.get("description"), "description", errors, max_length=5000)
    if "icon" in payload:
        cleaned["icon"] = optional_text(payload.get("icon"), "icon", errors, max_length=50) or DEFAULT_CATEGORY_ICON
    if "status" in payload:
        status = check_choice(payload.get("status"), "status", CATEGORY_STATUSES, errors)
        if status:
            cleaned["status"] = status

    errors.raise_if_any("Category validation failed")

    if "name" in cleaned and _name_taken(cleaned["name"], exclude_id=current.id if current else None):
        raise ConflictError("A category with that name already exists", {"name": cleaned["name"]})
    return cleaned


def create_category(payload: dict) -> Category:
    cleaned = _clean(payload, partial=False)
    with atomic():
        category = Category(
            name=cleaned["name"],
            slug=unique_slug(Category, cleaned["name"]),
            description=cleaned.get("description"),
            icon=cleaned.get("icon") or DEFAULT_CATEGORY_ICON,
            status=cleaned.get("status", "active"),
        )
        db.session.add(category)
    return category


def update_category(category_id: int, payload: dict) -> Category:
    with atomic():
        category = get_category(category_id)
        cleaned = _clean(payload, partial=True, current=category)
        if "name" in cleaned and cleaned["name"] != category.name:
            category.slug = unique_slug(Category, cleaned["name"], exclude_id=category.id)
        for key, value in cleaned.items():
            setattr(category, key, value)
    return category
