# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Product catalog: listing, lookups, create/update, stock updates and the
soft/hard delete lifecycle.

STOCK: any change to Product.stock made here is paired with an inventory
movement via inventory_service, inside the same transaction.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import Category, InventoryMovement, Product, SaleItem
from ..responses import PageParams, get_sort, paginate_query
from ..validation import (
    MAX_PRICE,
    ConflictError,
    FieldErrors,
    NotFoundError,
    ValidationError,
    check_choice,
    is_blank,
    parse_bool,
    parse_decimal,
    parse_int,
    slugify,
)
from . import inventory_service
from .transactions import atomic, lock_for_update, savepoint


PRODUCT_STATUSES = {"active", "inactive"}
STOCK_STATUSES = {"in_stock", "low_stock", "out_of_stock"}
DELETED_PRODUCT_MARKER = "[ELIMINADO]"

MAX_BULK_CREATE = 50
MAX_BULK_STOCK_UPDATES = 100
MAX_BULK_DELETE = 20

RELATED_PRODUCTS_LIMIT = 4

# Fields a PATCH may touch. Anything else in the body is rejected.
PATCHABLE_FIELDS = {
    "name", "category_id", "brand", "sku", "part_number",
    "price", "cost_price", "stock", "min_stock", "max_stock",
    "description", "specifications", "compatibility", "dimensions",
    "icon", "image_url", "weight", "warranty_months", "status", "featured",
}
REQUIRED_FIELDS = ("name", "category_id", "price")

# Values a full update (PUT) falls back to when a field is omitted.
# stock and sku are deliberately absent: they keep their current values.
FIELD_DEFAULTS: dict[str, Any] = {
    "brand": None,
    "part_number": None,
    "cost_price": Decimal("0"),
    "min_stock": 3,
    "max_stock": 100,
    "description": None,
    "specifications": None,
    "compatibility": None,
    "dimensions": None,
    "icon": "fas fa-cube",
    "image_url": None,
    "weight": None,
    "warranty_months": 12,
    "status": "active",
    "featured": False,
}


@dataclass
class BulkItemResult:
    """Outcome of one item in a bulk operation."""
    index: int
    ok: bool
    product_id: int | None = None
    error: str | None = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        body = {"index": self.index, "product_id": self.product_id}
        if self.ok:
            body.update(self.data)
        else:
            body["error"] = self.error
            if self.data:
                body["details"] = self.data
        return body


def _bulk_summary(results: list[BulkItemResult]) -> dict:
    ok = sum(1 for r in results if r.ok)
    return {"total_processed": len(results), "successful": ok, "failed": len(results) - ok}


def _error_text(exc: Exception) -> str:
    if isinstance(exc, ValidationError) and exc.details and exc.details.get("errors"):
        return "; ".join(e["message"] for e in exc.details["errors"])
    return str(exc)


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------

def _parse_text(max_length: int, min_length: int = 0) -> Callable:
    def parse(value, name: str, errors: FieldErrors):
        if isinstance(value, (dict, list, bool)):
            errors.add(name, f"{name} must be a string")
            return None
        text = str(value).strip()
        if len(text) < min_length:
            errors.add(name, f"{name} must be at least {min_length} characters")
            return None
        if len(text) > max_length:
            errors.add(name, f"{name} must be at most {max_length} characters")
            return None
        return text or None
    return parse


def _parse_json_object(value, name: str, errors: FieldErrors):
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = json.loads(value)
        except ValueError:
            errors.add(name, f"{name} must be valid JSON")
            return None
    if not isinstance(value, dict):
        errors.add(name, f"{name} must be an object")
        return None
    return value


def _parse_compatibility(value, name: str, errors: FieldErrors):
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                value = json.loads(stripped)
            except ValueError:
                errors.add(name, f"{name} must be valid JSON")
                return None
        else:
            return [part.strip() for part in stripped.split(",") if part.strip()]
    if not isinstance(value, list):
        errors.add(name, f"{name} must be a list or comma-separated string")
        return None
    return [str(item).strip() for item in value if str(item).strip()]


def _parse_price(value, name, errors):
    return parse_decimal(value, name, errors, minimum=0, exclusive_minimum=True, maximum=MAX_PRICE)


def _parse_money(value, name, errors):
    return parse_decimal(value, name, errors, minimum=0, maximum=MAX_PRICE)


def _parse_count(value, name, errors):
    return parse_int(value, name, errors, minimum=0)


def _parse_category_id(value, name, errors):
    return parse_int(value, name, errors, minimum=1)


def _parse_weight(value, name, errors):
    return parse_decimal(value, name, errors, minimum=0, maximum=100000)


def _parse_warranty(value, name, errors):
    return parse_int(value, name, errors, minimum=0, maximum=240)


def _parse_status(value, name, errors):
    return check_choice(value, name, PRODUCT_STATUSES, errors)


def _parse_featured(value, name, errors):
    return parse_bool(value)


def _parse_sku(value, name, errors):
    text = _parse_text(64)(value, name, errors)
    return text.upper() if text else text


FIELD_PARSERS: dict[str, Callable] = {
    "name": _parse_text(200, min_length=3),
    "category_id": _parse_category_id,
    "brand": _parse_text(100),
    "sku": _parse_sku,
    "part_number": _parse_text(100),
    "price": _parse_price,
    "cost_price": _parse_money,
    "stock": _parse_count,
    "min_stock": _parse_count,
    "max_stock": _parse_count,
    "description": _parse_text(10000),
    "specifications": _parse_json_object,
    "compatibility": _parse_compatibility,
    "dimensions": _parse_json_object,
    "icon": _parse_text(50),
    "image_url": _parse_text(500),
    "weight": _parse_weight,
    "warranty_months": _parse_warranty,
    "status": _parse_status,
    "featured": _parse_featured,
}

NON_NULLABLE_FIELDS = {
    "name", "category_id", "sku", "price", "cost_price", "stock", "min_stock",
    "max_stock", "icon", "warranty_months", "status", "featured",
}


def clean_product_payload(payload: dict, *, mode: str, current: Product | None = None) -> dict:
    """
    Validate and normalize a product body.

    mode:
    - "create": name/category_id/price required, other fields optional
    - "replace": same requirements as create (full update)
    - "patch": any non-empty subset of PATCHABLE_FIELDS

    Every failing field is collected before raising ValidationError.
    """
    errors = FieldErrors()

    if mode == "patch":
        if not payload:
            raise ValidationError("No data to update")
        unknown = sorted(set(payload) - PATCHABLE_FIELDS)
        for key in unknown:
            errors.add(key, f"{key} cannot be updated")
    else:
        for key in REQUIRED_FIELDS:
            if is_blank(payload.get(key)):
                errors.add(key, f"{key} is required")

    cleaned: dict[str, Any] = {}
    for key, parser in FIELD_PARSERS.items():
        if key not in payload or errors.has(key):
            continue
        value = payload[key]
        if value is None or (isinstance(value, str) and not value.strip() and key not in ("name",)):
            if key in NON_NULLABLE_FIELDS:
                if mode == "patch" or key in REQUIRED_FIELDS:
                    errors.add(key, f"{key} cannot be empty")
                continue
            cleaned[key] = None
            continue
        before = len(errors.errors)
        parsed = parser(value, key, errors)
        if len(errors.errors) == before:
            cleaned[key] = parsed

    if "category_id" in cleaned:
        category = db.session.get(Category, cleaned["category_id"])
        if category is None or category.status != "active":
            errors.add("category_id", "category does not exist or is inactive")

    min_stock = cleaned.get("min_stock", current.min_stock if current else 3)
    max_stock = cleaned.get("max_stock", current.max_stock if current else 100)
    if ("min_stock" in cleaned or "max_stock" in cleaned) and min_stock is not None and max_stock is not None:
        if max_stock < min_stock:
            errors.add("max_stock", "max_stock must be greater than or equal to min_stock")

    errors.raise_if_any("Product validation failed")
    return cleaned


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def unique_slug(model, text: str, exclude_id: int | None = None) -> str:
    """Slug from text, suffixed -1, -2, ... until unused in `model`."""
    base = slugify(text) or "item"
    candidate = base
    counter = 1
    while True:
        query = db.session.query(model.id).filter(model.slug == candidate)
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)
        if query.first() is None:
            return candidate
        candidate = f"{base}-{counter}"
        counter += 1


def generate_sku(category: Category, brand: str | None) -> str:
    """CAT[-BRA]-XXXXXX, retried until unique."""
    parts = [slugify(category.slug).replace("-", "")[:3].upper() or "PRD"]
    if brand:
        brand_part = slugify(brand).replace("-", "")[:3].upper()
        if brand_part:
            parts.append(brand_part)
    while True:
        sku = "-".join(parts + [secrets.token_hex(3).upper()])
        if not _sku_taken(sku):
            return sku


def _sku_taken(sku: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

SORT_FIELDS = {
    "name": Product.name,
    "price": Product.price,
    "stock": Product.stock,
    "created_at": Product.created_at,
    "id": Product.id,
    "category_name": Category.name,
}


def _stock_status_clause(bucket: str):
    if bucket == "out_of_stock":
        return Product.stock <= 0
    if bucket == "low_stock":
        return (Product.stock > 0) & (Product.stock <= Product.min_stock)
    return Product.stock > Product.min_stock


def _apply_list_filters(query, args, errors: FieldErrors):
    applied: dict[str, Any] = {}

    category_slug = args.get("category")
    if not is_blank(category_slug):
        query = query.filter(Category.slug == category_slug)
        applied["category"] = category_slug

    if not is_blank(args.get("category_id")):
        category_id = parse_int(args.get("category_id"), "category_id", errors, minimum=1)
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
            applied["category_id"] = category_id

    search = args.get("search")
    if not is_blank(search):
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.part_number.ilike(pattern),
            Product.brand.ilike(pattern),
            Product.description.ilike(pattern),
        ))
        applied["search"] = search.strip()

    brand = args.get("brand")
    if not is_blank(brand):
        query = query.filter(Product.brand == brand)
        applied["brand"] = brand

    if not is_blank(args.get("min_price")):
        min_price = parse_decimal(args.get("min_price"), "min_price", errors, minimum=0)
        if min_price is not None:
            query = query.filter(Product.price >= min_price)
            applied["min_price"] = float(min_price)

    if not is_blank(args.get("max_price")):
        max_price = parse_decimal(args.get("max_price"), "max_price", errors, minimum=0)
        if max_price is not None:
            query = query.filter(Product.price <= max_price)
            applied["max_price"] = float(max_price)

    if parse_bool(args.get("in_stock")):
        query = query.filter(Product.stock > 0)
        applied["in_stock"] = True

    stock_status = args.get("stock_status")
    if not is_blank(stock_status):
        if check_choice(stock_status, "stock_status", STOCK_STATUSES, errors):
            query = query.filter(_stock_status_clause(stock_status))
            applied["stock_status"] = stock_status

    if parse_bool(args.get("featured")):
        query = query.filter(Product.featured.is_(True))
        applied["featured"] = True

    return query, applied


def _catalog_statistics(query) -> dict:
    base = query.order_by(None)
    totals = base.with_entities(
        func.count(Product.id),
        func.min(Product.price),
        func.max(Product.price),
        func.avg(Product.price),
        func.coalesce(func.sum(Product.stock * Product.price), 0),
        func.coalesce(func.sum(case((Product.stock <= 0, 1), else_=0)), 0),
        func.coalesce(func.sum(case(((Product.stock > 0) & (Product.stock <= Product.min_stock), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Product.stock > Product.min_stock, 1), else_=0)), 0),
    ).one()
    count, min_price, max_price, avg_price, inventory_value, out_count, low_count, in_count = totals

    top_categories = base.with_entities(
        Category.name, Category.slug, func.count(Product.id).label("n")
    ).group_by(Category.id, Category.name, Category.slug).order_by(func.count(Product.id).desc()).limit(5).all()

    top_brands = base.filter(Product.brand.isnot(None)).with_entities(
        Product.brand, func.count(Product.id).label("n")
    ).group_by(Product.brand).order_by(func.count(Product.id).desc()).limit(5).all()

    def _num(value):
        return round(float(value), 2) if value is not None else 0.0

    return {
        "total_products": int(count or 0),
        "stock_distribution": {
            "in_stock": int(in_count),
            "low_stock": int(low_count),
            "out_of_stock": int(out_count),
        },
        "price_range": {
            "min": _num(min_price),
            "max": _num(max_price),
            "avg": _num(avg_price),
        },
        "total_inventory_value": _num(inventory_value),
        "top_categories": [{"name": n, "slug": s, "count": c} for n, s, c in top_categories],
        "top_brands": [{"brand": b, "count": c} for b, c in top_brands],
    }


def list_products(args, params: PageParams) -> dict:
    """Public catalog listing: active products only."""
    errors = FieldErrors()
    query = db.session.query(Product).join(Category, Category.id == Product.category_id).filter(
        Product.status == "active"
    )
    query, applied = _apply_list_filters(query, args, errors)
    errors.raise_if_any("Invalid filters")

    sort_by, sort_order, order_clause = get_sort(SORT_FIELDS)
    result = paginate_query(query.order_by(order_clause, Product.id), params, lambda p: p.to_dict())
    result["filters_applied"] = applied
    result["sort"] = {"sort_by": sort_by, "sort_order": sort_order}
    if parse_bool(args.get("include_stats")):
        result["statistics"] = _catalog_statistics(query)
    return result


def related_products(product: Product, limit: int = RELATED_PRODUCTS_LIMIT) -> list[dict]:
    rows = db.session.query(Product).filter(
        Product.category_id == product.category_id,
        Product.id != product.id,
        Product.status == "active",
        Product.stock > 0,
    ).order_by(Product.featured.desc(), Product.name.asc()).limit(limit).all()
    return [
        {
            "id": p.id,
            "name": p.name,
            "slug": p.slug,
            "price": float(p.price),
            "stock": p.stock,
            "stock_status": p.stock_status,
            "icon": p.icon,
            "image_url": p.image_url,
        }
        for p in rows
    ]


def get_public_product(*, product_id: int | None = None, slug: str | None = None, part_number: str | None = None) -> dict:
    query = db.session.query(Product).filter(Product.status == "active")
    if product_id is not None:
        query = query.filter(Product.id == product_id)
        lookup = {"id": product_id}
    elif slug is not None:
        query = query.filter(Product.slug == slug)
        lookup = {"slug": slug}
    else:
        query = query.filter(Product.part_number == part_number)
        lookup = {"part_number": part_number}

    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", lookup)

    data = product.to_dict()
    data["related_products"] = related_products(product)
    return data


def _get_product_or_404(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter(Product.id == product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", {"id": product_id})
    return product


# ---------------------------------------------------------------------------
# Create / update
# ---------------------------------------------------------------------------

def _build_product(cleaned: dict, user_id: int | None) -> Product:
    if cleaned.get("sku") and _sku_taken(cleaned["sku"]):
        raise ConflictError("SKU already exists", {"sku": cleaned["sku"]})

    category = db.session.get(Category, cleaned["category_id"])
    values = dict(FIELD_DEFAULTS)
    values.update(cleaned)
    values["stock"] = cleaned.get("stock") or 0
    values["sku"] = cleaned.get("sku") or generate_sku(category, cleaned.get("brand"))
    values["slug"] = unique_slug(Product, cleaned["name"])

    product = Product(created_by=user_id, **values)
    db.session.add(product)
    db.session.flush()
    inventory_service.record_initial_stock(product, user_id=user_id)
    return product


def create_product(payload: dict, user_id: int) -> Product:
    cleaned = clean_product_payload(payload, mode="create")
    with atomic():
        product = _build_product(cleaned, user_id)
    return product


def bulk_create_products(payload: dict, user_id: int) -> dict:
    items = payload.get("products")
    if not isinstance(items, list) or not items:
        raise ValidationError(
            "A non-empty products array is required",
            {"expected_format": {"products": []}},
        )
    if len(items) > MAX_BULK_CREATE:
        raise ValidationError(
            f"At most {MAX_BULK_CREATE} products per batch",
            {"provided_count": len(items), "max_allowed": MAX_BULK_CREATE},
        )

    results: list[BulkItemResult] = []
    with atomic():
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                results.append(BulkItemResult(index=index, ok=False, error="Item must be an object"))
                continue
            try:
                with savepoint():
                    cleaned = clean_product_payload(item, mode="create")
                    product = _build_product(cleaned, user_id)
                results.append(BulkItemResult(
                    index=index, ok=True, product_id=product.id,
                    data={"name": product.name, "sku": product.sku},
                ))
            except (ValidationError, ConflictError) as exc:
                results.append(BulkItemResult(
                    index=index, ok=False, error=_error_text(exc),
                    data={"product_name": item.get("name")},
                ))

    return {
        "created_products": [r.to_dict() for r in results if r.ok],
        "errors": [r.to_dict() for r in results if not r.ok],
        "summary": _bulk_summary(results),
    }


def _jsonable(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


def _same(a, b) -> bool:
    if isinstance(a, Decimal) or isinstance(b, Decimal):
        if a is None or b is None:
            return a is b
        return Decimal(str(a)) == Decimal(str(b))
    return a == b


def update_product(product_id: int, payload: dict, user_id: int, *, partial: bool) -> dict:
    """
    PUT (partial=False) or PATCH (partial=True).

    A stock change is recorded as one in/out movement of |delta|.
    """
    with atomic():
        product = _get_product_or_404(product_id, lock=True)
        cleaned = clean_product_payload(payload, mode="patch" if partial else "replace", current=product)

        if not partial:
            for key, default in FIELD_DEFAULTS.items():
                cleaned.setdefault(key, default)

        if cleaned.get("sku") and cleaned["sku"] != product.sku and _sku_taken(cleaned["sku"], exclude_id=product.id):
            raise ConflictError("SKU already exists", {"sku": cleaned["sku"]})

        new_stock = cleaned.pop("stock", None)
        changes: dict[str, dict] = {}

        for key, value in cleaned.items():
            old = getattr(product, key)
            if not _same(old, value):
                changes[key] = {"from": _jsonable(old), "to": _jsonable(value)}
                setattr(product, key, value)

        if "name" in changes:
            new_slug = unique_slug(Product, product.name, exclude_id=product.id)
            if new_slug != product.slug:
                changes["slug"] = {"from": product.slug, "to": new_slug}
                product.slug = new_slug

        movement = None
        if new_stock is not None and new_stock != product.stock:
            changes["stock"] = {"from": product.stock, "to": new_stock}
            movement = inventory_service.set_stock(
                product,
                new_stock,
                reference_type="adjustment",
                notes="Stock updated via product edit",
                user_id=user_id,
            )

        db.session.flush()
        if "category_id" in changes:
            db.session.expire(product, ["category"])
        result = {
            "product": product.to_dict(),
            "updated_fields": sorted(payload.keys()),
            "changes": changes,
        }
        if movement is not None:
            result["inventory_movement"] = movement.to_dict()

    return result


def bulk_update_stock(payload: dict, user_id: int) -> dict:
    updates = payload.get("stock_updates")
    if not isinstance(updates, list) or not updates:
        raise ValidationError(
            "A non-empty stock_updates array is required",
            {"expected_format": {"stock_updates": [{"id": 1, "stock": 10}]}},
        )
    if len(updates) > MAX_BULK_STOCK_UPDATES:
        raise ValidationError(
            f"At most {MAX_BULK_STOCK_UPDATES} stock updates per batch",
            {"provided_count": len(updates), "max_allowed": MAX_BULK_STOCK_UPDATES},
        )

    results: list[BulkItemResult] = []
    with atomic():
        for index, item in enumerate(updates):
            item = item if isinstance(item, dict) else {}
            errors = FieldErrors()
            product_id = parse_int(item.get("id"), "id", errors, minimum=1)
            new_stock = parse_int(item.get("stock"), "stock", errors, minimum=0)
            if errors:
                results.append(BulkItemResult(
                    index=index, ok=False, product_id=product_id,
                    error="; ".join(errors.messages()),
                ))
                continue
            try:
                with savepoint():
                    product = _get_product_or_404(product_id, lock=True)
                    previous = product.stock
                    inventory_service.set_stock(
                        product,
                        new_stock,
                        reference_type="adjustment",
                        notes="Bulk stock update",
                        user_id=user_id,
                    )
                results.append(BulkItemResult(
                    index=index, ok=True, product_id=product_id,
                    data={"name": product.name, "previous_stock": previous, "new_stock": new_stock},
                ))
            except (NotFoundError, ConflictError) as exc:
                results.append(BulkItemResult(index=index, ok=False, product_id=product_id, error=str(exc)))

    return {
        "successful_updates": [r.to_dict() for r in results if r.ok],
        "errors": [r.to_dict() for r in results if not r.ok],
        "summary": _bulk_summary(results),
    }


# ---------------------------------------------------------------------------
# Delete lifecycle
# ---------------------------------------------------------------------------

def dependency_issues(product: Product) -> list[dict]:
    """Things that block a non-forced hard delete."""
    issues = []
    sales_count = db.session.query(func.count(SaleItem.id)).filter(SaleItem.product_id == product.id).scalar()
    if sales_count:
        issues.append({"type": "has_sales", "count": int(sales_count),
                       "message": "Product appears in existing sales"})
    movements_count = db.session.query(func.count(InventoryMovement.id)).filter(
        InventoryMovement.product_id == product.id
    ).scalar()
    if movements_count:
        issues.append({"type": "has_inventory_movements", "count": int(movements_count),
                       "message": "Product has inventory movements"})
    if product.stock > 0:
        issues.append({"type": "has_stock", "count": product.stock,
                       "message": "Product still has stock on hand"})
    return issues


def _soft_delete(product: Product, user_id: int | None) -> dict:
    removed = product.stock
    inventory_service.set_stock(
        product,
        0,
        reference_type="adjustment",
        notes="Stock removed - product deactivated",
        user_id=user_id,
    )
    product.status = "inactive"
    return {"type": "soft", "stock_removed": removed}


def _hard_delete(product: Product) -> dict:
    movements_deleted = db.session.query(InventoryMovement).filter(
        InventoryMovement.product_id == product.id
    ).delete(synchronize_session=False)

    marked = db.session.query(SaleItem).filter(SaleItem.product_id == product.id).update(
        {
            SaleItem.product_name: SaleItem.product_name + f" {DELETED_PRODUCT_MARKER}",
            SaleItem.product_id: None,
        },
        synchronize_session=False,
    )

    db.session.delete(product)
    db.session.flush()
    return {"type": "hard", "movements_deleted": movements_deleted, "sale_items_marked": marked}


def delete_product(product_id: int, user_id: int, *, permanent: bool = False, force: bool = False) -> dict:
    """
    Soft delete by default. permanent=True hard-deletes after dependency
    checks; force=True hard-deletes regardless of dependencies.
    """
    with atomic():
        product = _get_product_or_404(product_id, lock=True)
        snapshot = {"id": product.id, "name": product.name, "sku": product.sku}

        if force or permanent:
            if not force:
                issues = dependency_issues(product)
                if issues:
                    raise ConflictError(
                        "Product cannot be permanently deleted while it has dependencies",
                        {"issues": issues, "hint": "Use force=1 to delete anyway"},
                    )
            outcome = _hard_delete(product)
        else:
            if product.status == "inactive":
                raise ConflictError("Product is already inactive", {"id": product_id})
            outcome = _soft_delete(product, user_id)
            db.session.flush()

    return {"product": snapshot, "deletion": outcome}


def list_trash(params: PageParams) -> dict:
    query = db.session.query(Product).filter(Product.status == "inactive").order_by(
        Product.updated_at.desc(), Product.id.desc()
    )
    return paginate_query(query, params, lambda p: p.to_dict())


def restore_product(product_id: int, user_id: int) -> Product:
    """
    Reactivate an inactive product. Stock is left as it is: zeroed by a soft
    delete, or kept when the product was deactivated through a status update.
    Nothing changes on hand, so no movement is written.
    """
    with atomic():
        product = lock_for_update(db.session.query(Product).filter(
            Product.id == product_id, Product.status == "inactive"
        )).first()
        if product is None:
            raise NotFoundError("Inactive product not found", {"id": product_id})

        product.status = "active"
        db.session.flush()
    return product


def bulk_delete_products(payload: dict, user_id: int) -> dict:
    ids = payload.get("product_ids")
    if not isinstance(ids, list) or not ids:
        raise ValidationError(
            "A non-empty product_ids array is required",
            {"expected_format": {"product_ids": [1, 2, 3], "force": False}},
        )
    if len(ids) > MAX_BULK_DELETE:
        raise ValidationError(
            f"At most {MAX_BULK_DELETE} products per bulk delete",
            {"provided_count": len(ids), "max_allowed": MAX_BULK_DELETE},
        )
    force = parse_bool(payload.get("force"))

    results: list[BulkItemResult] = []
    with atomic():
        for index, raw_id in enumerate(ids):
            errors = FieldErrors()
            product_id = parse_int(raw_id, "product_id", errors, minimum=1)
            if errors:
                results.append(BulkItemResult(index=index, ok=False, error="; ".join(errors.messages())))
                continue
            try:
                with savepoint():
                    product = _get_product_or_404(product_id, lock=True)
                    name = product.name
                    if force:
                        outcome = _hard_delete(product)
                    else:
                        sales_count = db.session.query(func.count(SaleItem.id)).filter(
                            SaleItem.product_id == product.id
                        ).scalar()
                        if sales_count:
                            raise ConflictError(
                                f"Product has {sales_count} associated sale items",
                            )
                        if product.status == "inactive":
                            raise ConflictError("Product is already inactive")
                        outcome = _soft_delete(product, user_id)
                results.append(BulkItemResult(
                    index=index, ok=True, product_id=product_id,
                    data={"name": name, "deletion": outcome},
                ))
            except (NotFoundError, ConflictError) as exc:
                results.append(BulkItemResult(index=index, ok=False, product_id=product_id, error=str(exc)))

    return {
        "deleted_products": [r.to_dict() for r in results if r.ok],
        "errors": [r.to_dict() for r in results if not r.ok],
        "summary": _bulk_summary(results),
        "force": force,
    }
