# Overview: Service-layer operations for the inventory ledger; encapsulates business logic and database work.

"""
Inventory ledger.

Every change to Product.stock goes through this module and produces
exactly one InventoryMovement row with before/after snapshots. Movements
are append-only. Callers own the transaction; nothing here commits.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..models import InventoryMovement, Product
from ..responses import PageParams, paginate_query
from ..time_utils import day_bounds, parse_date, utcnow
from ..validation import (
    ConflictError,
    FieldErrors,
    NotFoundError,
    ValidationError,
    check_choice,
    is_blank,
    optional_text,
    parse_decimal,
    parse_int,
)
from .transactions import atomic, lock_for_update


MOVEMENT_TYPES = {"in", "out", "adjustment", "initial"}
MANUAL_MOVEMENT_TYPES = {"in", "out", "adjustment"}
DEFAULT_ADJUSTMENT_NOTE = "Manual inventory adjustment"


def record_movement(
    product: Product,
    *,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    unit_cost: Decimal | None = None,
) -> InventoryMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement type: {movement_type}")
    movement = InventoryMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        unit_cost=unit_cost if unit_cost is not None else product.cost_price,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def record_initial_stock(product: Product, *, user_id: int | None, notes: str = "Initial stock") -> InventoryMovement | None:
    """Ledger entry for a freshly created product; None when it starts empty."""
    if product.stock <= 0:
        return None
    return record_movement(
        product,
        movement_type="initial",
        quantity=product.stock,
        previous_stock=0,
        new_stock=product.stock,
        reference_type="initial",
        notes=notes,
        user_id=user_id,
    )


def set_stock(
    product: Product,
    new_stock: int,
    *,
    reference_type: str,
    notes: str,
    user_id: int | None,
    reference_id: int | None = None,
    unit_cost: Decimal | None = None,
) -> InventoryMovement | None:
    """
    Set absolute stock and record it as an 'in' or 'out' of |delta|.
    Returns None (and records nothing) when the stock is unchanged.
    """
    if new_stock < 0:
        raise ConflictError("Stock cannot be negative", {"product_id": product.id, "requested_stock": new_stock})

    previous = product.stock
    delta = new_stock - previous
    if delta == 0:
        return None

    product.stock = new_stock
    return record_movement(
        product,
        movement_type="in" if delta > 0 else "out",
        quantity=abs(delta),
        previous_stock=previous,
        new_stock=new_stock,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
        unit_cost=unit_cost,
    )


def decrement_stock(
    product: Product,
    quantity: int,
    *,
    reference_type: str,
    reference_id: int | None,
    notes: str,
    user_id: int | None,
) -> InventoryMovement:
    """
    Atomically take `quantity` units out of stock.

    The UPDATE only matches while stock >= quantity, so two writers can
    never drive stock below zero; a miss raises ConflictError and the
    caller's transaction is rolled back.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(
            stock=Product.stock - quantity,
            version_id=Product.version_id + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.refresh(product)
        raise ConflictError(
            f"Insufficient stock for {product.name}",
            {"product_id": product.id, "available": product.stock, "requested": quantity},
        )

    db.session.refresh(product)
    return record_movement(
        product,
        movement_type="out",
        quantity=quantity,
        previous_stock=product.stock + quantity,
        new_stock=product.stock,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
    )


def list_movements(args, params: PageParams) -> dict:
    """Newest-first movement listing with optional filters."""
    errors = FieldErrors()
    query = db.session.query(InventoryMovement).join(Product, Product.id == InventoryMovement.product_id)

    if not is_blank(args.get("product_id")):
        product_id = parse_int(args.get("product_id"), "product_id", errors, minimum=1)
        if product_id is not None:
            query = query.filter(InventoryMovement.product_id == product_id)

    movement_type = args.get("movement_type")
    if not is_blank(movement_type):
        if check_choice(movement_type, "movement_type", MOVEMENT_TYPES, errors):
            query = query.filter(InventoryMovement.movement_type == movement_type)

    reference_type = args.get("reference_type")
    if not is_blank(reference_type):
        query = query.filter(InventoryMovement.reference_type == reference_type)

    start, end = None, None
    try:
        start = parse_date(args.get("date_from"))
    except ValueError:
        errors.add("date_from", "date_from must be YYYY-MM-DD")
    try:
        end = parse_date(args.get("date_to"))
    except ValueError:
        errors.add("date_to", "date_to must be YYYY-MM-DD")
    errors.raise_if_any("Invalid filters")

    if start:
        query = query.filter(InventoryMovement.created_at >= day_bounds(start, start)[0])
    if end:
        query = query.filter(InventoryMovement.created_at < day_bounds(end, end)[1])

    query = query.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    return paginate_query(query, params, lambda m: m.to_dict())


def create_manual_movement(payload: dict, user_id: int) -> dict:
    """
    Apply a manual in/out/adjustment.

    'adjustment' takes `quantity` as the new absolute stock and is recorded
    as an in/out of the difference.
    """
    errors = FieldErrors()
    product_id = None
    if is_blank(payload.get("product_id")):
        errors.add("product_id", "product_id is required")
    else:
        product_id = parse_int(payload.get("product_id"), "product_id", errors, minimum=1)

    movement_type = payload.get("movement_type")
    if is_blank(movement_type):
        errors.add("movement_type", "movement_type is required")
    else:
        movement_type = check_choice(movement_type, "movement_type", MANUAL_MOVEMENT_TYPES, errors)

    quantity = None
    if is_blank(payload.get("quantity")):
        errors.add("quantity", "quantity is required")
    else:
        # an adjustment may bring stock down to zero
        floor = 0 if movement_type == "adjustment" else 1
        quantity = parse_int(payload.get("quantity"), "quantity", errors, minimum=floor)

    unit_cost = None
    if not is_blank(payload.get("unit_cost")):
        unit_cost = parse_decimal(payload.get("unit_cost"), "unit_cost", errors, minimum=0)

    notes = optional_text(payload.get("notes"), "notes", errors, max_length=1000)
    errors.raise_if_any("Invalid inventory movement")

    with atomic():
        product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if product is None:
            raise NotFoundError("Product not found", {"product_id": product_id})

        current = product.stock
        if movement_type == "in":
            new_stock = current + quantity
        elif movement_type == "out":
            if quantity > current:
                raise ConflictError(
                    "Insufficient stock",
                    {"product_id": product.id, "available": current, "requested": quantity},
                )
            new_stock = current - quantity
        else:
            new_stock = quantity
            if new_stock == current:
                raise ValidationError(
                    "Adjustment does not change stock",
                    {"errors": [{"field": "quantity", "message": f"stock is already {current}"}]},
                )

        movement = set_stock(
            product,
            new_stock,
            reference_type="adjustment",
            notes=notes or DEFAULT_ADJUSTMENT_NOTE,
            user_id=user_id,
            unit_cost=unit_cost,
        )
        db.session.flush()
        result = {"movement": movement.to_dict(), "product": product.to_dict()}

    return result
