# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale creation and lifecycle.

create_sale() is all-or-nothing: the header, every line, the stock
decrements with their ledger entries and the customer running totals are
written in one transaction. Any failure rolls everything back.

LIFECYCLE:
- draft (quote): stored for reference, stock and customer totals untouched
- completed: stock decremented, customer totals incremented
- draft -> completed applies the stock/customer effects at that moment
- draft -> cancelled has no side effects
- completed -> refunded returns stock with 'in' movements; customer totals
  are never decremented
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import Integer, cast, func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, InventoryMovement, Product, Sale, SaleItem, User
from ..money import HUNDRED, ZERO, as_float, quantize
from ..responses import PageParams, get_sort, paginate_query
from ..time_utils import day_bounds, parse_date, to_utc_z, utcnow
from ..validation import (
    AuthorizationError,
    ConflictError,
    FieldErrors,
    NotFoundError,
    ValidationError,
    check_choice,
    is_blank,
    is_valid_email,
    is_valid_mexican_phone,
    optional_text,
    parse_decimal,
    parse_int,
)
from . import customers_service, inventory_service
from .transactions import atomic, lock_for_update


PAYMENT_METHODS = {"efectivo", "tarjeta_debito", "tarjeta_credito", "transferencia", "cheque"}
PAYMENT_STATUSES = {"paid", "pending", "partial", "refunded"}
SALE_STATUSES = {"draft", "completed", "cancelled", "refunded"}

STATUS_TRANSITIONS = {
    "draft": {"completed", "cancelled"},
    "completed": {"refunded"},
}

SALE_NUMBER_PREFIX = "V"
INSUFFICIENT_STOCK = "insufficient_stock"

PERIODS = (
    "today", "yesterday", "this_week", "last_week", "this_month",
    "last_month", "this_year", "last_30_days", "last_90_days",
)

SORT_FIELDS = {
    "sale_date": Sale.sale_date,
    "id": Sale.id,
    "sale_number": Sale.sale_number,
    "total": Sale.total,
    "customer_name": Sale.customer_name,
    "payment_method": Sale.payment_method,
    "sale_status": Sale.sale_status,
}


@dataclass
class SaleLine:
    """A validated cart line, priced but not yet persisted."""
    product: Product
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    subtotal: Decimal


@dataclass
class SaleTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal


def default_tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get("DEFAULT_TAX_RATE", "0.16")))


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

def price_line(product: Product, quantity: int, unit_price: Decimal, discount_percentage: Decimal) -> SaleLine:
    """discount = price * qty * pct / 100; subtotal = price * qty - discount."""
    gross = unit_price * quantity
    discount = quantize(gross * discount_percentage / HUNDRED)
    return SaleLine(
        product=product,
        quantity=quantity,
        unit_price=quantize(unit_price),
        discount_percentage=discount_percentage,
        discount_amount=discount,
        subtotal=quantize(gross - discount),
    )


def compute_totals(lines: list[SaleLine], discount_amount: Decimal, tax_rate: Decimal) -> SaleTotals:
    """
    subtotal = sum of line subtotals
    tax = (subtotal - discount) * rate
    total = subtotal - discount + tax
    """
    subtotal = quantize(sum((line.subtotal for line in lines), ZERO))
    discount = quantize(discount_amount)
    if discount > subtotal:
        raise ValidationError(
            "Discount exceeds sale subtotal",
            {"errors": [{"field": "discount_amount", "message": "discount_amount cannot exceed the subtotal"}]},
        )
    taxable = subtotal - discount
    tax_amount = quantize(taxable * tax_rate)
    return SaleTotals(
        subtotal=subtotal,
        discount_amount=discount,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=quantize(taxable + tax_amount),
    )


def next_sale_number(year: int) -> str:
    """
    V-<year>-<NNNN>: one past the highest numeric suffix used this year.
    Relies on the unique constraint on sale_number to reject a concurrent
    duplicate.
    """
    prefix = f"{SALE_NUMBER_PREFIX}-{year}-"
    highest = db.session.query(
        func.max(cast(func.substr(Sale.sale_number, len(prefix) + 1), Integer))
    ).filter(Sale.sale_number.like(f"{prefix}%")).scalar()
    return f"{prefix}{(highest or 0) + 1:04d}"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_header(payload: dict, errors: FieldErrors) -> dict:
    header: dict = {}

    if is_blank(payload.get("customer_name")):
        errors.add("customer_name", "customer_name is required")
    else:
        header["customer_name"] = optional_text(payload.get("customer_name"), "customer_name", errors, max_length=150)

    method = payload.get("payment_method")
    if is_blank(method):
        errors.add("payment_method", "payment_method is required")
    else:
        header["payment_method"] = check_choice(method, "payment_method", PAYMENT_METHODS, errors)

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        errors.add("items", "items must be a non-empty array")

    email = optional_text(payload.get("customer_email"), "customer_email", errors, max_length=255)
    if email and not is_valid_email(email):
        errors.add("customer_email", "customer_email is not a valid address")
    header["customer_email"] = email
    phone = optional_text(payload.get("customer_phone"), "customer_phone", errors, max_length=20)
    if phone and not is_valid_mexican_phone(phone):
        errors.add("customer_phone", "customer_phone must be a 10-digit Mexican number, optionally prefixed with +52")
    header["customer_phone"] = phone

    header["tax_rate"] = default_tax_rate()
    if not is_blank(payload.get("tax_rate")):
        rate = parse_decimal(payload.get("tax_rate"), "tax_rate", errors, minimum=0, maximum=1)
        if rate is not None:
            header["tax_rate"] = rate

    header["discount_amount"] = ZERO
    if not is_blank(payload.get("discount_amount")):
        discount = parse_decimal(payload.get("discount_amount"), "discount_amount", errors, minimum=0)
        if discount is not None:
            header["discount_amount"] = discount

    header["payment_status"] = None
    if not is_blank(payload.get("payment_status")):
        header["payment_status"] = check_choice(payload.get("payment_status"), "payment_status", PAYMENT_STATUSES, errors)

    header["customer_id"] = None
    if not is_blank(payload.get("customer_id")):
        customer_id = parse_int(payload.get("customer_id"), "customer_id", errors, minimum=1)
        if customer_id is not None:
            if db.session.get(Customer, customer_id) is None:
                errors.add("customer_id", "customer does not exist")
            else:
                header["customer_id"] = customer_id

    header["notes"] = optional_text(payload.get("notes"), "notes", errors, max_length=2000)
    return header


def validate_items(items: list, *, check_stock: bool) -> list[SaleLine]:
    """
    Resolve and price every line. Problems are collected per item and the
    whole cart is rejected if any line fails: 409 when every problem is a
    stock shortage, 400 otherwise.
    """
    lines: list[SaleLine] = []
    item_errors: list[dict] = []
    stock_only = True

    for index, item in enumerate(items):
        problems: list[str] = []
        codes: list[str] = []
        errors = FieldErrors()
        item = item if isinstance(item, dict) else {}

        product_id = parse_int(item.get("product_id"), "product_id", errors, minimum=1)
        quantity = parse_int(item.get("quantity"), "quantity", errors, minimum=1)

        discount_percentage = ZERO
        if not is_blank(item.get("discount_percentage")):
            parsed = parse_decimal(item.get("discount_percentage"), "discount_percentage", errors, minimum=0, maximum=100)
            if parsed is not None:
                discount_percentage = parsed

        unit_price = None
        if not is_blank(item.get("unit_price")):
            unit_price = parse_decimal(item.get("unit_price"), "unit_price", errors, minimum=0)

        problems.extend(errors.messages())

        product = None
        if product_id is not None:
            product = db.session.get(Product, product_id)
            if product is None or product.status != "active":
                problems.append("Product not found or inactive")
                product = None

        if product is not None and quantity is not None and check_stock and quantity > product.stock:
            problems.append(f"Insufficient stock for {product.name}: available {product.stock}, requested {quantity}")
            codes.append(INSUFFICIENT_STOCK)

        if problems:
            if len(codes) != len(problems):
                stock_only = False
            item_errors.append({
                "index": index,
                "product_id": product_id,
                "errors": problems,
                "available_stock": product.stock if product is not None else None,
            })
            continue

        price = unit_price if unit_price is not None else product.price
        lines.append(price_line(product, quantity, Decimal(price), discount_percentage))

    if item_errors:
        details = {"item_errors": item_errors}
        if stock_only:
            raise ConflictError("Insufficient stock for one or more items", details)
        raise ValidationError("Invalid sale items", details)

    return lines


def _revalidate_stock(lines: list[SaleLine]) -> None:
    """Second stock check under row locks, right before the write."""
    shortages = []
    for line in lines:
        product = lock_for_update(db.session.query(Product).filter(Product.id == line.product.id)).first()
        if product is None or product.status != "active":
            shortages.append({"product_id": line.product.id, "error": "Product no longer available"})
            continue
        db.session.refresh(product)
        if product.stock < line.quantity:
            shortages.append({
                "product_id": product.id,
                "error": f"Insufficient stock for {product.name}",
                "available": product.stock,
                "requested": line.quantity,
            })
        line.product = product
    if shortages:
        raise ConflictError("Stock changed while processing the sale", {"item_errors": shortages})


def _apply_stock_and_customer(sale: Sale, lines: list[SaleLine], customer: Customer | None, user_id: int | None) -> None:
    for line in lines:
        inventory_service.decrement_stock(
            line.product,
            line.quantity,
            reference_type="sale",
            reference_id=sale.id,
            notes=f"Sale {sale.sale_number}",
            user_id=user_id,
        )
    if customer is not None:
        customers_service.record_purchase(customer, sale.total)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def create_sale(payload: dict, user: User, *, quote: bool = False) -> Sale:
    errors = FieldErrors()
    header = _validate_header(payload, errors)
    requested_status = payload.get("sale_status")
    if not is_blank(requested_status) and requested_status not in ("draft", "completed"):
        errors.add("sale_status", "sale_status must be draft or completed")
    errors.raise_if_any("Sale validation failed")

    is_draft = quote or requested_status == "draft"
    lines = validate_items(payload["items"], check_stock=not is_draft)
    totals = compute_totals(lines, header["discount_amount"], header["tax_rate"])

    payment_status = header["payment_status"] or ("pending" if is_draft else "paid")
    now = utcnow()

    try:
        with atomic():
            if header["customer_id"] is not None:
                customer = db.session.get(Customer, header["customer_id"])
            else:
                customer = customers_service.find_or_create_for_sale(
                    name=header["customer_name"],
                    email=header["customer_email"],
                    phone=header["customer_phone"],
                )

            if not is_draft:
                _revalidate_stock(lines)

            sale = Sale(
                sale_number=next_sale_number(now.year),
                customer_id=customer.id if customer else None,
                customer_name=header["customer_name"],
                customer_phone=header["customer_phone"],
                customer_email=header["customer_email"],
                subtotal=totals.subtotal,
                tax_rate=totals.tax_rate,
                tax_amount=totals.tax_amount,
                discount_amount=totals.discount_amount,
                total=totals.total,
                payment_method=header["payment_method"],
                payment_status=payment_status,
                sale_status="draft" if is_draft else "completed",
                notes=header["notes"],
                sold_by=user.id,
                sale_date=now,
            )
            db.session.add(sale)
            db.session.flush()

            for line in lines:
                db.session.add(SaleItem(
                    sale_id=sale.id,
                    product_id=line.product.id,
                    product_name=line.product.name,
                    product_sku=line.product.sku,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    unit_cost=line.product.cost_price or ZERO,
                    discount_percentage=line.discount_percentage,
                    discount_amount=line.discount_amount,
                    subtotal=line.subtotal,
                ))

            if not is_draft:
                _apply_stock_and_customer(sale, lines, customer, user.id)
    except IntegrityError as exc:
        current_app.logger.warning("Sale insert rejected by constraint: %s", exc.orig)
        raise ConflictError("Sale could not be recorded due to a concurrent update, please retry")

    return sale


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def update_sale_status(sale_id: int, payload: dict, user: User) -> Sale:
    errors = FieldErrors()
    new_status = payload.get("sale_status")
    if is_blank(new_status):
        errors.add("sale_status", "sale_status is required")
    else:
        check_choice(new_status, "sale_status", SALE_STATUSES, errors)
    payment_status = None
    if not is_blank(payload.get("payment_status")):
        payment_status = check_choice(payload.get("payment_status"), "payment_status", PAYMENT_STATUSES, errors)
    errors.raise_if_any("Invalid status change")

    with atomic():
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found", {"id": sale_id})

        allowed = STATUS_TRANSITIONS.get(sale.sale_status, set())
        if new_status not in allowed:
            raise ConflictError(
                f"Cannot change sale from {sale.sale_status} to {new_status}",
                {"current_status": sale.sale_status, "allowed": sorted(allowed)},
            )

        if new_status == "completed":
            lines = []
            for item in sale.items:
                if item.product_id is None:
                    raise ConflictError("A product on this quote no longer exists", {"item_id": item.id})
                lines.append(SaleLine(
                    product=db.session.get(Product, item.product_id),
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount_percentage=item.discount_percentage,
                    discount_amount=item.discount_amount,
                    subtotal=item.subtotal,
                ))
            _revalidate_stock(lines)
            _apply_stock_and_customer(sale, lines, sale.customer, user.id)
            sale.payment_status = payment_status or "paid"
            sale.sale_date = utcnow()
        elif new_status == "refunded":
            for item in sale.items:
                if item.product_id is None:
                    continue
                product = lock_for_update(db.session.query(Product).filter(Product.id == item.product_id)).first()
                inventory_service.set_stock(
                    product,
                    product.stock + item.quantity,
                    reference_type="refund",
                    reference_id=sale.id,
                    notes=f"Refund of sale {sale.sale_number}",
                    user_id=user.id,
                )
            sale.payment_status = payment_status or "refunded"
        elif payment_status:
            sale.payment_status = payment_status

        sale.sale_status = new_status
        db.session.flush()

    return sale


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def period_range(period: str, today: date | None = None) -> tuple[date, date]:
    """Inclusive [start, end] dates for a named period."""
    today = today or utcnow().date()
    if period == "today":
        return today, today
    if period == "yesterday":
        day = today - timedelta(days=1)
        return day, day
    if period == "this_week":
        return today - timedelta(days=today.weekday()), today
    if period == "last_week":
        start = today - timedelta(days=today.weekday() + 7)
        return start, start + timedelta(days=6)
    if period == "this_month":
        return today.replace(day=1), today
    if period == "last_month":
        end = today.replace(day=1) - timedelta(days=1)
        return end.replace(day=1), end
    if period == "this_year":
        return today.replace(month=1, day=1), today
    if period == "last_30_days":
        return today - timedelta(days=30), today
    if period == "last_90_days":
        return today - timedelta(days=90), today
    raise ValueError(f"Unknown period: {period}")


def _scope_for(query, user: User):
    if user.role == "employee":
        query = query.filter(Sale.sold_by == user.id)
    return query


def _apply_sale_filters(query, args, errors: FieldErrors):
    if not is_blank(args.get("sale_number")):
        query = query.filter(Sale.sale_number.ilike(f"%{args['sale_number'].strip()}%"))

    customer = args.get("customer")
    if not is_blank(customer):
        pattern = f"%{customer.strip()}%"
        query = query.filter(or_(
            Sale.customer_name.ilike(pattern),
            Sale.customer_email.ilike(pattern),
            Sale.customer_phone.ilike(pattern),
        ))

    start = end = None
    try:
        start = parse_date(args.get("date_from"))
    except ValueError:
        errors.add("date_from", "date_from must be YYYY-MM-DD")
    try:
        end = parse_date(args.get("date_to"))
    except ValueError:
        errors.add("date_to", "date_to must be YYYY-MM-DD")
    if start:
        query = query.filter(Sale.sale_date >= day_bounds(start, start)[0])
    if end:
        query = query.filter(Sale.sale_date < day_bounds(end, end)[1])

    period = args.get("period")
    if not is_blank(period):
        if check_choice(period, "period", set(PERIODS), errors):
            lo, hi = day_bounds(*period_range(period))
            query = query.filter(Sale.sale_date >= lo, Sale.sale_date < hi)

    for key, choices in (("payment_method", PAYMENT_METHODS),
                         ("sale_status", SALE_STATUSES),
                         ("payment_status", PAYMENT_STATUSES)):
        value = args.get(key)
        if not is_blank(value) and check_choice(value, key, choices, errors):
            query = query.filter(getattr(Sale, key) == value)

    if not is_blank(args.get("min_total")):
        minimum = parse_decimal(args.get("min_total"), "min_total", errors, minimum=0)
        if minimum is not None:
            query = query.filter(Sale.total >= minimum)
    if not is_blank(args.get("max_total")):
        maximum = parse_decimal(args.get("max_total"), "max_total", errors, minimum=0)
        if maximum is not None:
            query = query.filter(Sale.total <= maximum)

    if not is_blank(args.get("sold_by")):
        sold_by = parse_int(args.get("sold_by"), "sold_by", errors, minimum=1)
        if sold_by is not None:
            query = query.filter(Sale.sold_by == sold_by)

    return query


def _listing_statistics(query) -> dict:
    count, revenue, average, tax, discounts = query.order_by(None).with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0),
        func.avg(Sale.total),
        func.coalesce(func.sum(Sale.tax_amount), 0),
        func.coalesce(func.sum(Sale.discount_amount), 0),
    ).one()
    by_status = query.order_by(None).with_entities(Sale.sale_status, func.count(Sale.id)).group_by(Sale.sale_status).all()
    return {
        "total_sales": int(count or 0),
        "total_amount": as_float(revenue or 0),
        "average_sale": as_float(average) if average is not None else 0.0,
        "total_tax": as_float(tax or 0),
        "total_discounts": as_float(discounts or 0),
        "by_status": {status: int(n) for status, n in by_status},
    }


def list_sales(args, params: PageParams, user: User) -> dict:
    errors = FieldErrors()
    query = _scope_for(db.session.query(Sale), user)
    query = _apply_sale_filters(query, args, errors)
    errors.raise_if_any("Invalid filters")

    sort_by, sort_order, order_clause = get_sort(SORT_FIELDS, default_order="DESC")
    result = paginate_query(query.order_by(order_clause, Sale.id.desc()), params, lambda s: s.to_dict())
    result["sort"] = {"sort_by": sort_by, "sort_order": sort_order}
    if args.get("include_stats") in ("1", "true"):
        result["statistics"] = _listing_statistics(query)
    return result


def _item_with_product_info(item: SaleItem) -> dict:
    data = item.to_dict()
    product = item.product if item.product_id is not None else None
    if product is None:
        data["product_info"] = {
            "still_exists": False,
            "current_name": None,
            "current_stock": None,
            "status": None,
            "name_changed": None,
        }
    else:
        data["product_info"] = {
            "still_exists": True,
            "current_name": product.name,
            "current_stock": product.stock,
            "status": product.status,
            "name_changed": product.name != item.product_name,
        }
    return data


def _sale_history(sale: Sale) -> list[dict]:
    events = [{
        "event": "created",
        "sale_status": "draft" if sale.sale_status == "draft" else "completed",
        "timestamp": to_utc_z(sale.created_at),
        "user_id": sale.sold_by,
    }]
    movements = db.session.query(InventoryMovement).filter(
        InventoryMovement.reference_type.in_(("sale", "refund")),
        InventoryMovement.reference_id == sale.id,
    ).order_by(InventoryMovement.created_at, InventoryMovement.id).all()
    for movement in movements:
        events.append({
            "event": "stock_out" if movement.movement_type == "out" else "stock_in",
            "product_id": movement.product_id,
            "quantity": movement.quantity,
            "timestamp": to_utc_z(movement.created_at),
            "user_id": movement.created_by,
        })
    if sale.sale_status in ("cancelled", "refunded"):
        events.append({
            "event": sale.sale_status,
            "sale_status": sale.sale_status,
            "timestamp": to_utc_z(sale.updated_at),
        })
    return events


def get_sale(sale_id: int, user: User, *, include_items: bool = False, include_history: bool = False) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", {"id": sale_id})
    if user.role == "employee" and sale.sold_by != user.id:
        raise AuthorizationError("You can only view your own sales")

    data = sale.to_dict()
    if include_items:
        data["items"] = [_item_with_product_info(item) for item in sale.items]
    if include_history:
        data["history"] = _sale_history(sale)
    return data


def _date_key(value) -> str:
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def sales_statistics() -> dict:
    """Dashboard figures over completed sales."""
    completed = db.session.query(Sale).filter(Sale.sale_status == "completed")

    general = _listing_statistics(completed)
    general["unique_customers"] = int(
        completed.with_entities(func.count(func.distinct(Sale.customer_id))).scalar() or 0
    )
    general["by_status"] = {
        status: int(n)
        for status, n in db.session.query(Sale.sale_status, func.count(Sale.id)).group_by(Sale.sale_status).all()
    }

    periods = {}
    for period in ("today", "this_week", "this_month", "this_year"):
        lo, hi = day_bounds(*period_range(period))
        count, revenue = completed.filter(Sale.sale_date >= lo, Sale.sale_date < hi).with_entities(
            func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0)
        ).one()
        periods[period] = {"sales": int(count or 0), "revenue": as_float(revenue or 0)}

    top_products = db.session.query(
        SaleItem.product_id,
        SaleItem.product_name,
        func.sum(SaleItem.quantity).label("quantity"),
        func.sum(SaleItem.subtotal).label("revenue"),
    ).join(Sale, Sale.id == SaleItem.sale_id).filter(
        Sale.sale_status == "completed"
    ).group_by(SaleItem.product_id, SaleItem.product_name).order_by(
        func.sum(SaleItem.quantity).desc()
    ).limit(10).all()

    since = day_bounds(utcnow().date() - timedelta(days=29), utcnow().date())[0]
    day = func.date(Sale.sale_date)
    trends = completed.filter(Sale.sale_date >= since).with_entities(
        day.label("day"), func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0)
    ).group_by(day).order_by(day).all()

    return {
        "general": general,
        "periods": periods,
        "top_products": [
            {
                "product_id": pid,
                "product_name": name,
                "quantity_sold": int(qty or 0),
                "revenue": as_float(revenue or 0),
            }
            for pid, name, qty, revenue in top_products
        ],
        "trends": [
            {"date": _date_key(d), "sales": int(n), "revenue": as_float(total)}
            for d, n, total in trends
        ],
    }
