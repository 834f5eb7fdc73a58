# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer directory.

Running totals (total_purchases, total_orders) are written only by the
sale flow through record_purchase(); the API cannot set them.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Sale
from ..money import as_float
from ..responses import PageParams, get_sort, paginate_query
from ..time_utils import to_utc_z
from ..validation import (
    MAX_PRICE,
    ConflictError,
    FieldErrors,
    NotFoundError,
    ValidationError,
    check_choice,
    is_blank,
    is_valid_email,
    is_valid_mexican_phone,
    normalize_phone,
    optional_text,
    parse_decimal,
    require_text,
)
from .transactions import atomic


CUSTOMER_TYPES = {"individual", "business"}
CUSTOMER_STATUSES = {"active", "inactive"}
EDITABLE_FIELDS = {
    "name", "email", "phone", "address", "city", "state", "postal_code",
    "tax_id", "customer_type", "credit_limit", "notes", "status",
}
RECENT_PURCHASES_LIMIT = 10

SORT_FIELDS = {
    "name": Customer.name,
    "id": Customer.id,
    "email": Customer.email,
    "total_purchases": Customer.total_purchases,
    "total_orders": Customer.total_orders,
    "created_at": Customer.created_at,
}


def list_customers(args, params: PageParams) -> dict:
    query = db.session.query(Customer)

    search = args.get("search")
    if not is_blank(search):
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))

    customer_type = args.get("customer_type")
    if not is_blank(customer_type):
        query = query.filter(Customer.customer_type == customer_type)

    status = args.get("status") or "active"
    if status != "all":
        query = query.filter(Customer.status == status)

    city = args.get("city")
    if not is_blank(city):
        query = query.filter(Customer.city.ilike(f"%{city.strip()}%"))

    sort_by, sort_order, order_clause = get_sort(SORT_FIELDS)
    result = paginate_query(query.order_by(order_clause, Customer.id), params, lambda c: c.to_dict())
    result["sort"] = {"sort_by": sort_by, "sort_order": sort_order}
    return result


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", {"id": customer_id})
    return customer


def customer_detail(customer_id: int) -> dict:
    """Customer with completed-sale statistics and latest purchases."""
    customer = get_customer(customer_id)

    count, spent, average, first, last = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0),
        func.avg(Sale.total),
        func.min(Sale.sale_date),
        func.max(Sale.sale_date),
    ).filter(Sale.customer_id == customer.id, Sale.sale_status == "completed").one()

    recent = db.session.query(Sale).filter(Sale.customer_id == customer.id).order_by(
        Sale.sale_date.desc(), Sale.id.desc()
    ).limit(RECENT_PURCHASES_LIMIT).all()

    data = customer.to_dict()
    data["statistics"] = {
        "completed_sales": int(count or 0),
        "total_spent": as_float(spent or 0),
        "average_purchase": as_float(average) if average is not None else 0.0,
        "first_purchase": to_utc_z(first) if first else None,
        "last_purchase": to_utc_z(last) if last else None,
    }
    data["recent_purchases"] = [
        {
            "id": s.id,
            "sale_number": s.sale_number,
            "total": as_float(s.total),
            "sale_status": s.sale_status,
            "payment_method": s.payment_method,
            "sale_date": to_utc_z(s.sale_date),
        }
        for s in recent
    ]
    return data


def _clean(payload: dict, *, partial: bool, current: Customer | None = None) -> dict:
    errors = FieldErrors()
    cleaned: dict = {}

    if partial:
        if not payload:
            raise ValidationError("No data to update")
        for key in sorted(set(payload) - EDITABLE_FIELDS):
            errors.add(key, f"{key} cannot be updated")

    if not partial or "name" in payload:
        name = require_text(payload, "name", errors, min_length=2, max_length=150)
        if name is not None:
            cleaned["name"] = name

    if "email" in payload:
        email = optional_text(payload.get("email"), "email", errors, max_length=255)
        if email is not None and not is_valid_email(email):
            errors.add("email", "email is not a valid address")
        else:
            cleaned["email"] = email.lower() if email else None

    if "phone" in payload:
        phone = optional_text(payload.get("phone"), "phone", errors, max_length=30)
        if phone is not None and not is_valid_mexican_phone(phone):
            errors.add("phone", "phone must be a 10-digit Mexican number, optionally prefixed with +52")
        else:
            cleaned["phone"] = normalize_phone(phone) if phone else None

    for key, limit in (("address", 1000), ("city", 100), ("state", 100), ("postal_code", 10),
                       ("tax_id", 20), ("notes", 5000)):
        if key in payload:
            cleaned[key] = optional_text(payload.get(key), key, errors, max_length=limit)

    if "customer_type" in payload and not is_blank(payload.get("customer_type")):
        customer_type = check_choice(payload.get("customer_type"), "customer_type", CUSTOMER_TYPES, errors)
        if customer_type:
            cleaned["customer_type"] = customer_type

    if "credit_limit" in payload and not is_blank(payload.get("credit_limit")):
        credit_limit = parse_decimal(payload.get("credit_limit"), "credit_limit", errors, minimum=0, maximum=MAX_PRICE)
        if credit_limit is not None:
            cleaned["credit_limit"] = credit_limit

    if "status" in payload:
        status = check_choice(payload.get("status"), "status", CUSTOMER_STATUSES, errors)
        if status:
            cleaned["status"] = status

    errors.raise_if_any("Customer validation failed")

    email = cleaned.get("email")
    if email:
        query = db.session.query(Customer.id).filter(func.lower(Customer.email) == email)
        if current is not None:
            query = query.filter(Customer.id != current.id)
        if query.first() is not None:
            raise ConflictError("A customer with that email already exists", {"email": email})
    return cleaned


def create_customer(payload: dict) -> Customer:
    cleaned = _clean(payload, partial=False)
    cleaned.setdefault("customer_type", "individual")
    with atomic():
        customer = Customer(**cleaned)
        db.session.add(customer)
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    with atomic():
        customer = get_customer(customer_id)
        cleaned = _clean(payload, partial=True, current=customer)
        for key, value in cleaned.items():
            setattr(customer, key, value)
    return customer


def find_or_create_for_sale(
    *,
    name: str,
    email: str | None,
    phone: str | None,
) -> Customer | None:
    """
    Match an existing customer by email, then by phone; otherwise create
    one when any contact info was given. Returns None for walk-in sales.
    Caller owns the transaction.
    """
    customer = None
    if email:
        customer = db.session.query(Customer).filter(func.lower(Customer.email) == email.lower()).first()
    if customer is None and phone:
        customer = db.session.query(Customer).filter(Customer.phone == normalize_phone(phone)).first()
    if customer is not None:
        return customer
    if not email and not phone:
        return None

    customer = Customer(
        name=name,
        email=email.lower() if email else None,
        phone=normalize_phone(phone) if phone else None,
        customer_type="individual",
    )
    db.session.add(customer)
    db.session.flush()
    return customer


def record_purchase(customer: Customer, total: Decimal) -> None:
    """Bump running totals for one completed sale."""
    customer.total_purchases = Customer.total_purchases + total
    customer.total_orders = Customer.total_orders + 1
