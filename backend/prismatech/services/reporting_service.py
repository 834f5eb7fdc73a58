# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Sale, SaleItem, User
from ..money import as_float
from ..time_utils import day_bounds, parse_date, to_utc_z, utcnow
from ..validation import ValidationError


REPORT_TYPES = ("summary", "products", "customers", "daily")
TOP_LIMIT = 50


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


def resolve_period(date_from: str | None, date_to: str | None) -> tuple[date, date]:
    """Inclusive date range; defaults to the first of the current month through today."""
    today = utcnow().date()
    try:
        start = parse_date(date_from) or today.replace(day=1)
    except ValueError:
        raise ReportError("date_from must be YYYY-MM-DD", {"errors": [{"field": "date_from", "message": "invalid date"}]})
    try:
        end = parse_date(date_to) or today
    except ValueError:
        raise ReportError("date_to must be YYYY-MM-DD", {"errors": [{"field": "date_to", "message": "invalid date"}]})
    if start > end:
        raise ReportError("date_from cannot be after date_to", {"date_from": start.isoformat(), "date_to": end.isoformat()})
    return start, end


def _completed_in(start: date, end: date):
    lo, hi = day_bounds(start, end)
    return db.session.query(Sale).filter(
        Sale.sale_status == "completed",
        Sale.sale_date >= lo,
        Sale.sale_date < hi,
    )


def summary_report(start: date, end: date) -> dict:
    base = _completed_in(start, end)
    row = base.with_entities(
        func.count(Sale.id).label("total_sales"),
        func.coalesce(func.sum(Sale.total), 0).label("total_revenue"),
        func.avg(Sale.total).label("average_sale"),
        func.min(Sale.total).label("min_sale"),
        func.max(Sale.total).label("max_sale"),
        func.count(func.distinct(Sale.customer_id)).label("unique_customers"),
        func.coalesce(func.sum(Sale.tax_amount), 0).label("total_tax"),
        func.coalesce(func.sum(Sale.discount_amount), 0).label("total_discounts"),
    ).one()

    methods = base.with_entities(
        Sale.payment_method,
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0),
    ).group_by(Sale.payment_method).order_by(Sale.payment_method).all()

    return {
        "total_sales": int(row.total_sales or 0),
        "total_revenue": as_float(row.total_revenue or 0),
        "average_sale": as_float(row.average_sale) if row.average_sale is not None else 0.0,
        "min_sale": as_float(row.min_sale) if row.min_sale is not None else 0.0,
        "max_sale": as_float(row.max_sale) if row.max_sale is not None else 0.0,
        "unique_customers": int(row.unique_customers or 0),
        "total_tax": as_float(row.total_tax or 0),
        "total_discounts": as_float(row.total_discounts or 0),
        "payment_methods": {
            method: {"count": int(count), "amount": as_float(amount)}
            for method, count, amount in methods
        },
    }


def products_report(start: date, end: date) -> list[dict]:
    lo, hi = day_bounds(start, end)
    revenue = func.sum(SaleItem.subtotal)
    rows = db.session.query(
        SaleItem.product_name,
        SaleItem.product_sku,
        func.count(func.distinct(SaleItem.sale_id)).label("times_sold"),
        func.sum(SaleItem.quantity).label("total_quantity"),
        revenue.label("total_revenue"),
        func.avg(SaleItem.unit_price).label("average_price"),
    ).join(Sale, Sale.id == SaleItem.sale_id).filter(
        Sale.sale_status == "completed",
        Sale.sale_date >= lo,
        Sale.sale_date < hi,
    ).group_by(SaleItem.product_name, SaleItem.product_sku).order_by(revenue.desc()).limit(TOP_LIMIT).all()

    return [
        {
            "product_name": r.product_name,
            "product_sku": r.product_sku,
            "times_sold": int(r.times_sold or 0),
            "total_quantity": int(r.total_quantity or 0),
            "total_revenue": as_float(r.total_revenue or 0),
            "average_price": as_float(r.average_price or 0),
        }
        for r in rows
    ]


def customers_report(start: date, end: date) -> list[dict]:
    spent = func.sum(Sale.total)
    rows = _completed_in(start, end).with_entities(
        Sale.customer_name,
        Sale.customer_email,
        Sale.customer_phone,
        func.count(Sale.id).label("total_purchases"),
        spent.label("total_spent"),
        func.avg(Sale.total).label("average_purchase"),
        func.min(Sale.sale_date).label("first_purchase"),
        func.max(Sale.sale_date).label("last_purchase"),
    ).group_by(Sale.customer_name, Sale.customer_email, Sale.customer_phone).order_by(spent.desc()).limit(TOP_LIMIT).all()

    return [
        {
            "customer_name": r.customer_name,
            "customer_email": r.customer_email,
            "customer_phone": r.customer_phone,
            "total_purchases": int(r.total_purchases or 0),
            "total_spent": as_float(r.total_spent or 0),
            "average_purchase": as_float(r.average_purchase or 0),
            "first_purchase": to_utc_z(r.first_purchase),
            "last_purchase": to_utc_z(r.last_purchase),
        }
        for r in rows
    ]


def daily_report(start: date, end: date) -> list[dict]:
    day = func.date(Sale.sale_date)
    rows = _completed_in(start, end).with_entities(
        day.label("day"),
        func.count(Sale.id).label("total_sales"),
        func.coalesce(func.sum(Sale.total), 0).label("total_revenue"),
        func.avg(Sale.total).label("average_sale"),
        func.count(func.distinct(Sale.customer_id)).label("unique_customers"),
    ).group_by(day).order_by(day).all()

    return [
        {
            "date": str(r.day),
            "total_sales": int(r.total_sales or 0),
            "total_revenue": as_float(r.total_revenue or 0),
            "average_sale": as_float(r.average_sale or 0),
            "unique_customers": int(r.unique_customers or 0),
        }
        for r in rows
    ]


_BUILDERS = {
    "summary": summary_report,
    "products": products_report,
    "customers": customers_report,
    "daily": daily_report,
}


def sales_report(*, report_type: str, date_from: str | None, date_to: str | None, user: User) -> dict:
    if report_type not in _BUILDERS:
        raise ReportError(
            f"Invalid report type: {report_type}",
            {"valid_types": list(REPORT_TYPES)},
        )
    start, end = resolve_period(date_from, date_to)
    return {
        "report_type": report_type,
        "period": {"from": start.isoformat(), "to": end.isoformat()},
        "data": _BUILDERS[report_type](start, end),
        "generated_at": to_utc_z(utcnow()),
        "generated_by": user.username,
    }
