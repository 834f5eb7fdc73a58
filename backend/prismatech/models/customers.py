from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Buyer record.

    total_purchases / total_orders are running totals maintained only by the
    sale flow; they are never decremented.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_phone", "phone"),
        db.Index("ix_customers_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    phone = db.Column(db.String(20), nullable=True)

    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(10), nullable=True)
    tax_id = db.Column(db.String(20), nullable=True)

    # individual | business
    customer_type = db.Column(db.String(16), nullable=False, default="individual")
    credit_limit = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    total_purchases = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "tax_id": self.tax_id,
            "customer_type": self.customer_type,
            "credit_limit": as_float(self.credit_limit),
            "total_purchases": as_float(self.total_purchases),
            "total_orders": self.total_orders,
            "notes": self.notes,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
