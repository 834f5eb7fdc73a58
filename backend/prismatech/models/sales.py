from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale document (ticket).

    LIFECYCLE: draft -> completed | cancelled, completed -> refunded.
    Only completed sales have touched stock and customer totals.

    sale_number is "V-<year>-<NNNN>", sequential per calendar year.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_sale_date", "sale_date"),
        db.Index("ix_sales_status_date", "sale_status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(20), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    # Snapshot of the buyer at the time of sale
    customer_name = db.Column(db.String(150), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 4), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default="paid")
    sale_status = db.Column(db.String(16), nullable=False, default="completed")
    notes = db.Column(db.Text, nullable=True)

    sold_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy="dynamic"))
    seller = db.relationship("User", foreign_keys=[sold_by])
    items = db.relationship("SaleItem", back_populates="sale", order_by="SaleItem.id", lazy=True)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number!r} status={self.sale_status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "subtotal": as_float(self.subtotal),
            "tax_rate": float(self.tax_rate),
            "tax_amount": as_float(self.tax_amount),
            "discount_amount": as_float(self.discount_amount),
            "total": as_float(self.total),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "sale_status": self.sale_status,
            "notes": self.notes,
            "sold_by": self.sold_by,
            "sold_by_username": self.seller.username if self.seller else None,
            "sale_date": to_utc_z(self.sale_date),
            "items_count": len(self.items),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Immutable line of a sale.

    product_name / product_sku are snapshots taken when the sale is created;
    product_id becomes NULL if the product is later hard-deleted.
    subtotal = unit_price * quantity - discount_amount, computed once.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price": as_float(self.unit_price),
            "unit_cost": as_float(self.unit_cost),
            "discount_percentage": float(self.discount_percentage),
            "discount_amount": as_float(self.discount_amount),
            "subtotal": as_float(self.subtotal),
            "created_at": to_utc_z(self.created_at),
        }
