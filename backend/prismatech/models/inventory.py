from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z, utcnow


class InventoryMovement(db.Model):
    """
    Append-only stock ledger entry.

    new_stock = previous_stock + quantity for 'in'/'initial',
    new_stock = previous_stock - quantity for 'out'.
    Rows are never updated; they disappear only when their product is
    hard-deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_movements_quantity"),
        db.CheckConstraint("new_stock >= 0", name="ck_inventory_movements_new_stock"),
        db.Index("ix_inventory_movements_product_created", "product_id", "created_at"),
        db.Index("ix_inventory_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # in | out | adjustment | initial
    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=True)

    # initial | sale | adjustment | refund
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic", passive_deletes=True))
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "product_sku": product.sku if product else None,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "unit_cost": as_float(self.unit_cost),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "created_at": to_utc_z(self.created_at),
        }
