from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z, utcnow


class Category(db.Model):
    """Product grouping shown in the storefront navigation."""
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    slug = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(50), nullable=False, default="fas fa-tag")
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "icon": self.icon,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog item with its on-hand stock.

    STOCK: `stock` is the single source of truth for quantity on hand and is
    never negative. Every change to it is mirrored by exactly one
    InventoryMovement row (see inventory_service).

    SKU: globally unique. Generated from category/brand when not supplied.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_category_status", "category_id", "status"),
        db.Index("ix_products_brand", "brand"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), nullable=False, unique=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    brand = db.Column(db.String(100), nullable=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    part_number = db.Column(db.String(100), nullable=True, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=3)
    max_stock = db.Column(db.Integer, nullable=False, default=100)

    description = db.Column(db.Text, nullable=True)
    specifications = db.Column(db.JSON, nullable=True)
    compatibility = db.Column(db.JSON, nullable=True)
    dimensions = db.Column(db.JSON, nullable=True)

    icon = db.Column(db.String(50), nullable=False, default="fas fa-cube")
    image_url = db.Column(db.String(500), nullable=True)
    weight = db.Column(db.Numeric(10, 3), nullable=True)
    warranty_months = db.Column(db.Integer, nullable=False, default=12)

    status = db.Column(db.String(16), nullable=False, default="active")
    featured = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    creator = db.relationship("User", foreign_keys=[created_by])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock}>"

    @property
    def stock_status(self) -> str:
        if self.stock <= 0:
            return "out_of_stock"
        if self.stock <= self.min_stock:
            return "low_stock"
        return "in_stock"

    @property
    def profit_margin(self):
        return (self.price or 0) - (self.cost_price or 0)

    @property
    def profit_percentage(self) -> float:
        cost = self.cost_price or 0
        if cost <= 0:
            return 0.0
        return round(float(self.profit_margin) / float(cost) * 100, 2)

    def availability(self) -> dict:
        return {
            "in_stock": self.stock > 0,
            "quantity_available": self.stock,
            "stock_status": self.stock_status,
            "can_order": self.status == "active" and self.stock > 0,
        }

    def to_dict(self) -> dict:
        category = self.category
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "category_id": self.category_id,
            "category_name": category.name if category else None,
            "category_slug": category.slug if category else None,
            "brand": self.brand,
            "sku": self.sku,
            "part_number": self.part_number,
            "price": as_float(self.price),
            "cost_price": as_float(self.cost_price),
            "profit_margin": as_float(self.profit_margin),
            "profit_percentage": self.profit_percentage,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "stock_status": self.stock_status,
            "description": self.description,
            "specifications": self.specifications or {},
            "compatibility": self.compatibility or [],
            "dimensions": self.dimensions or {},
            "icon": self.icon,
            "image_url": self.image_url,
            "weight": float(self.weight) if self.weight is not None else None,
            "warranty_months": self.warranty_months,
            "status": self.status,
            "featured": bool(self.featured),
            "created_by": self.created_by,
            "availability": self.availability(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
