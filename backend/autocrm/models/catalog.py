from __future__ import annotations

from ..extensions import db
from autocrm.time_utils import to_utc_z


class Category(db.Model):
    """Top level of the warehouse hierarchy (e.g. "Engine", "Body")."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    icon = db.Column(db.String(10), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "created_at": to_utc_z(self.created_at),
        }


class Subcategory(db.Model):
    __tablename__ = "subcategories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("subcategories", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data, owned by the warehouse catalog.

    The PoS core only reads products: identity is immutable, metadata
    (name, SKU, min_stock_level) may change underneath it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_subcategory_name", "subcategory_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    subcategory_id = db.Column(db.Integer, db.ForeignKey("subcategories.id"), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(100), nullable=True, index=True)

    # Low-stock threshold; 0 disables the alert
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    subcategory = db.relationship("Subcategory", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subcategory_id": self.subcategory_id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "min_stock_level": self.min_stock_level,
            "created_at": to_utc_z(self.created_at),
        }
