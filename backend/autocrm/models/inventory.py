from __future__ import annotations

from ..extensions import db
from autocrm.time_utils import to_utc_z

LOT_SOURCE_PURCHASED = "purchased"
LOT_SOURCE_DISMANTLED = "dismantled"
LOT_SOURCE_RETURNED = "returned"
LOT_SOURCES = (LOT_SOURCE_PURCHASED, LOT_SOURCE_DISMANTLED, LOT_SOURCE_RETURNED)


class InventoryLot(db.Model):
    """
    A batch of stock for one product with its own cost and receipt date.

    FIFO order key: (received_at, id).

    INVARIANTS:
    - quantity >= 0 (check constraint)
    - quantity only goes down through a sale and back up through a
      cancellation; receiving always creates a new lot
    - exhausted lots (quantity 0) are kept for cost history

    unit_cost_cents is NULL for salvage with no cost basis (dismantled cars).
    """
    __tablename__ = "inventory_lots"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_lots_quantity_nonneg"),
        db.CheckConstraint("initial_quantity > 0", name="ck_inventory_lots_initial_positive"),
        db.CheckConstraint(
            "source_type IN ('purchased', 'dismantled', 'returned')",
            name="ck_inventory_lots_source_type",
        ),
        db.Index("ix_inventory_lots_product_fifo", "product_id", "received_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Where the stock came from: procurement batch or dismantled car id
    source_type = db.Column(db.String(20), nullable=False, default=LOT_SOURCE_PURCHASED)
    source_id = db.Column(db.Integer, nullable=True)

    initial_quantity = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    sale_price_cents = db.Column(db.Integer, nullable=True)  # suggested price hint
    currency = db.Column(db.String(3), nullable=False)

    location = db.Column(db.String(100), nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    received_by_operator_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("lots", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryLot id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    @property
    def is_exhausted(self) -> bool:
        return self.quantity == 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "initial_quantity": self.initial_quantity,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "sale_price_cents": self.sale_price_cents,
            "currency": self.currency,
            "location": self.location,
            "received_at": to_utc_z(self.received_at),
            "received_by_operator_id": self.received_by_operator_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
