from __future__ import annotations

from ..extensions import db
from autocrm.time_utils import to_utc_z


class Receipt(db.Model):
    """
    One completed PoS sale.

    Append-only except for the cancellation flag: cancelled receipts stay
    for audit and are excluded from shift totals and analytics.

    total_amount_cents = SUM(line.quantity * line.sale_price_cents)
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.Index("ix_receipts_shift_cancelled", "shift_id", "is_cancelled"),
        db.Index("ix_receipts_cancelled_sold", "is_cancelled", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("pos_shifts.id"), nullable=False, index=True)
    operator_id = db.Column(db.Integer, nullable=False, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Cancellation audit trail
    is_cancelled = db.Column(db.Boolean, nullable=False, default=False)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_operator_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("Shift", backref=db.backref("receipts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "operator_id": self.operator_id,
            "total_amount_cents": self.total_amount_cents,
            "currency": self.currency,
            "sold_at": to_utc_z(self.sold_at),
            "is_cancelled": self.is_cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_operator_id": self.cancelled_by_operator_id,
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    """
    Individual line on a receipt. Immutable once written.

    cost_price_cents is the weighted average unit cost of the lots the line
    consumed; NULL when none of those lots had a cost.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        db.CheckConstraint("sale_price_cents > 0", name="ck_sale_lines_price_positive"),
        db.Index("ix_sale_lines_product_receipt", "product_id", "receipt_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("receipts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    sale_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(3), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    receipt = db.relationship("Receipt", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "sale_price_cents": self.sale_price_cents,
            "line_total_cents": self.line_total_cents,
            "cost_price_cents": self.cost_price_cents,
            "currency": self.currency,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLineAllocation(db.Model):
    """
    Which lot a sale line drew from, and how much.

    Cancellation restores exactly these (lot, quantity) pairs instead of
    guessing a lot by FIFO order.
    """
    __tablename__ = "sale_line_allocations"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_line_allocations_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("inventory_lots.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    sale_line = db.relationship(
        "SaleLine", backref=db.backref("allocations", lazy=True, order_by="SaleLineAllocation.id")
    )
    lot = db.relationship("InventoryLot")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_line_id": self.sale_line_id,
            "lot_id": self.lot_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
        }
