from __future__ import annotations

from ..extensions import db
from autocrm.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit log of PoS state changes.

    IMMUTABLE: rows are never updated or deleted. Each event is written in
    the same DB transaction as the change it records.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_events_category_occurred", "event_category", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. sale.completed
    event_category = db.Column(db.String(32), nullable=False)  # sales, inventory, shift

    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    operator_id = db.Column(db.Integer, nullable=True, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("pos_shifts.id"), nullable=True, index=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("receipts.id"), nullable=True, index=True)

    # Business time vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operator_id": self.operator_id,
            "shift_id": self.shift_id,
            "receipt_id": self.receipt_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
