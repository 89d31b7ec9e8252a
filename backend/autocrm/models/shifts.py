from __future__ import annotations

from ..extensions import db
from autocrm.time_utils import to_utc_z


class Shift(db.Model):
    """
    Cash-register session of one operator.

    LIFECYCLE:
    - open: ended_at IS NULL, sales may be attributed to it
    - closed: ended_at set, never reopened

    At most one open shift per operator, enforced by the partial unique
    index below rather than a read-then-insert check.
    """
    __tablename__ = "pos_shifts"
    __table_args__ = (
        db.Index(
            "uq_pos_shifts_operator_open",
            "operator_id",
            unique=True,
            sqlite_where=db.text("ended_at IS NULL"),
            postgresql_where=db.text("ended_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    operator_id = db.Column(db.Integer, nullable=False, index=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operator_id": self.operator_id,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at) if self.ended_at else None,
            "is_open": self.is_open,
            "version_id": self.version_id,
        }
