# Overview: Append-only audit log for PoS state changes.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
"""
Audit log invariants

- Append-only: no updates or deletes of existing events.
- Events are flushed inside the caller's DB transaction, never committed
  here, so a rolled-back sale leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    operator_id: int | None = None,
    shift_id: int | None = None,
    receipt_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[str] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        operator_id=operator_id,
        shift_id=shift_id,
        receipt_id=receipt_id,
        note=note,
        payload=payload,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at  # otherwise the db default applies
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_events(
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    receipt_id: int | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if entity_type is not None:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if receipt_id is not None:
        q = q.filter(AuditEvent.receipt_id == receipt_id)
    return q.order_by(AuditEvent.id.asc()).limit(limit).all()
