"""
Shift Management Service

WHY: Sales are attributed to a bounded work session of one operator, which
gives per-shift totals and an audit trail of who sold what.

DESIGN PRINCIPLES:
- At most one open shift per operator (partial unique index on
  pos_shifts(operator_id) WHERE ended_at IS NULL)
- Shifts are immutable once closed; no sale may join a closed shift
- get_or_create_shift is idempotent, even when two terminals race
"""

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Shift, Receipt, SaleLine
from ..validation import require_positive_int
from autocrm.time_utils import utcnow, coerce_datetime
from .audit_service import append_event
from .concurrency import lock_for_update, run_with_retry


def _shift_conflict(operator_id: int, existing: Shift | None = None) -> ConflictError:
    details = {"operator_id": operator_id}
    if existing is not None:
        details["shift_id"] = existing.id
    current_app.logger.warning("Operator %s already has an open shift", operator_id)
    return ConflictError("Operator already has an active shift", details=details)


def _log_shift_opened(shift: Shift) -> None:
    append_event(
        event_type="shift.opened",
        event_category="shift",
        entity_type="shift",
        entity_id=shift.id,
        operator_id=shift.operator_id,
        shift_id=shift.id,
        occurred_at=shift.started_at,
        note="Shift opened",
    )


# =============================================================================
# LOOKUPS
# =============================================================================

def get_open_shift(operator_id: int) -> Shift | None:
    """Get the operator's open shift, if any. Read-only, never creates."""
    return db.session.query(Shift).filter(
        Shift.operator_id == operator_id,
        Shift.ended_at.is_(None),
    ).first()


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if shift is None:
        raise NotFoundError("shift", shift_id)
    return shift


def lock_open_shift(shift_id: int) -> Shift | None:
    """Re-read a shift under a row lock; None if it is closed (or unknown)."""
    return lock_for_update(
        db.session.query(Shift).filter(Shift.id == shift_id, Shift.ended_at.is_(None))
    ).populate_existing().first()


def _parse_started_at(value):
    try:
        return coerce_datetime(value) or utcnow()
    except ValueError:
        raise ValidationError("invalid started_at", details={"field": "started_at", "value": str(value)})


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def open_shift(operator_id: int, started_at=None) -> Shift:
    """
    Open a new shift for an operator.

    Raises:
        ConflictError: operator already has an open shift (including a
            concurrent open that won the unique index)
    """
    operator_id = require_positive_int(operator_id, "operator_id")
    start_dt = _parse_started_at(started_at)

    def _op():
        existing = get_open_shift(operator_id)
        if existing:
            raise _shift_conflict(operator_id, existing)

        shift = Shift(operator_id=operator_id, started_at=start_dt)
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise _shift_conflict(operator_id)

        _log_shift_opened(shift)
        db.session.commit()
        current_app.logger.info("Shift %s opened for operator %s", shift.id, operator_id)
        return shift

    return run_with_retry(_op)


def get_or_create_shift(operator_id: int, *, commit: bool = True) -> Shift:
    """
    Return the operator's open shift, opening one if none exists.

    The insert runs in a savepoint: if a concurrent call wins the unique
    index, the savepoint is rolled back and the winner's shift is returned.
    With commit=False the caller's transaction is left open (Sale Engine).
    """
    operator_id = require_positive_int(operator_id, "operator_id")
    shift = get_open_shift(operator_id)
    if shift is not None:
        return shift

    shift = Shift(operator_id=operator_id, started_at=utcnow())
    try:
        with db.session.begin_nested():
            db.session.add(shift)
    except IntegrityError:
        shift = get_open_shift(operator_id)
        if shift is None:
            raise ConflictError(
                "Could not resolve open shift",
                details={"operator_id": operator_id},
            )
        return shift

    _log_shift_opened(shift)
    current_app.logger.info("Shift %s opened implicitly for operator %s", shift.id, operator_id)
    if commit:
        db.session.commit()
    return shift


def close_shift(shift_id: int) -> Shift:
    """
    Close an open shift (ended_at = now).

    IMMUTABLE: once closed, a shift is never reopened.

    Raises:
        NotFoundError: no open shift with this id
    """
    def _op():
        shift = lock_open_shift(shift_id)
        if shift is None:
            raise NotFoundError("shift", shift_id, "No active shift found")

        shift.ended_at = utcnow()
        append_event(
            event_type="shift.closed",
            event_category="shift",
            entity_type="shift",
            entity_id=shift.id,
            operator_id=shift.operator_id,
            shift_id=shift.id,
            occurred_at=shift.ended_at,
            note="Shift closed",
        )
        db.session.commit()
        current_app.logger.info("Shift %s closed", shift.id)
        return shift

    return run_with_retry(_op)


def end_active_shift(operator_id: int) -> Shift:
    """Close whatever shift the operator has open."""
    operator_id = require_positive_int(operator_id, "operator_id")
    shift = get_open_shift(operator_id)
    if shift is None:
        raise NotFoundError("shift", None, "No active shift found")
    return close_shift(shift.id)


# =============================================================================
# REPORTING
# =============================================================================

def _sales_by_currency(shift_ids: list[int]) -> dict[int, dict[str, int]]:
    rows = db.session.query(
        Receipt.shift_id,
        Receipt.currency,
        func.coalesce(func.sum(Receipt.total_amount_cents), 0),
    ).filter(
        Receipt.shift_id.in_(shift_ids),
        Receipt.is_cancelled.is_(False),
    ).group_by(Receipt.shift_id, Receipt.currency).all()

    result: dict[int, dict[str, int]] = {shift_id: {} for shift_id in shift_ids}
    for shift_id, currency, total in rows:
        result[shift_id][currency] = int(total or 0)
    return result


def get_shift_stats(shift_id: int) -> dict:
    """
    Shift statistics; cancelled receipts are counted but excluded from
    every amount. Money is reported per currency, never summed across.
    """
    shift = get_shift(shift_id)

    counts = db.session.query(
        func.count(Receipt.id),
        func.coalesce(func.sum(case((Receipt.is_cancelled.is_(True), 1), else_=0)), 0),
    ).filter(Receipt.shift_id == shift_id).one()

    line_rows = db.session.query(
        SaleLine.currency,
        func.coalesce(func.sum(SaleLine.quantity), 0),
        func.coalesce(func.sum(SaleLine.line_total_cents), 0),
        func.coalesce(func.sum(func.coalesce(SaleLine.cost_price_cents, 0) * SaleLine.quantity), 0),
    ).join(Receipt, SaleLine.receipt_id == Receipt.id).filter(
        Receipt.shift_id == shift_id,
        Receipt.is_cancelled.is_(False),
    ).group_by(SaleLine.currency).all()

    sales = _sales_by_currency([shift_id])[shift_id]
    totals: dict[str, dict] = {}
    items_sold = 0
    for currency, qty, revenue, cost in line_rows:
        items_sold += int(qty or 0)
        totals[currency] = {
            "total_sales_cents": sales.get(currency, 0),
            "items_sold": int(qty or 0),
            "revenue_cents": int(revenue or 0),
            "cost_cents": int(cost or 0),
            "profit_cents": int(revenue or 0) - int(cost or 0),
        }

    return {
        "shift": shift.to_dict(),
        "total_receipts": int(counts[0] or 0),
        "cancelled_receipts": int(counts[1] or 0),
        "total_items_sold": items_sold,
        "totals_by_currency": totals,
    }


def get_active_shift_summary(operator_id: int) -> dict | None:
    """The operator's open shift with receipt count and sales totals, or None."""
    shift = get_open_shift(operator_id)
    if shift is None:
        return None

    receipts_count = db.session.query(func.count(Receipt.id)).filter(
        Receipt.shift_id == shift.id
    ).scalar()

    return {
        **shift.to_dict(),
        "receipts_count": int(receipts_count or 0),
        "total_sales_cents_by_currency": _sales_by_currency([shift.id])[shift.id],
    }
