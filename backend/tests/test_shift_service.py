"""
Shift manager tests: one open shift per operator, close, stats.
"""

import pytest

from autocrm.errors import ConflictError, NotFoundError, ValidationError
from autocrm.models import AuditEvent, Shift
from autocrm.services import sales_service, shift_service


def test_open_shift(db_session):
    shift = shift_service.open_shift(7)

    assert shift.is_open
    assert shift_service.get_open_shift(7).id == shift.id
    assert db_session.query(AuditEvent).filter_by(event_type="shift.opened", shift_id=shift.id).count() == 1


def test_second_open_shift_conflicts(db_session):
    first = shift_service.open_shift(7)

    with pytest.raises(ConflictError) as exc_info:
        shift_service.open_shift(7)

    assert exc_info.value.details["shift_id"] == first.id
    assert db_session.query(Shift).filter_by(operator_id=7).count() == 1


def test_operators_have_independent_shifts(db_session):
    a = shift_service.open_shift(1)
    b = shift_service.open_shift(2)
    assert a.id != b.id


def test_close_then_reopen(db_session):
    first = shift_service.open_shift(7)
    closed = shift_service.close_shift(first.id)

    assert closed.ended_at is not None
    assert shift_service.get_open_shift(7) is None

    second = shift_service.open_shift(7)
    assert second.id != first.id


def test_close_closed_shift_is_not_found(db_session):
    shift = shift_service.open_shift(7)
    shift_service.close_shift(shift.id)

    with pytest.raises(NotFoundError):
        shift_service.close_shift(shift.id)


def test_end_active_shift_without_shift(db_session):
    with pytest.raises(NotFoundError):
        shift_service.end_active_shift(7)


def test_get_or_create_shift_is_idempotent(db_session):
    first = shift_service.get_or_create_shift(7)
    second = shift_service.get_or_create_shift(7)

    assert first.id == second.id
    assert db_session.query(Shift).filter_by(operator_id=7).count() == 1


def test_get_or_create_returns_existing_open_shift(db_session):
    opened = shift_service.open_shift(7)
    assert shift_service.get_or_create_shift(7).id == opened.id


@pytest.mark.parametrize("call", [
    shift_service.open_shift,
    shift_service.get_or_create_shift,
    shift_service.end_active_shift,
])
def test_operator_id_is_required(db_session, call):
    with pytest.raises(ValidationError) as exc_info:
        call(None)

    assert exc_info.value.details["field"] == "operator_id"
    assert db_session.query(Shift).count() == 0


def test_open_shift_rejects_bad_started_at(db_session):
    with pytest.raises(ValidationError) as exc_info:
        shift_service.open_shift(7, started_at="garbage")

    assert exc_info.value.details["field"] == "started_at"
    assert db_session.query(Shift).count() == 0


def test_shift_stats_exclude_cancelled(db_session, product, make_lot):
    make_lot(product, 10, 300)
    shift = shift_service.open_shift(7)

    kept = sales_service.complete_sale(7, "GEL", [
        {"product_id": product.id, "quantity": 2, "sale_price_cents": 5000},
    ])
    cancelled = sales_service.complete_sale(7, "GEL", [
        {"product_id": product.id, "quantity": 1, "sale_price_cents": 5000},
    ])
    sales_service.cancel_receipt(cancelled.id, operator_id=7)

    stats = shift_service.get_shift_stats(shift.id)

    assert kept.total_amount_cents == 10000
    assert stats["total_receipts"] == 2
    assert stats["cancelled_receipts"] == 1
    assert stats["total_items_sold"] == 2
    assert stats["totals_by_currency"]["GEL"] == {
        "total_sales_cents": 10000,
        "items_sold": 2,
        "revenue_cents": 10000,
        "cost_cents": 600,
        "profit_cents": 9400,
    }


def test_shift_stats_keep_currencies_apart(db_session, product, make_lot):
    make_lot(product, 5, 100, currency="GEL")
    shift = shift_service.open_shift(7)

    sales_service.complete_sale(7, "GEL", [{"product_id": product.id, "quantity": 1, "sale_price_cents": 1000}])
    sales_service.complete_sale(7, "USD", [{"product_id": product.id, "quantity": 1, "sale_price_cents": 400}])

    totals = shift_service.get_shift_stats(shift.id)["totals_by_currency"]

    assert totals["GEL"]["total_sales_cents"] == 1000
    assert totals["USD"]["total_sales_cents"] == 400


def test_active_shift_summary(db_session, product, make_lot):
    make_lot(product, 5, 100)
    assert shift_service.get_active_shift_summary(7) is None

    shift_service.open_shift(7)
    sales_service.complete_sale(7, "GEL", [{"product_id": product.id, "quantity": 2, "sale_price_cents": 250}])

    summary = shift_service.get_active_shift_summary(7)
    assert summary["receipts_count"] == 1
    assert summary["total_sales_cents_by_currency"] == {"GEL": 500}


def test_shift_stats_unknown_shift(db_session):
    with pytest.raises(NotFoundError):
        shift_service.get_shift_stats(31337)
