"""
FIFO allocation tests (no database).
"""

from datetime import datetime

import pytest

from autocrm.services.fifo import (
    LotSnapshot,
    LotTake,
    allocate_fifo,
    order_lots,
    weighted_unit_cost_cents,
)


def _lot(lot_id, quantity, cost, day):
    return LotSnapshot(lot_id=lot_id, quantity=quantity, unit_cost_cents=cost, received_at=datetime(2024, 1, day))


def test_order_lots_oldest_first_and_skips_empty():
    lots = [_lot(3, 4, 100, 3), _lot(1, 0, 100, 1), _lot(2, 5, 100, 2)]
    assert [lot.lot_id for lot in order_lots(lots)] == [2, 3]


def test_order_lots_ties_broken_by_lot_id():
    lots = [_lot(9, 1, 100, 1), _lot(4, 1, 100, 1)]
    assert [lot.lot_id for lot in order_lots(lots)] == [4, 9]


def test_allocate_takes_oldest_lot_first():
    a = _lot(1, 5, 1000, 1)
    b = _lot(2, 5, 2000, 2)

    allocation = allocate_fifo([b, a], 7)

    assert allocation.is_satisfied
    assert allocation.lots_consumed == (
        LotTake(lot_id=1, quantity=5, unit_cost_cents=1000),
        LotTake(lot_id=2, quantity=2, unit_cost_cents=2000),
    )


def test_allocate_weighted_cost_rounds_to_nearest_cent():
    allocation = allocate_fifo([_lot(1, 5, 1000, 1), _lot(2, 5, 2000, 2)], 7)
    # (5 * 1000 + 2 * 2000) / 7 = 1285.71...
    assert allocation.unit_cost_cents == 1286


def test_allocate_single_lot_cost_is_lot_cost():
    allocation = allocate_fifo([_lot(1, 10, 1500, 1)], 3)
    assert allocation.unit_cost_cents == 1500


def test_allocate_shortfall_reports_remaining():
    allocation = allocate_fifo([_lot(1, 2, 100, 1), _lot(2, 1, 100, 2)], 5)

    assert not allocation.is_satisfied
    assert allocation.quantity_taken == 3
    assert allocation.remaining_unfulfilled == 2


def test_allocate_does_not_mutate_input():
    lots = [_lot(1, 5, 100, 1)]
    allocate_fifo(lots, 3)
    assert lots[0].quantity == 5


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
def test_allocate_rejects_non_positive_int(quantity):
    with pytest.raises(ValueError):
        allocate_fifo([_lot(1, 5, 100, 1)], quantity)


def test_weighted_cost_ignores_uncosted_takes():
    takes = [
        LotTake(lot_id=1, quantity=3, unit_cost_cents=None),
        LotTake(lot_id=2, quantity=1, unit_cost_cents=400),
    ]
    assert weighted_unit_cost_cents(takes) == 400


def test_weighted_cost_unknown_when_no_take_has_cost():
    takes = [LotTake(lot_id=1, quantity=3, unit_cost_cents=None)]
    assert weighted_unit_cost_cents(takes) is None


def test_weighted_cost_zero_cost_is_known():
    takes = [LotTake(lot_id=1, quantity=2, unit_cost_cents=0)]
    assert weighted_unit_cost_cents(takes) == 0
