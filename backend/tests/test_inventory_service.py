"""
Inventory ledger tests: receiving, FIFO deduction, restoration, stock levels.
"""

from datetime import timedelta

import pytest

from autocrm.errors import InsufficientStockError, NotFoundError, ValidationError
from autocrm.models import AuditEvent, InventoryLot
from autocrm.services import inventory_service
from autocrm.time_utils import utcnow


class TestReceive:
    def test_receive_creates_lot(self, db_session, product):
        lot = inventory_service.receive_lot(product_id=product.id, quantity=4, unit_cost_cents=250)

        assert lot.id is not None
        assert lot.quantity == 4
        assert lot.initial_quantity == 4
        assert lot.currency == "GEL"
        assert lot.source_type == "purchased"
        assert inventory_service.get_quantity_on_hand(product.id) == 4

    def test_receive_writes_audit_event(self, db_session, product):
        lot = inventory_service.receive_lot(product_id=product.id, quantity=1)

        event = db_session.query(AuditEvent).filter_by(entity_type="inventory_lot", entity_id=lot.id).one()
        assert event.event_type == "inventory.lot_received"

    def test_receive_never_tops_up_existing_lot(self, db_session, product, make_lot):
        make_lot(product, 3, 100)
        make_lot(product, 2, 100)

        assert db_session.query(InventoryLot).filter_by(product_id=product.id).count() == 2
        assert inventory_service.get_quantity_on_hand(product.id) == 5

    def test_receive_salvage_without_cost(self, db_session, product):
        lot = inventory_service.receive_lot(product_id=product.id, quantity=2, source_type="dismantled", source_id=17)
        assert lot.unit_cost_cents is None
        assert lot.source_id == 17

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, "2.0", True])
    def test_receive_rejects_bad_quantity(self, db_session, product, quantity):
        with pytest.raises(ValidationError):
            inventory_service.receive_lot(product_id=product.id, quantity=quantity)
        assert inventory_service.get_quantity_on_hand(product.id) == 0

    def test_receive_rejects_negative_cost(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.receive_lot(product_id=product.id, quantity=1, unit_cost_cents=-1)

    def test_receive_rejects_unknown_source(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.receive_lot(product_id=product.id, quantity=1, source_type="gift")

    def test_receive_rejects_future_date(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.receive_lot(
                product_id=product.id, quantity=1, received_at=utcnow() + timedelta(days=1)
            )

    def test_receive_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.receive_lot(product_id=99999, quantity=1)

    def test_bulk_receive_is_all_or_nothing(self, db_session, product):
        with pytest.raises(ValidationError) as exc_info:
            inventory_service.receive_lots_bulk([
                {"product_id": product.id, "quantity": 5, "unit_cost_cents": 100},
                {"product_id": product.id, "quantity": 0},
            ])

        assert exc_info.value.details["index"] == 1
        assert db_session.query(InventoryLot).count() == 0

    def test_bulk_receive(self, db_session, product, make_product):
        other = make_product("Gasket", sku="G-1")
        lots = inventory_service.receive_lots_bulk([
            {"product_id": product.id, "quantity": 5, "unit_cost_cents": 100},
            {"product_id": other.id, "quantity": 2, "currency": "usd"},
        ], operator_id=3)

        assert len(lots) == 2
        assert lots[1].currency == "USD"
        assert lots[0].received_by_operator_id == 3


class TestDeduct:
    def test_fifo_consumes_oldest_lot_first(self, db_session, product, make_lot, lot_quantities):
        a = make_lot(product, 5, 1000, days_ago=2)
        b = make_lot(product, 5, 2000, days_ago=1)

        allocation = inventory_service.deduct(product.id, 7)
        db_session.commit()

        assert lot_quantities(product.id) == {a.id: 0, b.id: 3}
        assert [(t.lot_id, t.quantity) for t in allocation.lots_consumed] == [(a.id, 5), (b.id, 2)]
        assert allocation.unit_cost_cents == 1286

    def test_insufficient_stock_leaves_lots_unchanged(self, db_session, product, make_lot, lot_quantities):
        make_lot(product, 2, 100, days_ago=2)
        make_lot(product, 1, 100, days_ago=1)
        before = lot_quantities(product.id)

        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.deduct(product.id, 5)
        db_session.rollback()

        err = exc_info.value
        assert err.requested == 5
        assert err.available == 3
        assert err.shortfall == 2
        assert lot_quantities(product.id) == before

    def test_exhausted_lot_is_kept(self, db_session, product, make_lot, lot_quantities):
        lot = make_lot(product, 2, 100)
        inventory_service.deduct(product.id, 2)
        db_session.commit()

        assert lot_quantities(product.id) == {lot.id: 0}
        assert inventory_service.list_lots(product.id) == []
        assert len(inventory_service.list_lots(product.id, include_exhausted=True)) == 1

    def test_restore_returns_quantity_to_lot(self, db_session, product, make_lot, lot_quantities):
        lot = make_lot(product, 4, 100)
        inventory_service.deduct(product.id, 3)
        inventory_service.restore(lot.id, 2)
        db_session.commit()

        assert lot_quantities(product.id) == {lot.id: 3}

    def test_restore_unknown_lot(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.restore(424242, 1)


class TestStockLevels:
    def test_stock_level(self, db_session, make_product, make_lot):
        product = make_product("Filter", sku="F-1", min_stock_level=5)
        make_lot(product, 3, 100, days_ago=4)
        make_lot(product, 1, 100, days_ago=1)

        level = inventory_service.get_stock_level(product.id)

        assert level["quantity_on_hand"] == 4
        assert level["lot_count"] == 2
        assert level["is_low_stock"] is True

    def test_list_lots_reports_days_in_storage(self, db_session, product, make_lot):
        make_lot(product, 3, 100, days_ago=4)

        lots = inventory_service.list_lots(product.id)

        assert lots[0]["days_in_storage"] == 4

    def test_low_stock_list(self, db_session, make_product, make_lot):
        low = make_product("Belt", min_stock_level=3)
        ok = make_product("Bolt", min_stock_level=1)
        make_product("Nut")  # threshold 0 never alerts
        make_lot(low, 2, 100)
        make_lot(ok, 10, 100)

        rows = inventory_service.list_low_stock()

        assert [row["product_id"] for row in rows] == [low.id]
