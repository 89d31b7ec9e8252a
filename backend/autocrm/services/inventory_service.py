# Overview: Service-layer operations for the lot-tracked inventory ledger.

# backend/autocrm/services/inventory_service.py

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import InventoryLot, Product
from ..models.inventory import LOT_SOURCES, LOT_SOURCE_PURCHASED
from ..validation import (
    normalize_currency,
    optional_cost_cents,
    require_positive_int,
)
from autocrm.time_utils import utcnow, coerce_datetime, to_utc_z
from .audit_service import append_event
from .catalog_service import get_product
from .concurrency import lock_for_update, run_with_retry
from .fifo import Allocation, LotSnapshot, allocate_fifo
"""
Inventory ledger invariants (authoritative)

Lots:
- Stock is held in InventoryLot rows; on-hand for a product is SUM(quantity).
- quantity >= 0 always. Exhausted lots stay for cost history.
- Receiving creates a new lot; it never tops up an existing one.

Deduction:
- FIFO by (received_at, id). Allocation is computed on a snapshot first and
  applied only if it covers the full request, so a failed deduction leaves
  every lot untouched.
- deduct() and restore() flush but never commit: the Sale Engine owns the
  transaction boundary.

Time semantics:
- All internal datetimes are UTC-naive; received_at may not be in the future.
"""


def _parse_received_at(value) -> datetime:
    if value is None:
        return utcnow()
    try:
        dt = coerce_datetime(value)
    except ValueError:
        raise ValidationError("invalid received_at")
    if dt > utcnow() + timedelta(minutes=2):
        raise ValidationError("received_at cannot be in the future")
    return dt


def _fifo_lots_query(product_id: int):
    return db.session.query(InventoryLot).filter(
        InventoryLot.product_id == product_id,
        InventoryLot.quantity > 0,
    ).order_by(
        InventoryLot.received_at.asc(),
        InventoryLot.id.asc(),
    )


# =============================================================================
# DEDUCTION / RESTORATION (called inside the Sale Engine's transaction)
# =============================================================================

def deduct(product_id: int, quantity: int) -> Allocation:
    """
    Take `quantity` units of a product from its lots, oldest first.

    Returns the Allocation (lots consumed with quantity and unit cost).
    Raises InsufficientStockError without touching any lot when the lots
    cannot cover the full quantity.
    """
    quantity = require_positive_int(quantity, "quantity")

    lots = lock_for_update(_fifo_lots_query(product_id)).all()
    allocation = allocate_fifo((LotSnapshot.from_lot(lot) for lot in lots), quantity)

    if not allocation.is_satisfied:
        current_app.logger.warning(
            "Insufficient stock for product %s: requested %s, available %s",
            product_id, quantity, allocation.quantity_taken,
        )
        raise InsufficientStockError(product_id, quantity, allocation.quantity_taken)

    lots_by_id = {lot.id: lot for lot in lots}
    for take in allocation.lots_consumed:
        lots_by_id[take.lot_id].quantity -= take.quantity

    db.session.flush()
    return allocation


def restore(lot_id: int, quantity: int) -> InventoryLot:
    """Add quantity back to a specific lot (reversal path). Never creates lots."""
    quantity = require_positive_int(quantity, "quantity")

    lot = lock_for_update(db.session.query(InventoryLot).filter_by(id=lot_id)).first()
    if lot is None:
        raise NotFoundError("lot", lot_id)

    lot.quantity += quantity
    db.session.flush()
    return lot


# =============================================================================
# RECEIVING (lot producers: procurement, car dismantling)
# =============================================================================

def _receive_lot_inner(
    *,
    product_id: int,
    quantity,
    unit_cost_cents=None,
    sale_price_cents=None,
    currency=None,
    source_type: str = LOT_SOURCE_PURCHASED,
    source_id: int | None = None,
    location: str | None = None,
    received_at=None,
    operator_id: int | None = None,
) -> InventoryLot:
    """Core receive logic without retry or commit."""
    product_id = require_positive_int(product_id, "product_id")
    quantity = require_positive_int(quantity, "quantity")
    unit_cost_cents = optional_cost_cents(unit_cost_cents, "unit_cost_cents")
    sale_price_cents = optional_cost_cents(sale_price_cents, "sale_price_cents")
    currency = normalize_currency(currency or current_app.config["POS_DEFAULT_CURRENCY"])
    if source_type not in LOT_SOURCES:
        raise ValidationError(
            f"source_type must be one of: {', '.join(LOT_SOURCES)}",
            details={"field": "source_type", "value": source_type},
        )
    received_dt = _parse_received_at(received_at)

    get_product(product_id)

    lot = InventoryLot(
        product_id=product_id,
        source_type=source_type,
        source_id=source_id,
        initial_quantity=quantity,
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        sale_price_cents=sale_price_cents,
        currency=currency,
        location=location or None,
        received_at=received_dt,
        received_by_operator_id=operator_id,
    )
    db.session.add(lot)
    db.session.flush()

    append_event(
        event_type="inventory.lot_received",
        event_category="inventory",
        entity_type="inventory_lot",
        entity_id=lot.id,
        operator_id=operator_id,
        occurred_at=lot.received_at,
        payload=f"product_id={product_id},quantity={quantity},source={source_type}",
    )
    return lot


def receive_lot(**kwargs) -> InventoryLot:
    """
    Create one lot and commit.

    Accepts the keyword arguments of _receive_lot_inner: product_id,
    quantity, unit_cost_cents, sale_price_cents, currency, source_type,
    source_id, location, received_at, operator_id.
    """
    def _op():
        lot = _receive_lot_inner(**kwargs)
        db.session.commit()
        return lot

    return run_with_retry(_op)


def receive_lots_bulk(items: list[dict], *, operator_id: int | None = None) -> list[InventoryLot]:
    """Receive several lots all-or-nothing (one procurement invoice)."""
    if not items:
        raise ValidationError("Items array is required")

    def _op():
        lots = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValidationError("Invalid item data", details={"index": index})
            try:
                lot = _receive_lot_inner(
                    product_id=item.get("product_id"),
                    quantity=item.get("quantity"),
                    unit_cost_cents=item.get("unit_cost_cents"),
                    sale_price_cents=item.get("sale_price_cents"),
                    currency=item.get("currency"),
                    source_type=item.get("source_type", LOT_SOURCE_PURCHASED),
                    source_id=item.get("source_id"),
                    location=item.get("location"),
                    received_at=item.get("received_at"),
                    operator_id=operator_id,
                )
            except ValidationError as exc:
                exc.details.setdefault("index", index)
                raise
            lots.append(lot)
        db.session.commit()
        return lots

    return run_with_retry(_op)


# =============================================================================
# STOCK LEVELS
# =============================================================================

def get_quantity_on_hand(product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(InventoryLot.quantity), 0)
    ).filter(InventoryLot.product_id == product_id)
    return int(q.scalar() or 0)


def list_lots(product_id: int, *, include_exhausted: bool = False) -> list[dict]:
    """Lots of a product in FIFO order, with how long each has been stored."""
    get_product(product_id)

    q = db.session.query(InventoryLot).filter(InventoryLot.product_id == product_id)
    if not include_exhausted:
        q = q.filter(InventoryLot.quantity > 0)
    lots = q.order_by(InventoryLot.received_at.asc(), InventoryLot.id.asc()).all()

    today = utcnow().date()
    rows = []
    for lot in lots:
        row = lot.to_dict()
        row["days_in_storage"] = (today - lot.received_at.date()).days
        rows.append(row)
    return rows


def get_stock_level(product_id: int) -> dict:
    product = get_product(product_id)

    row = db.session.query(
        func.coalesce(func.sum(InventoryLot.quantity), 0).label("on_hand"),
        func.count(InventoryLot.id).label("lot_count"),
        func.min(InventoryLot.received_at).label("first_received"),
        func.max(InventoryLot.received_at).label("last_received"),
    ).filter(
        InventoryLot.product_id == product_id,
        InventoryLot.quantity > 0,
    ).one()

    on_hand = int(row.on_hand or 0)
    return {
        "product_id": product.id,
        "name": product.name,
        "sku": product.sku,
        "quantity_on_hand": on_hand,
        "lot_count": int(row.lot_count or 0),
        "first_received_at": to_utc_z(coerce_datetime(row.first_received)),
        "last_received_at": to_utc_z(coerce_datetime(row.last_received)),
        "min_stock_level": product.min_stock_level,
        "is_low_stock": product.min_stock_level > 0 and on_hand <= product.min_stock_level,
    }


def list_low_stock() -> list[dict]:
    """Products at or below their min_stock_level (threshold 0 means no alert)."""
    on_hand = func.coalesce(func.sum(InventoryLot.quantity), 0)
    rows = db.session.query(
        Product,
        on_hand.label("on_hand"),
    ).outerjoin(
        InventoryLot, InventoryLot.product_id == Product.id
    ).filter(
        Product.min_stock_level > 0,
    ).group_by(Product.id).having(
        on_hand <= Product.min_stock_level
    ).order_by(Product.name.asc()).all()

    return [
        {
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "quantity_on_hand": int(qty or 0),
            "min_stock_level": product.min_stock_level,
        }
        for product, qty in rows
    ]
