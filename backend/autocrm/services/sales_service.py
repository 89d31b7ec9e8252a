"""
Sale Engine - atomic cart completion and receipt cancellation

WHY: A sale touches stock, cost basis and money at once. Either the whole
cart is sold (lots deducted, receipt + lines + allocations written) or
nothing changes at all.

DESIGN PRINCIPLES:
- The cart is an explicit request payload (CartLine values); no cart state
  survives between calls
- Input is validated before any read-modify-write starts
- Each line records the exact lots it consumed so cancellation restores
  them exactly instead of guessing by FIFO
- Receipts are never deleted; cancellation only flags them
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import (
    AlreadyCancelledError,
    InsufficientStockError,
    NoActiveShiftError,
    NotFoundError,
    PosError,
    StorageError,
    ValidationError,
)
from ..models import Receipt, SaleLine, SaleLineAllocation
from ..validation import normalize_currency, require_positive_int, require_price_cents
from autocrm.time_utils import utcnow, to_utc_z
from .audit_service import append_event
from .catalog_service import require_products
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import deduct, restore
from .shift_service import get_open_shift, get_or_create_shift, get_shift, lock_open_shift


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    sale_price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.sale_price_cents


def parse_cart(items, currency) -> tuple[list[CartLine], str]:
    """
    Validate a cart payload and return (lines, currency).

    Each item is a mapping with product_id, quantity, sale_price_cents and
    optionally currency, which must match the receipt currency.
    """
    currency = normalize_currency(currency)

    if isinstance(items, (str, bytes)) or not isinstance(items, Iterable):
        raise ValidationError("Cart must be a list of items")
    items = list(items)
    if not items:
        raise ValidationError("Cart is empty")

    lines: list[CartLine] = []
    for index, item in enumerate(items):
        if isinstance(item, CartLine):
            item = {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "sale_price_cents": item.sale_price_cents,
            }
        if not isinstance(item, Mapping):
            raise ValidationError("Invalid cart item", details={"index": index})
        try:
            product_id = require_positive_int(item.get("product_id"), "product_id")
            quantity = require_positive_int(item.get("quantity"), "quantity")
            sale_price_cents = require_price_cents(item.get("sale_price_cents"), "sale_price_cents")
            line_currency = item.get("currency")
            if line_currency is not None and normalize_currency(line_currency) != currency:
                raise ValidationError(
                    "All items must share the receipt currency",
                    details={"currency": currency, "line_currency": line_currency},
                )
        except ValidationError as exc:
            exc.details.setdefault("index", index)
            raise
        lines.append(CartLine(product_id=product_id, quantity=quantity, sale_price_cents=sale_price_cents))

    return lines, currency


def _implicit_shift_allowed(override: bool | None) -> bool:
    if override is not None:
        return override
    return bool(current_app.config.get("POS_IMPLICIT_SHIFT", True))


def _deduct_lines(lines: list[CartLine]) -> list:
    """
    Deduct every line in cart order.

    A shortfall is reported against the whole cart: requested is the
    product's total over all lines and available is its on-hand before
    this sale.
    """
    requested: dict[int, int] = defaultdict(int)
    for line in lines:
        requested[line.product_id] += line.quantity

    taken: dict[int, int] = defaultdict(int)
    allocations = []
    for line in lines:
        try:
            allocations.append(deduct(line.product_id, line.quantity))
        except InsufficientStockError as exc:
            if requested[line.product_id] == line.quantity:
                raise
            raise InsufficientStockError(
                line.product_id,
                requested[line.product_id],
                exc.available + taken[line.product_id],
            ) from exc
        taken[line.product_id] += line.quantity
    return allocations


def complete_sale(
    operator_id: int,
    currency,
    cart,
    *,
    allow_implicit_shift: bool | None = None,
) -> Receipt:
    """
    Sell a cart: deduct FIFO lots, record realized cost, persist the receipt.

    Raises:
        ValidationError: bad cart/currency (nothing touched)
        NotFoundError: unknown product
        NoActiveShiftError: no open shift and implicit creation disabled
        InsufficientStockError: a line cannot be covered; whole sale rolled back
        StorageError: persistence failed after retries
    """
    operator_id = require_positive_int(operator_id, "operator_id")
    lines, currency = parse_cart(cart, currency)
    implicit = _implicit_shift_allowed(allow_implicit_shift)

    def _no_shift():
        return NoActiveShiftError(
            "No active shift for operator",
            details={"operator_id": operator_id},
        )

    def _op():
        require_products(line.product_id for line in lines)

        shift = get_open_shift(operator_id)
        if shift is None and not implicit:
            raise _no_shift()

        allocations = _deduct_lines(lines)

        # Re-read under a row lock: the shift may have closed since the first read
        if shift is not None:
            shift = lock_open_shift(shift.id)
            if shift is None and not implicit:
                raise _no_shift()
        if shift is None:
            shift = get_or_create_shift(operator_id, commit=False)

        sold_at = utcnow()
        receipt = Receipt(
            shift_id=shift.id,
            operator_id=operator_id,
            total_amount_cents=sum(line.line_total_cents for line in lines),
            currency=currency,
            sold_at=sold_at,
            is_cancelled=False,
        )
        db.session.add(receipt)
        db.session.flush()

        for line, allocation in zip(lines, allocations):
            sale_line = SaleLine(
                receipt_id=receipt.id,
                product_id=line.product_id,
                quantity=line.quantity,
                sale_price_cents=line.sale_price_cents,
                line_total_cents=line.line_total_cents,
                cost_price_cents=allocation.unit_cost_cents,
                currency=currency,
            )
            db.session.add(sale_line)
            db.session.flush()

            for take in allocation.lots_consumed:
                db.session.add(SaleLineAllocation(
                    sale_line_id=sale_line.id,
                    lot_id=take.lot_id,
                    quantity=take.quantity,
                    unit_cost_cents=take.unit_cost_cents,
                ))

        append_event(
            event_type="sale.completed",
            event_category="sales",
            entity_type="receipt",
            entity_id=receipt.id,
            operator_id=operator_id,
            shift_id=shift.id,
            receipt_id=receipt.id,
            occurred_at=sold_at,
            payload=f"total_amount_cents={receipt.total_amount_cents},currency={currency},lines={len(lines)}",
        )

        db.session.commit()
        return receipt

    receipt = _run_unit_of_work(_op, "Failed to complete sale")
    current_app.logger.info(
        "Sale completed: receipt %s, operator %s, %s %s",
        receipt.id, operator_id, receipt.total_amount_cents, receipt.currency,
    )
    return receipt


def cancel_receipt(receipt_id: int, *, operator_id: int | None = None) -> Receipt:
    """
    Cancel a receipt and put the exact lots it consumed back in stock.

    Raises:
        NotFoundError: unknown receipt
        AlreadyCancelledError: receipt was already cancelled
    """
    def _op():
        receipt = lock_for_update(db.session.query(Receipt).filter_by(id=receipt_id)).first()
        if receipt is None:
            raise NotFoundError("receipt", receipt_id)

        if receipt.is_cancelled:
            raise AlreadyCancelledError(
                "Receipt already cancelled",
                details={"receipt_id": receipt.id, "cancelled_at": to_utc_z(receipt.cancelled_at)},
            )

        restored = 0
        for line in receipt.lines:
            for allocation in line.allocations:
                restore(allocation.lot_id, allocation.quantity)
                restored += allocation.quantity

        receipt.is_cancelled = True
        receipt.cancelled_at = utcnow()
        receipt.cancelled_by_operator_id = operator_id

        append_event(
            event_type="sale.cancelled",
            event_category="sales",
            entity_type="receipt",
            entity_id=receipt.id,
            operator_id=operator_id,
            shift_id=receipt.shift_id,
            receipt_id=receipt.id,
            occurred_at=receipt.cancelled_at,
            payload=f"restored_quantity={restored}",
        )

        db.session.commit()
        return receipt

    receipt = _run_unit_of_work(_op, "Failed to cancel receipt")
    current_app.logger.info("Receipt %s cancelled by operator %s", receipt.id, operator_id)
    return receipt


def _run_unit_of_work(op, failure_message: str):
    """Run op with retry; domain errors pass through, storage errors are masked."""
    try:
        return run_with_retry(op)
    except PosError:
        raise
    except SQLAlchemyError as exc:
        current_app.logger.exception(failure_message)
        raise StorageError(failure_message) from exc


# =============================================================================
# READS
# =============================================================================

def _receipt_summary(receipt: Receipt) -> dict:
    data = receipt.to_dict()
    data["items_count"] = len(receipt.lines)
    return data


def get_shift_receipts(shift_id: int, *, include_cancelled: bool = True) -> list[dict]:
    get_shift(shift_id)

    q = db.session.query(Receipt).filter(Receipt.shift_id == shift_id)
    if not include_cancelled:
        q = q.filter(Receipt.is_cancelled.is_(False))
    receipts = q.order_by(Receipt.sold_at.desc(), Receipt.id.desc()).all()
    return [_receipt_summary(r) for r in receipts]


def list_operator_receipts(operator_id: int, *, limit: int = 100) -> list[dict]:
    receipts = db.session.query(Receipt).filter(
        Receipt.operator_id == operator_id
    ).order_by(Receipt.sold_at.desc(), Receipt.id.desc()).limit(limit).all()
    return [_receipt_summary(r) for r in receipts]


def get_receipt_details(receipt_id: int) -> dict:
    receipt = db.session.get(Receipt, receipt_id)
    if receipt is None:
        raise NotFoundError("receipt", receipt_id)

    lines = []
    for line in receipt.lines:
        row = line.to_dict()
        row["product_name"] = line.product.name if line.product else None
        row["allocations"] = [a.to_dict() for a in line.allocations]
        lines.append(row)

    return {
        "receipt": receipt.to_dict(),
        "lines": lines,
    }
