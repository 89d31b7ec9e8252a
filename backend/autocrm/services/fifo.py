# Overview: Storage-agnostic FIFO lot allocation and weighted cost.

"""
FIFO allocation (authoritative)

- Candidate lots are ordered by (received_at, lot_id) ascending; lots with
  quantity <= 0 are skipped. Oldest stock is sold first regardless of cost.
- Each lot gives min(remaining_needed, lot.quantity) until the request is
  satisfied or the lots run out.
- Allocation never mutates its input. Callers apply the takes only when
  remaining_unfulfilled == 0, which keeps a deduction all-or-nothing.

Weighted average unit cost:
    sum(qty * unit_cost) / sum(qty)   over takes with a known cost
  Takes without a cost (salvage) are excluded from both sums. If no take has
  a cost the result is None (unknown), not 0. Nearest-cent rounding, half-up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional


@dataclass(frozen=True)
class LotSnapshot:
    lot_id: int
    quantity: int
    unit_cost_cents: Optional[int]
    received_at: datetime

    @classmethod
    def from_lot(cls, lot) -> "LotSnapshot":
        return cls(
            lot_id=lot.id,
            quantity=lot.quantity,
            unit_cost_cents=lot.unit_cost_cents,
            received_at=lot.received_at,
        )


@dataclass(frozen=True)
class LotTake:
    lot_id: int
    quantity: int
    unit_cost_cents: Optional[int]


@dataclass(frozen=True)
class Allocation:
    requested: int
    lots_consumed: tuple[LotTake, ...] = field(default_factory=tuple)

    @property
    def quantity_taken(self) -> int:
        return sum(take.quantity for take in self.lots_consumed)

    @property
    def remaining_unfulfilled(self) -> int:
        return self.requested - self.quantity_taken

    @property
    def is_satisfied(self) -> bool:
        return self.remaining_unfulfilled == 0

    @property
    def unit_cost_cents(self) -> Optional[int]:
        return weighted_unit_cost_cents(self.lots_consumed)


def order_lots(lots: Iterable[LotSnapshot]) -> list[LotSnapshot]:
    """The FIFO sequence: in-stock lots, oldest first."""
    return sorted(
        (lot for lot in lots if lot.quantity > 0),
        key=lambda lot: (lot.received_at, lot.lot_id),
    )


def allocate_fifo(lots: Iterable[LotSnapshot], quantity: int) -> Allocation:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError("quantity must be a positive integer")

    takes: list[LotTake] = []
    remaining = quantity
    for lot in order_lots(lots):
        if remaining == 0:
            break
        take = min(remaining, lot.quantity)
        takes.append(LotTake(lot_id=lot.lot_id, quantity=take, unit_cost_cents=lot.unit_cost_cents))
        remaining -= take

    return Allocation(requested=quantity, lots_consumed=tuple(takes))


def weighted_unit_cost_cents(takes: Iterable[LotTake]) -> Optional[int]:
    total_units = 0
    total_cost = 0
    for take in takes:
        if take.unit_cost_cents is None:
            continue
        total_units += take.quantity
        total_cost += take.quantity * take.unit_cost_cents

    if total_units <= 0:
        return None
    # nearest-cent rounding (half-up)
    return (total_cost + (total_units // 2)) // total_units
