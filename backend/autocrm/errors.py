# Overview: Domain errors raised by the PoS services.

from __future__ import annotations


class PosError(Exception):
    """Base class for PoS domain errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": type(self).__name__,
            "details": self.details,
        }


class ValidationError(PosError, ValueError):
    """Bad input; raised before any state is touched."""


class InsufficientStockError(PosError):
    """FIFO lots cannot cover the requested quantity."""
    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
                "shortfall": requested - available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available

    @property
    def shortfall(self) -> int:
        return self.requested - self.available


class NoActiveShiftError(PosError):
    """Operator has no open shift and implicit creation is disabled."""


class ConflictError(PosError):
    """Business rule conflict (e.g. a second open shift)."""


class NotFoundError(PosError):
    """Unknown receipt, shift, lot or product."""
    def __init__(self, entity: str, entity_id, message: str | None = None):
        super().__init__(
            message or f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )


class AlreadyCancelledError(PosError):
    """Receipt was cancelled by an earlier call."""


class StorageError(PosError):
    """Persistence failed; the cause is chained, never exposed in the message."""
