from __future__ import annotations

import re
from typing import Any

from .errors import ValidationError

# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints (not bools) and plain digit strings; rejects floats,
    decimals and scientific notation so 1.5 units never become 1.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        if 'e' in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                details={"field": field},
            )
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", details={"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    raise ValidationError(f"{field} must be an integer", details={"field": field})


def require_positive_int(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be positive", details={"field": field, "value": number})
    return number


def require_price_cents(value: Any, field: str) -> int:
    cents = require_positive_int(value, field)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum", details={"field": field, "max": MAX_PRICE_CENTS})
    return cents


def optional_cost_cents(value: Any, field: str) -> int | None:
    """Costs may be missing (salvage) or zero, never negative."""
    if value is None:
        return None
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative", details={"field": field, "value": cents})
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum", details={"field": field, "max": MAX_PRICE_CENTS})
    return cents


def normalize_currency(value: Any, field: str = "currency") -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", details={"field": field})
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={"field": field})
    code = value.strip().upper()
    if not _CURRENCY_RE.match(code):
        raise ValidationError(
            f"{field} must be a 3-letter currency code",
            details={"field": field, "value": value},
        )
    return code
