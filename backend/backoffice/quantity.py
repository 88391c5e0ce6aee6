# Overview: Exact decimal helpers for stock quantities, costs and money.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from .errors import ValidationError

# Columns are NUMERIC(19, 4); every value is quantized to this scale.
SCALE = 4
QUANTUM = Decimal(1).scaleb(-SCALE)
ZERO = Decimal("0.0000")

# Largest accepted magnitude (exclusive). Scaled by 10**4 it still fits a
# signed 64-bit integer, which is how SQLite stores these columns.
MAX_MAGNITUDE = Decimal(10) ** 14


def to_quantity(value: Any, *, field: str = "quantity") -> Decimal:
    """
    Coerce a caller-supplied number to an exact Decimal at 4 places.

    Floats go through ``str()`` so 0.1 stays 0.1 instead of its binary
    expansion. Booleans, NaN and infinities are rejected, as are values with
    more than 4 significant decimal places or a magnitude of 10**14 or more.
    Nothing is rounded.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", {"field": field, "value": value})

    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, (int, str)):
        try:
            candidate = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", {"field": field, "value": value})
    elif isinstance(value, float):
        candidate = Decimal(str(value))
    else:
        raise ValidationError(f"{field} must be a number", {"field": field, "value": repr(value)})

    if not candidate.is_finite():
        raise ValidationError(f"{field} must be finite", {"field": field, "value": str(value)})

    if abs(candidate) >= MAX_MAGNITUDE:
        raise ValidationError(
            f"{field} is out of range; magnitude must be below {MAX_MAGNITUDE:,}",
            {"field": field, "value": str(value)},
        )

    try:
        quantized = candidate.quantize(QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range", {"field": field, "value": str(value)})
    if quantized != candidate:
        raise ValidationError(
            f"{field} allows at most {SCALE} decimal places",
            {"field": field, "value": str(value)},
        )
    return quantized


def to_money(value: Any, *, field: str = "amount") -> Decimal:
    return to_quantity(value, field=field)


def optional_quantity(value: Any, *, field: str = "quantity") -> Optional[Decimal]:
    if value is None:
        return None
    return to_quantity(value, field=field)


def is_zero(value: Decimal) -> bool:
    return value.is_zero()


def format_decimal(value: Optional[Decimal]) -> Optional[str]:
    """String form for JSON payloads (no float round trip)."""
    if value is None:
        return None
    return str(Decimal(value).quantize(QUANTUM))
