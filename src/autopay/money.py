"""Token amount conversion helpers using fixed 6-decimal base units."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_FLOOR


TOKEN_DECIMALS = 6
BASE_UNITS_PER_TOKEN = 10 ** TOKEN_DECIMALS
_TOKEN_QUANT = Decimal("0.000001")


def _finite_decimal(value: Decimal | float | int | str) -> Decimal:
    dec = Decimal(str(value))
    if not dec.is_finite():
        raise InvalidOperation(f"Amount must be finite: {value!r}")
    return dec


def amount_to_base_units(value: Decimal | float | int | str) -> int:
    """Convert a spend amount to base units, rounding up (conservative)."""
    dec = _finite_decimal(value).quantize(_TOKEN_QUANT, rounding=ROUND_CEILING)
    return int(dec * BASE_UNITS_PER_TOKEN)


def limit_to_base_units(value: Decimal | float | int | str) -> int:
    """Convert a configured limit to base units, rounding down (conservative)."""
    dec = _finite_decimal(value).quantize(_TOKEN_QUANT, rounding=ROUND_FLOOR)
    return int(dec * BASE_UNITS_PER_TOKEN)


def parse_base_units(value: str | int) -> int:
    """Parse an integer base-unit amount (no decimal scaling)."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid base-unit amount: {value!r}")
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    try:
        dec = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"Invalid base-unit amount: {value!r}") from None
    if not dec.is_finite():
        raise ValueError(f"Invalid base-unit amount: {value!r}")
    if dec != dec.to_integral_value():
        raise ValueError(f"Base-unit amount must be an integer: {value!r}")
    return int(dec)


def base_units_to_decimal(value: int) -> Decimal:
    """Convert integer base units to a display-unit Decimal."""
    return (Decimal(value) / Decimal(BASE_UNITS_PER_TOKEN)).quantize(_TOKEN_QUANT)


def base_units_to_float(value: int) -> float:
    """Convert integer base units to float (for display APIs)."""
    return float(base_units_to_decimal(value))


def format_amount(value: int) -> str:
    """Format base units as a trimmed display amount, e.g. ``0.05``."""
    return format(base_units_to_decimal(value).normalize(), "f")
