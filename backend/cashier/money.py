# Overview: Integer-cents money helpers shared by the cart, committer and receipts.

"""
Money invariants (authoritative)

- Amounts are integer minor units (cents). Floats never enter the core.
- Rates are integer basis points: 10000 bps = 100%.
- Rounding is half-up to the nearest cent and happens exactly once, when a
  rate is applied to an amount. Derived totals are plain integer sums.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .errors import ValidationError

BPS_DENOMINATOR = 10_000

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def apply_rate_bps(amount_cents: int, rate_bps: int) -> int:
    """Return amount * rate rounded half-up to the nearest cent."""
    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")
    if rate_bps < 0:
        raise ValueError("rate_bps must be non-negative")
    return (amount_cents * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def rate_to_bps(rate) -> int:
    """
    Convert a fractional rate (e.g. "0.11", Decimal("0.0825")) to basis points.

    Rates that do not land on a whole basis point are rejected rather than
    silently rounded.
    """
    if isinstance(rate, bool):
        raise ValidationError("tax_rate must be a decimal fraction")
    if isinstance(rate, float):
        rate = repr(rate)
    try:
        value = Decimal(str(rate).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("tax_rate must be a decimal fraction")
    if not value.is_finite() or value < 0 or value > 1:
        raise ValidationError("tax_rate must be between 0 and 1")
    bps = value * BPS_DENOMINATOR
    if bps != bps.to_integral_value():
        raise ValidationError("tax_rate must be a whole number of basis points")
    return int(bps)


def coerce_cents(value, *, field: str, allow_zero: bool = True) -> int:
    """
    Strictly coerce a JSON value into integer cents.

    Accepts ints and digit strings; rejects floats, booleans, decimals and
    scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer number of cents")
    if isinstance(value, int):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer number of cents")
        cents = int(stripped)
    else:
        raise ValidationError(f"{field} must be an integer number of cents")

    if cents < 0:
        raise ValidationError(f"{field} must be non-negative")
    if cents == 0 and not allow_zero:
        raise ValidationError(f"{field} must be positive")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return cents


def format_cents(amount_cents: int, prefix: str = "") -> str:
    """Format cents as '<prefix> 1,234.50' (prefix omitted when empty)."""
    sign = "-" if amount_cents < 0 else ""
    whole, frac = divmod(abs(amount_cents), 100)
    text = f"{sign}{whole:,}.{frac:02d}"
    return f"{prefix} {text}" if prefix else text
