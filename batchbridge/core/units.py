"""Conversions between base-unit integers and decimal display strings."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")

# wide enough for any uint256 amount at any token precision
_PARSE_PRECISION = 999


def format_units(value: int, decimals: int) -> str:
    """Render a base-unit integer as a plain decimal string (no exponent, no trailing zeros)."""

    if decimals <= 0:
        return str(value)
    negative = value < 0
    digits = str(abs(value)).rjust(decimals + 1, "0")
    whole, fraction = digits[:-decimals], digits[-decimals:].rstrip("0")
    text = f"{whole}.{fraction}" if fraction else whole
    return f"-{text}" if negative else text


def parse_units(text: str, decimals: int) -> int:
    """Parse a decimal string into base units, truncating excess precision."""

    with localcontext() as ctx:
        ctx.prec = _PARSE_PRECISION
        try:
            amount = Decimal(text)
            if not amount.is_finite():
                raise ValueError(f"Invalid amount: {text!r}")
            scaled = (amount * (Decimal(10) ** decimals)).quantize(Decimal("1"), rounding=ROUND_DOWN)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Invalid amount: {text!r}") from exc
    return int(scaled)


def clamp_to_decimals(text: str, max_decimals: int) -> str:
    if not text:
        return ""
    whole, _, fraction = text.partition(".")
    fraction = fraction[:max_decimals]
    if not fraction:
        return whole
    return f"{whole}.{fraction}"


def sanitize_amount_input(text: str, max_decimals: int = 5) -> str:
    """Strip everything but digits and dots, then clamp the fractional part."""

    return clamp_to_decimals(_NON_NUMERIC_RE.sub("", text or ""), max_decimals)


def to_float_amount(value: int, decimals: int) -> float:
    try:
        return float(Decimal(value) / (Decimal(10) ** decimals))
    except (InvalidOperation, ValueError):
        return 0.0


def format_usd(value: float) -> str:
    """Compact dollar amount used in status messages."""

    if not value:
        return "$0.00"
    if value < 0.01:
        return "<$0.01"
    if value < 1000:
        return f"${value:.2f}"
    if value < 1_000_000:
        return f"${value / 1000:.2f}K"
    return f"${value / 1_000_000:.2f}M"
