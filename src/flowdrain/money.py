"""Decimal helpers for monetary and measured amounts."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from flowdrain.config import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")
PERCENT_PLACES = Decimal("0.0001")


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a form or row value into a Decimal.

    Accepts Decimals, ints, floats and strings. Strings may use a comma as the
    decimal separator ("10,50"). Returns None for empty, non-numeric or
    non-finite input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce a value to Decimal, falling back to ``default`` when invalid."""
    result = parse_decimal(value)
    if result is None:
        if value not in (None, ""):
            logger.debug("decimal_coerced_to_default", raw=repr(value), default=str(default))
        return default
    return result


def quantize(amount: Decimal, places: Decimal = CENTS) -> Decimal:
    """Round half-up to the given number of places.

    Precision grows with the amount so large values keep every integer digit.
    """
    with localcontext() as ctx:
        digits = amount.adjusted() + 1 - places.as_tuple().exponent
        ctx.prec = max(ctx.prec, digits)
        return amount.quantize(places, rounding=ROUND_HALF_UP)


def money_sum(amounts: Iterable[Decimal]) -> Decimal:
    """Sum amounts starting from an exact zero."""
    return sum(amounts, ZERO)


def format_brl(amount: Decimal) -> str:
    """Format an amount the way the app shows it to users (R$ 1.234,56)."""
    text = f"{quantize(amount):,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")
