"""Service-order pricing: line items, discounts and the tank volume calculator.

Everything here is pure. Form input that is empty or not a number is treated
as 0 rather than raised, so a half-typed field never breaks the form.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, Overflow
from enum import Enum
from typing import Any

from flowdrain.config import get_logger
from flowdrain.money import CENTS, PERCENT_PLACES, ZERO, money_sum, quantize, to_decimal

logger = get_logger(__name__)

HUNDRED = Decimal("100")
LITERS_PER_CUBIC_DM = Decimal("1000")
PI = Decimal("3.14159265358979323846264338327950288")

# Raised by Decimal arithmetic when a result leaves the exponent range.
OUT_OF_RANGE = (InvalidOperation, Overflow)


# =============================================================================
# LINE ITEMS
# =============================================================================


@dataclass(frozen=True)
class ServiceItem:
    """A line of a quote, receipt or contract."""

    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = ZERO

    @classmethod
    def from_form(cls, description: str, quantity: Any, unit_price: Any) -> ServiceItem:
        return cls(
            description=description,
            quantity=to_decimal(quantity),
            unit_price=to_decimal(unit_price),
        )

    @property
    def total(self) -> Decimal:
        try:
            return self.quantity * self.unit_price
        except OUT_OF_RANGE:
            logger.warning("item_total_out_of_range", description=self.description)
            return ZERO

    def to_row(self) -> dict[str, Any]:
        """Serialize the way service orders store their items."""
        return {
            "descricao": self.description,
            "qtd": str(self.quantity),
            "valor_unitario": str(self.unit_price),
            "total": str(quantize(self.total)),
        }


def order_subtotal(items: Iterable[ServiceItem]) -> Decimal:
    """Sum of item totals; 0 when the sum cannot be represented."""
    try:
        return money_sum(item.total for item in items)
    except OUT_OF_RANGE:
        logger.warning("order_subtotal_out_of_range")
        return ZERO


# =============================================================================
# DISCOUNT
# =============================================================================


class DiscountCalculator:
    """Keeps a percentage discount and its currency equivalent in sync.

    The percentage is authoritative. Editing the currency field derives a
    percentage stored to four decimal places, so alternating between the two
    fields does not drift.
    """

    def __init__(self, subtotal: Any = ZERO, percent: Any = ZERO):
        self.subtotal = to_decimal(subtotal)
        self.percent = to_decimal(percent)

    @classmethod
    def for_items(cls, items: Iterable[ServiceItem], percent: Any = ZERO) -> DiscountCalculator:
        return cls(order_subtotal(items), percent)

    def with_subtotal(self, subtotal: Any) -> DiscountCalculator:
        """Same percentage over a new subtotal (items were edited)."""
        return DiscountCalculator(subtotal, self.percent)

    def set_by_percent(self, percent: Any) -> Decimal:
        """Set the discount as a percentage; returns the currency amount."""
        self.percent = to_decimal(percent)
        return self.currency_display

    def set_by_currency(self, amount: Any) -> Decimal:
        """Set the discount as a currency amount; returns the percentage.

        With a zero subtotal there is nothing to derive a percentage from, so
        the last valid percentage is kept.
        """
        if self.subtotal == ZERO:
            return self.percent
        value = to_decimal(amount)
        try:
            percent = quantize(value / self.subtotal * HUNDRED, PERCENT_PLACES)
        except OUT_OF_RANGE:
            logger.warning("discount_percent_out_of_range", amount=str(value))
            return self.percent
        self.percent = percent
        return self.percent

    @property
    def discount_value(self) -> Decimal:
        """Unrounded discount amount; 0 when it cannot be represented."""
        try:
            return self.subtotal * self.percent / HUNDRED
        except OUT_OF_RANGE:
            logger.warning("discount_value_out_of_range", percent=str(self.percent))
            return ZERO

    @property
    def currency_display(self) -> Decimal:
        return quantize(self.discount_value, CENTS)

    @property
    def percent_display(self) -> Decimal:
        return quantize(self.percent, CENTS)

    @property
    def total(self) -> Decimal:
        try:
            return quantize(self.subtotal - self.discount_value, CENTS)
        except OUT_OF_RANGE:
            logger.warning("discount_total_out_of_range", subtotal=str(self.subtotal))
            return quantize(ZERO, CENTS)


# =============================================================================
# TANK VOLUME
# =============================================================================


class TankShape(str, Enum):
    RECTANGULAR = "rectangular"
    CYLINDRICAL = "cylindrical"


@dataclass(frozen=True)
class TankEstimate:
    """Volume and price of emptying a tank. Dimensions are in centimetres."""

    shape: TankShape
    liters: Decimal
    total: Decimal
    depth: Decimal = ZERO
    width: Decimal = ZERO
    length: Decimal = ZERO
    diameter: Decimal = ZERO

    def describe(self) -> str:
        if self.shape is TankShape.RECTANGULAR:
            size = f"{_plain(self.width)}x{_plain(self.length)}x{_plain(self.depth)}cm"
            return f"Septic tank cleaning, rectangular ({size}) - {self.liters}L"
        size = f"Ø{_plain(self.diameter)}x{_plain(self.depth)}cm"
        return f"Septic tank cleaning, cylindrical ({size}) - {self.liters}L"

    def as_service_item(self) -> ServiceItem | None:
        """Line item for the estimate, or None when there is nothing to charge."""
        if self.total <= ZERO:
            return None
        return ServiceItem(description=self.describe(), quantity=Decimal("1"), unit_price=self.total)


def _plain(value: Decimal) -> str:
    return format(value.normalize(), "f")


def _dimension(value: Any) -> Decimal:
    result = to_decimal(value)
    return result if result > ZERO else ZERO


def estimate_tank(
    shape: TankShape | str,
    *,
    depth: Any = None,
    width: Any = None,
    length: Any = None,
    diameter: Any = None,
    price_per_liter: Any = None,
) -> TankEstimate:
    """Estimate liters and price for a rectangular or cylindrical tank.

    Missing, non-numeric or negative inputs count as 0, which yields a zero
    estimate rather than an error. So does a volume too large to represent.
    """
    shape = TankShape(shape)
    depth_cm = _dimension(depth)
    width_cm = _dimension(width)
    length_cm = _dimension(length)
    diameter_cm = _dimension(diameter)
    price = _dimension(price_per_liter)

    try:
        if shape is TankShape.RECTANGULAR:
            liters = width_cm * length_cm * depth_cm / LITERS_PER_CUBIC_DM
        else:
            radius = diameter_cm / 2
            liters = PI * radius * radius * depth_cm / LITERS_PER_CUBIC_DM
        rounded_liters = quantize(liters, CENTS)
        total = quantize(liters * price, CENTS)
    except OUT_OF_RANGE:
        logger.warning("tank_estimate_out_of_range", shape=shape.value)
        rounded_liters = total = quantize(ZERO, CENTS)

    return TankEstimate(
        shape=shape,
        liters=rounded_liters,
        total=total,
        depth=depth_cm,
        width=width_cm,
        length=length_cm,
        diameter=diameter_cm,
    )
