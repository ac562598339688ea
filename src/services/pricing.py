"""Cart and order price calculation.

All amounts are rupees held as Decimal and rounded to paise with
ROUND_HALF_UP. Payment providers take integer minor units (paise), see
`to_minor_units`.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from src.core.config import Settings, get_settings
from src.schemas.common import quantize_money

ZERO = Decimal("0")


class PricedLine(Protocol):
    """Anything with a quantity and catalog prices: cart items and order lines."""

    quantity: int
    unit_price: Decimal
    unit_sale_price: Decimal | None


@dataclass(frozen=True)
class PricingPolicy:
    """Tax and shipping rules applied to a subtotal."""

    tax_rate: Decimal
    free_shipping_threshold: Decimal
    flat_shipping_rate: Decimal

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PricingPolicy":
        settings = settings or get_settings()
        return cls(
            tax_rate=settings.tax_rate,
            free_shipping_threshold=settings.free_shipping_threshold,
            flat_shipping_rate=settings.flat_shipping_rate,
        )


@dataclass(frozen=True)
class PriceBreakdown:
    """Subtotal, tax, shipping and total for a set of items."""

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def as_order_prices(self) -> dict[str, str]:
        """Column values for the orders table."""
        return {
            "items_price": str(self.subtotal),
            "tax_price": str(self.tax),
            "shipping_price": str(self.shipping),
            "total_price": str(self.total),
        }

    def as_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "total": self.total,
        }


def effective_unit_price(line: PricedLine) -> Decimal:
    """Sale price when one is set, otherwise the list price."""
    if line.unit_sale_price is not None:
        return line.unit_sale_price
    return line.unit_price


def line_total(line: PricedLine) -> Decimal:
    return quantize_money(effective_unit_price(line) * line.quantity)


def subtotal_of(items: Iterable[PricedLine]) -> Decimal:
    """Sum of effective unit price times quantity over all items."""
    return quantize_money(sum((line_total(item) for item in items), ZERO))


def compute(items: Iterable[PricedLine], policy: PricingPolicy) -> PriceBreakdown:
    """Compute the price breakdown for a list of items.

    Shipping is free only when the subtotal is strictly above the
    threshold. An empty list prices to zero everywhere except shipping,
    which still follows the policy.

    Args:
        items: Cart items or order lines.
        policy: Tax rate and shipping rules.

    Returns:
        PriceBreakdown: Rounded amounts where total is the exact sum of the parts.
    """
    subtotal = subtotal_of(items)
    tax = quantize_money(subtotal * policy.tax_rate)
    if subtotal > policy.free_shipping_threshold:
        shipping = quantize_money(ZERO)
    else:
        shipping = quantize_money(policy.flat_shipping_rate)

    return PriceBreakdown(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        total=subtotal + tax + shipping,
    )


def to_minor_units(amount: Decimal) -> int:
    """Convert a rupee amount to integer paise."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def parse_money(value: Any) -> Decimal:
    """Read a stored amount (string, int or float) back as rounded Decimal."""
    if isinstance(value, float):
        value = str(value)
    return quantize_money(Decimal(value))
