"""Order pricing.

Pure computation of line totals, subtotal, discount, tax and total from a
cart. No I/O, no session; the lifecycle service feeds it the tax rate and
currency from the business snapshot.

Rounding: every persisted amount is rounded half-up to the currency's minor
unit. Line totals, subtotal, discount and tax are rounded first and the total
is derived from the rounded parts, so ``total == subtotal - discount + tax``
holds exactly on the stored values.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from tillpoint.core.exceptions import InvalidDiscount, OrderValidationError
from tillpoint.core.money import HUNDRED, ZERO, percent_of, quantize, to_decimal
from tillpoint.models.order import DiscountType


@dataclass(frozen=True)
class ModifierAdjustment:
    """A selected modifier option and its price effect (may be negative)."""

    name: str
    price_adjustment: Decimal = ZERO
    modifier_id: Optional[int] = None
    option_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "modifier_id": self.modifier_id,
            "option_id": self.option_id,
            "name": self.name,
            "price_adjustment": str(self.price_adjustment),
        }


@dataclass(frozen=True)
class LineInput:
    """One cart line as submitted by the client."""

    quantity: int
    unit_price: Decimal
    modifiers: Tuple[ModifierAdjustment, ...] = ()
    menu_item_id: Optional[int] = None
    name: Optional[str] = None
    special_instructions: Optional[str] = None


@dataclass(frozen=True)
class DiscountSpec:
    type: str
    value: Decimal


@dataclass(frozen=True)
class PricedLine:
    line: LineInput
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class PricingResult:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    currency: str
    lines: Tuple[PricedLine, ...] = field(default_factory=tuple)


def _amount(value, what: str) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError as e:
        raise OrderValidationError(f"{what}: {e}") from e


def price_line(line: LineInput, currency: str, index: int = 0) -> PricedLine:
    """Validate one line and compute ``quantity * unit_price + adjustments``."""
    qty = line.quantity
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise OrderValidationError(f"Item {index + 1}: quantity must be a whole number")
    if qty <= 0:
        raise OrderValidationError(f"Item {index + 1}: quantity must be positive, got {qty}")

    unit_price = _amount(line.unit_price, f"Item {index + 1} unit price")
    if unit_price < 0:
        raise OrderValidationError(f"Item {index + 1}: unit price cannot be negative")

    adjustments = sum(
        (_amount(m.price_adjustment, f"Item {index + 1} modifier '{m.name}'") for m in line.modifiers),
        ZERO,
    )
    line_total = quantize(qty * unit_price + adjustments, currency)
    if line_total < 0:
        raise OrderValidationError(
            f"Item {index + 1}: modifiers reduce the line total below zero ({line_total})"
        )
    return PricedLine(line=line, unit_price=quantize(unit_price, currency), line_total=line_total)


def compute_discount(
    subtotal: Decimal,
    discount: Optional[DiscountSpec],
    currency: str,
    clamp_fixed: bool = False,
) -> Decimal:
    """Discount amount for ``subtotal``; zero when there is no discount."""
    if discount is None:
        return ZERO
    try:
        value = to_decimal(discount.value)
    except ValueError as e:
        raise InvalidDiscount(f"Invalid discount value: {e}") from e

    if discount.type == DiscountType.PERCENTAGE.value:
        if value < 0 or value > HUNDRED:
            raise InvalidDiscount(f"Percentage discount must be between 0 and 100, got {value}")
        return quantize(percent_of(subtotal, value), currency)

    if discount.type == DiscountType.FIXED.value:
        if value < 0:
            raise InvalidDiscount(f"Fixed discount cannot be negative, got {value}")
        value = quantize(value, currency)
        if value > subtotal:
            if not clamp_fixed:
                raise InvalidDiscount(f"Fixed discount {value} exceeds subtotal {subtotal}")
            return subtotal
        return value

    raise InvalidDiscount(f"Invalid discount type '{discount.type}': must be 'percentage' or 'fixed'")


def compute_totals(
    lines: Sequence[LineInput],
    discount: Optional[DiscountSpec],
    tax_rate_percent,
    currency: str,
    clamp_fixed_discount: bool = False,
) -> PricingResult:
    """Price a cart.

    Raises:
        OrderValidationError: empty cart, bad quantity/price, bad tax rate.
        InvalidDiscount: discount type or value out of range.
    """
    if not lines:
        raise OrderValidationError("Order must contain at least one item")

    tax_rate = _amount(tax_rate_percent, "Tax rate")
    if tax_rate < 0 or tax_rate > HUNDRED:
        raise OrderValidationError(f"Tax rate must be between 0 and 100, got {tax_rate}")

    priced = tuple(price_line(line, currency, i) for i, line in enumerate(lines))
    subtotal = quantize(sum((p.line_total for p in priced), ZERO), currency)
    discount_amount = compute_discount(subtotal, discount, currency, clamp_fixed_discount)
    tax_amount = quantize(percent_of(subtotal - discount_amount, tax_rate), currency)

    return PricingResult(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=subtotal - discount_amount + tax_amount,
        currency=currency,
        lines=priced,
    )
