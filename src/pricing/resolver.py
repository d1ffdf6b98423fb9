"""Line and cart pricing with time-bound discounts.

Everything here is pure: no I/O, no clock reads. The same inputs give the
same totals at order-preview time and at order-creation time.

All arithmetic is ``Decimal``. Discount percentages are applied to the unit
price exactly; each line subtotal is rounded once (half-up, to the smallest
currency unit) and tax is rounded once on the discounted cart subtotal.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from protean.exceptions import ValidationError

from shared.clock import as_utc

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

_TYPE_PRIORITY = {"FLASH": 1, "REGULAR": 0}


def _decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount) -> Decimal:
    """Round to the smallest currency unit, half-up."""
    return _decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Convert a money amount to integer minor units (paise, cents)."""
    return int((_decimal(amount) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class DiscountTerms:
    percentage: Decimal
    type: str
    valid_from: datetime
    valid_to: datetime

    def is_active(self, as_of: datetime) -> bool:
        return as_utc(self.valid_from) <= as_utc(as_of) <= as_utc(self.valid_to)


@dataclass(frozen=True)
class PricingLine:
    """One cart line with the catalogue data pricing needs."""

    variant_id: str
    sku: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    product_discounts: tuple[DiscountTerms, ...] = ()
    category_discounts: tuple[DiscountTerms, ...] = ()


@dataclass(frozen=True)
class LinePrice:
    variant_id: str
    sku: str
    product_name: str
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    effective_price: Decimal
    line_subtotal: Decimal


@dataclass(frozen=True)
class CartTotals:
    item_subtotals: tuple[LinePrice, ...]
    total_item_subtotal: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    total_amount: Decimal


def active_discount(discounts: Iterable[DiscountTerms], as_of: datetime) -> DiscountTerms | None:
    """Pick the discount in force at ``as_of`` from one attachment point.

    There should be at most one. If the catalogue holds overlapping windows,
    the most recently started one wins, FLASH before REGULAR on a tie.
    """
    candidates = [d for d in discounts if d.is_active(as_of)]
    if not candidates:
        return None
    return max(
        candidates,
        key=lambda d: (as_utc(d.valid_from), _TYPE_PRIORITY.get(d.type, 0), d.percentage),
    )


def resolve_discount(line: PricingLine, as_of: datetime) -> DiscountTerms | None:
    """Product-level discount first, category-level as fallback."""
    return active_discount(line.product_discounts, as_of) or active_discount(line.category_discounts, as_of)


def price_line(line: PricingLine, as_of: datetime) -> LinePrice:
    if line.quantity < 1:
        raise ValidationError({"quantity": [f"Quantity must be at least 1 for variant {line.variant_id}"]})

    unit_price = _decimal(line.unit_price)
    if unit_price < ZERO:
        raise ValidationError({"unit_price": [f"Negative price for variant {line.variant_id}"]})

    discount = resolve_discount(line, as_of)
    percentage = _decimal(discount.percentage) if discount else ZERO

    discount_amount = unit_price * percentage / HUNDRED
    effective_price = unit_price - discount_amount

    return LinePrice(
        variant_id=line.variant_id,
        sku=line.sku,
        product_name=line.product_name,
        quantity=line.quantity,
        unit_price=unit_price,
        discount_percentage=percentage,
        discount_amount=discount_amount,
        effective_price=effective_price,
        line_subtotal=round_money(line.quantity * effective_price),
    )


def price_cart(lines: Iterable[PricingLine], gst_rate, shipping_charge, as_of: datetime) -> CartTotals:
    """Price every line and add tax and shipping.

    ``tax_amount`` is computed from the discounted subtotal, and
    ``total_amount == total_item_subtotal + tax_amount + shipping_charge``
    holds exactly.
    """
    gst_rate = _decimal(gst_rate)
    shipping_charge = round_money(shipping_charge)
    if gst_rate < ZERO:
        raise ValidationError({"gst_rate": ["GST rate cannot be negative"]})
    if shipping_charge < ZERO:
        raise ValidationError({"shipping_charge": ["Shipping charge cannot be negative"]})

    item_subtotals = tuple(price_line(line, as_of) for line in lines)
    total_item_subtotal = sum((item.line_subtotal for item in item_subtotals), ZERO)
    tax_amount = round_money(total_item_subtotal * gst_rate)

    return CartTotals(
        item_subtotals=item_subtotals,
        total_item_subtotal=total_item_subtotal,
        tax_amount=tax_amount,
        shipping_charge=shipping_charge,
        total_amount=total_item_subtotal + tax_amount + shipping_charge,
    )
