"""
Money calculator.

Pure functions turning a cart, a coupon discount, a delivery fee and the
fee schedule into a priced breakdown. Nothing here touches the database,
so quotes can be recomputed as often as the cart changes.
"""
from dataclasses import asdict, dataclass, field
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Literal, Optional

from orderdesk.core.exceptions import ValidationError

CENT = Decimal("0.01")
WHOLE_UNIT = Decimal("1")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Coerce numbers coming from JSON or the database into Decimal."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round half-up to the currency's minor unit."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Amount in paise/cents, as payment gateways expect it."""
    return int((round_money(amount) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / HUNDRED).quantize(CENT)


@dataclass(frozen=True)
class LineItem:
    """A cart line with its price captured at order time."""

    name: str
    unit_price: Decimal
    quantity: int
    size: Optional[str] = None
    addons: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("Item name is required")
        if self.quantity < 1:
            raise ValidationError("Quantity must be at least 1", item=self.name)
        if to_decimal(self.unit_price) < ZERO:
            raise ValidationError("Item price must not be negative", item=self.name)
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        object.__setattr__(self, "addons", tuple(self.addons))

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_document(self) -> dict[str, Any]:
        """Snapshot stored on the order."""
        return {
            "name": self.name,
            "unit_price": str(round_money(self.unit_price)),
            "quantity": self.quantity,
            "size": self.size,
            "addons": list(self.addons),
            "line_total": str(round_money(self.line_total)),
        }


@dataclass(frozen=True)
class FeePolicy:
    """Platform fee: a fixed amount or a percentage of the subtotal."""

    kind: Literal["fixed", "percentage"] = "fixed"
    value: Decimal = ZERO

    def fee_for(self, subtotal: Decimal) -> Decimal:
        value = to_decimal(self.value)
        if value < ZERO:
            raise ValidationError("Platform fee must not be negative")
        if self.kind == "percentage":
            return subtotal * value / HUNDRED
        return value


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Optional[Decimal]
    platform_fee: Decimal
    tax_amount: Decimal
    donation_amount: Decimal
    grand_total: Decimal
    discount_code: Optional[str] = None
    items: list[LineItem] = field(default_factory=list, compare=False)

    def as_order_fields(self) -> dict[str, Any]:
        """Columns of the Order money breakdown."""
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "discount_code": self.discount_code,
            "delivery_fee": self.delivery_fee,
            "platform_fee": self.platform_fee,
            "tax_amount": self.tax_amount,
            "donation_amount": self.donation_amount,
            "total_amount": self.grand_total,
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("items")
        return data


def cart_subtotal(items: Iterable[LineItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def compute_discount(subtotal: Decimal, discount_type: str, value: Decimal) -> Decimal:
    """
    Discount for a coupon.

    Percentage discounts are floored to whole currency units, flat discounts
    are capped at the subtotal. The result is never negative.
    """
    subtotal = to_decimal(subtotal)
    value = to_decimal(value)
    if subtotal <= ZERO or value <= ZERO:
        return ZERO

    if discount_type == "percentage":
        discount = (subtotal * value / HUNDRED).quantize(WHOLE_UNIT, rounding=ROUND_FLOOR)
    elif discount_type == "flat":
        discount = value
    else:
        raise ValidationError("Unknown discount type", discount_type=discount_type)

    return min(subtotal, discount)


def price_order(
    items: Iterable[LineItem],
    *,
    discount: Decimal = ZERO,
    discount_code: Optional[str] = None,
    delivery_fee: Optional[Decimal] = None,
    platform_fee_policy: FeePolicy = FeePolicy(),
    tax_rate: Decimal = ZERO,
    donation: Decimal = ZERO,
) -> PriceBreakdown:
    """
    Price a cart.

    grand_total = subtotal - discount + delivery_fee + platform_fee + tax + donation,
    rounded half-up once at the end. Tax applies to subtotal - discount.
    """
    items = list(items)
    if not items:
        raise ValidationError("Order must have at least one item")

    donation = to_decimal(donation)
    if donation < ZERO:
        raise ValidationError("Donation must not be negative", donation=str(donation))
    tax_rate = to_decimal(tax_rate)
    if tax_rate < ZERO:
        raise ValidationError("Tax rate must not be negative")
    if delivery_fee is not None and to_decimal(delivery_fee) < ZERO:
        raise ValidationError("Delivery fee must not be negative")

    subtotal = cart_subtotal(items)
    discount = min(max(to_decimal(discount), ZERO), subtotal)
    platform_fee = platform_fee_policy.fee_for(subtotal)
    tax = (subtotal - discount) * tax_rate / HUNDRED
    delivery = to_decimal(delivery_fee) if delivery_fee is not None else ZERO

    raw_total = subtotal - discount + delivery + platform_fee + tax + donation

    return PriceBreakdown(
        subtotal=round_money(subtotal),
        discount_amount=round_money(discount),
        discount_code=discount_code if discount > ZERO else None,
        delivery_fee=round_money(delivery_fee) if delivery_fee is not None else None,
        platform_fee=round_money(platform_fee),
        tax_amount=round_money(tax),
        donation_amount=round_money(donation),
        grand_total=max(round_money(raw_total), ZERO),
        items=items,
    )
