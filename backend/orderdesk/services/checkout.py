"""
Checkout pricing: runs the coupon resolver, the delivery geocoster and the
money calculator together to produce the payable amount for a cart.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from orderdesk.core.exceptions import OutOfServiceArea, ValidationError
from orderdesk.models.offer import Offer
from orderdesk.models.order import OrderType
from orderdesk.services.coupons import CouponResolver
from orderdesk.services.delivery import (
    DeliveryFeeSchedule,
    DeliveryQuote,
    GeoPoint,
    quote_delivery,
)
from orderdesk.services.pricing import (
    ZERO,
    FeePolicy,
    LineItem,
    PriceBreakdown,
    cart_subtotal,
    price_order,
)


@dataclass(frozen=True)
class FeeSchedule:
    platform_fee: FeePolicy
    tax_rate: Decimal
    delivery: DeliveryFeeSchedule
    store_location: GeoPoint


@dataclass(frozen=True)
class CheckoutQuote:
    breakdown: PriceBreakdown
    delivery: Optional[DeliveryQuote] = None
    offer: Optional[Offer] = None


class CheckoutPricer:
    """Prices a cart for preview and for payment initiation alike."""

    def __init__(self, coupons: CouponResolver, fees: FeeSchedule) -> None:
        self.coupons = coupons
        self.fees = fees

    async def quote(
        self,
        items: list[LineItem],
        *,
        now: datetime,
        order_type: OrderType = OrderType.DINE_IN,
        coupon_code: Optional[str] = None,
        donation: Decimal = ZERO,
        destination: Optional[GeoPoint] = None,
    ) -> CheckoutQuote:
        if not items:
            raise ValidationError("Order must have at least one item")

        subtotal = cart_subtotal(items)

        discount = ZERO
        offer = None
        if coupon_code:
            resolution = await self.coupons.resolve(coupon_code, subtotal, now)
            discount = resolution.discount_amount
            offer = resolution.offer

        delivery = None
        if order_type == OrderType.DELIVERY:
            if destination is None:
                raise ValidationError("Delivery location is required for delivery orders")
            delivery = quote_delivery(
                self.fees.store_location,
                destination,
                subtotal,
                self.fees.delivery,
            )
            # Free delivery still cannot reach outside the radius
            if not delivery.within_radius:
                raise OutOfServiceArea(delivery.distance_km, self.fees.delivery.max_radius_km)

        breakdown = price_order(
            items,
            discount=discount,
            discount_code=offer.code if offer else None,
            delivery_fee=delivery.fee if delivery else None,
            platform_fee_policy=self.fees.platform_fee,
            tax_rate=self.fees.tax_rate,
            donation=donation,
        )
        return CheckoutQuote(breakdown=breakdown, delivery=delivery, offer=offer)


@dataclass(frozen=True)
class BuyerInfo:
    name: str
    phone: str

    def __post_init__(self) -> None:
        if not self.name.strip() or not self.phone.strip():
            raise ValidationError("Customer information required")


@dataclass(frozen=True)
class CartSnapshot:
    """Everything about a cart that is frozen onto the order when it is placed."""

    breakdown: PriceBreakdown
    order_type: OrderType = OrderType.DINE_IN
    delivery_address: Optional[dict] = None
    customer_note: Optional[str] = None

    def order_fields(self, currency: str) -> dict:
        return {
            "items": [item.to_document() for item in self.breakdown.items],
            **self.breakdown.as_order_fields(),
            "currency": currency,
            "order_type": self.order_type.value,
            "delivery_address": (
                self.delivery_address if self.order_type == OrderType.DELIVERY else None
            ),
            "customer_note": self.customer_note,
        }
