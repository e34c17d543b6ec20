"""
Coupon resolver: validates a code against its activity window and minimum
order value and works out the discount. Coupons are unlimited-use, so
resolving never writes anything.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from orderdesk.core.exceptions import BelowMinimumOrder, CouponNotFound
from orderdesk.core.logging import get_logger
from orderdesk.core.timeutils import as_utc
from orderdesk.models.offer import Offer
from orderdesk.repositories.offer import OfferRepository
from orderdesk.services.pricing import compute_discount, round_money, to_decimal

logger = get_logger(__name__)


@dataclass(frozen=True)
class CouponResolution:
    discount_amount: Decimal
    offer: Offer


def is_offer_live(offer: Offer, now: datetime) -> bool:
    """Active flag set and now inside [valid_from, valid_to]."""
    if not offer.is_active:
        return False
    if offer.valid_from is not None and as_utc(offer.valid_from) > now:
        return False
    if offer.valid_to is not None and as_utc(offer.valid_to) < now:
        return False
    return True


class CouponResolver:
    """Resolves coupon codes against the offer store."""

    def __init__(self, offers: OfferRepository) -> None:
        self.offers = offers

    async def resolve(self, code: str, subtotal: Decimal, now: datetime) -> CouponResolution:
        """
        Validate a coupon for a cart subtotal.

        Raises:
            CouponNotFound: unknown, switched off, not started or expired
            BelowMinimumOrder: subtotal under the offer's minimum, with the shortfall
        """
        normalized = (code or "").strip().upper()
        now = as_utc(now)
        offer = await self.offers.get_by_code(normalized) if normalized else None

        if offer is None or not is_offer_live(offer, now):
            logger.info("Coupon rejected", code=normalized)
            raise CouponNotFound(normalized)

        subtotal = to_decimal(subtotal)
        min_order_value = to_decimal(offer.min_order_value)
        if subtotal < min_order_value:
            raise BelowMinimumOrder(
                normalized,
                min_order_value=round_money(min_order_value),
                shortfall=round_money(min_order_value - subtotal),
            )

        discount = compute_discount(subtotal, offer.discount_type, offer.discount_value)
        logger.info("Coupon applied", code=normalized, discount=str(discount))
        return CouponResolution(discount_amount=round_money(discount), offer=offer)

    async def list_active(self, now: datetime) -> list[Offer]:
        return await self.offers.list_active(as_utc(now))
