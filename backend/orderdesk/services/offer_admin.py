"""
Offer management for staff: create, edit, switch off and delete coupons.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.core.exceptions import DuplicateOfferCode, OfferNotFound, ValidationError
from orderdesk.core.logging import get_logger
from orderdesk.core.timeutils import as_utc, utcnow
from orderdesk.models.offer import DiscountType, Offer
from orderdesk.repositories.offer import OfferRepository
from orderdesk.services.pricing import ZERO, to_decimal

logger = get_logger(__name__)

MAX_PERCENTAGE = Decimal("100")


def _check_offer_terms(
    discount_type: str,
    discount_value: Decimal,
    min_order_value: Decimal,
    valid_from: Optional[datetime],
    valid_to: Optional[datetime],
) -> None:
    if discount_type not in (DiscountType.PERCENTAGE.value, DiscountType.FLAT.value):
        raise ValidationError("Discount type must be percentage or flat")
    if discount_value <= ZERO:
        raise ValidationError("Discount value must be positive")
    if discount_type == DiscountType.PERCENTAGE.value and discount_value > MAX_PERCENTAGE:
        raise ValidationError("Percentage discount cannot exceed 100")
    if min_order_value < ZERO:
        raise ValidationError("Minimum order value must not be negative")
    if valid_from and valid_to and as_utc(valid_to) <= as_utc(valid_from):
        raise ValidationError("Offer must end after it starts")


class OfferManager:
    """Staff-side offer maintenance. Pricing only ever reads offers."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.offers = OfferRepository(session)

    async def list_all(self) -> list[Offer]:
        return await self.offers.list_all()

    async def get(self, offer_id: UUID) -> Offer:
        offer = await self.offers.get_by_id(offer_id)
        if offer is None:
            raise OfferNotFound(str(offer_id))
        return offer

    async def create(self, fields: dict[str, Any]) -> Offer:
        code = fields["code"].strip().upper()
        if not code:
            raise ValidationError("Offer code is required")
        if await self.offers.get_by_code(code) is not None:
            raise DuplicateOfferCode(code)

        fields = {**fields, "code": code}
        fields.setdefault("valid_from", utcnow())
        fields["discount_value"] = to_decimal(fields["discount_value"])
        fields["min_order_value"] = to_decimal(fields.get("min_order_value"))
        _check_offer_terms(
            fields.get("discount_type", DiscountType.PERCENTAGE.value),
            fields["discount_value"],
            fields["min_order_value"],
            fields["valid_from"],
            fields.get("valid_to"),
        )

        try:
            offer = await self.offers.create(fields)
        except IntegrityError as exc:
            # Lost a race with another staff member creating the same code
            raise DuplicateOfferCode(code) from exc

        logger.info("Offer created", offer_id=str(offer.id), code=offer.code)
        return offer

    async def update(self, offer_id: UUID, changes: dict[str, Any]) -> Offer:
        """Partial update; the resulting offer must still be well formed."""
        offer = await self.get(offer_id)

        if "code" in changes:
            code = changes["code"].strip().upper()
            if code != offer.code and await self.offers.get_by_code(code) is not None:
                raise DuplicateOfferCode(code)
            changes = {**changes, "code": code}
        for money_field in ("discount_value", "min_order_value"):
            if money_field in changes:
                changes[money_field] = to_decimal(changes[money_field])

        _check_offer_terms(
            changes.get("discount_type", offer.discount_type),
            changes.get("discount_value", offer.discount_value),
            changes.get("min_order_value", offer.min_order_value),
            changes.get("valid_from", offer.valid_from),
            changes.get("valid_to", offer.valid_to),
        )

        try:
            offer = await self.offers.update(offer, changes)
        except IntegrityError as exc:
            raise DuplicateOfferCode(changes.get("code", offer.code)) from exc

        logger.info("Offer updated", offer_id=str(offer.id), fields=sorted(changes))
        return offer

    async def delete(self, offer_id: UUID) -> None:
        offer = await self.get(offer_id)
        await self.offers.delete(offer)
        logger.info("Offer deleted", offer_id=str(offer_id), code=offer.code)
