"""
Offer repository: coupon lookups for pricing and the staff offer list.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select

from orderdesk.models.offer import Offer
from orderdesk.repositories.base import BaseRepository


class OfferRepository(BaseRepository[Offer]):
    """Repository for Offer model operations."""

    model = Offer

    async def get_by_code(self, code: str) -> Optional[Offer]:
        """Case-insensitive lookup, regardless of activity."""
        stmt = select(Offer).where(Offer.code == code.strip().upper())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self, now: datetime) -> list[Offer]:
        """Offers that are switched on and inside their activity window."""
        stmt = (
            select(Offer)
            .where(
                Offer.is_active.is_(True),
                Offer.valid_from <= now,
                or_(Offer.valid_to.is_(None), Offer.valid_to >= now),
            )
            .order_by(Offer.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_all(self) -> list[Offer]:
        """Every offer, switched off and expired ones included."""
        stmt = select(Offer).order_by(Offer.created_at.desc(), Offer.code)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
