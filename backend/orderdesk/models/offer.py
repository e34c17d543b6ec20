"""
Offer model - coupon codes managed by staff.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from orderdesk.core.database import Base


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class Offer(Base):
    """Discount rule identified by a case-insensitive code."""

    __tablename__ = "offers"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Stored upper-cased
    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        index=True,
        nullable=False,
    )
    discount_type: Mapped[str] = mapped_column(
        String(20),
        default=DiscountType.PERCENTAGE.value,
    )
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    min_order_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    # Activity window; no valid_to means open-ended
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    valid_to: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    @validates("code")
    def _upper_code(self, key: str, value: str) -> str:
        return value.strip().upper()

    def __repr__(self) -> str:
        return f"<Offer {self.code}>"
