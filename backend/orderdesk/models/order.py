"""
Order model - the aggregate root for a customer's purchase.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderdesk.core.database import Base

if TYPE_CHECKING:
    from orderdesk.models.customer import Customer

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class OrderStatus(str, Enum):
    """Fulfillment status, driven by staff."""

    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    """Payment status, driven only by the payment reconciler."""

    PENDING = "Pending"
    INITIATED = "Initiated"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    GATEWAY = "Gateway"
    UPI = "UPI"
    OTHER = "Other"


class OrderType(str, Enum):
    DINE_IN = "Dine-in"
    TAKEAWAY = "Takeaway"
    DELIVERY = "Delivery"


class Order(Base):
    """Order with captured line items, money breakdown and payment state."""

    __tablename__ = "orders"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    customer_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("customers.id", ondelete="SET NULL"),
        index=True,
    )

    # Gateway identity
    gateway_order_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        index=True,
    )
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(64))
    gateway_signature: Mapped[Optional[str]] = mapped_column(String(128))

    # Line items, prices frozen at order time
    items: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)

    # Money breakdown
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    discount_code: Mapped[Optional[str]] = mapped_column(String(50))
    delivery_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    donation_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR")

    # Fulfillment
    order_type: Mapped[str] = mapped_column(String(20), default=OrderType.DINE_IN.value)
    delivery_address: Mapped[Optional[dict[str, Any]]] = mapped_column(JsonDocument)
    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        index=True,
    )
    is_accepted: Mapped[bool] = mapped_column(Boolean, default=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Payment
    payment_method: Mapped[str] = mapped_column(String(20), default=PaymentMethod.CASH.value)
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        index=True,
    )
    payment_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    payment_anomaly: Mapped[Optional[str]] = mapped_column(Text)

    # Manual UPI transfers: the customer submits proof, staff review it
    payment_proof_url: Mapped[Optional[str]] = mapped_column(String(1000))
    payment_proof_submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    payment_proof_verified: Mapped[Optional[bool]] = mapped_column(Boolean)
    payment_proof_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    payment_proof_reviewed_by: Mapped[Optional[str]] = mapped_column(String(100))

    customer_note: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship("Customer", back_populates="orders")

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}/{self.payment_status}>"
