"""
Payment Pydantic schemas for request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from orderdesk.schemas.order import CartIn, CustomerIn, OrderResponse


class PaymentKeyResponse(BaseModel):
    """Public key the checkout widget needs."""

    key_id: Optional[str] = Field(None, alias="keyId")
    is_configured: bool = Field(alias="isConfigured")

    model_config = ConfigDict(populate_by_name=True)


class CreatePaymentRequest(CartIn):
    """Cart plus the amount the client expects to pay."""

    amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    customer: CustomerIn


class CreatePaymentResponse(BaseModel):
    gateway_order_id: str = Field(alias="gatewayOrderId")
    order_id: UUID = Field(alias="orderId")
    amount: int  # minor units
    currency: str
    key_id: Optional[str] = Field(None, alias="keyId")

    model_config = ConfigDict(populate_by_name=True)


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields, named as the gateway hands them to the client."""

    gateway_order_id: str = Field(..., alias="razorpay_order_id", min_length=1)
    gateway_payment_id: str = Field(..., alias="razorpay_payment_id", min_length=1)
    signature: str = Field(..., alias="razorpay_signature", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    message: str = "Payment verified successfully"
    order: OrderResponse


class WebhookAck(BaseModel):
    status: str = "ok"
    event: str
    handled: bool


class PaymentStatusResponse(BaseModel):
    """Polling view of an order's payment."""

    id: UUID
    status: str
    payment_status: str = Field(alias="paymentStatus")
    payment_method: str = Field(alias="paymentMethod")
    payment_verified_at: Optional[datetime] = Field(None, alias="paymentVerifiedAt")
    total_amount: Decimal = Field(alias="totalAmount")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ManualVerifyRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class PaymentProofSubmit(BaseModel):
    """Screenshot of a UPI transfer, already uploaded to storage by the client."""

    screenshot_url: str = Field(..., alias="screenshotUrl", min_length=1, max_length=1000)

    model_config = ConfigDict(populate_by_name=True)


class PaymentProofReview(BaseModel):
    verified: bool
