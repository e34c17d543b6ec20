"""
Order Pydantic schemas for request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from orderdesk.models.order import OrderStatus, OrderType
from orderdesk.services.checkout import BuyerInfo, CartSnapshot, CheckoutQuote
from orderdesk.services.delivery import GeoPoint
from orderdesk.services.pricing import LineItem, PriceBreakdown


class LineItemIn(BaseModel):
    """A cart line as the storefront sends it."""

    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    size: Optional[str] = Field(None, max_length=50)
    addons: list[str] = Field(default_factory=list)

    def to_line_item(self) -> LineItem:
        return LineItem(
            name=self.name,
            unit_price=self.price,
            quantity=self.quantity,
            size=self.size,
            addons=tuple(self.addons),
        )


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DeliveryAddressIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=500)
    landmark: Optional[str] = Field(None, max_length=200)
    pincode: Optional[str] = Field(None, max_length=12)
    coordinates: Coordinates


class CustomerIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=5, max_length=20)

    def to_buyer(self) -> BuyerInfo:
        return BuyerInfo(name=self.name.strip(), phone=self.phone.strip())


class CartIn(BaseModel):
    """Cart contents shared by quotes, cash orders and payment initiation."""

    items: list[LineItemIn] = Field(..., min_length=1)
    order_type: OrderType = Field(OrderType.DINE_IN, alias="orderType")
    coupon_code: Optional[str] = Field(None, alias="couponCode", max_length=50)
    donation: Decimal = Field(Decimal("0"), ge=0)
    delivery_address: Optional[DeliveryAddressIn] = Field(None, alias="deliveryAddress")
    note: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(populate_by_name=True)

    def line_items(self) -> list[LineItem]:
        return [item.to_line_item() for item in self.items]

    def destination(self) -> Optional[GeoPoint]:
        if self.delivery_address is None:
            return None
        coords = self.delivery_address.coordinates
        return GeoPoint(coords.lat, coords.lng)

    def snapshot(self, breakdown: PriceBreakdown) -> CartSnapshot:
        return CartSnapshot(
            breakdown=breakdown,
            order_type=self.order_type,
            delivery_address=(
                self.delivery_address.model_dump() if self.delivery_address else None
            ),
            customer_note=self.note,
        )


class OrderCreate(CartIn):
    """Schema for placing an order paid at the counter or by UPI transfer."""

    customer: CustomerIn
    payment_method: Literal["Cash", "UPI"] = Field("Cash", alias="paymentMethod")


class PriceBreakdownResponse(BaseModel):
    subtotal: Decimal
    discount_amount: Decimal = Field(alias="discountAmount")
    discount_code: Optional[str] = Field(None, alias="discountCode")
    delivery_fee: Optional[Decimal] = Field(None, alias="deliveryFee")
    platform_fee: Decimal = Field(alias="platformFee")
    tax_amount: Decimal = Field(alias="taxAmount")
    donation_amount: Decimal = Field(alias="donationAmount")
    grand_total: Decimal = Field(alias="grandTotal")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class QuoteResponse(BaseModel):
    """Pricing preview for a cart."""

    breakdown: PriceBreakdownResponse
    distance_km: Optional[float] = Field(None, alias="distanceKm")
    free_delivery: bool = Field(False, alias="freeDelivery")
    offer_title: Optional[str] = Field(None, alias="offerTitle")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_quote(cls, quote: CheckoutQuote) -> "QuoteResponse":
        return cls(
            breakdown=PriceBreakdownResponse.model_validate(quote.breakdown),
            distance_km=round(quote.delivery.distance_km, 2) if quote.delivery else None,
            free_delivery=quote.delivery.free_delivery if quote.delivery else False,
            offer_title=quote.offer.title if quote.offer else None,
        )


class OrderResponse(BaseModel):
    """Full order, for staff and for the customer who just placed it."""

    id: UUID
    items: list[dict[str, Any]]
    subtotal: Decimal
    discount_amount: Decimal = Field(alias="discountAmount")
    discount_code: Optional[str] = Field(None, alias="discountCode")
    delivery_fee: Optional[Decimal] = Field(None, alias="deliveryFee")
    platform_fee: Decimal = Field(alias="platformFee")
    tax_amount: Decimal = Field(alias="taxAmount")
    donation_amount: Decimal = Field(alias="donationAmount")
    total_amount: Decimal = Field(alias="totalAmount")
    currency: str
    order_type: str = Field(alias="orderType")
    delivery_address: Optional[dict[str, Any]] = Field(None, alias="deliveryAddress")
    status: str
    is_accepted: bool = Field(alias="isAccepted")
    accepted_at: Optional[datetime] = Field(None, alias="acceptedAt")
    payment_method: str = Field(alias="paymentMethod")
    payment_status: str = Field(alias="paymentStatus")
    payment_verified_at: Optional[datetime] = Field(None, alias="paymentVerifiedAt")
    payment_anomaly: Optional[str] = Field(None, alias="paymentAnomaly")
    gateway_order_id: Optional[str] = Field(None, alias="gatewayOrderId")
    payment_proof_url: Optional[str] = Field(None, alias="paymentProofUrl")
    payment_proof_submitted_at: Optional[datetime] = Field(None, alias="paymentProofSubmittedAt")
    payment_proof_verified: Optional[bool] = Field(None, alias="paymentProofVerified")
    payment_proof_reviewed_at: Optional[datetime] = Field(None, alias="paymentProofReviewedAt")
    customer_note: Optional[str] = Field(None, alias="customerNote")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class OrderTrackingResponse(BaseModel):
    """Public tracking view. No customer or payment identifiers."""

    id: UUID
    status: str
    is_accepted: bool = Field(alias="isAccepted")
    payment_status: str = Field(alias="paymentStatus")
    order_type: str = Field(alias="orderType")
    items: list[dict[str, Any]]
    total_amount: Decimal = Field(alias="totalAmount")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class StatusUpdate(BaseModel):
    status: OrderStatus
