"""
Offer and delivery Pydantic schemas.
"""
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_amount: Decimal = Field(..., alias="orderAmount", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class CouponValidateResponse(BaseModel):
    valid: bool = True
    code: str
    title: str
    discount_type: str = Field(alias="discountType")
    discount_value: Decimal = Field(alias="discountValue")
    discount_amount: Decimal = Field(alias="discountAmount")

    model_config = ConfigDict(populate_by_name=True)


class OfferResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    code: str
    discount_type: str = Field(alias="discountType")
    discount_value: Decimal = Field(alias="discountValue")
    min_order_value: Decimal = Field(alias="minOrderValue")
    valid_to: Optional[datetime] = Field(None, alias="validTo")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class DeliveryQuoteRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    order_amount: Decimal = Field(Decimal("0"), alias="orderAmount", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class DeliveryQuoteResponse(BaseModel):
    distance_km: float = Field(alias="distanceKm")
    delivery_fee: Optional[Decimal] = Field(None, alias="deliveryFee")
    free_delivery: bool = Field(alias="freeDelivery")
    deliverable: bool
    max_radius_km: float = Field(alias="maxRadiusKm")

    model_config = ConfigDict(populate_by_name=True)


class OfferCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    code: str = Field(..., min_length=1, max_length=50)
    discount_type: Literal["percentage", "flat"] = Field("percentage", alias="discountType")
    discount_value: Decimal = Field(..., alias="discountValue", gt=0)
    min_order_value: Decimal = Field(Decimal("0"), alias="minOrderValue", ge=0)
    valid_from: Optional[datetime] = Field(None, alias="validFrom")
    valid_to: Optional[datetime] = Field(None, alias="validTo")
    is_active: bool = Field(True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class OfferUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    discount_type: Optional[Literal["percentage", "flat"]] = Field(None, alias="discountType")
    discount_value: Optional[Decimal] = Field(None, alias="discountValue", gt=0)
    min_order_value: Optional[Decimal] = Field(None, alias="minOrderValue", ge=0)
    valid_from: Optional[datetime] = Field(None, alias="validFrom")
    valid_to: Optional[datetime] = Field(None, alias="validTo")
    is_active: Optional[bool] = Field(None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class OfferAdminResponse(OfferResponse):
    """Staff view, including switched-off and scheduled offers."""

    valid_from: Optional[datetime] = Field(None, alias="validFrom")
    is_active: bool = Field(alias="isActive")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
