"""
Store settings Pydantic schemas: fee schedule and UPI payee details.
"""
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from orderdesk.schemas.order import Coordinates
from orderdesk.services.store_settings import FeeConfig, UpiConfig


class FeeConfigResponse(BaseModel):
    platform_fee_kind: str = Field(alias="platformFeeKind")
    platform_fee: Decimal = Field(alias="platformFee")
    tax_rate: Decimal = Field(alias="taxRate")
    delivery_fee_base: Decimal = Field(alias="deliveryFeeBase")
    delivery_fee_per_km: Decimal = Field(alias="deliveryFeePerKm")
    free_delivery_threshold: Decimal = Field(alias="freeDeliveryThreshold")
    delivery_radius_km: float = Field(alias="deliveryRadiusKm")
    store_location: Coordinates = Field(alias="storeLocation")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_config(cls, config: FeeConfig) -> "FeeConfigResponse":
        return cls(
            platform_fee_kind=config.platform_fee_kind,
            platform_fee=config.platform_fee_value,
            tax_rate=config.tax_rate_percent,
            delivery_fee_base=config.delivery_fee_base,
            delivery_fee_per_km=config.delivery_fee_per_km,
            free_delivery_threshold=config.free_delivery_threshold,
            delivery_radius_km=config.delivery_radius_km,
            store_location=Coordinates(lat=config.store_lat, lng=config.store_lng),
        )


class FeeConfigUpdate(BaseModel):
    """Partial fee schedule update; omitted fields keep their current value."""

    platform_fee_kind: Optional[Literal["fixed", "percentage"]] = Field(None, alias="platformFeeKind")
    platform_fee: Optional[Decimal] = Field(None, alias="platformFee", ge=0)
    tax_rate: Optional[Decimal] = Field(None, alias="taxRate", ge=0, le=100)
    delivery_fee_base: Optional[Decimal] = Field(None, alias="deliveryFeeBase", ge=0)
    delivery_fee_per_km: Optional[Decimal] = Field(None, alias="deliveryFeePerKm", ge=0)
    free_delivery_threshold: Optional[Decimal] = Field(None, alias="freeDeliveryThreshold", ge=0)
    delivery_radius_km: Optional[float] = Field(None, alias="deliveryRadiusKm", gt=0)
    store_location: Optional[Coordinates] = Field(None, alias="storeLocation")

    model_config = ConfigDict(populate_by_name=True)

    def to_changes(self) -> dict[str, Any]:
        """Keyed by FeeConfig field names, without the fields left out."""
        changes = {
            "platform_fee_kind": self.platform_fee_kind,
            "platform_fee_value": self.platform_fee,
            "tax_rate_percent": self.tax_rate,
            "delivery_fee_base": self.delivery_fee_base,
            "delivery_fee_per_km": self.delivery_fee_per_km,
            "free_delivery_threshold": self.free_delivery_threshold,
            "delivery_radius_km": self.delivery_radius_km,
        }
        if self.store_location is not None:
            changes["store_lat"] = self.store_location.lat
            changes["store_lng"] = self.store_location.lng
        return {name: value for name, value in changes.items() if value is not None}


class UpiConfigResponse(BaseModel):
    upi_id: str = Field(alias="upiId")
    merchant_name: str = Field(alias="merchantName")
    is_configured: bool = Field(alias="isConfigured")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_config(cls, config: UpiConfig) -> "UpiConfigResponse":
        return cls(
            upi_id=config.upi_id,
            merchant_name=config.merchant_name,
            is_configured=config.is_configured,
        )


class UpiConfigAdminResponse(UpiConfigResponse):
    masked_upi_id: str = Field(alias="maskedUpiId")

    @classmethod
    def from_config(cls, config: UpiConfig) -> "UpiConfigAdminResponse":
        return cls(
            upi_id=config.upi_id,
            merchant_name=config.merchant_name,
            is_configured=config.is_configured,
            masked_upi_id=config.masked_upi_id,
        )


class UpiConfigUpdate(BaseModel):
    upi_id: Optional[str] = Field(None, alias="upiId", max_length=100)
    merchant_name: Optional[str] = Field(None, alias="merchantName", max_length=100)

    model_config = ConfigDict(populate_by_name=True)
