"""
Store settings: the fee schedule and UPI payee details staff edit at runtime.

Stored documents hold only the fields staff have overridden; everything
else falls back to the environment configuration, so a fresh install
prices carts exactly as configured.
"""
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.core.config import Settings
from orderdesk.core.exceptions import ValidationError
from orderdesk.core.logging import get_logger
from orderdesk.repositories.store_setting import StoreSettingRepository
from orderdesk.services.checkout import FeeSchedule
from orderdesk.services.delivery import DeliveryFeeSchedule, GeoPoint
from orderdesk.services.pricing import ZERO, FeePolicy, to_decimal

logger = get_logger(__name__)

FEE_CONFIG_KEY = "fee_config"
UPI_CONFIG_KEY = "upi_config"

_DECIMAL_FIELDS = frozenset(
    {
        "platform_fee_value",
        "tax_rate_percent",
        "delivery_fee_base",
        "delivery_fee_per_km",
        "free_delivery_threshold",
    }
)
_FLOAT_FIELDS = frozenset({"delivery_radius_km", "store_lat", "store_lng"})


@dataclass(frozen=True)
class FeeConfig:
    platform_fee_kind: str
    platform_fee_value: Decimal
    tax_rate_percent: Decimal
    delivery_fee_base: Decimal
    delivery_fee_per_km: Decimal
    free_delivery_threshold: Decimal
    delivery_radius_km: float
    store_lat: float
    store_lng: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeeConfig":
        return cls(**{f.name: getattr(settings, f.name) for f in fields(cls)})

    def with_overrides(self, document: dict[str, Any]) -> "FeeConfig":
        changes: dict[str, Any] = {}
        for name, value in document.items():
            if value is None or name not in self.__dataclass_fields__:
                continue
            if name in _DECIMAL_FIELDS:
                value = to_decimal(value)
            elif name in _FLOAT_FIELDS:
                value = float(value)
            changes[name] = value
        config = replace(self, **changes)
        config.validate()
        return config

    def validate(self) -> None:
        if self.platform_fee_kind not in ("fixed", "percentage"):
            raise ValidationError("Platform fee kind must be fixed or percentage")
        for name in _DECIMAL_FIELDS:
            if getattr(self, name) < ZERO:
                raise ValidationError(f"{name} must not be negative")
        if self.delivery_radius_km <= 0:
            raise ValidationError("Delivery radius must be positive")
        GeoPoint(self.store_lat, self.store_lng)

    def to_document(self) -> dict[str, Any]:
        return {
            name: str(value) if isinstance(value, Decimal) else value
            for name, value in asdict(self).items()
        }

    def schedule(self) -> FeeSchedule:
        return FeeSchedule(
            platform_fee=FeePolicy(
                kind=self.platform_fee_kind,  # type: ignore[arg-type]
                value=self.platform_fee_value,
            ),
            tax_rate=self.tax_rate_percent,
            delivery=DeliveryFeeSchedule(
                base_fee=self.delivery_fee_base,
                per_km_fee=self.delivery_fee_per_km,
                free_threshold=self.free_delivery_threshold,
                max_radius_km=self.delivery_radius_km,
            ),
            store_location=GeoPoint(self.store_lat, self.store_lng),
        )


@dataclass(frozen=True)
class UpiConfig:
    upi_id: str
    merchant_name: str

    @property
    def is_configured(self) -> bool:
        return "@" in self.upi_id

    @property
    def masked_upi_id(self) -> str:
        """First three characters of the handle's name, e.g. ``abc***@upi``."""
        if not self.upi_id:
            return ""
        name, _, handle = self.upi_id.partition("@")
        if not name or not handle:
            return "***"
        return f"{name[:3]}***@{handle}"


class StoreSettingsService:
    """Reads and writes the editable settings documents."""

    def __init__(self, session: AsyncSession, defaults: Settings) -> None:
        self.documents = StoreSettingRepository(session)
        self.defaults = defaults

    async def fee_config(self) -> FeeConfig:
        stored = await self.documents.get_document(FEE_CONFIG_KEY)
        return FeeConfig.from_settings(self.defaults).with_overrides(stored)

    async def update_fee_config(
        self,
        changes: dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> FeeConfig:
        """Apply a partial update; unknown keys are ignored, bad values rejected."""
        stored = await self.documents.get_document(FEE_CONFIG_KEY)
        merged = {**stored, **{k: v for k, v in changes.items() if v is not None}}
        config = FeeConfig.from_settings(self.defaults).with_overrides(merged)

        document = config.to_document()
        await self.documents.save_document(
            FEE_CONFIG_KEY,
            {name: document[name] for name in merged if name in document},
            updated_by,
        )
        logger.info("Fee schedule updated", updated_by=updated_by, fields=sorted(changes))
        return config

    async def upi_config(self) -> UpiConfig:
        stored = await self.documents.get_document(UPI_CONFIG_KEY)
        return UpiConfig(
            upi_id=stored.get("upi_id", self.defaults.upi_id),
            merchant_name=stored.get("merchant_name", self.defaults.upi_merchant_name),
        )

    async def update_upi_config(
        self,
        upi_id: Optional[str] = None,
        merchant_name: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> UpiConfig:
        stored = await self.documents.get_document(UPI_CONFIG_KEY)
        if upi_id is not None:
            upi_id = upi_id.strip()
            if upi_id and "@" not in upi_id:
                raise ValidationError("Invalid UPI ID format. Must contain @")
            stored["upi_id"] = upi_id
        if merchant_name is not None:
            stored["merchant_name"] = merchant_name.strip()

        await self.documents.save_document(UPI_CONFIG_KEY, stored, updated_by)
        logger.info("UPI settings updated", upi_id=stored.get("upi_id"), updated_by=updated_by)
        return await self.upi_config()
