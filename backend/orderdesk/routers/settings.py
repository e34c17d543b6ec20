"""
Store settings API routes: the fee schedule, delivery quotes priced from
it and the UPI payee shown at checkout.
"""
from fastapi import APIRouter

from orderdesk.routers.deps import StaffClaims, StoreSettingsDep
from orderdesk.schemas.offer import DeliveryQuoteRequest, DeliveryQuoteResponse
from orderdesk.schemas.settings import (
    FeeConfigResponse,
    FeeConfigUpdate,
    UpiConfigAdminResponse,
    UpiConfigResponse,
    UpiConfigUpdate,
)
from orderdesk.services.delivery import GeoPoint, quote_delivery
from orderdesk.services.store_settings import StoreSettingsService

router = APIRouter(prefix="/settings", tags=["settings"])

delivery_router = APIRouter(prefix="/delivery", tags=["delivery"])


async def _quote(
    request: DeliveryQuoteRequest,
    store_settings: StoreSettingsService,
) -> DeliveryQuoteResponse:
    schedule = (await store_settings.fee_config()).schedule()
    quote = quote_delivery(
        schedule.store_location,
        GeoPoint(request.lat, request.lng),
        request.order_amount,
        schedule.delivery,
    )
    return DeliveryQuoteResponse(
        distance_km=round(quote.distance_km, 2),
        delivery_fee=quote.fee,
        free_delivery=quote.free_delivery,
        deliverable=quote.within_radius,
        max_radius_km=schedule.delivery.max_radius_km,
    )


@router.get("/fees", response_model=FeeConfigResponse)
async def get_fee_config(store_settings: StoreSettingsDep) -> FeeConfigResponse:
    """Current fee schedule (public, the storefront shows it at checkout)."""
    return FeeConfigResponse.from_config(await store_settings.fee_config())


@router.put("/fees", response_model=FeeConfigResponse)
async def update_fee_config(
    update: FeeConfigUpdate,
    staff: StaffClaims,
    store_settings: StoreSettingsDep,
) -> FeeConfigResponse:
    """Change part of the fee schedule. Applies to carts priced from now on."""
    config = await store_settings.update_fee_config(update.to_changes(), staff.get("sub"))
    return FeeConfigResponse.from_config(config)


@router.post("/calculate-delivery", response_model=DeliveryQuoteResponse)
async def calculate_delivery(
    request: DeliveryQuoteRequest,
    store_settings: StoreSettingsDep,
) -> DeliveryQuoteResponse:
    """Delivery fee from the store to a point. Out-of-area points get a 422."""
    return await _quote(request, store_settings)


@delivery_router.post("/quote", response_model=DeliveryQuoteResponse)
async def quote_delivery_fee(
    request: DeliveryQuoteRequest,
    store_settings: StoreSettingsDep,
) -> DeliveryQuoteResponse:
    """Same quote as /settings/calculate-delivery."""
    return await _quote(request, store_settings)


@router.get("/upi", response_model=UpiConfigResponse)
async def get_upi_config(store_settings: StoreSettingsDep) -> UpiConfigResponse:
    """Payee the storefront shows for manual UPI transfers."""
    return UpiConfigResponse.from_config(await store_settings.upi_config())


@router.get("/upi/admin", response_model=UpiConfigAdminResponse)
async def get_upi_config_admin(
    staff: StaffClaims,
    store_settings: StoreSettingsDep,
) -> UpiConfigAdminResponse:
    return UpiConfigAdminResponse.from_config(await store_settings.upi_config())


@router.put("/upi", response_model=UpiConfigResponse)
async def update_upi_config(
    update: UpiConfigUpdate,
    staff: StaffClaims,
    store_settings: StoreSettingsDep,
) -> UpiConfigResponse:
    config = await store_settings.update_upi_config(
        upi_id=update.upi_id,
        merchant_name=update.merchant_name,
        updated_by=staff.get("sub"),
    )
    return UpiConfigResponse.from_config(config)
