"""
Offer API routes: public coupon checks and staff offer management.
"""
from uuid import UUID

from fastapi import APIRouter, status

from orderdesk.core.logging import get_logger
from orderdesk.core.timeutils import utcnow
from orderdesk.routers.deps import CouponResolverDep, OfferManagerDep, StaffClaims
from orderdesk.schemas.offer import (
    CouponValidateRequest,
    CouponValidateResponse,
    OfferAdminResponse,
    OfferCreate,
    OfferResponse,
    OfferUpdate,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/offers", tags=["offers"])

# Columns that may be cleared by sending null
_NULLABLE_FIELDS = frozenset({"description", "valid_to"})


@router.get("", response_model=list[OfferResponse])
async def list_offers(coupons: CouponResolverDep) -> list[OfferResponse]:
    """Offers currently running."""
    offers = await coupons.list_active(utcnow())
    return [OfferResponse.model_validate(offer) for offer in offers]


@router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(
    request: CouponValidateRequest,
    coupons: CouponResolverDep,
) -> CouponValidateResponse:
    """Check a coupon against an order amount. Nothing is reserved."""
    resolution = await coupons.resolve(request.code, request.order_amount, utcnow())
    offer = resolution.offer
    return CouponValidateResponse(
        code=offer.code,
        title=offer.title,
        discount_type=offer.discount_type,
        discount_value=offer.discount_value,
        discount_amount=resolution.discount_amount,
    )


@router.get("/admin", response_model=list[OfferAdminResponse])
async def list_all_offers(staff: StaffClaims, offers: OfferManagerDep) -> list[OfferAdminResponse]:
    """Every offer, including switched-off, expired and scheduled ones."""
    return [OfferAdminResponse.model_validate(offer) for offer in await offers.list_all()]


@router.post("", response_model=OfferAdminResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_in: OfferCreate,
    staff: StaffClaims,
    offers: OfferManagerDep,
) -> OfferAdminResponse:
    fields = offer_in.model_dump(exclude_none=True)
    offer = await offers.create(fields)
    logger.info("Offer created by staff", code=offer.code, staff=staff.get("sub"))
    return OfferAdminResponse.model_validate(offer)


@router.put("/{offer_id}", response_model=OfferAdminResponse)
async def update_offer(
    offer_id: UUID,
    update: OfferUpdate,
    staff: StaffClaims,
    offers: OfferManagerDep,
) -> OfferAdminResponse:
    changes = {
        name: value
        for name, value in update.model_dump(exclude_unset=True).items()
        if value is not None or name in _NULLABLE_FIELDS
    }
    offer = await offers.update(offer_id, changes)
    return OfferAdminResponse.model_validate(offer)


@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_offer(
    offer_id: UUID,
    staff: StaffClaims,
    offers: OfferManagerDep,
) -> None:
    """Delete an offer. Orders that used its code keep their stored discount."""
    await offers.delete(offer_id)
    logger.info("Offer deleted by staff", offer_id=str(offer_id), staff=staff.get("sub"))
