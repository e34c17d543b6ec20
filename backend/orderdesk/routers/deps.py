"""
Shared router dependencies: staff authentication and service construction.
"""
from datetime import timedelta
from functools import lru_cache
from typing import Annotated, Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.core.config import get_settings
from orderdesk.core.database import async_session_factory, get_db_session
from orderdesk.core.logging import get_logger
from orderdesk.core.security import STAFF_ROLE, decode_access_token
from orderdesk.repositories.offer import OfferRepository
from orderdesk.services.checkout import CheckoutPricer
from orderdesk.services.coupons import CouponResolver
from orderdesk.services.offer_admin import OfferManager
from orderdesk.services.order_lifecycle import OrderLifecycle
from orderdesk.services.payment_reconciler import PaymentReconciler, ReconcilerConfig
from orderdesk.services.razorpay_client import RazorpayClient
from orderdesk.services.store_settings import StoreSettingsService

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def require_staff(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> dict[str, Any]:
    """Bearer JWT carrying the staff role."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if claims.get("role") != STAFF_ROLE:
        logger.warning("Staff endpoint called without staff role", sub=claims.get("sub"))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required",
        )
    return claims


StaffClaims = Annotated[dict[str, Any], Depends(require_staff)]


async def get_coupon_resolver(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> CouponResolver:
    """Dependency to get the coupon resolver."""
    return CouponResolver(OfferRepository(session))


async def get_store_settings(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> StoreSettingsService:
    """Dependency to get the store settings service."""
    return StoreSettingsService(session, get_settings())


async def get_checkout_pricer(
    coupons: Annotated[CouponResolver, Depends(get_coupon_resolver)],
    store_settings: Annotated[StoreSettingsService, Depends(get_store_settings)],
) -> CheckoutPricer:
    """Dependency to get the checkout pricer, using the current fee schedule."""
    fee_config = await store_settings.fee_config()
    return CheckoutPricer(coupons, fee_config.schedule())


async def get_offer_manager(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> OfferManager:
    """Dependency to get the staff offer manager."""
    return OfferManager(session)


async def get_order_lifecycle(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> OrderLifecycle:
    """Dependency to get the order lifecycle service."""
    return OrderLifecycle(
        session,
        cancel_window=timedelta(seconds=get_settings().cancel_window_seconds),
    )


@lru_cache
def get_payment_reconciler() -> PaymentReconciler:
    """Process-wide reconciler; it opens its own short transactions."""
    settings = get_settings()
    gateway = RazorpayClient(
        key_id=settings.razorpay_key_id or "",
        key_secret=settings.razorpay_key_secret or "",
        base_url=settings.razorpay_api_url,
        timeout=settings.razorpay_timeout_seconds,
    )
    return PaymentReconciler(
        ReconcilerConfig.from_settings(settings),
        gateway,
        async_session_factory,
    )


CouponResolverDep = Annotated[CouponResolver, Depends(get_coupon_resolver)]
CheckoutPricerDep = Annotated[CheckoutPricer, Depends(get_checkout_pricer)]
OrderLifecycleDep = Annotated[OrderLifecycle, Depends(get_order_lifecycle)]
PaymentReconcilerDep = Annotated[PaymentReconciler, Depends(get_payment_reconciler)]
StoreSettingsDep = Annotated[StoreSettingsService, Depends(get_store_settings)]
OfferManagerDep = Annotated[OfferManager, Depends(get_offer_manager)]
