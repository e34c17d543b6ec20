"""
Domain error taxonomy.

Every business-rule rejection carries a human readable message plus
structured detail that the API layer returns verbatim to the caller.
"""
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from orderdesk.core.logging import get_logger

logger = get_logger(__name__)


class OrderDeskError(Exception):
    """Base class for all expected domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(OrderDeskError):
    """Bad input shape or range. No state change."""


class NotFound(OrderDeskError):
    status_code = status.HTTP_404_NOT_FOUND


class OrderNotFound(NotFound):
    def __init__(self, order_ref: str) -> None:
        super().__init__("Order not found", order=order_ref)


class CouponNotFound(NotFound):
    def __init__(self, code: str) -> None:
        super().__init__("Invalid or expired coupon", code=code)


class OfferNotFound(NotFound):
    def __init__(self, offer_ref: str) -> None:
        super().__init__("Offer not found", offer=offer_ref)


class DuplicateOfferCode(OrderDeskError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, code: str) -> None:
        super().__init__("An offer with this code already exists", code=code)


class SignatureInvalid(OrderDeskError):
    """Signature did not match. Always recorded before being reported."""


class OutOfServiceArea(OrderDeskError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, distance_km: float, max_radius_km: float) -> None:
        super().__init__(
            f"Sorry, we only deliver within {max_radius_km:g}km. "
            f"Your location is {distance_km:.1f}km away.",
            distance_km=round(distance_km, 2),
            max_radius_km=max_radius_km,
            deliverable=False,
        )
        self.distance_km = distance_km
        self.max_radius_km = max_radius_km


class BelowMinimumOrder(OrderDeskError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, code: str, min_order_value: Any, shortfall: Any) -> None:
        super().__init__(
            f"Minimum order value is {min_order_value}. Add {shortfall} more.",
            code=code,
            min_order_value=str(min_order_value),
            shortfall=str(shortfall),
        )
        self.shortfall = shortfall


class AlreadyAccepted(OrderDeskError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, order_ref: str) -> None:
        super().__init__("Order already accepted", order=order_ref)


class IllegalTransition(OrderDeskError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, requested: str, reason: str | None = None) -> None:
        super().__init__(
            reason or f"Cannot move order from {current} to {requested}",
            current=current,
            requested=requested,
        )


class PaymentStateConflict(OrderDeskError):
    """The order's payment is not in a state that allows this action."""

    status_code = status.HTTP_409_CONFLICT


class UpstreamUnavailable(OrderDeskError):
    """Gateway or persistence call failed. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class AnomalyDetected(OrderDeskError):
    """A terminal payment state received a conflicting verified signal."""

    status_code = status.HTTP_409_CONFLICT


async def orderdesk_error_handler(request: Request, exc: OrderDeskError) -> JSONResponse:
    """Render domain errors as structured JSON rejections."""
    logger.info(
        "Request rejected",
        error_type=type(exc).__name__,
        error=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__, **exc.detail},
    )
