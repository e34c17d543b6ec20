"""
Order API routes: pricing preview, cash and UPI orders, tracking and the
staff board.
"""
from uuid import UUID

from fastapi import APIRouter, Query, status

from orderdesk.core.config import settings
from orderdesk.core.logging import get_logger
from orderdesk.core.timeutils import utcnow
from orderdesk.models.order import PaymentMethod
from orderdesk.routers.deps import (
    CheckoutPricerDep,
    OrderLifecycleDep,
    PaymentReconcilerDep,
    StaffClaims,
)
from orderdesk.schemas.order import (
    CartIn,
    OrderCreate,
    OrderResponse,
    OrderTrackingResponse,
    QuoteResponse,
    StatusUpdate,
)
from orderdesk.schemas.payment import PaymentProofSubmit
from orderdesk.services.checkout import CheckoutPricer, CheckoutQuote

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


async def price_cart(pricer: CheckoutPricer, cart: CartIn) -> CheckoutQuote:
    return await pricer.quote(
        cart.line_items(),
        now=utcnow(),
        order_type=cart.order_type,
        coupon_code=cart.coupon_code,
        donation=cart.donation,
        destination=cart.destination(),
    )


@router.post("/quote", response_model=QuoteResponse)
async def quote_order(cart: CartIn, pricer: CheckoutPricerDep) -> QuoteResponse:
    """Price a cart without creating anything."""
    quote = await price_cart(pricer, cart)
    return QuoteResponse.from_quote(quote)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_in: OrderCreate,
    pricer: CheckoutPricerDep,
    lifecycle: OrderLifecycleDep,
) -> OrderResponse:
    """
    Place an order paid at the counter or by UPI transfer.

    Prices are recomputed on the server; whatever totals the client shows
    are ignored.
    """
    quote = await price_cart(pricer, order_in)
    order = await lifecycle.place_order(
        order_in.customer.to_buyer(),
        order_in.snapshot(quote.breakdown),
        currency=settings.currency,
        payment_method=PaymentMethod(order_in.payment_method),
    )
    return OrderResponse.model_validate(order)


@router.get("/track/{order_id}", response_model=OrderTrackingResponse)
async def track_order(order_id: UUID, lifecycle: OrderLifecycleDep) -> OrderTrackingResponse:
    """Public order tracking."""
    order = await lifecycle.track(order_id)
    return OrderTrackingResponse.model_validate(order)


@router.put("/{order_id}/cancel", response_model=OrderTrackingResponse)
async def cancel_order(order_id: UUID, lifecycle: OrderLifecycleDep) -> OrderTrackingResponse:
    """Customer cancellation, only shortly after placing and before acceptance."""
    order = await lifecycle.cancel_by_customer(order_id)
    return OrderTrackingResponse.model_validate(order)


@router.put("/{order_id}/payment-proof", response_model=OrderTrackingResponse)
async def submit_payment_proof(
    order_id: UUID,
    proof: PaymentProofSubmit,
    reconciler: PaymentReconcilerDep,
) -> OrderTrackingResponse:
    """Customer attaches a screenshot of their UPI transfer for staff to check."""
    order = await reconciler.submit_payment_proof(order_id, proof.screenshot_url)
    return OrderTrackingResponse.model_validate(order)


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    staff: StaffClaims,
    lifecycle: OrderLifecycleDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> list[OrderResponse]:
    """Staff order board, newest first."""
    orders = await lifecycle.list_for_staff(skip=skip, limit=limit)
    return [OrderResponse.model_validate(order) for order in orders]


@router.put("/{order_id}/accept", response_model=OrderResponse)
async def accept_order(
    order_id: UUID,
    staff: StaffClaims,
    lifecycle: OrderLifecycleDep,
) -> OrderResponse:
    """Accept an order into the kitchen."""
    order = await lifecycle.accept(order_id)
    logger.info("Order accepted by staff", order_id=str(order_id), staff=staff.get("sub"))
    return OrderResponse.model_validate(order)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: UUID,
    update: StatusUpdate,
    staff: StaffClaims,
    lifecycle: OrderLifecycleDep,
) -> OrderResponse:
    """Move an order along the fulfillment flow."""
    order = await lifecycle.update_status(order_id, update.status)
    return OrderResponse.model_validate(order)
