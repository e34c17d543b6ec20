"""
Payment API routes: checkout initiation, client verification, gateway
webhooks and staff overrides. All payment state changes go through the
payment reconciler.
"""
import json
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Header, Request

from orderdesk.core.exceptions import ValidationError
from orderdesk.core.logging import get_logger
from orderdesk.routers.deps import CheckoutPricerDep, PaymentReconcilerDep, StaffClaims
from orderdesk.routers.orders import price_cart
from orderdesk.schemas.order import OrderResponse
from orderdesk.schemas.payment import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    ManualVerifyRequest,
    PaymentKeyResponse,
    PaymentProofReview,
    PaymentStatusResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAck,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/key", response_model=PaymentKeyResponse)
async def get_payment_key(reconciler: PaymentReconcilerDep) -> PaymentKeyResponse:
    """Public key id for the checkout widget."""
    return PaymentKeyResponse(**reconciler.public_key())


@router.post("/create-order", response_model=CreatePaymentResponse)
async def create_payment_order(
    request: CreatePaymentRequest,
    pricer: CheckoutPricerDep,
    reconciler: PaymentReconcilerDep,
) -> CreatePaymentResponse:
    """
    Price the cart, persist an Initiated order and register it with the gateway.

    The client's amount must equal the server-side total.
    """
    quote = await price_cart(pricer, request)
    initiated = await reconciler.initiate(
        request.amount,
        request.currency,
        request.customer.to_buyer(),
        request.snapshot(quote.breakdown),
    )
    return CreatePaymentResponse(
        gateway_order_id=initiated.gateway_order_id,
        order_id=initiated.order_id,
        amount=initiated.amount,
        currency=initiated.currency,
        key_id=initiated.key_id,
    )


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    reconciler: PaymentReconcilerDep,
) -> VerifyPaymentResponse:
    """Checkout callback from the client."""
    order = await reconciler.verify(
        request.gateway_order_id,
        request.gateway_payment_id,
        request.signature,
    )
    return VerifyPaymentResponse(order=OrderResponse.model_validate(order))


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    reconciler: PaymentReconcilerDep,
    x_razorpay_signature: Annotated[Optional[str], Header()] = None,
) -> WebhookAck:
    """
    Gateway webhook. The signature covers the exact raw body, so the body
    is read as bytes before anything parses it.
    """
    raw_body = await request.body()
    try:
        body = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")

    payload = body.get("payload")
    outcome = await reconciler.handle_webhook(
        raw_body,
        x_razorpay_signature,
        body.get("event"),
        payload if isinstance(payload, dict) else {},
    )
    return WebhookAck(event=outcome.event, handled=outcome.handled)


@router.get("/status/{order_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    order_id: UUID,
    reconciler: PaymentReconcilerDep,
) -> PaymentStatusResponse:
    """Payment status polling."""
    order = await reconciler.payment_status(order_id)
    return PaymentStatusResponse.model_validate(order)


@router.put("/manual-verify/{order_id}", response_model=OrderResponse)
async def manual_verify_payment(
    order_id: UUID,
    staff: StaffClaims,
    reconciler: PaymentReconcilerDep,
    request: Optional[ManualVerifyRequest] = None,
) -> OrderResponse:
    """Staff marks an order paid after settling it offline."""
    note = request.note if request else None
    order = await reconciler.manual_override(order_id, note)
    logger.info("Manual payment verification", order_id=str(order_id), staff=staff.get("sub"))
    return OrderResponse.model_validate(order)


@router.put("/proof/{order_id}/review", response_model=OrderResponse)
async def review_payment_proof(
    order_id: UUID,
    review: PaymentProofReview,
    staff: StaffClaims,
    reconciler: PaymentReconcilerDep,
) -> OrderResponse:
    """Staff approve or reject a customer's UPI transfer screenshot."""
    order = await reconciler.review_payment_proof(order_id, review.verified, staff.get("sub"))
    return OrderResponse.model_validate(order)
