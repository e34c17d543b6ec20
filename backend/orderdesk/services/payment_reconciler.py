"""
Payment reconciler.

The only component allowed to move an order's payment status:

    Pending -> Initiated -> Paid | Failed

Two unordered, possibly duplicated and possibly forged signals write the
same record: the client's checkout callback (verify) and the gateway
webhook. Both write through conditional UPDATEs keyed by the gateway order
id, so whichever verified writer lands first wins the transition and the
other observes the terminal state instead of overwriting it.

Rules for terminal states:
- Paid is never downgraded by a failure signal; the conflict is flagged on
  the order for manual review.
- Failed can be corrected to Paid only by a signature-verified success.
- A second success for a different payment id is flagged, not applied.

Manual UPI transfers follow the same states: a submitted proof makes the
order Initiated and staff review settles it as Paid or Failed.
"""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, NoReturn, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderdesk.core.config import Settings
from orderdesk.core.database import session_scope
from orderdesk.core.exceptions import (
    AnomalyDetected,
    OrderNotFound,
    PaymentStateConflict,
    SignatureInvalid,
    UpstreamUnavailable,
    ValidationError,
)
from orderdesk.core.logging import get_logger
from orderdesk.core.security import verify_payment_signature, verify_webhook_signature
from orderdesk.core.timeutils import utcnow
from orderdesk.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from orderdesk.repositories.customer import CustomerRepository
from orderdesk.repositories.order import OrderRepository
from orderdesk.services.checkout import BuyerInfo, CartSnapshot
from orderdesk.services.pricing import round_money, to_decimal, to_minor_units
from orderdesk.services.razorpay_client import GatewayError, PaymentGateway

logger = get_logger(__name__)

OPEN_STATES = frozenset({PaymentStatus.PENDING, PaymentStatus.INITIATED})


@dataclass(frozen=True)
class ReconcilerConfig:
    """Gateway credentials and policy, injected at construction."""

    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    currency: str = "INR"
    corroborate_payments: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReconcilerConfig":
        return cls(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            currency=settings.currency,
            corroborate_payments=settings.corroborate_payments,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def check_startup(self, require_webhook_secret: bool) -> None:
        """Configuration errors that must stop the process before it serves traffic."""
        if require_webhook_secret and not self.webhook_secret:
            raise RuntimeError(
                "RAZORPAY_WEBHOOK_SECRET is required but not configured"
            )
        if bool(self.key_id) != bool(self.key_secret):
            raise RuntimeError(
                "RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET must be configured together"
            )


@dataclass(frozen=True)
class InitiatedPayment:
    gateway_order_id: str
    order_id: UUID
    amount: int  # minor units, as confirmed by the gateway
    currency: str
    key_id: Optional[str]


@dataclass(frozen=True)
class WebhookOutcome:
    event: str
    handled: bool
    order_id: Optional[UUID] = None
    payment_status: Optional[str] = None
    anomaly: bool = False


class PaymentReconciler:
    """Owns payment status transitions for gateway orders."""

    def __init__(
        self,
        config: ReconcilerConfig,
        gateway: PaymentGateway,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.config = config
        self.gateway = gateway
        self._session_factory = session_factory
        self._webhook_handlers: dict[
            str, Callable[[dict[str, Any], bool], Awaitable[WebhookOutcome]]
        ] = {
            "payment.captured": self._on_payment_captured,
            "payment.failed": self._on_payment_failed,
            "order.paid": self._on_order_paid,
        }

    @asynccontextmanager
    async def _unit_of_work(self) -> AsyncGenerator[AsyncSession, None]:
        """One short transaction; store failures surface as retryable errors."""
        try:
            async with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Order store failure", error=str(e))
            raise UpstreamUnavailable("Order store unavailable, please retry") from e

    def _require_gateway(self) -> None:
        if not self.config.is_configured:
            raise UpstreamUnavailable("Payment gateway is not configured")

    # Initiation

    async def initiate(
        self,
        amount: Decimal,
        currency: Optional[str],
        buyer: BuyerInfo,
        cart: CartSnapshot,
    ) -> InitiatedPayment:
        """
        Persist an Initiated order, then register it with the gateway.

        The order is committed before the gateway call. If the call fails or
        times out the order stays Initiated without a gateway order id and is
        treated as abandoned, never as paid or failed.
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Invalid amount", amount=str(amount))
        if not cart.breakdown.items:
            raise ValidationError("No items provided for order")
        if round_money(cart.breakdown.grand_total) != round_money(amount):
            raise ValidationError(
                "Amount does not match the priced cart",
                amount=str(round_money(amount)),
                expected=str(cart.breakdown.grand_total),
            )
        self._require_gateway()
        currency = (currency or self.config.currency).upper()

        async with self._unit_of_work() as session:
            customer, _ = await CustomerRepository(session).create_or_update(
                name=buyer.name,
                phone=buyer.phone,
            )
            order = await OrderRepository(session).create(
                {
                    **cart.order_fields(currency),
                    "total_amount": round_money(amount),
                    "customer_id": customer.id,
                    "payment_method": PaymentMethod.GATEWAY.value,
                    "payment_status": PaymentStatus.INITIATED.value,
                    "status": OrderStatus.PENDING.value,
                }
            )
            order_id = order.id

        logger.info("Payment initiated", order_id=str(order_id), amount=str(amount), currency=currency)

        try:
            gateway_order = await self.gateway.create_order(
                amount=to_minor_units(amount),
                currency=currency,
                receipt=str(order_id),
                notes={
                    "orderId": str(order_id),
                    "customerName": buyer.name,
                    "customerPhone": buyer.phone,
                },
            )
        except GatewayError as e:
            logger.error(
                "Gateway order creation failed",
                order_id=str(order_id),
                error=str(e),
            )
            raise UpstreamUnavailable(
                "Error creating payment order",
                order_id=str(order_id),
            ) from e

        if gateway_order.amount != to_minor_units(amount) or gateway_order.currency != currency:
            logger.warning(
                "Gateway echoed a different amount",
                order_id=str(order_id),
                requested=to_minor_units(amount),
                confirmed=gateway_order.amount,
                currency=gateway_order.currency,
            )

        async with self._unit_of_work() as session:
            attached = await OrderRepository(session).attach_gateway_order(
                order_id,
                gateway_order.gateway_order_id,
            )
        if attached is None:
            logger.warning("Order already had a gateway order id", order_id=str(order_id))

        return InitiatedPayment(
            gateway_order_id=gateway_order.gateway_order_id,
            order_id=order_id,
            amount=gateway_order.amount,
            currency=gateway_order.currency,
            key_id=self.config.key_id,
        )

    # Client checkout callback

    async def verify(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Order:
        """
        Verify the checkout callback signature and settle the payment.

        Raises:
            ValidationError: a parameter is missing
            SignatureInvalid: signature mismatch; the attempt is recorded as Failed first
            OrderNotFound: no order carries this gateway order id
            AnomalyDetected: the gateway's payment does not match the order
            UpstreamUnavailable: gateway or store unreachable; nothing was changed
        """
        if not gateway_order_id or not gateway_payment_id or not signature:
            raise ValidationError("Missing payment verification parameters")
        self._require_gateway()

        if not verify_payment_signature(
            self.config.key_secret or "",
            gateway_order_id,
            gateway_payment_id,
            signature,
        ):
            await self._record_rejected_verify(gateway_order_id, gateway_payment_id)
            raise SignatureInvalid(
                "Payment verification failed - Invalid signature",
                gateway_order_id=gateway_order_id,
            )

        async with self._unit_of_work() as session:
            order = await OrderRepository(session).get_by_gateway_order_id(gateway_order_id)
        if order is None:
            raise OrderNotFound(gateway_order_id)

        if order.payment_status == PaymentStatus.PAID.value:
            async with self._unit_of_work() as session:
                order, _ = await self._settle_late_success(
                    OrderRepository(session), order, gateway_payment_id, "verify"
                )
            return order

        if self.config.corroborate_payments:
            await self._corroborate(order, gateway_payment_id)

        async with self._unit_of_work() as session:
            repo = OrderRepository(session)
            paid = await repo.mark_paid(
                gateway_order_id,
                allowed_from=OPEN_STATES | {PaymentStatus.FAILED},
                verified_at=utcnow(),
                payment_id=gateway_payment_id,
                signature=signature,
            )
            if paid is None:
                # A concurrent writer (usually the webhook) got there first
                current = await repo.get_by_gateway_order_id(gateway_order_id)
                if current is None:
                    raise OrderNotFound(gateway_order_id)
                paid, _ = await self._settle_late_success(repo, current, gateway_payment_id, "verify")
            elif order.payment_status == PaymentStatus.FAILED.value:
                logger.info("Failed payment corrected by verified callback", gateway_order_id=gateway_order_id)

        logger.info(
            "Payment verified",
            order_id=str(paid.id),
            gateway_order_id=gateway_order_id,
            payment_status=paid.payment_status,
        )
        return paid

    async def _record_rejected_verify(self, gateway_order_id: str, gateway_payment_id: str) -> None:
        logger.warning(
            "Payment signature mismatch",
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
        )
        async with self._unit_of_work() as session:
            repo = OrderRepository(session)
            failed = await repo.mark_failed(
                gateway_order_id,
                allowed_from=OPEN_STATES,
                payment_id=gateway_payment_id,
            )
            if failed is not None:
                return
            current = await repo.get_by_gateway_order_id(gateway_order_id)
            if current is not None and current.payment_status == PaymentStatus.PAID.value:
                await self._flag(
                    repo,
                    gateway_order_id,
                    f"verify: invalid signature for payment {gateway_payment_id} on a paid order",
                )

    async def _corroborate(self, order: Order, gateway_payment_id: str) -> None:
        """Check the gateway's own record of the payment against the order."""
        try:
            payment = await self.gateway.fetch_payment(gateway_payment_id)
        except GatewayError as e:
            logger.error(
                "Could not fetch payment from gateway",
                gateway_payment_id=gateway_payment_id,
                error=str(e),
            )
            raise UpstreamUnavailable(
                "Could not confirm payment with gateway, please retry",
                gateway_order_id=order.gateway_order_id,
            ) from e

        problems = []
        if payment.gateway_order_id and payment.gateway_order_id != order.gateway_order_id:
            problems.append(f"payment belongs to {payment.gateway_order_id}")
        expected_amount = to_minor_units(order.total_amount)
        if payment.amount != expected_amount:
            problems.append(f"amount {payment.amount} != {expected_amount}")
        if payment.currency.upper() != (order.currency or "").upper():
            problems.append(f"currency {payment.currency} != {order.currency}")

        if problems:
            async with self._unit_of_work() as session:
                await self._flag(
                    OrderRepository(session),
                    order.gateway_order_id or "",
                    f"verify: payment {gateway_payment_id} mismatch: " + "; ".join(problems),
                )
            raise AnomalyDetected(
                "Payment does not match the order",
                gateway_order_id=order.gateway_order_id,
                problems=problems,
            )

    # Gateway webhook

    async def handle_webhook(
        self,
        raw_body: bytes,
        header_signature: Optional[str],
        event_type: Optional[str],
        payload: dict[str, Any],
    ) -> WebhookOutcome:
        """
        Apply a gateway webhook event. Replays are harmless.

        With a webhook secret configured the signature over the exact raw
        body must match or SignatureInvalid is raised before anything is
        touched. Without one the check is skipped and the event is treated
        as unverified.
        """
        verified = False
        if self.config.webhook_secret:
            if not verify_webhook_signature(self.config.webhook_secret, raw_body, header_signature):
                logger.warning("Webhook signature verification failed", event=event_type)
                raise SignatureInvalid("Invalid webhook signature")
            verified = True
        else:
            logger.warning("Webhook secret not configured, signature verification skipped")

        event = event_type or ""
        handler = self._webhook_handlers.get(event)
        if handler is None:
            logger.info("Unhandled webhook event", event=event)
            return WebhookOutcome(event=event, handled=False)

        logger.info("Webhook event received", event=event, verified=verified)
        return await handler(payload or {}, verified)

    async def _on_payment_captured(self, payload: dict[str, Any], verified: bool) -> WebhookOutcome:
        entity = _entity(payload, "payment")
        return await self._apply_success(
            "payment.captured",
            _required(entity, "order_id"),
            entity.get("id"),
            verified,
        )

    async def _on_order_paid(self, payload: dict[str, Any], verified: bool) -> WebhookOutcome:
        entity = _entity(payload, "order")
        payment_id = None
        payment = payload.get("payment")
        if isinstance(payment, dict) and isinstance(payment.get("entity"), dict):
            payment_id = payment["entity"].get("id")
        return await self._apply_success(
            "order.paid",
            _required(entity, "id"),
            payment_id,
            verified,
        )

    async def _on_payment_failed(self, payload: dict[str, Any], verified: bool) -> WebhookOutcome:
        event = "payment.failed"
        entity = _entity(payload, "payment")
        gateway_order_id = _required(entity, "order_id")
        payment_id = entity.get("id")

        async with self._unit_of_work() as session:
            repo = OrderRepository(session)
            order = await repo.mark_failed(
                gateway_order_id,
                allowed_from=OPEN_STATES,
                payment_id=payment_id,
            )
            if order is not None:
                logger.info("Payment failed", gateway_order_id=gateway_order_id, payment_id=payment_id)
                return _outcome(event, order)

            current = await repo.get_by_gateway_order_id(gateway_order_id)
            if current is None:
                logger.warning("Webhook for unknown order", event=event, gateway_order_id=gateway_order_id)
                return WebhookOutcome(event=event, handled=False)

            if current.payment_status == PaymentStatus.PAID.value:
                await self._flag(
                    repo,
                    gateway_order_id,
                    f"{event}: payment {payment_id} reported failed after order was paid",
                )
                return _outcome(event, current, anomaly=True)

        # Already Failed: replay
        return _outcome(event, current)

    async def _apply_success(
        self,
        event: str,
        gateway_order_id: str,
        payment_id: Optional[str],
        verified: bool,
    ) -> WebhookOutcome:
        allowed = OPEN_STATES | {PaymentStatus.FAILED} if verified else OPEN_STATES

        async with self._unit_of_work() as session:
            repo = OrderRepository(session)
            order = await repo.mark_paid(
                gateway_order_id,
                allowed_from=allowed,
                verified_at=utcnow(),
                payment_id=payment_id,
            )
            if order is not None:
                logger.info("Payment captured", event=event, gateway_order_id=gateway_order_id, payment_id=payment_id)
                return _outcome(event, order)

            current = await repo.get_by_gateway_order_id(gateway_order_id)
            if current is None:
                logger.warning("Webhook for unknown order", event=event, gateway_order_id=gateway_order_id)
                return WebhookOutcome(event=event, handled=False)

            if current.payment_status == PaymentStatus.FAILED.value:
                # Only a verified signal may resurrect a failed payment
                await self._flag(
                    repo,
                    gateway_order_id,
                    f"{event}: unverified success for payment {payment_id} on a failed order",
                )
                return _outcome(event, current, anomaly=True)

            current, anomaly = await self._settle_late_success(repo, current, payment_id, event)
            return _outcome(event, current, anomaly=anomaly)

    # Shared

    async def _settle_late_success(
        self,
        repo: OrderRepository,
        order: Order,
        payment_id: Optional[str],
        source: str,
    ) -> tuple[Order, bool]:
        """A success signal for an order that is already Paid."""
        if payment_id is None or order.gateway_payment_id in (None, payment_id):
            logger.info(
                "Payment already settled",
                source=source,
                gateway_order_id=order.gateway_order_id,
            )
            return order, False

        flagged = await self._flag(
            repo,
            order.gateway_order_id or "",
            f"{source}: second payment {payment_id} for an order paid by {order.gateway_payment_id}",
        )
        return flagged or order, True

    async def _flag(self, repo: OrderRepository, gateway_order_id: str, note: str) -> Optional[Order]:
        logger.warning("Payment anomaly detected", gateway_order_id=gateway_order_id, note=note)
        return await repo.flag_anomaly(gateway_order_id, note)

    # Manual UPI transfers

    async def submit_payment_proof(self, order_id: UUID, proof_url: str) -> Order:
        """
        Customer submits proof of a UPI transfer (a screenshot URL).

        The order moves to Initiated and waits for staff review. A rejected
        proof may be replaced; a paid order keeps its payment.
        """
        proof_url = (proof_url or "").strip()
        if not proof_url:
            raise ValidationError("Screenshot URL is required")

        async with self._unit_of_work() as session:
            repo = OrderRepository(session)
            order = await repo.attach_payment_proof(
                order_id,
                proof_url,
                utcnow(),
                allowed_from=OPEN_STATES | {PaymentStatus.FAILED},
            )
            if order is None:
                _refuse_proof(order_id, await repo.refresh_by_id(order_id))

        logger.info("Payment proof submitted", order_id=str(order_id))
        return order

    async def review_payment_proof(
        self,
        order_id: UUID,
        approved: bool,
        reviewed_by: Optional[str] = None,
    ) -> Order:
        """Staff approve (Paid) or reject (Failed) a submitted transfer proof."""
        async with self._unit_of_work() as session:
            repo = OrderRepository(session)
            order = await repo.review_payment_proof(
                order_id,
                approved=approved,
                reviewed_by=reviewed_by,
                reviewed_at=utcnow(),
            )
            if order is None:
                current = await repo.refresh_by_id(order_id)
                if (
                    approved
                    and current is not None
                    and current.payment_method == PaymentMethod.UPI.value
                    and current.payment_status == PaymentStatus.PAID.value
                ):
                    # Repeated approval
                    return current
                _refuse_proof(order_id, current)

        logger.info(
            "Payment proof reviewed",
            order_id=str(order_id),
            approved=approved,
            reviewed_by=reviewed_by,
            payment_status=order.payment_status,
        )
        return order

    # Staff and status

    async def manual_override(self, order_id: UUID, note: Optional[str] = None) -> Order:
        """Staff settles an order offline; bypasses the gateway state machine."""
        async with self._unit_of_work() as session:
            order = await OrderRepository(session).force_paid(order_id, note, utcnow())
        if order is None:
            raise OrderNotFound(str(order_id))
        logger.info("Payment manually verified", order_id=str(order_id))
        return order

    async def payment_status(self, order_id: UUID) -> Order:
        async with self._unit_of_work() as session:
            order = await OrderRepository(session).get_by_id(order_id)
        if order is None:
            raise OrderNotFound(str(order_id))
        return order

    def public_key(self) -> dict[str, Any]:
        return {"key_id": self.config.key_id, "is_configured": bool(self.config.key_id)}


def _entity(payload: dict[str, Any], name: str) -> dict[str, Any]:
    try:
        entity = payload[name]["entity"]
    except (KeyError, TypeError):
        raise ValidationError(f"Webhook payload is missing {name}.entity") from None
    if not isinstance(entity, dict):
        raise ValidationError(f"Webhook payload has a malformed {name}.entity")
    return entity


def _required(entity: dict[str, Any], field: str) -> str:
    value = entity.get(field)
    if not value:
        raise ValidationError(f"Webhook entity is missing {field}")
    return str(value)


def _outcome(event: str, order: Order, anomaly: bool = False) -> WebhookOutcome:
    return WebhookOutcome(
        event=event,
        handled=True,
        order_id=order.id,
        payment_status=order.payment_status,
        anomaly=anomaly,
    )


def _refuse_proof(order_id: UUID, order: Optional[Order]) -> NoReturn:
    if order is None:
        raise OrderNotFound(str(order_id))
    if order.payment_method != PaymentMethod.UPI.value:
        raise ValidationError("Order is not paid by UPI transfer", order=str(order_id))
    if order.status == OrderStatus.CANCELLED.value:
        raise PaymentStateConflict("Order was cancelled", order=str(order_id))
    raise PaymentStateConflict(
        "Payment is not awaiting this step",
        order=str(order_id),
        payment_status=order.payment_status,
    )
