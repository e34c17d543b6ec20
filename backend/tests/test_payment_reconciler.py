"""
Tests for payment reconciliation between checkout callbacks and webhooks.
"""
import asyncio
import json
import uuid
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import select

from orderdesk.core.database import session_scope
from orderdesk.core.exceptions import (
    AnomalyDetected,
    OrderNotFound,
    PaymentStateConflict,
    SignatureInvalid,
    UpstreamUnavailable,
    ValidationError,
)
from orderdesk.core.security import hmac_sha256_hex, payment_signature
from orderdesk.models import Customer, Order, OrderStatus, PaymentMethod, PaymentStatus
from orderdesk.services.checkout import BuyerInfo
from orderdesk.services.order_lifecycle import OrderLifecycle
from orderdesk.services.payment_reconciler import PaymentReconciler, ReconcilerConfig

from conftest import KEY_ID, KEY_SECRET, SAMPLE_TOTAL, WEBHOOK_SECRET, sample_cart


@pytest.fixture
def initiated(reconciler, buyer, gateway):
    """Initiate a payment and simulate the buyer paying at the gateway."""

    async def _initiate(payment_id: str = "pay_0001", note: Optional[str] = None):
        payment = await reconciler.initiate(SAMPLE_TOTAL, "INR", buyer, sample_cart(note))
        gateway.capture(payment.gateway_order_id, payment_id)
        return payment

    return _initiate


def webhook(event: str, gateway_order_id: str, payment_id: Optional[str] = "pay_0001") -> tuple[bytes, dict]:
    if event == "order.paid":
        payload = {"order": {"entity": {"id": gateway_order_id, "status": "paid"}}}
    else:
        payload = {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": gateway_order_id,
                    "amount": 13000,
                    "currency": "INR",
                }
            }
        }
    body = {"event": event, "payload": payload}
    return json.dumps(body).encode("utf-8"), body


async def deliver(reconciler: PaymentReconciler, raw: bytes, body: dict, signature: Optional[str] = "sign"):
    if signature == "sign":
        signature = hmac_sha256_hex(WEBHOOK_SECRET, raw)
    return await reconciler.handle_webhook(raw, signature, body["event"], body["payload"])


class TestInitiate:
    async def test_persists_initiated_order(self, reconciler, buyer, gateway, order_loader):
        payment = await reconciler.initiate(SAMPLE_TOTAL, "inr", buyer, sample_cart())

        assert payment.amount == 13000
        assert payment.currency == "INR"
        assert payment.key_id == KEY_ID

        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.INITIATED.value
        assert order.payment_method == PaymentMethod.GATEWAY.value
        assert order.status == OrderStatus.PENDING.value
        assert order.gateway_order_id == payment.gateway_order_id

        gateway_order, notes = gateway.created[0]
        assert gateway_order.receipt == str(payment.order_id)
        assert notes["customerPhone"] == buyer.phone

    async def test_amount_must_match_cart(self, reconciler, buyer, gateway):
        with pytest.raises(ValidationError):
            await reconciler.initiate(Decimal("129.99"), "INR", buyer, sample_cart())

        assert gateway.created == []

    async def test_non_positive_amount(self, reconciler, buyer):
        with pytest.raises(ValidationError):
            await reconciler.initiate(Decimal("0"), "INR", buyer, sample_cart())

    async def test_gateway_failure_leaves_order_initiated(self, reconciler, buyer, gateway, session_factory):
        gateway.fail_create = True

        with pytest.raises(UpstreamUnavailable):
            await reconciler.initiate(SAMPLE_TOTAL, "INR", buyer, sample_cart())

        async with session_factory() as session:
            orders = (await session.execute(select(Order))).scalars().all()
        assert len(orders) == 1
        assert orders[0].payment_status == PaymentStatus.INITIATED.value
        assert orders[0].gateway_order_id is None

    async def test_last_name_wins(self, reconciler, buyer, session_factory):
        await reconciler.initiate(SAMPLE_TOTAL, "INR", buyer, sample_cart())
        await reconciler.initiate(SAMPLE_TOTAL, "INR", BuyerInfo("Asha Rao", buyer.phone), sample_cart())

        async with session_factory() as session:
            customers = (await session.execute(select(Customer))).scalars().all()
        assert [c.name for c in customers] == ["Asha Rao"]

    async def test_concurrent_checkouts_by_new_customer(self, reconciler, session_factory):
        newcomer = BuyerInfo("Ravi", "9000000001")

        results = await asyncio.gather(
            *(reconciler.initiate(SAMPLE_TOTAL, "INR", newcomer, sample_cart()) for _ in range(4)),
            return_exceptions=True,
        )

        assert [r for r in results if isinstance(r, BaseException)] == []
        async with session_factory() as session:
            customers = (await session.execute(select(Customer))).scalars().all()
            orders = (await session.execute(select(Order))).scalars().all()
        assert [c.phone for c in customers] == ["9000000001"]
        assert {o.customer_id for o in orders} == {customers[0].id}

    async def test_unconfigured_gateway(self, gateway, session_factory, buyer):
        reconciler = PaymentReconciler(ReconcilerConfig(), gateway, session_factory)

        with pytest.raises(UpstreamUnavailable):
            await reconciler.initiate(SAMPLE_TOTAL, "INR", buyer, sample_cart())


class TestVerify:
    async def test_valid_signature_marks_paid(self, reconciler, initiated, order_loader):
        payment = await initiated()
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")

        order = await reconciler.verify(payment.gateway_order_id, "pay_0001", signature)

        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_0001"
        assert order.gateway_signature == signature
        assert order.payment_verified_at is not None
        assert order.status == OrderStatus.PENDING.value
        assert (await order_loader(payment.order_id)).payment_status == PaymentStatus.PAID.value

    @pytest.mark.parametrize("index, bit", [(0, 0), (32, 3), (63, 6), (0, 7), (40, 7)])
    async def test_tampered_signature_marks_failed(self, reconciler, initiated, order_loader, index, bit):
        payment = await initiated()
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")
        tampered = signature[:index] + chr(ord(signature[index]) ^ (1 << bit)) + signature[index + 1:]

        with pytest.raises(SignatureInvalid):
            await reconciler.verify(payment.gateway_order_id, "pay_0001", tampered)

        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.gateway_payment_id == "pay_0001"

    async def test_replayed_verify_is_idempotent(self, reconciler, initiated):
        payment = await initiated()
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")

        first = await reconciler.verify(payment.gateway_order_id, "pay_0001", signature)
        second = await reconciler.verify(payment.gateway_order_id, "pay_0001", signature)

        assert first.payment_status == second.payment_status == PaymentStatus.PAID.value
        assert second.payment_anomaly is None

    async def test_forged_verify_never_downgrades_paid(self, reconciler, initiated, order_loader):
        payment = await initiated()
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")
        await reconciler.verify(payment.gateway_order_id, "pay_0001", signature)

        with pytest.raises(SignatureInvalid):
            await reconciler.verify(payment.gateway_order_id, "pay_9999", "0" * 64)

        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_0001"
        assert "invalid signature" in order.payment_anomaly

    async def test_second_payment_flagged_not_applied(self, reconciler, initiated, gateway):
        payment = await initiated()
        gateway.capture(payment.gateway_order_id, "pay_0002")
        first_sig = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")
        second_sig = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0002")
        await reconciler.verify(payment.gateway_order_id, "pay_0001", first_sig)

        order = await reconciler.verify(payment.gateway_order_id, "pay_0002", second_sig)

        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_0001"
        assert "pay_0002" in order.payment_anomaly

    async def test_verified_success_corrects_failed(self, reconciler, initiated, gateway):
        payment = await initiated()
        with pytest.raises(SignatureInvalid):
            await reconciler.verify(payment.gateway_order_id, "pay_0001", "f" * 64)

        gateway.capture(payment.gateway_order_id, "pay_0002")
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0002")
        order = await reconciler.verify(payment.gateway_order_id, "pay_0002", signature)

        assert order.payment_status == PaymentStatus.PAID.value
        assert order.gateway_payment_id == "pay_0002"

    async def test_amount_mismatch_is_an_anomaly(self, reconciler, initiated, gateway, order_loader):
        payment = await initiated()
        gateway.capture(payment.gateway_order_id, "pay_cheap", amount=100)
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_cheap")

        with pytest.raises(AnomalyDetected) as exc_info:
            await reconciler.verify(payment.gateway_order_id, "pay_cheap", signature)

        assert "amount 100 != 13000" in exc_info.value.detail["problems"]
        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.INITIATED.value
        assert order.payment_anomaly is not None

    async def test_gateway_outage_changes_nothing(self, reconciler, initiated, gateway, order_loader):
        payment = await initiated()
        gateway.fail_fetch = True
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")

        with pytest.raises(UpstreamUnavailable):
            await reconciler.verify(payment.gateway_order_id, "pay_0001", signature)

        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.INITIATED.value
        assert order.payment_anomaly is None

    async def test_corroboration_can_be_disabled(self, reconciler_config, gateway, session_factory, buyer):
        config = ReconcilerConfig(
            key_id=reconciler_config.key_id,
            key_secret=reconciler_config.key_secret,
            webhook_secret=reconciler_config.webhook_secret,
            corroborate_payments=False,
        )
        reconciler = PaymentReconciler(config, gateway, session_factory)
        payment = await reconciler.initiate(SAMPLE_TOTAL, "INR", buyer, sample_cart())
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")

        order = await reconciler.verify(payment.gateway_order_id, "pay_0001", signature)

        assert order.payment_status == PaymentStatus.PAID.value
        assert gateway.fetch_calls == 0

    async def test_unknown_order(self, reconciler):
        signature = payment_signature(KEY_SECRET, "order_missing", "pay_0001")

        with pytest.raises(OrderNotFound):
            await reconciler.verify("order_missing", "pay_0001", signature)

    async def test_missing_parameters(self, reconciler):
        with pytest.raises(ValidationError):
            await reconciler.verify("order_1", "", "abc")


class TestWebhook:
    async def test_captured_marks_paid(self, reconciler, initiated, order_loader):
        payment = await initiated()
        raw, body = webhook("payment.captured", payment.gateway_order_id)

        outcome = await deliver(reconciler, raw, body)

        assert outcome.handled is True
        assert outcome.payment_status == PaymentStatus.PAID.value
        order = await order_loader(payment.order_id)
        assert order.gateway_payment_id == "pay_0001"
        assert order.payment_verified_at is not None

    async def test_replay_is_harmless(self, reconciler, initiated, order_loader):
        payment = await initiated()
        raw, body = webhook("payment.captured", payment.gateway_order_id)

        for _ in range(3):
            outcome = await deliver(reconciler, raw, body)
            assert outcome.payment_status == PaymentStatus.PAID.value
            assert outcome.anomaly is False

        assert (await order_loader(payment.order_id)).payment_anomaly is None

    async def test_order_paid_keeps_payment_id(self, reconciler, initiated, order_loader):
        payment = await initiated()
        await deliver(reconciler, *webhook("payment.captured", payment.gateway_order_id))

        outcome = await deliver(reconciler, *webhook("order.paid", payment.gateway_order_id))

        assert outcome.payment_status == PaymentStatus.PAID.value
        assert (await order_loader(payment.order_id)).gateway_payment_id == "pay_0001"

    async def test_bad_signature_rejected_without_change(self, reconciler, initiated, order_loader):
        payment = await initiated()
        raw, body = webhook("payment.captured", payment.gateway_order_id)

        with pytest.raises(SignatureInvalid):
            await deliver(reconciler, raw, body, signature=hmac_sha256_hex("wrong", raw))
        with pytest.raises(SignatureInvalid):
            await deliver(reconciler, raw, body, signature=None)
        with pytest.raises(SignatureInvalid):
            await deliver(reconciler, raw, body, signature="\xe9" * 64)

        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.INITIATED.value

    async def test_failed_then_captured(self, reconciler, initiated):
        payment = await initiated()

        failed = await deliver(reconciler, *webhook("payment.failed", payment.gateway_order_id, "pay_0000"))
        captured = await deliver(reconciler, *webhook("payment.captured", payment.gateway_order_id))

        assert failed.payment_status == PaymentStatus.FAILED.value
        assert captured.payment_status == PaymentStatus.PAID.value

    async def test_failure_after_paid_is_flagged(self, reconciler, initiated, order_loader):
        payment = await initiated()
        await deliver(reconciler, *webhook("payment.captured", payment.gateway_order_id))

        outcome = await deliver(reconciler, *webhook("payment.failed", payment.gateway_order_id, "pay_0009"))

        assert outcome.anomaly is True
        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert "pay_0009" in order.payment_anomaly

    async def test_unknown_event_ignored(self, reconciler, initiated, order_loader):
        payment = await initiated()
        raw = json.dumps({"event": "refund.created", "payload": {}}).encode()

        outcome = await reconciler.handle_webhook(raw, hmac_sha256_hex(WEBHOOK_SECRET, raw), "refund.created", {})

        assert outcome.handled is False
        assert (await order_loader(payment.order_id)).payment_status == PaymentStatus.INITIATED.value

    async def test_unknown_order_acknowledged(self, reconciler):
        outcome = await deliver(reconciler, *webhook("payment.captured", "order_elsewhere"))

        assert outcome.handled is False

    async def test_order_paid_with_odd_payment_entity(self, reconciler, initiated, order_loader):
        payment = await initiated()
        body = {
            "event": "order.paid",
            "payload": {
                "order": {"entity": {"id": payment.gateway_order_id}},
                "payment": {"entity": "pay_0001"},
            },
        }

        outcome = await deliver(reconciler, json.dumps(body).encode("utf-8"), body)

        assert outcome.handled is True
        assert outcome.payment_status == PaymentStatus.PAID.value
        assert (await order_loader(payment.order_id)).gateway_payment_id is None

    async def test_malformed_payload(self, reconciler):
        raw = b'{"event": "payment.captured", "payload": {}}'

        with pytest.raises(ValidationError):
            await reconciler.handle_webhook(raw, hmac_sha256_hex(WEBHOOK_SECRET, raw), "payment.captured", {})


class TestUnsignedWebhooks:
    """Webhook secret not configured: events apply but are never trusted to undo a failure."""

    @pytest.fixture
    def reconciler(self, gateway, session_factory):
        config = ReconcilerConfig(key_id=KEY_ID, key_secret=KEY_SECRET, webhook_secret=None)
        return PaymentReconciler(config, gateway, session_factory)

    async def test_unsigned_capture_applies(self, reconciler, initiated):
        payment = await initiated()

        outcome = await deliver(reconciler, *webhook("payment.captured", payment.gateway_order_id), signature=None)

        assert outcome.payment_status == PaymentStatus.PAID.value

    async def test_unsigned_capture_cannot_resurrect_failed(self, reconciler, initiated, order_loader):
        payment = await initiated()
        await deliver(reconciler, *webhook("payment.failed", payment.gateway_order_id), signature=None)

        outcome = await deliver(reconciler, *webhook("payment.captured", payment.gateway_order_id), signature=None)

        assert outcome.anomaly is True
        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert "unverified" in order.payment_anomaly


class TestRaces:
    async def test_verify_and_webhook_race(self, reconciler, initiated, order_loader):
        payment = await initiated()
        signature = payment_signature(KEY_SECRET, payment.gateway_order_id, "pay_0001")
        raw, body = webhook("payment.captured", payment.gateway_order_id)

        verified, outcome = await asyncio.gather(
            reconciler.verify(payment.gateway_order_id, "pay_0001", signature),
            deliver(reconciler, raw, body),
        )

        assert verified.payment_status == PaymentStatus.PAID.value
        assert outcome.payment_status == PaymentStatus.PAID.value
        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.payment_anomaly is None
        assert order.gateway_payment_id == "pay_0001"
        assert order.payment_verified_at is not None

    async def test_forged_verify_cannot_beat_verified_capture(self, reconciler, initiated, order_loader):
        payment = await initiated()
        raw, body = webhook("payment.captured", payment.gateway_order_id)

        results = await asyncio.gather(
            reconciler.verify(payment.gateway_order_id, "pay_0001", "0" * 64),
            deliver(reconciler, raw, body),
            return_exceptions=True,
        )

        assert isinstance(results[0], SignatureInvalid)
        order = await order_loader(payment.order_id)
        assert order.payment_status == PaymentStatus.PAID.value


class TestManualOverride:
    async def test_forces_paid_and_annotates(self, reconciler, initiated):
        payment = await initiated(note="No onions")
        with pytest.raises(SignatureInvalid):
            await reconciler.verify(payment.gateway_order_id, "pay_0001", "0" * 64)

        order = await reconciler.manual_override(payment.order_id, "paid cash at counter")

        assert order.payment_status == PaymentStatus.PAID.value
        assert order.payment_verified_at is not None
        assert order.customer_note == "No onions | Admin verified: paid cash at counter"

    async def test_note_on_empty_customer_note(self, reconciler, initiated):
        payment = await initiated()

        order = await reconciler.manual_override(payment.order_id, "UPI screenshot")

        assert order.customer_note == "Admin verified: UPI screenshot"

    async def test_unknown_order(self, reconciler):
        with pytest.raises(OrderNotFound):
            await reconciler.manual_override(uuid.uuid4(), "note")


class TestPaymentProofs:
    """Manual UPI transfers: the customer uploads a screenshot and staff check it."""

    PROOF_URL = "https://cdn.example.com/proofs/upi-1.jpg"

    @pytest.fixture
    def upi_order(self, session_factory, buyer):
        async def _create() -> Order:
            async with session_scope(session_factory) as db_session:
                return await OrderLifecycle(db_session).place_order(
                    buyer,
                    sample_cart(),
                    currency="INR",
                    payment_method=PaymentMethod.UPI,
                )

        return _create

    async def test_submit_marks_initiated(self, reconciler, upi_order):
        order = await upi_order()

        submitted = await reconciler.submit_payment_proof(order.id, f"  {self.PROOF_URL} ")

        assert submitted.payment_status == PaymentStatus.INITIATED.value
        assert submitted.payment_proof_url == self.PROOF_URL
        assert submitted.payment_proof_submitted_at is not None
        assert submitted.payment_proof_verified is None

    async def test_approve_marks_paid(self, reconciler, upi_order, order_loader):
        order = await upi_order()
        await reconciler.submit_payment_proof(order.id, self.PROOF_URL)

        reviewed = await reconciler.review_payment_proof(order.id, True, "counter-1")

        assert reviewed.payment_status == PaymentStatus.PAID.value
        assert reviewed.payment_proof_verified is True
        assert reviewed.payment_proof_reviewed_by == "counter-1"
        reloaded = await order_loader(order.id)
        assert reloaded.payment_verified_at is not None

    async def test_repeated_approval_keeps_payment(self, reconciler, upi_order):
        order = await upi_order()
        await reconciler.submit_payment_proof(order.id, self.PROOF_URL)
        first = await reconciler.review_payment_proof(order.id, True, "counter-1")

        second = await reconciler.review_payment_proof(order.id, True, "counter-2")

        assert second.payment_status == PaymentStatus.PAID.value
        assert second.payment_proof_reviewed_by == "counter-1"
        assert second.payment_verified_at == first.payment_verified_at

    async def test_reject_then_resubmit(self, reconciler, upi_order):
        order = await upi_order()
        await reconciler.submit_payment_proof(order.id, self.PROOF_URL)

        rejected = await reconciler.review_payment_proof(order.id, False, "counter-1")
        assert rejected.payment_status == PaymentStatus.FAILED.value
        assert rejected.payment_proof_verified is False
        assert rejected.payment_verified_at is None

        resubmitted = await reconciler.submit_payment_proof(order.id, "https://cdn.example.com/proofs/upi-2.jpg")
        assert resubmitted.payment_status == PaymentStatus.INITIATED.value
        assert resubmitted.payment_proof_verified is None
        assert resubmitted.payment_proof_reviewed_by is None

    async def test_review_without_proof(self, reconciler, upi_order):
        order = await upi_order()

        with pytest.raises(PaymentStateConflict):
            await reconciler.review_payment_proof(order.id, True)

    async def test_paid_order_keeps_its_payment(self, reconciler, upi_order):
        order = await upi_order()
        await reconciler.submit_payment_proof(order.id, self.PROOF_URL)
        await reconciler.review_payment_proof(order.id, True)

        with pytest.raises(PaymentStateConflict):
            await reconciler.submit_payment_proof(order.id, "https://cdn.example.com/proofs/other.jpg")

    async def test_cancelled_order_refused(self, reconciler, upi_order, session_factory):
        order = await upi_order()
        async with session_scope(session_factory) as db_session:
            await OrderLifecycle(db_session).update_status(order.id, OrderStatus.CANCELLED)

        with pytest.raises(PaymentStateConflict) as exc_info:
            await reconciler.submit_payment_proof(order.id, self.PROOF_URL)
        assert exc_info.value.message == "Order was cancelled"

    async def test_not_a_upi_order(self, reconciler, order_factory):
        order = await order_factory()

        with pytest.raises(ValidationError):
            await reconciler.submit_payment_proof(order.id, self.PROOF_URL)

    async def test_gateway_order_cannot_be_settled_by_screenshot(self, reconciler, initiated):
        payment = await initiated()

        with pytest.raises(ValidationError):
            await reconciler.submit_payment_proof(payment.order_id, self.PROOF_URL)

    async def test_empty_url(self, reconciler, upi_order):
        order = await upi_order()

        with pytest.raises(ValidationError):
            await reconciler.submit_payment_proof(order.id, "   ")

    async def test_unknown_order(self, reconciler):
        with pytest.raises(OrderNotFound):
            await reconciler.submit_payment_proof(uuid.uuid4(), self.PROOF_URL)
        with pytest.raises(OrderNotFound):
            await reconciler.review_payment_proof(uuid.uuid4(), True)


async def test_payment_status_and_key(reconciler, initiated):
    payment = await initiated()

    order = await reconciler.payment_status(payment.order_id)

    assert order.payment_status == PaymentStatus.INITIATED.value
    assert reconciler.public_key() == {"key_id": KEY_ID, "is_configured": True}


def test_startup_requires_webhook_secret_when_demanded():
    config = ReconcilerConfig(key_id=KEY_ID, key_secret=KEY_SECRET, webhook_secret=None)

    with pytest.raises(RuntimeError):
        config.check_startup(require_webhook_secret=True)
    config.check_startup(require_webhook_secret=False)


def test_startup_rejects_half_configured_keys():
    with pytest.raises(RuntimeError):
        ReconcilerConfig(key_id=KEY_ID).check_startup(require_webhook_secret=False)
