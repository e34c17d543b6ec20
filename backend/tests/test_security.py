"""
Tests for gateway signatures and staff tokens.
"""
import pytest

from orderdesk.core.security import (
    STAFF_ROLE,
    create_staff_token,
    decode_access_token,
    hmac_sha256_hex,
    payment_signature,
    verify_payment_signature,
    verify_webhook_signature,
)

SECRET = "rzp_test_secret"


def _flip_bit(value: str, index: int, bit: int) -> str:
    """Flip a single bit of one character."""
    return value[:index] + chr(ord(value[index]) ^ (1 << bit)) + value[index + 1:]


def test_payment_signature_is_hmac_of_order_and_payment():
    expected = hmac_sha256_hex(SECRET, "order_1|pay_1")

    assert payment_signature(SECRET, "order_1", "pay_1") == expected
    assert len(expected) == 64
    assert verify_payment_signature(SECRET, "order_1", "pay_1", expected)


@pytest.mark.parametrize("bit", range(8))
@pytest.mark.parametrize("index", [0, 17, 31, 63])
def test_any_single_bit_flip_is_rejected(index: int, bit: int):
    signature = payment_signature(SECRET, "order_1", "pay_1")

    assert not verify_payment_signature(SECRET, "order_1", "pay_1", _flip_bit(signature, index, bit))


def test_non_ascii_signatures_are_rejected():
    signature = payment_signature(SECRET, "order_1", "pay_1")
    body = b'{"event":"payment.captured"}'

    assert not verify_payment_signature(SECRET, "order_1", "pay_1", "\xe9" * 64)
    assert not verify_payment_signature(SECRET, "order_1", "pay_1", signature[:-1] + "\ud800")
    assert not verify_webhook_signature("whsec_test", body, "\xe9" * 64)


def test_signature_bound_to_order_and_payment():
    signature = payment_signature(SECRET, "order_1", "pay_1")

    assert not verify_payment_signature(SECRET, "order_2", "pay_1", signature)
    assert not verify_payment_signature(SECRET, "order_1", "pay_2", signature)
    assert not verify_payment_signature("other_secret", "order_1", "pay_1", signature)
    assert not verify_payment_signature(SECRET, "order_1", "pay_1", "")


def test_webhook_signature_covers_exact_body():
    body = b'{"event":"payment.captured","payload":{}}'
    signature = hmac_sha256_hex("whsec_test", body)

    assert verify_webhook_signature("whsec_test", body, signature)
    assert not verify_webhook_signature("whsec_test", body + b" ", signature)
    assert not verify_webhook_signature("whsec_test", body, None)
    assert not verify_webhook_signature("whsec_test", body, "")


def test_staff_token_round_trip():
    claims = decode_access_token(create_staff_token("counter-1"))

    assert claims is not None
    assert claims["sub"] == "counter-1"
    assert claims["role"] == STAFF_ROLE


def test_garbage_token_rejected():
    assert decode_access_token("not-a-jwt") is None
