"""
Security utilities: gateway signatures and staff JWT tokens.
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from orderdesk.core.config import settings
from orderdesk.core.logging import get_logger

logger = get_logger(__name__)

STAFF_ROLE = "admin"


def hmac_sha256_hex(secret: str, message: bytes | str) -> str:
    """Hex encoded HMAC-SHA256 of message, keyed by secret."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _digests_match(expected: str, supplied: str) -> bool:
    # compare_digest rejects non-ASCII str, so compare the raw bytes
    return hmac.compare_digest(expected.encode("ascii"), supplied.encode("utf-8", "surrogatepass"))


def payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    """Signature the gateway hands the client after checkout."""
    return hmac_sha256_hex(secret, f"{gateway_order_id}|{gateway_payment_id}")


def verify_payment_signature(
    secret: str,
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
) -> bool:
    """Constant-time check of a checkout callback signature."""
    expected = payment_signature(secret, gateway_order_id, gateway_payment_id)
    return _digests_match(expected, signature or "")


def verify_webhook_signature(secret: str, body: bytes, header_signature: str | None) -> bool:
    """Constant-time check of a webhook signature over the exact raw body."""
    if not header_signature:
        return False
    expected = hmac_sha256_hex(secret, body)
    return _digests_match(expected, header_signature)


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(hours=settings.jwt_expiration_hours)
    )
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_staff_token(name: str) -> str:
    """Mint a staff token (used by operators and tests)."""
    return create_access_token({"sub": name, "role": STAFF_ROLE})


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning("Invalid JWT token", error=str(e))
        return None
