"""
Payment gateway capability and its Razorpay REST implementation.
Handles authentication, retries on rate limits, and error mapping.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from orderdesk.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    """Order registered with the gateway, as the gateway echoes it back."""

    gateway_order_id: str
    amount: int  # minor units
    currency: str
    receipt: Optional[str] = None


@dataclass(frozen=True)
class GatewayPayment:
    payment_id: str
    gateway_order_id: Optional[str]
    amount: int  # minor units
    currency: str
    status: str


class GatewayError(Exception):
    """Gateway call failed, timed out, or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PaymentGateway(Protocol):
    """What the payment reconciler needs from a gateway."""

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder: ...

    async def fetch_payment(self, payment_id: str) -> GatewayPayment: ...


class RazorpayClient:
    """
    Async Razorpay REST client.

    Features:
    - HTTP basic auth with key id / key secret
    - Retry with backoff on 429 and transport errors
    - Every failure surfaces as GatewayError, never as a guessed outcome
    """

    MAX_RETRIES = 3

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.key_id = key_id
        self._auth = httpx.BasicAuth(key_id, key_secret)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for attempt in range(self.MAX_RETRIES):
                try:
                    response = await client.request(method, path, json=json)
                    response.raise_for_status()
                    return response.json()

                except httpx.HTTPStatusError as e:
                    if e.response.status_code == 429 and attempt < self.MAX_RETRIES - 1:
                        await asyncio.sleep(2 ** attempt * 0.1)
                        continue
                    description = _error_description(e.response)
                    logger.error(
                        "Razorpay API error",
                        path=path,
                        status=e.response.status_code,
                        description=description,
                    )
                    raise GatewayError(
                        f"HTTP error: {e.response.status_code} {description}".strip(),
                        status_code=e.response.status_code,
                    )

                except httpx.TimeoutException as e:
                    # A timed out create may still have succeeded upstream; do not retry it
                    logger.warning("Razorpay request timed out", path=path)
                    raise GatewayError(f"Request timed out: {e}")

                except httpx.RequestError as e:
                    if attempt < self.MAX_RETRIES - 1:
                        continue
                    raise GatewayError(f"Request failed: {e}")

                except ValueError as e:
                    raise GatewayError(f"Invalid JSON from gateway: {e}")

        raise GatewayError("Max retries exceeded")

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        """Register a payment intent. Amount is in minor units."""
        data = await self._request(
            "POST",
            "/orders",
            json={
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            },
        )
        try:
            return GatewayOrder(
                gateway_order_id=data["id"],
                amount=int(data["amount"]),
                currency=data["currency"],
                receipt=data.get("receipt"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"Unexpected order payload: {e}")

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/payments/{payment_id}")
        try:
            return GatewayPayment(
                payment_id=data["id"],
                gateway_order_id=data.get("order_id"),
                amount=int(data["amount"]),
                currency=data["currency"],
                status=data.get("status", "unknown"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError(f"Unexpected payment payload: {e}")


def _error_description(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("description", "")
    except ValueError:
        return ""
