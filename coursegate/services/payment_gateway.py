"""
Payment Gateway Client.

Async client for the Razorpay orders API. Only order creation and payment
status lookup are used; signature verification happens locally in the
payment ledger.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from coursegate.config import Settings
from coursegate.core.errors import GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    """Order handle returned by the gateway, passed on to the client checkout."""

    order_id: str
    amount_minor_units: int
    currency: str
    receipt: str
    key_id: str | None = None
    notes: dict[str, str] = field(default_factory=dict)


class PaymentGatewayClient(Protocol):
    async def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder: ...

    async def fetch_payment(self, gateway_payment_id: str) -> str: ...

    async def close(self) -> None: ...


class RazorpayClient:
    """
    Razorpay REST client.

    Every call is bounded by the configured timeout. Transport failures,
    timeouts and error responses all surface as GatewayError with a generic
    message; the provider detail is logged only.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.key_id = key_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=(key_id, key_secret),
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RazorpayClient":
        if not settings.payment_gateway_configured:
            raise GatewayError(
                "Payment gateway is not configured",
                "razorpay_key_id/razorpay_key_secret missing",
            )
        return cls(
            key_id=settings.razorpay_key_id or "",
            key_secret=settings.razorpay_key_secret or "",
            base_url=settings.razorpay_base_url,
            timeout=settings.payment_gateway_timeout_seconds,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.error(f"Payment gateway timed out on {method} {path}", exc_info=True)
            raise GatewayError("Payment gateway timed out, please retry", str(e)) from e
        except httpx.RequestError as e:
            logger.error(f"Payment gateway request failed on {method} {path}: {e}", exc_info=True)
            raise GatewayError("Payment gateway unavailable, please retry", str(e)) from e

        if response.status_code >= 400:
            detail = response.text
            logger.error(
                f"Payment gateway returned {response.status_code} on {method} {path}",
                extra={"status_code": response.status_code, "body": detail[:500]},
            )
            raise GatewayError(
                "Payment gateway rejected the request",
                f"HTTP {response.status_code}: {detail}",
            )

        return response.json()

    async def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        """
        Create a gateway order.

        Args:
            amount_minor_units: Amount in paise/cents
            currency: ISO currency code
            receipt: Merchant reference, at most 40 characters
            notes: Free-form key/value pairs stored with the order

        Returns:
            GatewayOrder for the client checkout

        Raises:
            GatewayError: On timeout, transport failure or error response
        """
        if amount_minor_units <= 0:
            raise GatewayError("Invalid order amount", f"amount_minor_units={amount_minor_units}")

        data = await self._request(
            "POST",
            "/orders",
            json={
                "amount": amount_minor_units,
                "currency": currency,
                "receipt": receipt[:40],
                "notes": notes or {},
            },
        )
        try:
            order_id = data["id"]
        except (KeyError, TypeError) as e:
            raise GatewayError("Payment gateway returned an invalid order", repr(data)) from e

        return GatewayOrder(
            order_id=order_id,
            amount_minor_units=int(data.get("amount", amount_minor_units)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            key_id=self.key_id,
            notes=notes or {},
        )

    async def fetch_payment(self, gateway_payment_id: str) -> str:
        """
        Look up the gateway status of a payment ("created", "captured", "failed", ...).

        Raises:
            GatewayError: On timeout, transport failure or error response
        """
        data = await self._request("GET", f"/payments/{gateway_payment_id}")
        return str(data.get("status", "unknown"))
