"""
Notification Sender.

SMS delivery through Twilio's REST API. One sender is built at application
startup and handed to whatever needs it; tests pass a fake. Delivery is
never allowed to fail the operation that triggered it: callers go through
deliver_safely() and fall back to returning the information in the response.
"""

import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from coursegate.config import Settings
from coursegate.core.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

SMS_DISABLED = "SMS_DISABLED"


class NotificationSender(Protocol):
    async def send(self, destination: str, message: str) -> str:
        """Send a message; returns the provider delivery id or SMS_DISABLED."""
        ...

    async def close(self) -> None: ...


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    delivery_id: str | None = None
    error: str | None = None


def format_phone_number(phone_number: str) -> str:
    """
    Normalize a phone number to E.164, assuming India for bare numbers.

    "98765 43210" -> "+919876543210", "919876543210" -> "+919876543210".

    Raises:
        ValidationError: If the number has too few digits
    """
    digits = re.sub(r"\D", "", phone_number or "")
    if len(digits) < 10:
        raise ValidationError("Invalid phone number")
    if len(digits) == 10:
        return f"+91{digits}"
    return f"+{digits}"


class DisabledNotificationSender:
    """Sender used when no SMS provider is configured."""

    async def send(self, destination: str, message: str) -> str:
        logger.debug(f"SMS disabled, not sending to {destination}")
        return SMS_DISABLED

    async def close(self) -> None:
        return None


class TwilioNotificationSender:
    """Twilio Messages API client."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=(account_sid, auth_token),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, destination: str, message: str) -> str:
        """
        Send one SMS.

        Returns:
            Twilio message SID

        Raises:
            GatewayError: On timeout, transport failure or error response
        """
        path = f"/Accounts/{self.account_sid}/Messages.json"
        try:
            response = await self._client.post(
                path,
                data={"To": destination, "From": self.from_number, "Body": message},
            )
        except httpx.TimeoutException as e:
            raise GatewayError("SMS provider timed out", str(e)) from e
        except httpx.RequestError as e:
            raise GatewayError("SMS provider unavailable", str(e)) from e

        if response.status_code >= 400:
            raise GatewayError(
                "SMS provider rejected the message",
                f"HTTP {response.status_code}: {response.text}",
            )

        sid = response.json().get("sid")
        logger.info(f"SMS sent to {destination}", extra={"delivery_id": sid})
        return str(sid)


def build_notification_sender(settings: Settings) -> NotificationSender:
    """Build the sender for the configured provider, or a disabled one."""
    if not settings.sms_configured:
        logger.info("SMS provider not configured, notifications disabled")
        return DisabledNotificationSender()
    return TwilioNotificationSender(
        account_sid=settings.twilio_account_sid or "",
        auth_token=settings.twilio_auth_token or "",
        from_number=settings.twilio_from_number or "",
        base_url=settings.twilio_base_url,
        timeout=settings.sms_timeout_seconds,
    )


async def deliver_safely(sender: NotificationSender, destination: str | None, message: str) -> DeliveryResult:
    """
    Send a message without ever raising.

    Returns:
        DeliveryResult; delivered is False when there is no destination,
        SMS is disabled, or the provider failed
    """
    if not destination:
        return DeliveryResult(delivered=False, error="No destination")
    try:
        delivery_id = await sender.send(format_phone_number(destination), message)
    except (GatewayError, ValidationError) as e:
        detail = getattr(e, "internal_detail", None) or e.message
        logger.warning(
            f"Notification to {destination} not delivered: {detail}",
            extra={"destination": destination},
        )
        return DeliveryResult(delivered=False, error=e.message)

    if delivery_id == SMS_DISABLED:
        return DeliveryResult(delivered=False, delivery_id=SMS_DISABLED, error="SMS disabled")
    return DeliveryResult(delivered=True, delivery_id=delivery_id)
