"""
Outbound client dependencies.

The payment gateway and notification sender are built once in the app
lifespan and stored on app.state; routes receive them through these
dependencies so tests can override them.
"""

from typing import Annotated

from fastapi import Depends, Request

from coursegate.services.notifications import DisabledNotificationSender, NotificationSender
from coursegate.services.payment_gateway import PaymentGatewayClient


def get_payment_gateway(request: Request) -> PaymentGatewayClient | None:
    return getattr(request.app.state, "gateway", None)


def get_notifier(request: Request) -> NotificationSender:
    notifier = getattr(request.app.state, "notifier", None)
    return notifier or DisabledNotificationSender()


PaymentGateway = Annotated[PaymentGatewayClient | None, Depends(get_payment_gateway)]
Notifier = Annotated[NotificationSender, Depends(get_notifier)]
