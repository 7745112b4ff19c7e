"""Verify a Stripe webhook and route it to exactly one event handler."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.services.stripe_gateway import StripeGateway
from edbilling.services.subscription_service import (
    handle_credit_purchase,
    handle_invoice_paid,
    handle_invoice_payment_failed,
    handle_subscription_cancelled,
    handle_subscription_created,
    handle_subscription_updated,
)

logger = logging.getLogger(__name__)


@dataclass
class WebhookResult:
    received: bool
    event: Any = None


async def dispatch_event(event: Any, db: AsyncSession, gateway: StripeGateway) -> bool:
    """Run the handler for an already verified event. Returns False for ignored event types."""
    event_type = event["type"]
    data = event["data"]["object"]

    if event_type == "checkout.session.completed":
        mode = data.get("mode")
        if mode == "subscription":
            await handle_subscription_created(data, db, gateway)
        elif mode == "payment":
            await handle_credit_purchase(data, db)
        else:
            logger.debug(f"Ignoring checkout session {data.get('id')} in mode {mode!r}")
            return False
    elif event_type == "customer.subscription.updated":
        await handle_subscription_updated(data, db)
    elif event_type == "customer.subscription.deleted":
        await handle_subscription_cancelled(data, db)
    elif event_type == "invoice.payment_succeeded":
        await handle_invoice_paid(data, db, gateway)
    elif event_type == "invoice.payment_failed":
        await handle_invoice_payment_failed(data, db)
    else:
        logger.debug(f"Ignoring unhandled Stripe event type: {event_type}")
        return False
    return True


async def handle_webhook_event(
    payload: bytes, signature: str, db: AsyncSession, gateway: StripeGateway
) -> WebhookResult:
    """Verify the payload and dispatch it.

    Raises WebhookSignatureError before any handler runs when the signature
    does not verify.
    """
    event = gateway.construct_event(payload, signature)
    logger.info(f"Stripe webhook: {event['type']} ({event.get('id')})")
    await dispatch_event(event, db, gateway)
    return WebhookResult(received=True, event=event)
