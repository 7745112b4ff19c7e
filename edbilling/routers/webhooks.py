"""Webhook routes: Stripe."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.db.session import get_db
from edbilling.dependencies import get_stripe_gateway
from edbilling.errors import BillingError, WebhookSignatureError
from edbilling.services.stripe_gateway import StripeGateway
from edbilling.services.webhook_dispatcher import handle_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    payload = await request.body()

    try:
        result = await handle_webhook_event(payload, stripe_signature, db, gateway)
    except WebhookSignatureError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BillingError as e:
        # Non-2xx makes Stripe redeliver the event later
        raise HTTPException(status_code=502, detail=str(e))

    return {
        "received": result.received,
        "event": result.event,
        "event_id": result.event.get("id"),
        "event_type": result.event["type"],
    }
