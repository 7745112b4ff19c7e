"""Stripe webhook event handlers: subscription mirror, credit grants, audit log.

Each handler resolves the user by Stripe customer id, mutates the user and/or
the credit ledger, appends an audit row and commits once. A customer id with
no matching user is logged and ignored so Stripe does not keep retrying.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.constants import CREDIT_AMOUNT_METADATA_KEY
from edbilling.models.credit_purchase import CreditPurchase
from edbilling.models.subscription_event import SubscriptionEvent
from edbilling.models.user import User
from edbilling.plans import monthly_credits_for, resolve_tier
from edbilling.services.credit_ledger import grant_credits
from edbilling.services.stripe_gateway import StripeGateway
from edbilling.utils import from_timestamp

logger = logging.getLogger(__name__)

SUBSCRIPTION_CREATED = "subscription_created"
SUBSCRIPTION_UPDATED = "subscription_updated"
SUBSCRIPTION_CANCELLED = "subscription_cancelled"
INVOICE_PAID = "invoice_paid"
INVOICE_PAYMENT_FAILED = "invoice_payment_failed"


def _stripe_id(value: Any) -> str | None:
    """Stripe references are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    try:
        return value["id"]
    except (KeyError, TypeError):
        return None


def _get_period_end(stripe_sub: Mapping) -> datetime | None:
    """Extract current_period_end, handling Stripe API version differences.

    Newer API versions (2024-06-20+) moved it to items.data[0].
    """
    try:
        return from_timestamp(stripe_sub["current_period_end"])
    except (KeyError, TypeError):
        pass
    try:
        return from_timestamp(stripe_sub["items"]["data"][0]["current_period_end"])
    except (KeyError, TypeError, IndexError):
        pass
    return None


def _get_price_id(stripe_sub: Mapping) -> str | None:
    try:
        return stripe_sub["items"]["data"][0]["price"]["id"]
    except (KeyError, TypeError, IndexError):
        return None


def _invoice_subscription_id(invoice: Mapping) -> str | None:
    """Read the subscription id from an invoice (top-level or, on newer API versions, parent details)."""
    subscription = _stripe_id(invoice.get("subscription"))
    if subscription:
        return subscription
    try:
        return _stripe_id(invoice["parent"]["subscription_details"]["subscription"])
    except (KeyError, TypeError):
        return None


async def _find_user_by_customer(db: AsyncSession, customer_id: str | None) -> User | None:
    if not customer_id:
        # Would match every user without a customer id
        logger.error("Stripe object has no customer ID")
        return None
    result = await db.execute(select(User).where(User.stripe_customer_id == customer_id))
    user = result.scalar_one_or_none()
    if not user:
        logger.error(f"User not found for Stripe customer ID: {customer_id}")
    return user


def _log_event(
    db: AsyncSession,
    user: User,
    event_type: str,
    tier: str | None,
    subscription_id: str | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    db.add(
        SubscriptionEvent(
            user_id=user.id,
            event_type=event_type,
            tier=tier,
            stripe_subscription_id=subscription_id,
            event_metadata=metadata,
        )
    )


async def handle_subscription_created(
    session_data: Mapping, db: AsyncSession, gateway: StripeGateway
) -> None:
    """checkout.session.completed in subscription mode: activate tier and grant its credits."""
    customer_id = _stripe_id(session_data.get("customer"))
    subscription_id = _stripe_id(session_data.get("subscription"))
    if not customer_id or not subscription_id:
        logger.error(f"Missing customer or subscription ID in session: {session_data.get('id')}")
        return

    user = await _find_user_by_customer(db, customer_id)
    if not user:
        return

    stripe_sub = await gateway.retrieve_subscription(subscription_id)
    price_id = _get_price_id(stripe_sub)
    tier = resolve_tier(price_id)

    user.subscription_tier = tier.value
    user.subscription_status = "active"
    user.subscription_id = subscription_id
    user.subscription_period_end = _get_period_end(stripe_sub)

    await grant_credits(db, user.id, monthly_credits_for(tier))

    _log_event(
        db, user, SUBSCRIPTION_CREATED, tier.value, subscription_id,
        {"price_id": price_id, "customer_id": customer_id},
    )
    await db.commit()
    logger.info(f"Subscription {subscription_id} created for user {user.id} ({tier.value})")


async def handle_subscription_updated(sub_data: Mapping, db: AsyncSession) -> None:
    """customer.subscription.updated: mirror tier, status and period; credits are untouched."""
    customer_id = _stripe_id(sub_data.get("customer"))
    subscription_id = sub_data["id"]

    user = await _find_user_by_customer(db, customer_id)
    if not user:
        return

    price_id = _get_price_id(sub_data)
    tier = resolve_tier(price_id)
    cancel_at_period_end = bool(sub_data.get("cancel_at_period_end", False))

    user.subscription_tier = tier.value
    user.subscription_status = sub_data["status"]
    period_end = _get_period_end(sub_data)
    if period_end:
        user.subscription_period_end = period_end
    user.cancel_at_period_end = cancel_at_period_end

    _log_event(
        db, user, SUBSCRIPTION_UPDATED, tier.value, subscription_id,
        {"price_id": price_id, "status": sub_data["status"], "cancel_at_period_end": cancel_at_period_end},
    )
    await db.commit()


async def handle_subscription_cancelled(sub_data: Mapping, db: AsyncSession) -> None:
    """customer.subscription.deleted: mark canceled; existing credits stay spendable."""
    customer_id = _stripe_id(sub_data.get("customer"))
    subscription_id = sub_data["id"]

    user = await _find_user_by_customer(db, customer_id)
    if not user:
        return

    user.subscription_status = "canceled"
    user.cancel_at_period_end = False

    _log_event(db, user, SUBSCRIPTION_CANCELLED, user.subscription_tier, subscription_id)
    await db.commit()
    logger.info(f"Subscription {subscription_id} cancelled for user {user.id}")


async def handle_invoice_paid(
    invoice_data: Mapping, db: AsyncSession, gateway: StripeGateway
) -> None:
    """invoice.payment_succeeded (renewal): reactivate, refresh period, add the tier allowance."""
    customer_id = _stripe_id(invoice_data.get("customer"))
    subscription_id = _invoice_subscription_id(invoice_data)
    if not customer_id or not subscription_id:
        return

    user = await _find_user_by_customer(db, customer_id)
    if not user:
        return

    stripe_sub = await gateway.retrieve_subscription(subscription_id)

    user.subscription_status = "active"
    period_end = _get_period_end(stripe_sub)
    if period_end:
        user.subscription_period_end = period_end

    tier = user.subscription_tier
    await grant_credits(db, user.id, monthly_credits_for(tier))

    _log_event(
        db, user, INVOICE_PAID, tier, subscription_id,
        {
            "invoice_id": invoice_data.get("id"),
            "amount": invoice_data.get("amount_paid"),
            "currency": invoice_data.get("currency"),
        },
    )
    await db.commit()


async def handle_invoice_payment_failed(invoice_data: Mapping, db: AsyncSession) -> None:
    """invoice.payment_failed: flag past_due; no tier or credit change."""
    customer_id = _stripe_id(invoice_data.get("customer"))
    subscription_id = _invoice_subscription_id(invoice_data)
    if not customer_id or not subscription_id:
        return

    user = await _find_user_by_customer(db, customer_id)
    if not user:
        return

    user.subscription_status = "past_due"

    _log_event(
        db, user, INVOICE_PAYMENT_FAILED, user.subscription_tier, subscription_id,
        {
            "invoice_id": invoice_data.get("id"),
            "amount": invoice_data.get("amount_due"),
            "currency": invoice_data.get("currency"),
            "attempt_count": invoice_data.get("attempt_count"),
        },
    )
    await db.commit()
    logger.warning(f"Invoice payment failed for user {user.id} (subscription {subscription_id})")


def _parse_credit_amount(metadata: Mapping | None) -> int | None:
    raw = (metadata or {}).get(CREDIT_AMOUNT_METADATA_KEY)
    if raw is None:
        return None
    try:
        amount = int(str(raw).strip())
    except ValueError:
        return None
    return amount if amount > 0 else None


async def handle_credit_purchase(session_data: Mapping, db: AsyncSession) -> None:
    """checkout.session.completed in payment mode: add purchased credits."""
    customer_id = _stripe_id(session_data.get("customer"))
    metadata = dict(session_data.get("metadata") or {})
    if not customer_id or CREDIT_AMOUNT_METADATA_KEY not in metadata:
        logger.error(f"Missing customer or credit amount in session: {session_data.get('id')}")
        return

    credit_amount = _parse_credit_amount(metadata)
    if credit_amount is None:
        logger.error(
            f"Invalid credit amount in session metadata: {metadata.get(CREDIT_AMOUNT_METADATA_KEY)!r}"
        )
        return

    user = await _find_user_by_customer(db, customer_id)
    if not user:
        return

    await grant_credits(db, user.id, credit_amount, refresh=False)

    db.add(
        CreditPurchase(
            user_id=user.id,
            amount=credit_amount,
            stripe_session_id=session_data.get("id"),
            purchase_metadata=metadata,
        )
    )
    await db.commit()
    logger.info(f"User {user.id} purchased {credit_amount} credits")
