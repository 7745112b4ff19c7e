"""Billing routes: checkout, customer portal, credits and plan changes.

Subscription and ledger state only changes through Stripe webhooks; these
endpoints start flows at Stripe and read or spend credits.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.config import get_settings
from edbilling.constants import CREDIT_AMOUNT_METADATA_KEY, CREDIT_PACKAGE_SIZES
from edbilling.db.session import get_db
from edbilling.dependencies import get_stripe_gateway
from edbilling.errors import BillingError, InsufficientCreditsError
from edbilling.models.user import User
from edbilling.plans import credit_packages, subscription_plans
from edbilling.schemas.billing import (
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CheckoutResponse,
    ConsumeCreditsRequest,
    CreditBalance,
    CreditCheckoutRequest,
    SubscriptionCheckoutRequest,
)
from edbilling.services.auth_service import get_current_user
from edbilling.services.credit_ledger import consume_credits, get_credit_balance
from edbilling.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/billing", tags=["billing"])


async def _ensure_customer(user: User, db: AsyncSession, gateway: StripeGateway) -> str:
    """Return the user's Stripe customer id, creating the customer on first checkout."""
    if not user.stripe_customer_id:
        user.stripe_customer_id = await gateway.create_customer(
            user.email, name=user.name, metadata={"user_id": str(user.id)}
        )
        await db.commit()
    return user.stripe_customer_id


def _require_subscription(user: User) -> str:
    if not user.subscription_id:
        raise HTTPException(status_code=400, detail="No subscription on this account")
    return user.subscription_id


@router.post("/checkout/subscription", response_model=CheckoutResponse)
async def checkout_subscription(
    body: SubscriptionCheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    settings = get_settings()
    try:
        customer_id = await _ensure_customer(user, db, gateway)
        url = await gateway.create_subscription_checkout(
            customer_id=customer_id,
            plan_id=subscription_plans()[body.plan][body.interval],
            success_url=f"{settings.app_url}/billing?success=true",
            cancel_url=f"{settings.app_url}/billing?canceled=true",
            trial_days=body.trial_days,
            metadata={"user_id": str(user.id), "plan": body.plan},
        )
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CheckoutResponse(url=url)


@router.post("/checkout/credits", response_model=CheckoutResponse)
async def checkout_credits(
    body: CreditCheckoutRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    settings = get_settings()
    credit_amount = CREDIT_PACKAGE_SIZES[body.package] * body.quantity
    try:
        customer_id = await _ensure_customer(user, db, gateway)
        url = await gateway.create_credit_purchase_checkout(
            customer_id=customer_id,
            price_id=credit_packages()[body.package],
            success_url=f"{settings.app_url}/billing/credits?success=true",
            cancel_url=f"{settings.app_url}/billing/credits?canceled=true",
            quantity=body.quantity,
            metadata={
                "user_id": str(user.id),
                "package": body.package,
                CREDIT_AMOUNT_METADATA_KEY: str(credit_amount),
            },
        )
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CheckoutResponse(url=url)


@router.post("/portal", response_model=CheckoutResponse)
async def billing_portal(
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    if not user.stripe_customer_id:
        raise HTTPException(status_code=400, detail="User has no Stripe customer ID")
    try:
        url = await gateway.create_portal_session(
            user.stripe_customer_id, return_url=f"{get_settings().app_url}/billing"
        )
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CheckoutResponse(url=url)


@router.get("/credits", response_model=CreditBalance)
async def credits_summary(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_credit_balance(db, user)


@router.post("/credits/consume", response_model=CreditBalance)
async def spend_credits(
    body: ConsumeCreditsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        await consume_credits(db, user.id, body.amount)
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=402, detail=str(e))
    await db.commit()
    logger.info(f"User {user.id} spent {body.amount} credits on {body.feature or 'unspecified feature'}")
    return await get_credit_balance(db, user)


@router.post("/subscription/cancel")
async def cancel_subscription(
    body: CancelSubscriptionRequest,
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    subscription_id = _require_subscription(user)
    try:
        await gateway.cancel_subscription(subscription_id, at_period_end=body.at_period_end)
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "ok"}


@router.post("/subscription/change")
async def change_plan(
    body: ChangePlanRequest,
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    subscription_id = _require_subscription(user)
    try:
        await gateway.update_subscription(subscription_id, subscription_plans()[body.plan][body.interval])
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "ok"}


@router.get("/payment-methods")
async def payment_methods(
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    if not user.stripe_customer_id:
        return {"payment_methods": []}
    try:
        methods = await gateway.get_customer_payment_methods(user.stripe_customer_id)
    except BillingError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "payment_methods": [
            {
                "id": m["id"],
                "brand": m["card"]["brand"],
                "last4": m["card"]["last4"],
                "exp_month": m["card"]["exp_month"],
                "exp_year": m["card"]["exp_year"],
            }
            for m in methods
        ]
    }


@router.get("/subscription")
async def subscription_status(
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Local subscription mirror plus the customer's active subscriptions at Stripe."""
    active = []
    if user.stripe_customer_id:
        try:
            active = await gateway.get_active_subscriptions(user.stripe_customer_id)
        except BillingError as e:
            raise HTTPException(status_code=502, detail=str(e))
    return {
        "tier": user.subscription_tier,
        "status": user.subscription_status,
        "subscription_id": user.subscription_id,
        "period_end": user.subscription_period_end.isoformat() if user.subscription_period_end else None,
        "cancel_at_period_end": user.cancel_at_period_end,
        "active_subscription_ids": [s["id"] for s in active],
    }
