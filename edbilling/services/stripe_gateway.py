"""Stripe gateway: checkout, customer and subscription calls, webhook verification.

Every Stripe SDK call is blocking and runs through ``asyncio.to_thread``.
Provider failures are logged and re-raised as ``BillingError`` with a fixed
message the UI can show as-is.
"""

import asyncio
import json
import logging
from typing import Any

import stripe

from edbilling.config import Settings
from edbilling.constants import STRIPE_API_VERSION, STRIPE_APP_INFO
from edbilling.errors import BillingError, WebhookSignatureError

logger = logging.getLogger(__name__)


class StripeGateway:
    """Thin wrapper around the Stripe SDK bound to one API key and webhook secret."""

    def __init__(self, api_key: str, webhook_secret: str):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        stripe.set_app_info(STRIPE_APP_INFO["name"], version=STRIPE_APP_INFO["version"])

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(settings.stripe_api_key, settings.stripe_webhook_secret)

    async def _call(self, fn, failure_message: str, *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(
                fn, *args, api_key=self._api_key, stripe_version=STRIPE_API_VERSION, **kwargs
            )
        except stripe.StripeError as e:
            logger.error(f"{failure_message} Stripe error: {e}")
            raise BillingError(failure_message) from e

    # --- Customers ---

    async def create_customer(
        self, email: str, name: str | None = None, metadata: dict[str, str] | None = None
    ) -> str:
        customer = await self._call(
            stripe.Customer.create,
            "Failed to create customer account. Please try again later.",
            email=email,
            name=name,
            metadata=metadata or {},
        )
        return customer.id

    # --- Checkout ---

    async def create_subscription_checkout(
        self,
        customer_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
        trial_days: int = 0,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Create a subscription-mode Checkout session and return its URL."""
        params: dict[str, Any] = {
            "customer": customer_id,
            "payment_method_types": ["card"],
            "line_items": [{"price": plan_id, "quantity": 1}],
            "mode": "subscription",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }
        if trial_days > 0:
            params["subscription_data"] = {"trial_period_days": trial_days}

        session = await self._call(
            stripe.checkout.Session.create,
            "Failed to create subscription checkout. Please try again later.",
            **params,
        )
        return session.url or ""

    async def create_credit_purchase_checkout(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        quantity: int = 1,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Create a payment-mode Checkout session for a credit package and return its URL."""
        session = await self._call(
            stripe.checkout.Session.create,
            "Failed to create credit purchase checkout. Please try again later.",
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": quantity}],
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata or {},
        )
        return session.url or ""

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._call(
            stripe.billing_portal.Session.create,
            "Failed to create customer portal session. Please try again later.",
            customer=customer_id,
            return_url=return_url,
        )
        return session.url

    # --- Subscriptions ---

    async def retrieve_subscription(self, subscription_id: str):
        return await self._call(
            stripe.Subscription.retrieve,
            "Failed to fetch subscription information. Please try again later.",
            subscription_id,
        )

    async def get_active_subscriptions(self, customer_id: str) -> list:
        subscriptions = await self._call(
            stripe.Subscription.list,
            "Failed to fetch subscription information. Please try again later.",
            customer=customer_id,
            status="active",
            expand=["data.default_payment_method"],
        )
        return list(subscriptions.data)

    async def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> None:
        message = "Failed to cancel subscription. Please try again later."
        if at_period_end:
            await self._call(stripe.Subscription.modify, message, subscription_id, cancel_at_period_end=True)
        else:
            await self._call(stripe.Subscription.cancel, message, subscription_id)

    async def update_subscription(self, subscription_id: str, new_price_id: str) -> None:
        """Swap the price on the subscription's first item."""
        message = "Failed to update subscription. Please try again later."
        subscription = await self._call(stripe.Subscription.retrieve, message, subscription_id)
        item_id = subscription["items"]["data"][0]["id"]
        await self._call(
            stripe.Subscription.modify,
            message,
            subscription_id,
            items=[{"id": item_id, "price": new_price_id}],
        )

    async def get_customer_payment_methods(self, customer_id: str) -> list:
        methods = await self._call(
            stripe.PaymentMethod.list,
            "Failed to fetch payment methods. Please try again later.",
            customer=customer_id,
            type="card",
        )
        return list(methods.data)

    # --- Webhooks ---

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify the signature header and decode the event as plain JSON. Fails closed."""
        if not self._webhook_secret:
            logger.error("Stripe webhook received but no webhook secret is configured")
            raise WebhookSignatureError("Webhook secret not configured")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
            return json.loads(body)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe webhook signature: {e}")
            raise WebhookSignatureError("Invalid signature") from e
        except ValueError as e:
            logger.warning(f"Invalid Stripe webhook payload: {e}")
            raise WebhookSignatureError("Invalid payload") from e
