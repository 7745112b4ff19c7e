from datetime import timedelta

import pytest

from conftest import auth_headers, create_ledger, create_user, load_ledger, load_user
from edbilling.constants import COOKIE_NAME
from edbilling.errors import BillingError
from edbilling.services.auth_service import create_jwt


@pytest.mark.asyncio
async def test_endpoints_require_a_session(client):
    response = await client.get("/api/billing/credits")
    assert response.status_code == 401

    response = await client.get("/api/billing/credits", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_subscription_checkout_uses_plan_price_and_creates_customer(client, gateway, session_maker):
    user = await create_user(session_maker, email="parent@example.com", name="Pat")
    gateway.create_customer.return_value = "cus_new"
    gateway.create_subscription_checkout.return_value = "https://checkout.stripe.test/c/pay_1"

    response = await client.post(
        "/api/billing/checkout/subscription",
        json={"plan": "premium", "interval": "monthly"},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.test/c/pay_1"}
    gateway.create_customer.assert_awaited_once_with(
        "parent@example.com", name="Pat", metadata={"user_id": str(user.id)}
    )
    kwargs = gateway.create_subscription_checkout.await_args.kwargs
    assert kwargs["customer_id"] == "cus_new"
    assert kwargs["plan_id"] == "price_premium_monthly"
    assert kwargs["trial_days"] == 0
    assert kwargs["metadata"] == {"user_id": str(user.id), "plan": "premium"}
    assert kwargs["success_url"].endswith("/billing?success=true")
    assert (await load_user(session_maker, user.id)).stripe_customer_id == "cus_new"


@pytest.mark.asyncio
async def test_subscription_checkout_reuses_existing_customer(client, gateway, session_maker):
    user = await create_user(session_maker, stripe_customer_id="cus_existing")
    gateway.create_subscription_checkout.return_value = "https://checkout.stripe.test/c/pay_2"

    response = await client.post(
        "/api/billing/checkout/subscription",
        json={"plan": "family", "interval": "yearly", "trial_days": 14},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 200
    gateway.create_customer.assert_not_awaited()
    kwargs = gateway.create_subscription_checkout.await_args.kwargs
    assert kwargs["plan_id"] == "price_family_yearly"
    assert kwargs["trial_days"] == 14


@pytest.mark.asyncio
async def test_subscription_checkout_rejects_unknown_plan(client, gateway, session_maker):
    user = await create_user(session_maker, stripe_customer_id="cus_existing")

    response = await client.post(
        "/api/billing/checkout/subscription",
        json={"plan": "platinum"},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 422
    gateway.create_subscription_checkout.assert_not_awaited()


@pytest.mark.asyncio
async def test_credit_checkout_stamps_credit_amount(client, gateway, session_maker):
    user = await create_user(session_maker, stripe_customer_id="cus_existing")
    gateway.create_credit_purchase_checkout.return_value = "https://checkout.stripe.test/c/pay_3"

    response = await client.post(
        "/api/billing/checkout/credits",
        json={"package": "medium", "quantity": 2},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 200
    kwargs = gateway.create_credit_purchase_checkout.await_args.kwargs
    assert kwargs["price_id"] == "price_medium_credits"
    assert kwargs["quantity"] == 2
    assert kwargs["metadata"] == {"user_id": str(user.id), "package": "medium", "creditAmount": "300"}


@pytest.mark.asyncio
async def test_checkout_provider_failure_returns_502(client, gateway, session_maker):
    user = await create_user(session_maker, stripe_customer_id="cus_existing")
    gateway.create_subscription_checkout.side_effect = BillingError(
        "Failed to create subscription checkout. Please try again later."
    )

    response = await client.post(
        "/api/billing/checkout/subscription",
        json={"plan": "standard"},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to create subscription checkout. Please try again later."


@pytest.mark.asyncio
async def test_portal_requires_customer(client, gateway, session_maker):
    user = await create_user(session_maker)

    response = await client.post("/api/billing/portal", headers=auth_headers(user.id))

    assert response.status_code == 400
    gateway.create_portal_session.assert_not_awaited()


@pytest.mark.asyncio
async def test_portal_returns_session_url(client, gateway, session_maker):
    user = await create_user(session_maker, stripe_customer_id="cus_existing")
    gateway.create_portal_session.return_value = "https://billing.stripe.test/p/session_1"

    response = await client.post("/api/billing/portal", headers=auth_headers(user.id))

    assert response.status_code == 200
    assert response.json()["url"] == "https://billing.stripe.test/p/session_1"


@pytest.mark.asyncio
async def test_credits_summary_without_ledger(client, session_maker):
    user = await create_user(session_maker, subscription_tier="family")

    response = await client.get("/api/billing/credits", headers=auth_headers(user.id))

    assert response.status_code == 200
    assert response.json() == {
        "remaining_credits": 0,
        "used_credits": 0,
        "last_credit_refresh": None,
        "tier": "family",
        "monthly_credits": 100,
    }


@pytest.mark.asyncio
async def test_consume_credits_updates_balance(client, session_maker):
    user = await create_user(session_maker, subscription_tier="premium")
    await create_ledger(session_maker, user.id, remaining=10, used=5)

    response = await client.post(
        "/api/billing/credits/consume",
        json={"amount": 4, "feature": "report"},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 200
    assert response.json()["remaining_credits"] == 6
    assert response.json()["used_credits"] == 9
    ledger = await load_ledger(session_maker, user.id)
    assert (ledger.remaining_credits, ledger.used_credits) == (6, 9)


@pytest.mark.asyncio
async def test_consume_more_than_balance_returns_402(client, session_maker):
    user = await create_user(session_maker)
    await create_ledger(session_maker, user.id, remaining=2)

    response = await client.post(
        "/api/billing/credits/consume", json={"amount": 3}, headers=auth_headers(user.id)
    )

    assert response.status_code == 402
    assert (await load_ledger(session_maker, user.id)).remaining_credits == 2


@pytest.mark.asyncio
async def test_cancel_requires_subscription(client, gateway, session_maker):
    user = await create_user(session_maker)

    response = await client.post(
        "/api/billing/subscription/cancel", json={}, headers=auth_headers(user.id)
    )

    assert response.status_code == 400
    gateway.cancel_subscription.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_defaults_to_period_end(client, gateway, session_maker):
    user = await create_user(session_maker, subscription_id="sub_123", subscription_status="active")

    response = await client.post(
        "/api/billing/subscription/cancel", json={}, headers=auth_headers(user.id)
    )

    assert response.status_code == 200
    gateway.cancel_subscription.assert_awaited_once_with("sub_123", at_period_end=True)
    # Local state waits for the customer.subscription.updated webhook
    assert (await load_user(session_maker, user.id)).subscription_status == "active"


@pytest.mark.asyncio
async def test_change_plan_swaps_price(client, gateway, session_maker):
    user = await create_user(session_maker, subscription_id="sub_123")

    response = await client.post(
        "/api/billing/subscription/change",
        json={"plan": "premium", "interval": "yearly"},
        headers=auth_headers(user.id),
    )

    assert response.status_code == 200
    gateway.update_subscription.assert_awaited_once_with("sub_123", "price_premium_yearly")


@pytest.mark.asyncio
async def test_payment_methods_are_summarised(client, gateway, session_maker):
    user = await create_user(session_maker, stripe_customer_id="cus_existing")
    gateway.get_customer_payment_methods.return_value = [
        {"id": "pm_1", "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}}
    ]

    response = await client.get("/api/billing/payment-methods", headers=auth_headers(user.id))

    assert response.json() == {
        "payment_methods": [
            {"id": "pm_1", "brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}
        ]
    }


@pytest.mark.asyncio
async def test_subscription_status_lists_active_subscriptions(client, gateway, session_maker):
    user = await create_user(
        session_maker, stripe_customer_id="cus_existing", subscription_tier="premium",
        subscription_status="active", subscription_id="sub_123",
    )
    gateway.get_active_subscriptions.return_value = [{"id": "sub_123"}]

    response = await client.get("/api/billing/subscription", headers=auth_headers(user.id))

    body = response.json()
    assert body["tier"] == "premium"
    assert body["status"] == "active"
    assert body["cancel_at_period_end"] is False
    assert body["active_subscription_ids"] == ["sub_123"]
    gateway.get_active_subscriptions.assert_awaited_once_with("cus_existing")


@pytest.mark.asyncio
async def test_session_cookie_and_expired_token(client, session_maker):
    user = await create_user(session_maker)

    client.cookies.set(COOKIE_NAME, create_jwt(user.id))
    response = await client.get("/api/billing/credits")
    assert response.status_code == 200
    client.cookies.clear()

    expired = create_jwt(user.id, expires_in=timedelta(seconds=-5))
    response = await client.get("/api/billing/credits", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_deactivated_user_is_rejected(client, session_maker):
    user = await create_user(session_maker, is_active=False)

    response = await client.get("/api/billing/credits", headers=auth_headers(user.id))

    assert response.status_code == 401
