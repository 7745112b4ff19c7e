import hashlib
import hmac
import json
import os
import time
from unittest.mock import MagicMock

# Settings are read at import time; configure before importing the app
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length")
os.environ.setdefault("FERNET_KEY", "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=")
os.environ.setdefault("STRIPE_TEST_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from edbilling.app import app
from edbilling.db.session import get_db
from edbilling.models import Base, SubscriptionEvent, User, UserCredits
from edbilling.services.auth_service import create_jwt
from edbilling.services.stripe_gateway import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def gateway():
    return MagicMock(spec=StripeGateway)


@pytest_asyncio.fixture
async def client(session_maker, gateway):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    previous_gateway = app.state.stripe_gateway
    app.dependency_overrides[get_db] = override_get_db
    app.state.stripe_gateway = gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.pop(get_db, None)
    app.state.stripe_gateway = previous_gateway


async def create_user(session_maker, **fields) -> User:
    fields.setdefault("email", f"user{time.time_ns()}@example.com")
    async with session_maker() as session:
        user = User(**fields)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


async def create_ledger(session_maker, user_id: int, remaining: int, used: int = 0) -> None:
    async with session_maker() as session:
        session.add(UserCredits(user_id=user_id, remaining_credits=remaining, used_credits=used))
        await session.commit()


async def load_user(session_maker, user_id: int) -> User:
    async with session_maker() as session:
        return await session.get(User, user_id)


async def load_ledger(session_maker, user_id: int) -> UserCredits | None:
    async with session_maker() as session:
        result = await session.execute(select(UserCredits).where(UserCredits.user_id == user_id))
        return result.scalar_one_or_none()


async def load_events(session_maker, user_id: int) -> list[SubscriptionEvent]:
    async with session_maker() as session:
        result = await session.execute(
            select(SubscriptionEvent)
            .where(SubscriptionEvent.user_id == user_id)
            .order_by(SubscriptionEvent.id)
        )
        return list(result.scalars().all())


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt(user_id)}"}


def stripe_subscription(
    sub_id="sub_123",
    customer="cus_123",
    price_id="price_premium_monthly",
    status="active",
    period_end=1_900_000_000,
    cancel_at_period_end=False,
) -> dict:
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "current_period_end": period_end,
        "cancel_at_period_end": cancel_at_period_end,
        "items": {"object": "list", "data": [{"id": "si_1", "price": {"id": price_id}}]},
    }


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs webhook deliveries."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_payload(event_type: str, obj: dict, event_id: str = "evt_1") -> bytes:
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
    ).encode()
