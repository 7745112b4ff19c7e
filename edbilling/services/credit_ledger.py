"""Credit ledger: grant, consume and report per-user credits.

Balances are adjusted with single UPDATE statements so concurrent webhooks
for the same user cannot lose increments. None of these helpers commit; the
caller owns the transaction.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from edbilling.errors import InsufficientCreditsError
from edbilling.models.user import User
from edbilling.models.user_credits import UserCredits
from edbilling.plans import monthly_credits_for
from edbilling.utils import now_utc

logger = logging.getLogger(__name__)


async def get_ledger(db: AsyncSession, user_id: int) -> UserCredits | None:
    result = await db.execute(
        select(UserCredits)
        .where(UserCredits.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def grant_credits(
    db: AsyncSession, user_id: int, amount: int, *, refresh: bool = True
) -> None:
    """Add credits to a user's ledger, creating the row if it does not exist.

    Grants accumulate: unused credits roll over. ``refresh`` stamps
    ``last_credit_refresh`` (tier allowances do, one-off purchases don't).
    """
    if amount < 0:
        raise ValueError("Credit grant must not be negative")

    values: dict[str, Any] = {"remaining_credits": UserCredits.remaining_credits + amount}
    if refresh:
        values["last_credit_refresh"] = now_utc()

    result = await db.execute(
        update(UserCredits).where(UserCredits.user_id == user_id).values(**values)
    )
    if result.rowcount == 0:
        db.add(
            UserCredits(
                user_id=user_id,
                remaining_credits=amount,
                used_credits=0,
                last_credit_refresh=now_utc(),
            )
        )
        await db.flush()
        logger.info(f"Created credit ledger for user {user_id} with {amount} credits")
    else:
        logger.info(f"Granted {amount} credits to user {user_id}")


async def consume_credits(db: AsyncSession, user_id: int, amount: int) -> UserCredits:
    """Spend credits. Raises InsufficientCreditsError rather than going negative."""
    if amount <= 0:
        raise ValueError("Credit amount must be positive")

    result = await db.execute(
        update(UserCredits)
        .where(UserCredits.user_id == user_id, UserCredits.remaining_credits >= amount)
        .values(
            remaining_credits=UserCredits.remaining_credits - amount,
            used_credits=UserCredits.used_credits + amount,
        )
    )
    ledger = await get_ledger(db, user_id)
    if result.rowcount == 0:
        available = ledger.remaining_credits if ledger else 0
        raise InsufficientCreditsError(required=amount, available=available)
    return ledger


async def get_credit_balance(db: AsyncSession, user: User) -> dict[str, Any]:
    """Summary of the user's credits and their tier allowance."""
    ledger = await get_ledger(db, user.id)
    return {
        "remaining_credits": ledger.remaining_credits if ledger else 0,
        "used_credits": ledger.used_credits if ledger else 0,
        "last_credit_refresh": (
            ledger.last_credit_refresh.isoformat() if ledger and ledger.last_credit_refresh else None
        ),
        "tier": user.subscription_tier,
        "monthly_credits": monthly_credits_for(user.subscription_tier),
    }
