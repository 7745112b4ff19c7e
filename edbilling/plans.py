"""Subscription tiers, Stripe price ids and the monthly credit allowance per tier."""

import enum
import logging

from edbilling.config import get_settings

logger = logging.getLogger(__name__)


class Tier(str, enum.Enum):
    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"
    FAMILY = "family"
    CLASSROOM = "classroom"
    SCHOOL = "school"
    DISTRICT = "district"


TIER_MONTHLY_CREDITS: dict[str, int] = {
    Tier.FREE.value: 0,
    Tier.STANDARD.value: 20,
    Tier.PREMIUM.value: 50,
    Tier.FAMILY.value: 100,
    Tier.CLASSROOM.value: 300,
    Tier.SCHOOL.value: 1000,
    Tier.DISTRICT.value: 5000,
}


def subscription_plans() -> dict[str, dict[str, str]]:
    """Price ids of the purchasable plans, keyed by tier then billing interval."""
    settings = get_settings()
    return {
        Tier.STANDARD.value: {
            "monthly": settings.stripe_standard_monthly_plan_id,
            "yearly": settings.stripe_standard_yearly_plan_id,
        },
        Tier.PREMIUM.value: {
            "monthly": settings.stripe_premium_monthly_plan_id,
            "yearly": settings.stripe_premium_yearly_plan_id,
        },
        Tier.FAMILY.value: {
            "monthly": settings.stripe_family_monthly_plan_id,
            "yearly": settings.stripe_family_yearly_plan_id,
        },
    }


def credit_packages() -> dict[str, str]:
    """Price ids of the one-off credit packages."""
    settings = get_settings()
    return {
        "small": settings.stripe_small_credit_package_id,
        "medium": settings.stripe_medium_credit_package_id,
        "large": settings.stripe_large_credit_package_id,
    }


def resolve_tier(price_id: str | None) -> Tier:
    """Map a Stripe price id to a subscription tier.

    Premium and family prices are matched explicitly; everything else is
    treated as standard.
    """
    plans = subscription_plans()
    if price_id in plans[Tier.PREMIUM.value].values():
        return Tier.PREMIUM
    if price_id in plans[Tier.FAMILY.value].values():
        return Tier.FAMILY
    if price_id not in plans[Tier.STANDARD.value].values():
        logger.warning(f"Unrecognised Stripe price id {price_id!r}, defaulting to standard tier")
    return Tier.STANDARD


def monthly_credits_for(tier: str | Tier | None) -> int:
    """Monthly credit allowance for a tier (0 for unknown tiers)."""
    if isinstance(tier, Tier):
        tier = tier.value
    return TIER_MONTHLY_CREDITS.get(tier or "", 0)
