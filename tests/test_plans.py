import logging

import pytest

from edbilling.plans import (
    TIER_MONTHLY_CREDITS,
    Tier,
    credit_packages,
    monthly_credits_for,
    resolve_tier,
    subscription_plans,
)


@pytest.mark.parametrize("price_id", ["price_premium_monthly", "price_premium_yearly"])
def test_premium_prices_resolve_to_premium(price_id):
    assert resolve_tier(price_id) is Tier.PREMIUM


@pytest.mark.parametrize("price_id", ["price_family_monthly", "price_family_yearly"])
def test_family_prices_resolve_to_family(price_id):
    assert resolve_tier(price_id) is Tier.FAMILY


@pytest.mark.parametrize("price_id", ["price_standard_monthly", "price_standard_yearly"])
def test_standard_prices_resolve_to_standard(price_id):
    assert resolve_tier(price_id) is Tier.STANDARD


@pytest.mark.parametrize("price_id", ["price_brand_new_premium", "", None])
def test_unknown_prices_default_to_standard_with_warning(price_id, caplog):
    with caplog.at_level(logging.WARNING, logger="edbilling.plans"):
        assert resolve_tier(price_id) is Tier.STANDARD
    assert "defaulting to standard" in caplog.text


def test_known_standard_price_does_not_warn(caplog):
    with caplog.at_level(logging.WARNING, logger="edbilling.plans"):
        resolve_tier("price_standard_monthly")
    assert caplog.text == ""


def test_monthly_credit_allowance_table():
    assert TIER_MONTHLY_CREDITS == {
        "free": 0,
        "standard": 20,
        "premium": 50,
        "family": 100,
        "classroom": 300,
        "school": 1000,
        "district": 5000,
    }


def test_monthly_credits_for_accepts_enum_string_and_unknown():
    assert monthly_credits_for(Tier.FAMILY) == 100
    assert monthly_credits_for("district") == 5000
    assert monthly_credits_for("enterprise") == 0
    assert monthly_credits_for(None) == 0


def test_price_tables_fall_back_to_hardcoded_ids():
    assert subscription_plans()["premium"]["yearly"] == "price_premium_yearly"
    assert credit_packages() == {
        "small": "price_small_credits",
        "medium": "price_medium_credits",
        "large": "price_large_credits",
    }
