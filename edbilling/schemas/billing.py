"""Billing-related Pydantic schemas."""

from typing import Literal

from pydantic import BaseModel, Field


class SubscriptionCheckoutRequest(BaseModel):
    plan: Literal["standard", "premium", "family"]
    interval: Literal["monthly", "yearly"] = "monthly"
    trial_days: int = Field(0, ge=0, le=90)


class CreditCheckoutRequest(BaseModel):
    package: Literal["small", "medium", "large"]
    quantity: int = Field(1, ge=1, le=100)


class CheckoutResponse(BaseModel):
    url: str


class ConsumeCreditsRequest(BaseModel):
    amount: int = Field(ge=1)
    feature: str | None = None


class CancelSubscriptionRequest(BaseModel):
    at_period_end: bool = True


class ChangePlanRequest(BaseModel):
    plan: Literal["standard", "premium", "family"]
    interval: Literal["monthly", "yearly"] = "monthly"


class CreditBalance(BaseModel):
    remaining_credits: int
    used_credits: int
    last_credit_refresh: str | None = None
    tier: str
    monthly_credits: int
