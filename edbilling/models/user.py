"""User model: account plus a denormalized mirror of the Stripe subscription."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from edbilling.utils import now_utc
from .base import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    # Subscription mirror, written only by the webhook handlers
    subscription_tier: Mapped[str] = mapped_column(String(32), default="free", nullable=False)
    subscription_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    subscription_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subscription_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    # Relationships
    credits: Mapped["UserCredits | None"] = relationship(back_populates="user", uselist=False)
    subscription_events: Mapped[list["SubscriptionEvent"]] = relationship(back_populates="user")
    credit_purchases: Mapped[list["CreditPurchase"]] = relationship(back_populates="user")
