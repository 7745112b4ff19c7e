"""SQLAlchemy models for the billing service (PostgreSQL)."""

from .base import Base
from .user import User
from .user_credits import UserCredits
from .subscription_event import SubscriptionEvent
from .credit_purchase import CreditPurchase
from .assessment_tool import AssessmentTool
from .assessment import Assessment, AssessmentAttempt

__all__ = [
    "Base",
    "User",
    "UserCredits",
    "SubscriptionEvent",
    "CreditPurchase",
    "AssessmentTool",
    "Assessment",
    "AssessmentAttempt",
]
