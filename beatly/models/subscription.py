"""
beatly/models/subscription.py

UserSubscription links a user to a plan and carries the daily usage counter.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UserSubscription(BaseModel):
    """
    UserSubscription represents a user's plan assignment and quota counter.

    Constraint: exactly one row per user. A user without a row is implicitly
    on the free plan with zero usage.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan_id: str
    daily_usage: int = 0
    last_reset_date: Optional[date] = None
    plan_expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriptionSummary(BaseModel):
    """Read model returned by /api/subscription/current and /api/profile."""
    model_config = ConfigDict(frozen=True)

    plan_id: str
    plan_name: str
    daily_limit: int
    daily_usage: int

    @classmethod
    def free_default(cls) -> "SubscriptionSummary":
        return cls(plan_id="free", plan_name="Free", daily_limit=25, daily_usage=0)
