"""
Subscription API routes.

- GET /api/subscription/current: caller's plan and today's usage
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from beatly.core.auth import AuthenticatedUser, get_current_user
from beatly.features.subscriptions.service import get_subscription_summary
from beatly.models.subscription import SubscriptionSummary

logger = logging.getLogger("beatly.api.subscription")

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


class CurrentSubscriptionResponse(BaseModel):
    plan_id: str
    plan_name: str
    daily_limit: int
    daily_usage: int


@router.get("/current", response_model=CurrentSubscriptionResponse)
def current(user: AuthenticatedUser = Depends(get_current_user)):
    """
    Current subscription for display.

    Falls back to free-plan defaults on any store error so the page still renders.
    """
    try:
        summary = get_subscription_summary(user.user_id)
    except Exception:
        logger.exception(f"[subscription] lookup failed for user {user.user_id}, serving free defaults")
        summary = SubscriptionSummary.free_default()
    return summary.model_dump()
