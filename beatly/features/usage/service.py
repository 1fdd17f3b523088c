"""
beatly/features/usage/service.py

Usage gate for the daily song quota.

Handles:
- Quota checks with day-rollover reset (check_usage)
- Consumption recording (record_consumption)

Check and consume are deliberately separate calls: playback is gated before
the track is resolved and consumption is recorded only after it plays. Two
tabs of the same user can therefore overshoot the limit by one; that window
is accepted.
"""

import logging
from datetime import datetime
from typing import Optional

from beatly.core.clock import usage_today, utc_now
from beatly.core.config import settings
from beatly.core.database import get_db_session, user_subscriptions, insert_ignore
from beatly.features.plans.service import get_plan
from beatly.features.subscriptions.service import (
    ensure_subscription,
    reset_usage_if_stale,
    increment_usage,
    get_subscription,
)
from beatly.models.usage import UsageDecision

logger = logging.getLogger("beatly.usage")

LIMIT_REACHED_MESSAGE = "Daily limit of {limit} songs reached. Upgrade to listen more!"
SUBSCRIPTION_ERROR_MESSAGE = "Subscription error"
PLAN_ERROR_MESSAGE = "Plan error"


def check_usage(user_id: str, now: Optional[datetime] = None) -> UsageDecision:
    """
    Decide whether the user may play one more song today.

    Creates the subscription row on first use. Fails closed: any store error
    or a dangling plan reference denies the request.
    """
    today = usage_today(now)
    try:
        with get_db_session() as session:
            subscription = ensure_subscription(session, user_id, today, now)
            plan = get_plan(subscription.plan_id, session=session)
            if not plan:
                logger.error(f"[usage] plan {subscription.plan_id} missing for user {user_id}")
                return UsageDecision.deny(PLAN_ERROR_MESSAGE)

            limit = plan.daily_limit
            if subscription.last_reset_date != today:
                if reset_usage_if_stale(session, user_id, today):
                    return UsageDecision(allowed=True, remaining=limit)
                # A concurrent request already rolled the day over
                subscription = get_subscription(user_id, session=session)

            if subscription.daily_usage >= limit:
                return UsageDecision.deny(LIMIT_REACHED_MESSAGE.format(limit=limit))

            return UsageDecision(allowed=True, remaining=limit - subscription.daily_usage)
    except Exception:
        logger.exception(f"[usage] usage check failed for user {user_id}")
        return UsageDecision.deny(SUBSCRIPTION_ERROR_MESSAGE)


def record_consumption(user_id: str, now: Optional[datetime] = None) -> None:
    """
    Count one played song against the user's daily quota.

    Never caps at the limit. A user without a row gets one on the default
    plan with usage 1.
    """
    now = now or utc_now()
    with get_db_session() as session:
        if increment_usage(session, user_id):
            return

        inserted = insert_ignore(
            session,
            user_subscriptions,
            {
                "user_id": user_id,
                "plan_id": settings.DEFAULT_PLAN_ID,
                "daily_usage": 1,
                "last_reset_date": usage_today(now),
                "created_at": now,
                "updated_at": now,
            },
            index_elements=["user_id"],
        )
        if not inserted:
            # Lost the insert race; the row exists now
            increment_usage(session, user_id)
