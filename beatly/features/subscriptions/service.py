"""
beatly/features/subscriptions/service.py

Subscription store accessor.

Every mutation here is a single atomic statement against the store
(on-conflict insert, conditional update, in-place increment) so concurrent
requests for the same user never duplicate rows or lose updates. Functions
that take a `session` participate in the caller's database transaction.
"""

import logging
from datetime import date, datetime
from typing import Optional, Dict
from sqlalchemy import select, update, and_, or_
from sqlalchemy.orm import Session

from beatly.core.clock import utc_now, usage_today, as_utc
from beatly.core.config import settings
from beatly.core.database import get_db_session, user_subscriptions, plans, insert_ignore
from beatly.core.logging import log_event
from beatly.features.plans.service import compute_period_end
from beatly.models.plan import Plan
from beatly.models.subscription import UserSubscription, SubscriptionSummary

logger = logging.getLogger("beatly.subscriptions")


def _row_to_subscription(row) -> UserSubscription:
    return UserSubscription(
        user_id=row.user_id,
        plan_id=row.plan_id,
        daily_usage=row.daily_usage,
        last_reset_date=row.last_reset_date,
        plan_expires_at=as_utc(row.plan_expires_at),
        updated_at=as_utc(row.updated_at),
    )


def get_subscription(user_id: str, session: Optional[Session] = None) -> Optional[UserSubscription]:
    if session is not None:
        row = session.execute(
            select(user_subscriptions).where(user_subscriptions.c.user_id == user_id)
        ).first()
        return _row_to_subscription(row) if row else None

    with get_db_session() as own_session:
        return get_subscription(user_id, session=own_session)


def ensure_subscription(session: Session, user_id: str, today: date, now: Optional[datetime] = None) -> UserSubscription:
    """
    Get-or-create the user's subscription row (free plan, zero usage).

    Safe under concurrent first calls: the insert is ON CONFLICT DO NOTHING on
    the unique user_id, then the winning row is read back.
    """
    now = now or utc_now()
    created = insert_ignore(
        session,
        user_subscriptions,
        {
            "user_id": user_id,
            "plan_id": settings.DEFAULT_PLAN_ID,
            "daily_usage": 0,
            "last_reset_date": today,
            "created_at": now,
            "updated_at": now,
        },
        index_elements=["user_id"],
    )
    if created:
        logger.info(f"[subscriptions] created default subscription for user {user_id}")
    return get_subscription(user_id, session=session)


def reset_usage_if_stale(session: Session, user_id: str, today: date) -> bool:
    """
    Zero the counter and advance last_reset_date when the stored date is not today.

    Conditional update: of two racing requests only one performs the reset.
    Returns True when this call reset the row.
    """
    result = session.execute(
        update(user_subscriptions)
        .where(
            and_(
                user_subscriptions.c.user_id == user_id,
                or_(
                    user_subscriptions.c.last_reset_date.is_(None),
                    user_subscriptions.c.last_reset_date != today,
                ),
            )
        )
        .values(daily_usage=0, last_reset_date=today)
    )
    return bool(result.rowcount)


def increment_usage(session: Session, user_id: str) -> bool:
    """In-place `daily_usage = daily_usage + 1`. Returns False if the user has no row."""
    result = session.execute(
        update(user_subscriptions)
        .where(user_subscriptions.c.user_id == user_id)
        .values(daily_usage=user_subscriptions.c.daily_usage + 1)
    )
    return bool(result.rowcount)


def promote_subscription(session: Session, user_id: str, plan: Plan, now: Optional[datetime] = None) -> UserSubscription:
    """
    Move the user onto `plan` after a confirmed payment and reset usage.

    Renewing the same plan before it lapses extends from the current expiry;
    otherwise the new period starts now.
    """
    now = now or utc_now()
    today = usage_today(now)
    insert_ignore(
        session,
        user_subscriptions,
        {
            "user_id": user_id,
            "plan_id": plan.id,
            "daily_usage": 0,
            "last_reset_date": today,
            "created_at": now,
            "updated_at": now,
        },
        index_elements=["user_id"],
    )
    current = get_subscription(user_id, session=session)

    period_start = now
    if current and current.plan_id == plan.id and current.plan_expires_at and current.plan_expires_at > now:
        period_start = current.plan_expires_at
    expires_at = compute_period_end(plan, period_start)

    session.execute(
        update(user_subscriptions)
        .where(user_subscriptions.c.user_id == user_id)
        .values(plan_id=plan.id, daily_usage=0, plan_expires_at=expires_at, updated_at=now)
    )
    log_event(
        "info",
        "subscription.promoted",
        user_id=user_id,
        event_type="subscription.promoted",
        extra={"plan_id": plan.id, "plan_expires_at": expires_at.isoformat() if expires_at else None},
    )
    return get_subscription(user_id, session=session)


def get_subscription_summary(user_id: str, now: Optional[datetime] = None) -> SubscriptionSummary:
    """
    Current plan and usage for display. Read-only: a stale counter (last reset
    before today) is reported as 0 without being written back.
    """
    today = usage_today(now)
    with get_db_session() as session:
        row = session.execute(
            select(
                user_subscriptions.c.plan_id,
                user_subscriptions.c.daily_usage,
                user_subscriptions.c.last_reset_date,
                plans.c.name,
                plans.c.daily_limit,
            )
            .select_from(user_subscriptions.outerjoin(plans, plans.c.id == user_subscriptions.c.plan_id))
            .where(user_subscriptions.c.user_id == user_id)
        ).first()

    if not row:
        return SubscriptionSummary.free_default()

    default = SubscriptionSummary.free_default()
    usage = row.daily_usage if row.last_reset_date == today else 0
    return SubscriptionSummary(
        plan_id=row.plan_id,
        plan_name=row.name or row.plan_id,
        daily_limit=row.daily_limit if row.daily_limit is not None else default.daily_limit,
        daily_usage=usage or 0,
    )


def expire_subscriptions(now: Optional[datetime] = None, dry_run: bool = False) -> Dict[str, int]:
    """
    Downgrade every subscription whose paid period has lapsed to the default plan.

    Usage counters are left alone; the next usage check applies the new limit.
    """
    now = now or utc_now()
    lapsed = and_(
        user_subscriptions.c.plan_expires_at.is_not(None),
        user_subscriptions.c.plan_expires_at <= now,
    )

    with get_db_session() as session:
        candidates = session.execute(
            select(user_subscriptions.c.user_id, user_subscriptions.c.plan_id).where(lapsed)
        ).all()

        expired = 0
        if not dry_run and candidates:
            result = session.execute(
                update(user_subscriptions)
                .where(lapsed)
                .values(plan_id=settings.DEFAULT_PLAN_ID, plan_expires_at=None, updated_at=now)
            )
            expired = result.rowcount or 0
            for candidate in candidates:
                log_event(
                    "info",
                    "subscription.expired",
                    user_id=candidate.user_id,
                    event_type="subscription.expired",
                    extra={"previous_plan_id": candidate.plan_id},
                )

    return {"candidates": len(candidates), "expired": expired}
