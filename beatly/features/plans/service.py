"""
beatly/features/plans/service.py

Plan service.

Handles:
- Plan seeding (free, plus, pro)
- Plan lookup and listing
- Admin plan updates
- Billing period arithmetic (plan expiry)
"""

import calendar
from datetime import datetime, timedelta
from typing import Optional, Dict, List, Any
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from beatly.core.database import get_db_session, plans, insert_ignore
from beatly.core.errors import NotFoundError, ValidationError
from beatly.models.plan import Plan


# Default plan configurations (prices in IDR)
DEFAULT_PLANS = {
    "free": {
        "name": "Free",
        "price": 0,
        "daily_limit": 25,
        "features": ["25 Songs/Day", "Ads Support"],
        "duration_type": None,
        "duration_value": None,
        "is_popular": False,
    },
    "plus": {
        "name": "Plus",
        "price": 25000,
        "daily_limit": 50,
        "features": ["50 Songs/Day", "No Ads", "High Quality"],
        "duration_type": "month",
        "duration_value": 1,
        "is_popular": True,
    },
    "pro": {
        "name": "Pro",
        "price": 50000,
        "daily_limit": 100,
        "features": ["100 Songs/Day", "No Ads", "Ultra Quality", "Offline Mode"],
        "duration_type": "month",
        "duration_value": 1,
        "is_popular": False,
    },
}

EDITABLE_FIELDS = ("name", "price", "daily_limit", "features", "duration_type", "duration_value", "is_popular")


def _row_to_plan(row) -> Plan:
    return Plan(
        id=row.id,
        name=row.name,
        price=row.price,
        daily_limit=row.daily_limit,
        features=list(row.features or []),
        duration_type=row.duration_type,
        duration_value=row.duration_value,
        is_popular=bool(row.is_popular),
        created_at=row.created_at,
    )


def seed_plans() -> None:
    """
    Seed default plans into database (idempotent).

    Existing rows are left untouched so admin edits survive restarts.
    """
    with get_db_session() as session:
        for plan_id, config in DEFAULT_PLANS.items():
            insert_ignore(session, plans, {"id": plan_id, **config}, index_elements=["id"])


def get_plan(plan_id: str, session: Optional[Session] = None) -> Optional[Plan]:
    """Get plan by ID, reusing the caller's session when given."""
    if session is not None:
        row = session.execute(select(plans).where(plans.c.id == plan_id)).first()
        return _row_to_plan(row) if row else None

    with get_db_session() as own_session:
        return get_plan(plan_id, session=own_session)


def list_plans() -> List[Plan]:
    """All plans, cheapest first."""
    with get_db_session() as session:
        rows = session.execute(select(plans).order_by(plans.c.price, plans.c.id)).all()
        return [_row_to_plan(row) for row in rows]


def update_plan(plan_id: str, changes: Dict[str, Any]) -> Plan:
    """
    Apply an admin edit to a plan.

    Raises:
        NotFoundError: unknown plan id
        ValidationError: unknown field or a value the Plan model rejects
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unsupported plan fields: {', '.join(sorted(unknown))}")

    with get_db_session() as session:
        current = get_plan(plan_id, session=session)
        if not current:
            raise NotFoundError(f"Plan {plan_id} not found")

        try:
            updated = Plan(**{**current.model_dump(), **changes})
        except ValueError as e:
            raise ValidationError(f"Invalid plan values: {e}")

        if changes:
            session.execute(
                update(plans)
                .where(plans.c.id == plan_id)
                .values(**{key: getattr(updated, key) for key in changes})
            )
        return updated


def _add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def compute_period_end(plan: Plan, start: datetime) -> Optional[datetime]:
    """
    End of one billing period of `plan` starting at `start`.

    Returns None for plans that never expire (price 0 or no duration).
    """
    if plan.is_free or not plan.duration_type or not plan.duration_value:
        return None

    value = plan.duration_value
    if plan.duration_type == "day":
        return start + timedelta(days=value)
    if plan.duration_type == "week":
        return start + timedelta(weeks=value)
    if plan.duration_type == "month":
        return _add_months(start, value)
    return _add_months(start, 12 * value)
