from datetime import datetime, date, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from beatly.core.config import settings


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def usage_today(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    """Calendar date on the pinned usage clock (USAGE_TIMEZONE)."""
    moment = now or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name or settings.USAGE_TIMEZONE)).date()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize datetimes read back from the store (SQLite returns naive UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
