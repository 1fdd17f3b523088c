"""
beatly/features/history/service.py

Listening history.

Handles:
- Recording a resolved play
- Recently played list, newest first
- Profile statistics (totals, distinct artists, today/week counts, top artist)
"""

from datetime import datetime, timedelta, time
from typing import List, Optional
from zoneinfo import ZoneInfo
from sqlalchemy import select, insert, func, and_

from beatly.core.clock import utc_now, as_utc
from beatly.core.config import settings
from beatly.core.database import get_db_session, listening_history
from beatly.models.listening import ListeningEntry, ListeningStats, TopArtist, AVERAGE_TRACK_MINUTES

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 50


def record_play(
    user_id: str,
    track_id: str,
    track_name: str,
    artist_name: str,
    album_name: Optional[str] = None,
    album_image: Optional[str] = None,
    played_at: Optional[datetime] = None,
) -> ListeningEntry:
    played_at = played_at or utc_now()
    with get_db_session() as session:
        result = session.execute(
            insert(listening_history).values(
                user_id=user_id,
                track_id=track_id,
                track_name=track_name,
                artist_name=artist_name,
                album_name=album_name,
                album_image=album_image,
                played_at=played_at,
            )
        )

    return ListeningEntry(
        id=result.inserted_primary_key[0],
        user_id=user_id,
        track_id=track_id,
        track_name=track_name,
        artist_name=artist_name,
        album_name=album_name,
        album_image=album_image,
        played_at=played_at,
    )


def list_history(user_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ListeningEntry]:
    """Most recent plays first; `limit` is clamped to 1..MAX_HISTORY_LIMIT."""
    limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
    with get_db_session() as session:
        rows = session.execute(
            select(listening_history)
            .where(listening_history.c.user_id == user_id)
            .order_by(listening_history.c.played_at.desc(), listening_history.c.id.desc())
            .limit(limit)
        ).all()

    return [
        ListeningEntry(
            id=row.id,
            user_id=row.user_id,
            track_id=row.track_id,
            track_name=row.track_name,
            artist_name=row.artist_name,
            album_name=row.album_name,
            album_image=row.album_image,
            played_at=as_utc(row.played_at),
        )
        for row in rows
    ]


def _start_of_day(now: datetime) -> datetime:
    """Local midnight on the usage clock, as an aware datetime."""
    tz = ZoneInfo(settings.USAGE_TIMEZONE)
    local = now.astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz).astimezone(now.tzinfo)


def get_listening_stats(user_id: str, now: Optional[datetime] = None) -> ListeningStats:
    """
    Aggregate a user's listening history.

    Pure read: same history + same `now` = same stats.
    """
    now = as_utc(now) if now else utc_now()
    day_start = _start_of_day(now)
    week_start = now - timedelta(days=7)
    owned = listening_history.c.user_id == user_id

    with get_db_session() as session:
        total = session.execute(
            select(func.count()).select_from(listening_history).where(owned)
        ).scalar() or 0
        unique_artists = session.execute(
            select(func.count(func.distinct(listening_history.c.artist_name))).where(owned)
        ).scalar() or 0
        today_plays = session.execute(
            select(func.count()).select_from(listening_history)
            .where(and_(owned, listening_history.c.played_at >= day_start))
        ).scalar() or 0
        week_plays = session.execute(
            select(func.count()).select_from(listening_history)
            .where(and_(owned, listening_history.c.played_at >= week_start))
        ).scalar() or 0
        top_row = session.execute(
            select(listening_history.c.artist_name, func.count().label("plays"))
            .where(owned)
            .group_by(listening_history.c.artist_name)
            .order_by(func.count().desc(), listening_history.c.artist_name)
            .limit(1)
        ).first()

    return ListeningStats(
        total_songs_played=total,
        unique_artists=unique_artists,
        today_plays=today_plays,
        week_plays=week_plays,
        estimated_hours=int(total * AVERAGE_TRACK_MINUTES // 60),
        top_artist=TopArtist(name=top_row.artist_name, count=top_row.plays) if top_row else None,
    )
