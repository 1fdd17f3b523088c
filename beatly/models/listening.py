"""
beatly/models/listening.py

Listening history entries and the per-user statistics shown on the profile page.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

# Average track length used to estimate listening time
AVERAGE_TRACK_MINUTES = 3.5


class ListeningEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    user_id: str
    track_id: str
    track_name: str
    artist_name: str
    album_name: Optional[str] = None
    album_image: Optional[str] = None
    played_at: datetime


class TopArtist(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    count: int


class ListeningStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_songs_played: int = 0
    unique_artists: int = 0
    today_plays: int = 0
    week_plays: int = 0
    estimated_hours: int = 0
    top_artist: Optional[TopArtist] = None
