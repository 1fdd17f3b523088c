"""
Listening history routes.

- GET  /api/history: recently played tracks, newest first
- POST /api/history/add: record a play after the track resolved
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from beatly.core.auth import AuthenticatedUser, get_current_user
from beatly.core.errors import UpstreamError
from beatly.features.history.service import (
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    list_history,
    record_play,
)

logger = logging.getLogger("beatly.api.history")

router = APIRouter(prefix="/api/history", tags=["history"])


class HistoryAddRequest(BaseModel):
    track_id: str = Field(..., min_length=1)
    track_name: str = Field(..., min_length=1)
    artist_name: str = "Unknown Artist"
    album_name: Optional[str] = None
    album_image: Optional[str] = None


@router.get("")
def recent(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    user: AuthenticatedUser = Depends(get_current_user),
):
    try:
        entries = list_history(user.user_id, limit=limit)
    except SQLAlchemyError:
        logger.exception(f"[history] failed to load history for user {user.user_id}")
        raise UpstreamError("Failed to load listening history")
    return {"history": [entry.model_dump() for entry in entries]}


@router.post("/add")
def add(request: HistoryAddRequest, user: AuthenticatedUser = Depends(get_current_user)):
    try:
        record_play(
            user.user_id,
            track_id=request.track_id,
            track_name=request.track_name,
            artist_name=request.artist_name,
            album_name=request.album_name,
            album_image=request.album_image,
        )
    except SQLAlchemyError:
        logger.exception(f"[history] failed to record play for user {user.user_id}")
        raise UpstreamError("Failed to record listening history")
    return {"success": True}
