"""
Usage API routes.

- GET  /api/usage/check: may the caller play one more song today?
- POST /api/usage/increment: count one played song
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from beatly.core.auth import AuthenticatedUser, get_current_user
from beatly.core.errors import UpstreamError
from beatly.features.usage.service import check_usage, record_consumption

logger = logging.getLogger("beatly.api.usage")

router = APIRouter(prefix="/api/usage", tags=["usage"])


class UsageCheckResponse(BaseModel):
    allowed: bool
    remaining: Optional[int] = None
    message: Optional[str] = None


class IncrementResponse(BaseModel):
    success: bool


@router.get("/check", response_model=UsageCheckResponse, response_model_exclude_none=True)
def check(user: AuthenticatedUser = Depends(get_current_user)):
    """
    Gate one playback attempt.

    Returns:
        {"allowed": true, "remaining": int} or {"allowed": false, "message": str}

    Store failures deny the request instead of erroring.
    """
    decision = check_usage(user.user_id)
    return decision.model_dump(exclude_none=True)


@router.post("/increment", response_model=IncrementResponse)
def increment(user: AuthenticatedUser = Depends(get_current_user)):
    """Record one consumed song after playback started."""
    try:
        record_consumption(user.user_id)
    except SQLAlchemyError:
        logger.exception(f"[usage] failed to record consumption for user {user.user_id}")
        raise UpstreamError("Failed to record usage")
    return {"success": True}
