"""
Profile API routes.

- GET /api/profile: identity, subscription and listening statistics
- PUT /api/profile: update the display name
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from beatly.core.auth import AuthenticatedUser, get_current_user
from beatly.core.errors import UpstreamError
from beatly.features.history.service import get_listening_stats
from beatly.features.profile.service import update_profile
from beatly.features.subscriptions.service import get_subscription_summary

logger = logging.getLogger("beatly.api.profile")

router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None


@router.get("")
def get_profile(user: AuthenticatedUser = Depends(get_current_user)):
    try:
        subscription = get_subscription_summary(user.user_id)
        stats = get_listening_stats(user.user_id)
    except SQLAlchemyError:
        logger.exception(f"[profile] failed to load profile for user {user.user_id}")
        raise UpstreamError("Internal server error")

    return {
        "user": {
            "id": user.user_id,
            "email": user.email,
            "avatar_url": user.avatar_url,
            "full_name": user.full_name,
        },
        "subscription": subscription.model_dump(),
        "stats": stats.model_dump(),
    }


@router.put("")
def put_profile(request: ProfileUpdateRequest, user: AuthenticatedUser = Depends(get_current_user)):
    updates = update_profile(user, full_name=request.full_name)
    return {"success": True, "updates": updates, "message": "Profile updated successfully"}
