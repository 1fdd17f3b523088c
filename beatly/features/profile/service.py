"""
beatly/features/profile/service.py

Profile edits. Display name changes are written to the caller's Supabase
`user_metadata`; the next access token the user receives carries them.
"""

import logging
from typing import Dict, Optional

from beatly.core.auth import AuthenticatedUser
from beatly.core.errors import UpstreamError, ValidationError
from beatly.core.logging import log_event
from beatly.features.profile.supabase_admin import SupabaseAdminClient, SupabaseAdminError

logger = logging.getLogger("beatly.profile")

MAX_FULL_NAME_LENGTH = 100


def update_profile(user: AuthenticatedUser, full_name: Optional[str] = None) -> Dict[str, str]:
    """
    Apply profile edits and return the changed fields.

    A blank or missing name is not an edit; with nothing to change the
    Supabase API is not called and `{}` is returned.

    Raises:
        ValidationError: name longer than MAX_FULL_NAME_LENGTH
        UpstreamError: Supabase admin API not configured or failing
    """
    updates: Dict[str, str] = {}
    if full_name is not None and full_name.strip():
        name = full_name.strip()
        if len(name) > MAX_FULL_NAME_LENGTH:
            raise ValidationError(f"full_name must be at most {MAX_FULL_NAME_LENGTH} characters")
        updates["full_name"] = name

    if not updates:
        return updates

    try:
        SupabaseAdminClient().update_user_metadata(user.user_id, {**user.user_metadata, **updates})
    except SupabaseAdminError as e:
        logger.error(f"[profile] metadata update failed for user {user.user_id}: {e}")
        raise UpstreamError("Failed to update profile")

    log_event(
        "info",
        "profile.updated",
        user_id=user.user_id,
        event_type="profile.updated",
        extra={"fields_changed": ",".join(sorted(updates))},
    )
    return updates
