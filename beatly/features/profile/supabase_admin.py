"""
Minimal Supabase Auth admin client.

Only the call the profile page needs: replacing a user's `user_metadata`
through the GoTrue admin endpoint with the project's service role key.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from beatly.core.config import settings

logger = logging.getLogger("beatly.profile.supabase_admin")

ADMIN_TIMEOUT_SECONDS = 10.0


class SupabaseAdminError(Exception):
    """Supabase admin API not configured, unreachable or rejecting the call."""


class SupabaseAdminClient:
    def __init__(self, base_url: Optional[str] = None, service_role_key: Optional[str] = None):
        self.base_url = (base_url or settings.SUPABASE_URL or "").rstrip("/")
        self.service_role_key = service_role_key or settings.SUPABASE_SERVICE_ROLE_KEY
        if not self.base_url or not self.service_role_key:
            raise SupabaseAdminError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for profile updates")

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    def update_user_metadata(self, user_id: str, user_metadata: Dict[str, Any]) -> Dict[str, Any]:
        """PUT /auth/v1/admin/users/{id}; returns the updated user object."""
        url = f"{self.base_url}/auth/v1/admin/users/{user_id}"
        try:
            with httpx.Client(timeout=ADMIN_TIMEOUT_SECONDS) as client:
                response = client.put(url, headers=self._headers(), json={"user_metadata": user_metadata})
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SupabaseAdminError(f"Supabase rejected metadata update: {e.response.status_code}")
        except httpx.HTTPError as e:
            raise SupabaseAdminError(f"Supabase unreachable: {e}")
        return response.json()
