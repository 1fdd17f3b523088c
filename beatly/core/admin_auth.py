"""
Admin authentication for plan management.

A single shared password sent as the X-Admin-Password header. When no
ADMIN_PASSWORD is configured every admin write is refused.
"""
import hmac
import logging
from typing import Optional

from fastapi import Header

from beatly.core.config import settings
from beatly.core.errors import UnauthorizedError

logger = logging.getLogger("beatly.admin")


def require_admin_password(x_admin_password: Optional[str] = Header(None)) -> None:
    expected = settings.ADMIN_PASSWORD
    if not expected or not x_admin_password:
        raise UnauthorizedError("Unauthorized")
    if not hmac.compare_digest(x_admin_password.encode(), expected.encode()):
        logger.warning("[admin] invalid admin password attempt")
        raise UnauthorizedError("Unauthorized")
