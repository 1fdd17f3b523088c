"""
Auth utilities for the Beatly API.

Validates Supabase access tokens (HS256 JWTs signed with the project's JWT
secret) and extracts the caller's identity. Verification is stateless: every
request carries its own bearer token and nothing is cached server-side.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import jwt
import logging
from fastapi import Request

from beatly.core.config import settings
from beatly.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity derived from a verified access token."""
    user_id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    issued_at: Optional[datetime] = None

    @property
    def avatar_url(self) -> Optional[str]:
        return self.user_metadata.get("avatar_url")

    @property
    def full_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name") or self.user_metadata.get("name")


def verify_supabase_jwt(token: str) -> AuthenticatedUser:
    """
    Verify a Supabase access token and build the caller identity.

    Args:
        token: JWT from the Authorization header (without "Bearer ")

    Returns:
        AuthenticatedUser with the 'sub' claim as user_id

    Raises:
        UnauthorizedError: missing secret, invalid signature, expired token or no subject
    """
    secret = settings.SUPABASE_JWT_SECRET
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting bearer token")
        raise UnauthorizedError("Unauthorized")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings.SUPABASE_JWT_AUDIENCE,
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")

    issued_at = None
    if payload.get("iat"):
        issued_at = datetime.fromtimestamp(int(payload["iat"]), timezone.utc)

    return AuthenticatedUser(
        user_id=str(user_id),
        email=payload.get("email"),
        user_metadata=payload.get("user_metadata") or {},
        issued_at=issued_at,
    )


def get_current_user(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency: resolve the caller from `Authorization: Bearer <jwt>`.

    Raises:
        UnauthorizedError (401): header missing, malformed or token invalid
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError("Unauthorized")

    token = auth_header[7:].strip()
    if not token:
        raise UnauthorizedError("Unauthorized")

    user = verify_supabase_jwt(token)
    request.state.user_id = user.user_id
    return user
