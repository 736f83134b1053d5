"""FastAPI auth dependencies.

Used as Depends() in route handlers to resolve the calling user.

Two auth mechanisms, tried in this order:
1. Session cookie (signed JWT set by the GitHub OAuth callback)
2. API token in the Authorization header, raw or as "Bearer <token>"
"""

from typing import Optional

import structlog
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.auth.jwt import SESSION, TokenError, verify_token
from crateward.config import settings
from crateward.db.engine import get_db
from crateward.db.models import User
from crateward.errors import Forbidden, NotFound
from crateward.services.token_service import ApiTokenService

logger = structlog.get_logger()

AUTH_SESSION = "session"
AUTH_TOKEN = "token"


class CurrentIdentity:
    """The authenticated user plus how they authenticated."""

    def __init__(self, user: User, auth_method: str = AUTH_SESSION):
        self.user = user
        self.auth_method = auth_method

    @property
    def via_token(self) -> bool:
        return self.auth_method == AUTH_TOKEN


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no valid auth)."""
    session_cookie = request.cookies.get(settings.session_cookie_name)
    if session_cookie:
        identity = await _authenticate_session(session_cookie, db)
        if identity:
            return identity

    if authorization:
        return await _authenticate_api_token(authorization, db)

    return None


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — Forbidden if missing)."""
    if not identity:
        raise Forbidden("must be logged in to perform that action")
    structlog.contextvars.bind_contextvars(user_id=identity.user.id)
    return identity


async def _authenticate_session(cookie: str, db: AsyncSession) -> Optional[CurrentIdentity]:
    try:
        payload = verify_token(cookie, SESSION)
    except TokenError as e:
        logger.info("auth.session_rejected", reason=str(e))
        return None

    user = await db.get(User, int(payload["sub"]))
    if not user:
        return None
    return CurrentIdentity(user=user, auth_method=AUTH_SESSION)


def _bearer_value(authorization: str) -> str:
    scheme, _, value = authorization.partition(" ")
    if value and scheme.lower() == "bearer":
        return value.strip()
    return authorization.strip()


async def _authenticate_api_token(
    authorization: str, db: AsyncSession
) -> Optional[CurrentIdentity]:
    token = _bearer_value(authorization)
    if not token:
        return None
    try:
        user = await ApiTokenService(db).find_user_by_token(token)
    except NotFound:
        # An unknown token is the same as no credentials at all
        return None
    return CurrentIdentity(user=user, auth_method=AUTH_TOKEN)
