"""Signed cookie tokens (JWT).

- Session token: long-lived (30 days), identifies the logged-in user
- OAuth state token: short-lived (10 min), carries the CSRF state of an
  in-flight GitHub login

Each token has a "type" claim so one can never stand in for the other.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from crateward.config import settings

SESSION = "session"
OAUTH_STATE = "oauth_state"


class TokenError(Exception):
    """Raised when token verification fails."""


def _encode(payload: dict, expires: datetime) -> str:
    payload = {**payload, "exp": expires, "iat": datetime.now(timezone.utc)}
    return jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)


def create_session_token(user_id: int, expires_days: Optional[int] = None) -> str:
    expires = datetime.now(timezone.utc) + timedelta(
        days=expires_days or settings.session_expire_days
    )
    return _encode({"sub": str(user_id), "type": SESSION}, expires)


def create_state_token(state: str) -> str:
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=settings.oauth_state_expire_minutes
    )
    return _encode({"state": state, "type": OAUTH_STATE}, expires)


def verify_token(token: str, expected_type: str) -> dict:
    """Verify and decode a token of the given type.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.session_secret, algorithms=[settings.session_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")
    if payload.get("type") != expected_type:
        raise TokenError(f"Not a {expected_type} token")
    return payload
