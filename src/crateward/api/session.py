"""Session routes — GitHub OAuth login and logout.

- GET /session → begin: returns the GitHub authorize URL + state
- GET /session/authorize?code&state → callback: reconcile the GitHub
  user, set the session cookie, return the private profile
- DELETE /session → logout

The OAuth state lives in a short-lived signed cookie, not server memory.
"""

import secrets

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.auth.jwt import (
    OAUTH_STATE,
    TokenError,
    create_session_token,
    create_state_token,
    verify_token,
)
from crateward.config import settings
from crateward.db.engine import get_db
from crateward.errors import Forbidden
from crateward.schemas.user import SessionBegin, UserPrivate, UserPrivateResponse
from crateward.services.email_service import EmailService
from crateward.services.github import GitHubClient, get_github
from crateward.services.mailer import Mailer, get_mailer
from crateward.services.user_service import NewUser, UserService

router = APIRouter(prefix="/session")


def _set_cookie(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        name,
        value,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        secure=settings.environment != "development",
    )


@router.get("", response_model=SessionBegin)
async def begin(response: Response, github: GitHubClient = Depends(get_github)):
    state = secrets.token_urlsafe(16)
    _set_cookie(
        response,
        settings.state_cookie_name,
        create_state_token(state),
        max_age=settings.oauth_state_expire_minutes * 60,
    )
    return {"url": github.authorize_url(state), "state": state}


@router.get("/authorize", response_model=UserPrivateResponse)
async def authorize(
    code: str,
    state: str,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    github: GitHubClient = Depends(get_github),
    mailer: Mailer = Depends(get_mailer),
):
    """GitHub OAuth callback."""
    state_cookie = request.cookies.get(settings.state_cookie_name)
    if not state_cookie:
        raise Forbidden("invalid state parameter")
    try:
        payload = verify_token(state_cookie, OAUTH_STATE)
    except TokenError:
        raise Forbidden("invalid state parameter")
    if not secrets.compare_digest(payload["state"].encode(), state.encode()):
        raise Forbidden("invalid state parameter")

    access_token = await github.exchange_code(code)
    gh_user = await github.fetch_user(access_token)

    user = await UserService(db, mailer).create_or_update(
        NewUser(
            gh_id=gh_user.id,
            gh_login=gh_user.login,
            gh_access_token=access_token,
            email=gh_user.email,
            name=gh_user.name,
            gh_avatar=gh_user.avatar_url,
        )
    )

    _set_cookie(
        response,
        settings.session_cookie_name,
        create_session_token(user.id),
        max_age=settings.session_expire_days * 24 * 3600,
    )
    response.delete_cookie(settings.state_cookie_name)

    verified, sent = await EmailService(db).verification_status(user)
    return {"user": UserPrivate.from_user(user, verified, sent)}


@router.delete("")
async def logout(response: Response):
    response.delete_cookie(settings.session_cookie_name)
    return {}
