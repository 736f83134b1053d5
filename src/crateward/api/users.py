"""User routes — the caller's own profile, public profiles, email confirmation."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.auth.dependencies import CurrentIdentity, get_current_user
from crateward.db.engine import get_db
from crateward.schemas.user import (
    UserPrivate,
    UserPrivateResponse,
    UserPublic,
    UserPublicResponse,
)
from crateward.services.email_service import EmailService
from crateward.services.user_service import UserService

router = APIRouter()


@router.get("/me", response_model=UserPrivateResponse)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    verified, sent = await EmailService(db).verification_status(identity.user)
    return {"user": UserPrivate.from_user(identity.user, verified, sent)}


@router.get("/users/{login}", response_model=UserPublicResponse)
async def get_user(
    login: str,
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).find_by_login(login)
    return {"user": UserPublic.from_user(user)}


@router.put("/confirm/{token}")
async def confirm_email(token: str, db: AsyncSession = Depends(get_db)):
    """Confirm an email address with the token mailed to it."""
    await EmailService(db).confirm(token)
    return {"ok": True}
