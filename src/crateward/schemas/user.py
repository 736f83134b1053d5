"""Pydantic schemas for user views.

The private view is only ever shown to the user themselves; the public
view is safe for anyone.
"""

from typing import Optional

from pydantic import BaseModel

from crateward.db.models import User


def github_url(login: str) -> str:
    return f"https://github.com/{login}"


class UserPublic(BaseModel):
    id: int
    login: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            id=user.id,
            login=user.gh_login,
            name=user.name,
            avatar=user.gh_avatar,
            url=github_url(user.gh_login),
        )


class UserPrivate(UserPublic):
    email: Optional[str] = None
    email_verified: bool = False
    email_verification_sent: bool = False

    @classmethod
    def from_user(
        cls,
        user: User,
        email_verified: bool = False,
        email_verification_sent: bool = False,
    ) -> "UserPrivate":
        return cls(
            id=user.id,
            login=user.gh_login,
            name=user.name,
            avatar=user.gh_avatar,
            url=github_url(user.gh_login),
            email=user.email,
            email_verified=email_verified,
            email_verification_sent=email_verification_sent,
        )


class UserPrivateResponse(BaseModel):
    user: UserPrivate


class UserPublicResponse(BaseModel):
    user: UserPublic


class SessionBegin(BaseModel):
    url: str
    state: str
