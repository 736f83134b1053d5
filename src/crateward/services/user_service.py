"""User service — reconciling GitHub identities into local accounts.

create_or_update is the only way a User row is created or refreshed.
It runs as two phases over one transaction:
1. upsert the users row keyed by the (positive) GitHub id
2. record the user's email address and send the confirmation mail

If the mail can't be sent, nothing is committed: a login that could not
notify the owner of a new address counts as not having happened.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.db.dialect import upsert_insert
from crateward.db.models import User
from crateward.errors import NotFound
from crateward.events.store import EventStore, user_stream
from crateward.events.types import USER_RECONCILED
from crateward.services.email_service import start_email_verification
from crateward.services.mailer import Mailer, get_mailer

logger = structlog.get_logger()


@dataclass
class NewUser:
    """An identity as reported by GitHub, ready to be reconciled."""

    gh_id: int
    gh_login: str
    gh_access_token: str
    email: Optional[str] = None
    name: Optional[str] = None
    gh_avatar: Optional[str] = None


async def _upsert_user_row(db: AsyncSession, new_user: NewUser) -> User:
    """INSERT ... ON CONFLICT (gh_id) WHERE gh_id > 0 DO UPDATE.

    The WHERE matters: accounts whose GitHub id could not be backfilled
    all carry gh_id = -1, so only positive ids are a conflict target.
    id and email are left alone on conflict.
    """
    stmt = upsert_insert(db, User).values(
        [
            {
                "gh_id": new_user.gh_id,
                "gh_login": new_user.gh_login,
                "email": new_user.email,
                "name": new_user.name,
                "gh_avatar": new_user.gh_avatar,
                "gh_access_token": new_user.gh_access_token,
            }
        ]
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.gh_id],
        index_where=User.gh_id > 0,
        set_={
            "gh_login": stmt.excluded.gh_login,
            "name": stmt.excluded.name,
            "gh_avatar": stmt.excluded.gh_avatar,
            "gh_access_token": stmt.excluded.gh_access_token,
        },
    )
    result = await db.scalars(
        stmt.returning(User), execution_options={"populate_existing": True}
    )
    return result.one()


class UserService:
    """Business logic for local user accounts."""

    def __init__(self, db: AsyncSession, mailer: Optional[Mailer] = None):
        self.db = db
        self.mailer = mailer or get_mailer()
        self.events = EventStore(db)

    async def create_or_update(self, new_user: NewUser) -> User:
        """Insert the user, or update the one with the same GitHub id.

        Raises DependencyFailure (after rolling back) if a confirmation
        email was due and could not be sent.
        """
        try:
            user = await _upsert_user_row(self.db, new_user)
            await start_email_verification(self.db, user, self.mailer)
            await self.events.append(
                stream_id=user_stream(user.id),
                event_type=USER_RECONCILED,
                data={"gh_id": user.gh_id, "gh_login": user.gh_login},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("user.reconciled", user_id=user.id, gh_id=user.gh_id)
        return user

    async def find_by_login(self, login: str) -> User:
        """Case-insensitive lookup; prefers the account with a known GitHub id."""
        result = await self.db.execute(
            select(User)
            .where(func.lower(User.gh_login) == login.lower())
            .order_by(User.gh_id.desc())
            .limit(1)
        )
        user = result.scalars().first()
        if not user:
            raise NotFound(f"user `{login}` not found")
        return user
