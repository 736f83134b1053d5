"""Email verification workflow.

Each (user, address) pair gets one Email row with a single-use token.
Creating the row is insert-if-absent: an existing row is never given a
new token and a verified row is never reset.
"""

import secrets
from typing import Optional

import structlog
from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.db.dialect import upsert_insert
from crateward.db.models import Email, User, utcnow
from crateward.errors import DependencyFailure, NotFound
from crateward.events.store import EventStore, user_stream
from crateward.events.types import EMAIL_VERIFICATION_SENT, EMAIL_VERIFIED
from crateward.services.mailer import Mailer

logger = structlog.get_logger()


def generate_email_token() -> str:
    return secrets.token_urlsafe(24)


async def insert_email_if_absent(
    db: AsyncSession, user_id: int, email: str
) -> Optional[str]:
    """Create the Email row for (user_id, email) unless it exists.

    Returns the new verification token, or None when the row was already
    there. Runs inside the caller's transaction; does not commit.
    """
    table = Email.__table__
    stmt = (
        upsert_insert(db, table)
        .values(
            user_id=user_id,
            email=email,
            token=generate_email_token(),
            verified=False,
            token_generated_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=[table.c.user_id, table.c.email])
        .returning(table.c.token)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def start_email_verification(
    db: AsyncSession, user: User, mailer: Mailer
) -> Optional[str]:
    """Second phase of a user upsert: record the address and notify its owner.

    Does nothing when the user has no address or the address is already
    on file. A mailer failure is raised as DependencyFailure so the
    caller's transaction rolls back.
    """
    if not user.email:
        return None

    token = await insert_email_if_absent(db, user.id, user.email)
    if token is None:
        return None

    try:
        await mailer.send_user_confirm_email(user.email, user.gh_login, token)
    except Exception as e:
        logger.warning("email.send_failed", user_id=user.id, error=str(e))
        raise DependencyFailure("Error in sending email") from e

    await EventStore(db).append(
        stream_id=user_stream(user.id),
        event_type=EMAIL_VERIFICATION_SENT,
        data={"email": user.email},
    )
    logger.info("email.verification_sent", user_id=user.id)
    return token


class EmailService:
    """Queries and confirmation for recorded addresses."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    async def has_verified_email(self, user_id: int) -> bool:
        stmt = select(
            exists().where(Email.user_id == user_id, Email.verified.is_(True))
        )
        return bool(await self.db.scalar(stmt))

    async def verification_status(self, user: User) -> tuple[bool, bool]:
        """Return (email_verified, email_verification_sent) for the user's address."""
        if not user.email:
            return False, False
        result = await self.db.execute(
            select(Email.verified).where(
                Email.user_id == user.id, Email.email == user.email
            )
        )
        verified = result.scalar_one_or_none()
        if verified is None:
            return False, False
        return bool(verified), True

    async def confirm(self, token: str) -> Email:
        """Mark the address holding this token as verified."""
        result = await self.db.execute(
            update(Email)
            .where(Email.token == token)
            .values(verified=True)
            .returning(Email.id, Email.user_id)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            raise NotFound("Email belonging to token not found.")

        await self.events.append(
            stream_id=user_stream(row.user_id),
            event_type=EMAIL_VERIFIED,
            data={"email_id": row.id},
        )
        await self.db.commit()
        logger.info("email.verified", user_id=row.user_id)

        email = await self.db.get(Email, row.id, populate_existing=True)
        return email
