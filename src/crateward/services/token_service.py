"""API token service — issue, list, revoke, and authenticate.

Token values are random, unique, and never change after creation; the
plaintext is handed back once, by insert(). Revocation only flips a flag.
"""

import secrets
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.config import settings
from crateward.db.models import ApiToken, User, utcnow
from crateward.errors import NotFound, ValidationFailure
from crateward.events.store import EventStore, token_stream
from crateward.events.types import API_TOKEN_CREATED, API_TOKEN_REVOKED

logger = structlog.get_logger()


def generate_token() -> str:
    # 32 url-safe characters, 192 bits of entropy
    return secrets.token_urlsafe(24)


class ApiTokenService:
    def __init__(
        self,
        db: AsyncSession,
        max_tokens_per_user: Optional[int] = None,
        max_name_length: Optional[int] = None,
    ):
        self.db = db
        self.events = EventStore(db)
        if max_tokens_per_user is None:
            max_tokens_per_user = settings.max_tokens_per_user
        if max_name_length is None:
            max_name_length = settings.max_token_name_length
        self.max_tokens_per_user = max_tokens_per_user
        self.max_name_length = max_name_length

    async def count_active(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(ApiToken)
            .where(ApiToken.user_id == user_id, ApiToken.revoked.is_(False))
        )
        return result.scalar_one()

    async def _lock_owner(self, user_id: int) -> None:
        """Queue concurrent issuers for one user behind each other.

        A no-op UPDATE of the owning users row: a row lock on PostgreSQL,
        the database write lock on SQLite. Held until commit or rollback.
        """
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(gh_id=User.gh_id)
            .execution_options(synchronize_session=False)
        )

    async def insert(self, user_id: int, name: str) -> ApiToken:
        """Issue a new token. The returned row is the only place the plaintext appears."""
        if not name.strip():
            raise ValidationFailure("name must have a value")
        if len(name) > self.max_name_length:
            raise ValidationFailure(
                f"name must be at most {self.max_name_length} characters"
            )
        await self._lock_owner(user_id)
        if await self.count_active(user_id) >= self.max_tokens_per_user:
            await self.db.rollback()
            raise ValidationFailure(
                f"maximum tokens per user is: {self.max_tokens_per_user}"
            )

        api_token = ApiToken(user_id=user_id, name=name, token=generate_token())
        self.db.add(api_token)
        await self.db.flush()

        await self.events.append(
            stream_id=token_stream(api_token.id),
            event_type=API_TOKEN_CREATED,
            data={"user_id": user_id, "name": name},
        )
        await self.db.commit()

        logger.info("api_token.created", user_id=user_id, token_id=api_token.id)
        return api_token

    async def list_for_user(self, user_id: int) -> list[ApiToken]:
        """All of the user's tokens, revoked ones included, oldest first."""
        result = await self.db.execute(
            select(ApiToken).where(ApiToken.user_id == user_id).order_by(ApiToken.id)
        )
        return list(result.scalars().all())

    async def revoke(self, user_id: int, token_id: int) -> None:
        """Revoke one of the user's tokens.

        Scoped by both id and owner. An unknown id, someone else's token,
        or an already revoked one is a silent success, so callers can't
        probe for other users' token ids.
        """
        result = await self.db.execute(
            update(ApiToken)
            .where(
                ApiToken.id == token_id,
                ApiToken.user_id == user_id,
                ApiToken.revoked.is_(False),
            )
            .values(revoked=True)
        )
        if result.rowcount:
            await self.events.append(
                stream_id=token_stream(token_id),
                event_type=API_TOKEN_REVOKED,
                data={"user_id": user_id},
            )
            logger.info("api_token.revoked", user_id=user_id, token_id=token_id)
        await self.db.commit()

    async def find_user_by_token(self, token: str) -> User:
        """Resolve a bearer token to its user, stamping last_used_at.

        The validity check and the stamp are one conditional UPDATE, so a
        token revoked concurrently is either rejected or was admitted
        before the revocation committed.
        """
        result = await self.db.execute(
            update(ApiToken)
            .where(ApiToken.token == token, ApiToken.revoked.is_(False))
            .values(last_used_at=utcnow())
            .returning(ApiToken.user_id)
            .execution_options(synchronize_session=False)
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            await self.db.rollback()
            logger.info("auth.token_rejected")
            raise NotFound("invalid API token")

        user = await self.db.get(User, user_id)
        await self.db.commit()
        return user
