"""Audit log for identity and credential changes.

Events are appended inside the caller's transaction, so a change that is
rolled back leaves no trace here either. Streams are keyed by the entity
they describe: "user:<id>" or "api_token:<id>".
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crateward.db.models import Event

# Request-scoped values bound by the middleware and auth dependency
_CONTEXT_KEYS = ("request_id", "user_id")


def user_stream(user_id: int) -> str:
    return f"user:{user_id}"


def token_stream(token_id: int) -> str:
    return f"api_token:{token_id}"


class EventStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, stream_id: str, event_type: str, data: dict) -> Event:
        """Record one event. Flushes for the id, does not commit.

        Whatever request context structlog holds (request id, acting user)
        is stored alongside as metadata.
        """
        context = structlog.contextvars.get_contextvars()
        event = Event(
            stream_id=stream_id,
            type=event_type,
            data=data,
            meta={key: context[key] for key in _CONTEXT_KEYS if key in context},
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def history(self, stream_id: str) -> list[Event]:
        """Every event of one stream, oldest first."""
        result = await self.db.execute(
            select(Event).where(Event.stream_id == stream_id).order_by(Event.id)
        )
        return list(result.scalars().all())
