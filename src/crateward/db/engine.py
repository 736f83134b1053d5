"""Async SQLAlchemy engine and session factory.

One engine with connection pooling, one AsyncSession per request
(injected via the get_db FastAPI dependency).
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crateward.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an engine; pool sizing only applies to server databases."""
    kwargs = {}
    if not url.startswith("sqlite"):
        # Connection pool: min 5, max 20 connections.
        kwargs = {"pool_size": 5, "max_overflow": 15, "pool_pre_ping": True}
    return create_async_engine(url, echo=echo, **kwargs)


engine = build_engine(settings.database_url, echo=settings.debug)

# Each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    from crateward.db.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
