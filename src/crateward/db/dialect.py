"""Dialect-specific statement helpers.

INSERT ... ON CONFLICT lives on each dialect's own insert() construct;
pick the one matching the session's bind.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(db: AsyncSession, target):
    """Return an insert() for target that supports on_conflict_* clauses."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(target)
    if dialect == "sqlite":
        return sqlite.insert(target)
    raise RuntimeError(f"ON CONFLICT upserts are not supported on {dialect}")
