"""SQLAlchemy ORM models — single source of truth for the database schema.

SQLAlchemy 2.0 declarative style (Mapped[] + mapped_column). Column types
are portable so the same models run on PostgreSQL (production) and SQLite
(local tests); both support the partial unique index on users.gh_id.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# gh_id recorded for accounts whose GitHub id could not be backfilled.
# Many rows share it, so it never takes part in the uniqueness check.
UNKNOWN_GH_ID = -1


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════
# Identities
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A local account reconciled from a GitHub identity.

    Mutable GitHub fields (login, name, avatar, access token) are
    overwritten on every login; the local id and the stored email are not.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index(
            "uq_users_gh_id_known",
            "gh_id",
            unique=True,
            postgresql_where=text("gh_id > 0"),
            sqlite_where=text("gh_id > 0"),
        ),
        Index("idx_users_gh_login", "gh_login"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gh_access_token: Mapped[str] = mapped_column(Text, nullable=False)
    gh_login: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gh_avatar: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    gh_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    api_tokens: Mapped[list["ApiToken"]] = relationship(back_populates="user")
    emails: Mapped[list["Email"]] = relationship(back_populates="user")


class Email(Base):
    """An address awaiting (or past) confirmation by its owner."""

    __tablename__ = "emails"
    __table_args__ = (
        UniqueConstraint("user_id", "email", name="uq_emails_user_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    token_generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="emails")


# ══════════════════════════════════════════════════════════════
# Credentials
# ══════════════════════════════════════════════════════════════


class ApiToken(Base):
    """Bearer token for programmatic access (cargo publish, CI, etc.).

    The plaintext value is returned once, at creation. Revocation is a
    soft delete: the row stays for audit, the flag stops it authenticating.
    """

    __tablename__ = "api_tokens"
    __table_args__ = (
        Index("idx_api_tokens_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    last_used_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revoked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    user: Mapped["User"] = relationship(back_populates="api_tokens")


# ══════════════════════════════════════════════════════════════
# Audit log
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """Append-only audit record of identity and credential changes.

    stream_id examples: "user:42", "api_token:7"
    type examples: "user.reconciled", "api_token.revoked"
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_stream", "stream_id", "id"),
        Index("idx_events_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    # Python attr is "meta" because "metadata" is reserved by SQLAlchemy.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
