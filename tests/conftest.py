"""Test fixtures — a fresh schema for every test.

Tests run against CRATEWARD_TEST_DATABASE_URL when it is set (PostgreSQL),
otherwise against a throwaway SQLite file per test through aiosqlite.
Both support the partial unique index and ON CONFLICT upserts the
services rely on.

The app gets its own session per request (like production), so tests read
results back through a separate session instead of a shared identity map.
"""

import itertools
import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crateward.auth.jwt import create_session_token
from crateward.auth.rights import Team, TeamDirectory
from crateward.config import settings
from crateward.db.engine import build_engine, get_db, init_db
from crateward.db.models import Base
from crateward.main import app
from crateward.services.mailer import MailError, Mailer, get_mailer
from crateward.services.user_service import NewUser, UserService


class RecordingMailer(Mailer):
    """Keeps every message instead of sending it; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, recipient: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailError("mail backend unavailable")
        self.sent.append((recipient, subject, body))


class StaticTeamDirectory(TeamDirectory):
    """Membership from a fixed {team_id: {user_id, ...}} map; records lookups."""

    def __init__(self, members: dict[int, set[int]] | None = None):
        self.members = members or {}
        self.lookups: list[tuple[int, int]] = []

    async def is_member(self, team: Team, user) -> bool:
        self.lookups.append((team.id, user.id))
        return user.id in self.members.get(team.id, set())


@pytest_asyncio.fixture()
async def engine(tmp_path):
    url = os.environ.get("CRATEWARD_TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'crateward.db'}"
    )
    engine = build_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest_asyncio.fixture()
async def client(session_factory, mailer):
    """HTTP client with a per-request test session and the recording mailer."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session_factory, mailer):
    """Factory: reconcile a GitHub identity and return the stored user."""
    gh_ids = itertools.count(1001)

    async def _make(login: str = "foo", email: str | None = None, gh_id: int | None = None):
        async with session_factory() as session:
            return await UserService(session, mailer).create_or_update(
                NewUser(
                    gh_id=gh_id if gh_id is not None else next(gh_ids),
                    gh_login=login,
                    gh_access_token=f"gho_{login}",
                    email=email,
                    name=login.title(),
                )
            )

    return _make


@pytest_asyncio.fixture()
async def user(make_user):
    return await make_user("foo", email="foo@example.com")


@pytest.fixture()
def session_headers():
    """Headers for a browser request logged in as the given user."""

    def _headers(user) -> dict:
        token = create_session_token(user.id)
        return {"Cookie": f"{settings.session_cookie_name}={token}"}

    return _headers


@pytest.fixture()
def token_headers():
    """Headers for a cargo-style request using an API token."""

    def _headers(token: str) -> dict:
        return {"Authorization": token}

    return _headers


@pytest.fixture()
def failing_mailer():
    return RecordingMailer(fail=True)


@pytest.fixture()
def team_directory():
    return StaticTeamDirectory()
