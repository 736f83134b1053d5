"""API token service tests — issue, list, revoke, authenticate."""

import asyncio

import pytest
from sqlalchemy import func, select

from crateward.db.models import ApiToken
from crateward.errors import NotFound, ValidationFailure
from crateward.events.store import EventStore, token_stream
from crateward.events.types import API_TOKEN_CREATED, API_TOKEN_REVOKED
from crateward.services.token_service import ApiTokenService


async def _reload(session_factory, token_id: int) -> ApiToken:
    async with session_factory() as s:
        return await s.get(ApiToken, token_id)


# ═══════════════════════════════════════════════════════════
# Issue
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_insert_returns_plaintext(db_session, user):
    token = await ApiTokenService(db_session).insert(user.id, "bar")
    assert token.name == "bar"
    assert token.user_id == user.id
    assert len(token.token) >= 32
    assert token.last_used_at is None
    assert token.revoked is False


@pytest.mark.asyncio
async def test_insert_values_are_unique(db_session, user):
    svc = ApiTokenService(db_session)
    values = {(await svc.insert(user.id, "bar")).token for _ in range(5)}
    assert len(values) == 5


@pytest.mark.asyncio
async def test_insert_empty_name(db_session, user):
    with pytest.raises(ValidationFailure) as exc:
        await ApiTokenService(db_session).insert(user.id, "  ")
    assert exc.value.detail == "name must have a value"


@pytest.mark.asyncio
async def test_insert_name_too_long(db_session, user):
    with pytest.raises(ValidationFailure):
        await ApiTokenService(db_session, max_name_length=10).insert(user.id, "x" * 11)


@pytest.mark.asyncio
async def test_insert_up_to_cap_then_fail(session_factory, user):
    async with session_factory() as s:
        svc = ApiTokenService(s, max_tokens_per_user=3)
        for i in range(3):
            await svc.insert(user.id, f"token {i}")

        with pytest.raises(ValidationFailure) as exc:
            await svc.insert(user.id, "one too many")
        assert "maximum tokens per user" in exc.value.detail

    async with session_factory() as s:
        count = (
            await s.execute(select(func.count()).select_from(ApiToken))
        ).scalar_one()
    assert count == 3


@pytest.mark.asyncio
async def test_zero_cap_refuses_every_token(db_session, user):
    with pytest.raises(ValidationFailure) as exc:
        await ApiTokenService(db_session, max_tokens_per_user=0).insert(user.id, "bar")
    assert exc.value.detail == "maximum tokens per user is: 0"


@pytest.mark.asyncio
async def test_concurrent_issue_respects_cap(session_factory, user):
    """Parallel requests for one user can't slip past the cap together."""

    async def issue(name: str) -> str:
        async with session_factory() as s:
            try:
                await ApiTokenService(s, max_tokens_per_user=1).insert(user.id, name)
            except ValidationFailure:
                return "capped"
            return "ok"

    outcomes = await asyncio.gather(*(issue(f"n{i}") for i in range(4)))
    assert sorted(outcomes) == ["capped", "capped", "capped", "ok"]

    async with session_factory() as s:
        count = (
            await s.execute(select(func.count()).select_from(ApiToken))
        ).scalar_one()
    assert count == 1

@pytest.mark.asyncio
async def test_revoked_tokens_free_up_the_cap(db_session, user):
    svc = ApiTokenService(db_session, max_tokens_per_user=1)
    first = await svc.insert(user.id, "first")
    await svc.revoke(user.id, first.id)
    second = await svc.insert(user.id, "second")
    assert second.id != first.id


# ═══════════════════════════════════════════════════════════
# List
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_list_includes_revoked_in_id_order(db_session, user, make_user):
    other = await make_user("other")
    svc = ApiTokenService(db_session)
    a = await svc.insert(user.id, "a")
    b = await svc.insert(user.id, "b")
    await svc.insert(other.id, "not mine")
    await svc.revoke(user.id, a.id)

    tokens = await svc.list_for_user(user.id)
    assert [t.id for t in tokens] == [a.id, b.id]
    assert [t.revoked for t in tokens] == [True, False]


# ═══════════════════════════════════════════════════════════
# Revoke
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_revoke_own_token(session_factory, user):
    async with session_factory() as s:
        svc = ApiTokenService(s)
        token = await svc.insert(user.id, "bar")
        await svc.revoke(user.id, token.id)

    assert (await _reload(session_factory, token.id)).revoked is True


@pytest.mark.asyncio
async def test_revoke_other_users_token_is_silent_noop(session_factory, user, make_user):
    other = await make_user("baz")
    async with session_factory() as s:
        token = await ApiTokenService(s).insert(user.id, "bar")
    async with session_factory() as s:
        await ApiTokenService(s).revoke(other.id, token.id)

    assert (await _reload(session_factory, token.id)).revoked is False


@pytest.mark.asyncio
async def test_revoke_nonexistent_is_silent(db_session, user):
    await ApiTokenService(db_session).revoke(user.id, 99999)


@pytest.mark.asyncio
async def test_revoke_twice_records_one_event(session_factory, user):
    async with session_factory() as s:
        svc = ApiTokenService(s)
        token = await svc.insert(user.id, "bar")
        await svc.revoke(user.id, token.id)
        await svc.revoke(user.id, token.id)

    async with session_factory() as s:
        stream = await EventStore(s).history(token_stream(token.id))
    assert [e.type for e in stream] == [API_TOKEN_CREATED, API_TOKEN_REVOKED]
    assert stream[1].data == {"user_id": user.id}


# ═══════════════════════════════════════════════════════════
# Authenticate
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_find_user_by_token_stamps_last_used(session_factory, user):
    async with session_factory() as s:
        token = await ApiTokenService(s).insert(user.id, "bar")
    assert (await _reload(session_factory, token.id)).last_used_at is None

    async with session_factory() as s:
        found = await ApiTokenService(s).find_user_by_token(token.token)
    assert found.id == user.id
    assert (await _reload(session_factory, token.id)).last_used_at is not None


@pytest.mark.asyncio
async def test_find_user_by_unknown_token(db_session, user):
    with pytest.raises(NotFound):
        await ApiTokenService(db_session).find_user_by_token("no-such-token")


@pytest.mark.asyncio
async def test_revoked_token_no_longer_authenticates(session_factory, user):
    async with session_factory() as s:
        svc = ApiTokenService(s)
        token = await svc.insert(user.id, "bar")
        await svc.revoke(user.id, token.id)

    async with session_factory() as s:
        with pytest.raises(NotFound):
            await ApiTokenService(s).find_user_by_token(token.token)
    assert (await _reload(session_factory, token.id)).last_used_at is None


@pytest.mark.asyncio
async def test_authentication_racing_revoke(session_factory, user):
    """Either the request got in before the revoke, or it is rejected. Never after."""
    async with session_factory() as s:
        token = await ApiTokenService(s).insert(user.id, "bar")

    async def authenticate():
        async with session_factory() as s:
            return await ApiTokenService(s).find_user_by_token(token.token)

    async def revoke():
        async with session_factory() as s:
            await ApiTokenService(s).revoke(user.id, token.id)

    outcome, revoked = await asyncio.gather(
        authenticate(), revoke(), return_exceptions=True
    )
    assert revoked is None
    if isinstance(outcome, NotFound):
        assert (await _reload(session_factory, token.id)).last_used_at is None
    else:
        assert outcome.id == user.id

    stored = await _reload(session_factory, token.id)
    assert stored.revoked is True
    async with session_factory() as s:
        with pytest.raises(NotFound):
            await ApiTokenService(s).find_user_by_token(token.token)
