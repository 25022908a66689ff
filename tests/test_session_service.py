"""Session Store 테스트. 고정 만료, lazy 만료 삭제, 멱등 destroy."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from app.core import clock
from app.core.database import transaction
from app.core.errors import SessionExpired, SessionNotFound
from app.models import Session
from app.repositories import user_repository
from app.services import session_service


async def _count_sessions() -> int:
    async with transaction() as session:
        return (await session.execute(select(func.count()).select_from(Session))).scalar_one()


@pytest.mark.asyncio
async def test_create_then_validate_returns_user(make_user):
    user = await make_user("a@ttu.edu")
    async with transaction() as session:
        token = await session_service.create_session(session, user)
    async with transaction() as session:
        found = await session_service.validate(session, token.bearer_token)
    assert found.id == user.id


@pytest.mark.asyncio
async def test_validate_does_not_extend_expiry(make_user):
    user = await make_user("a@ttu.edu")
    async with transaction() as session:
        token = await session_service.create_session(session, user)
    async with transaction() as session:
        await session_service.validate(session, token.bearer_token)
    async with transaction() as session:
        row = (await session.execute(select(Session))).scalars().one()
    assert clock.as_utc(row.expires_at) == token.expires_at


@pytest.mark.asyncio
async def test_unknown_token_not_found(db):
    async with transaction() as session:
        with pytest.raises(SessionNotFound):
            await session_service.validate(session, "nope")


@pytest.mark.asyncio
async def test_expired_session_is_deleted(make_user, monkeypatch):
    user = await make_user("a@ttu.edu")
    async with transaction() as session:
        token = await session_service.create_session(session, user)

    later = token.expires_at + timedelta(seconds=1)
    monkeypatch.setattr(clock, "utcnow", lambda: later)
    with pytest.raises(SessionExpired):
        async with transaction() as session:
            await session_service.validate(session, token.bearer_token)
    assert await _count_sessions() == 0

    # 두 번째 조회는 없음
    with pytest.raises(SessionNotFound):
        async with transaction() as session:
            await session_service.validate(session, token.bearer_token)


@pytest.mark.asyncio
async def test_destroy_is_idempotent(make_user):
    user = await make_user("a@ttu.edu")
    async with transaction() as session:
        token = await session_service.create_session(session, user)
    async with transaction() as session:
        await session_service.destroy(session, token.bearer_token)
    async with transaction() as session:
        await session_service.destroy(session, token.bearer_token)
    assert await _count_sessions() == 0


@pytest.mark.asyncio
async def test_session_of_merged_user_is_not_found(make_user):
    survivor = await make_user("old@ttu.edu", r_number="R11111111", onboarded=True)
    dup = await make_user("new@gmail.com")
    async with transaction() as session:
        token = await session_service.create_session(session, dup)
    async with transaction() as session:
        await user_repository.retire_into(session, dup.id, survivor.id)
    async with transaction() as session:
        with pytest.raises(SessionNotFound):
            await session_service.validate(session, token.bearer_token)


@pytest.mark.asyncio
async def test_destroy_all_for_user(make_user):
    user = await make_user("a@ttu.edu")
    other = await make_user("b@ttu.edu")
    async with transaction() as session:
        await session_service.create_session(session, user)
        await session_service.create_session(session, user)
        keep = await session_service.create_session(session, other)
    async with transaction() as session:
        assert await session_service.destroy_all_for_user(session, user.id) == 2
    async with transaction() as session:
        assert (await session_service.validate(session, keep.bearer_token)).id == other.id


@pytest.mark.asyncio
async def test_expired_delete_does_not_commit_callers_transaction(make_user, monkeypatch):
    user = await make_user("a@ttu.edu")
    async with transaction() as session:
        token = await session_service.create_session(session, user)

    later = token.expires_at + timedelta(seconds=1)
    monkeypatch.setattr(clock, "utcnow", lambda: later)
    with pytest.raises(SessionExpired):
        async with transaction() as session:
            outer_commit = AsyncMock()
            monkeypatch.setattr(session, "commit", outer_commit)
            await session_service.validate(session, token.bearer_token)
    outer_commit.assert_not_awaited()
    assert await _count_sessions() == 0
