"""Session Repository. DB 쿼리만 수행. 만료 세션 일괄 정리는 워커(동기)용."""

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session as SyncSession

from app.models.session import Session


async def create(session: AsyncSession, user_id: int, token: str, expires_at: datetime) -> Session:
    row = Session(user_id=user_id, token=token, expires_at=expires_at)
    session.add(row)
    await session.flush()
    return row


async def get_by_token(session: AsyncSession, token: str) -> Session | None:
    result = await session.execute(select(Session).where(Session.token == token))
    return result.scalars().one_or_none()


async def touch(session: AsyncSession, session_id: int, at: datetime) -> None:
    """last_accessed_at만 갱신. expires_at은 건드리지 않는다."""
    await session.execute(
        update(Session)
        .where(Session.id == session_id)
        .values(last_accessed_at=at)
        .execution_options(synchronize_session=False)
    )


async def delete_by_token(session: AsyncSession, token: str) -> int:
    """토큰 1건 삭제. 삭제된 행 수 반환 (없으면 0, 에러 아님)."""
    result = await session.execute(delete(Session).where(Session.token == token))
    return result.rowcount or 0


async def delete_by_id(session: AsyncSession, session_id: int) -> None:
    await session.execute(delete(Session).where(Session.id == session_id))


async def delete_all_for_user(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(delete(Session).where(Session.user_id == user_id))
    return result.rowcount or 0


def sweep_expired_sync(session: SyncSession, now: datetime) -> int:
    """만료 세션 일괄 삭제 (동기, 워커용). commit은 호출자."""
    result = session.execute(delete(Session).where(Session.expires_at <= now))
    return result.rowcount or 0
