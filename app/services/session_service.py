"""
Session Store. 불투명 Bearer 토큰 ↔ DB 행. 만료는 고정(생성 + session_expire_days), 접근 시 연장하지 않음.
만료 판정은 조회 시점에 수행(lazy): 만료된 행은 그 자리에서 삭제 후 SessionExpired.
"""

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.config import settings
from app.core.database import detached_transaction
from app.core.errors import SessionExpired, SessionNotFound
from app.models.user import User
from app.repositories import session_repository, user_repository
from app.services.token_service import generate_opaque_token

logger = logging.getLogger(__name__)


class SessionToken(BaseModel):
    bearer_token: str
    expires_at: datetime


async def create_session(session: AsyncSession, user: User) -> SessionToken:
    now = clock.utcnow()
    expires_at = now + timedelta(days=settings.session_expire_days)
    token = generate_opaque_token()
    await session_repository.create(session, user.id, token, expires_at)
    return SessionToken(bearer_token=token, expires_at=expires_at)


async def validate(session: AsyncSession, bearer_token: str) -> User:
    """
    세션 검증 후 유저 반환. 없음 → SessionNotFound, 만료 → 행 삭제 후 SessionExpired.
    병합으로 은퇴한 유저의 세션은 없음으로 취급.
    """
    row = await session_repository.get_by_token(session, bearer_token)
    if row is None:
        raise SessionNotFound()
    now = clock.utcnow()
    if now >= clock.as_utc(row.expires_at):
        # 호출자 트랜잭션은 예외로 rollback되므로 삭제는 별도 세션에서 확정.
        async with detached_transaction() as own:
            await session_repository.delete_by_id(own, row.id)
        raise SessionExpired()
    user = await user_repository.get_active_by_id(session, row.user_id)
    if user is None:
        raise SessionNotFound()
    await session_repository.touch(session, row.id, now)
    return user


async def destroy(session: AsyncSession, bearer_token: str) -> None:
    """멱등. 없는 토큰이어도 에러 없음."""
    deleted = await session_repository.delete_by_token(session, bearer_token)
    if not deleted:
        logger.debug("destroy: session already gone")


async def destroy_all_for_user(session: AsyncSession, user_id: int) -> int:
    return await session_repository.delete_all_for_user(session, user_id)
