"""AccountLinkingToken Repository. DB 쿼리만 수행.

used 전이(false → true)는 mark_used_if_unused의 조건부 UPDATE로만 수행한다.
"""

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from app.models.account_linking_token import AccountLinkingToken


async def create(
    session: AsyncSession,
    existing_user_id: int,
    new_email: str,
    new_provider: str,
    token: str,
    expires_at: datetime,
) -> AccountLinkingToken:
    row = AccountLinkingToken(
        existing_user_id=existing_user_id,
        new_email=new_email,
        new_provider=new_provider,
        token=token,
        expires_at=expires_at,
        used=False,
    )
    session.add(row)
    await session.flush()
    return row


async def get_by_token(
    session: AsyncSession, token: str, *, for_update: bool = False
) -> AccountLinkingToken | None:
    """토큰 문자열로 조회. for_update=True면 SELECT ... FOR UPDATE (SQLite에서는 무시됨)."""
    stmt = select(AccountLinkingToken).where(AccountLinkingToken.token == token)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalars().one_or_none()


async def mark_used_if_unused(session: AsyncSession, token_id: int, now: datetime) -> bool:
    """
    Compare-and-set: used=false AND expires_at > now 인 경우에만 used=true.
    반환: True=이번 호출이 전이시킴, False=이미 사용됨/만료(경합에서 짐).
    """
    result = await session.execute(
        update(AccountLinkingToken)
        .where(
            AccountLinkingToken.id == token_id,
            AccountLinkingToken.used.is_(False),
            AccountLinkingToken.expires_at > now,
        )
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    return (result.rowcount or 0) == 1


async def delete_all_for_user(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        delete(AccountLinkingToken).where(AccountLinkingToken.existing_user_id == user_id)
    )
    return result.rowcount or 0


def cleanup_expired_sync(session: Session, now: datetime) -> int:
    """만료 토큰 일괄 삭제 (동기, 워커용). commit은 호출자."""
    result = session.execute(
        delete(AccountLinkingToken).where(AccountLinkingToken.expires_at <= now)
    )
    return result.rowcount or 0
