"""User Repository. DB 쿼리만 수행."""

from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.models.user import User


def _insert_for(session: AsyncSession):
    """바인딩된 방언의 insert. 운영은 PostgreSQL, 테스트는 SQLite(둘 다 ON CONFLICT 지원)."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def get_by_id(session: AsyncSession, user_id: int) -> User | None:
    """id로 유저 조회. 병합으로 은퇴한 행도 반환."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalars().one_or_none()


async def get_active_by_id(session: AsyncSession, user_id: int) -> User | None:
    """id로 활성 유저 조회 (merged_into_id IS NULL)."""
    result = await session.execute(
        select(User).where(User.id == user_id, User.merged_into_id.is_(None))
    )
    return result.scalars().one_or_none()


async def get_active_by_email(session: AsyncSession, email: str) -> User | None:
    """이메일로 활성 유저 조회."""
    result = await session.execute(
        select(User).where(User.email == email, User.merged_into_id.is_(None))
    )
    return result.scalars().one_or_none()


async def get_by_r_number(session: AsyncSession, r_number: str) -> User | None:
    """R Number 보유 활성 유저 조회. 제약상 최대 1행."""
    result = await session.execute(
        select(User).where(User.r_number == r_number, User.merged_into_id.is_(None))
    )
    return result.scalars().one_or_none()


async def upsert_by_email(session: AsyncSession, email: str, provider: str) -> User:
    """
    INSERT ... ON CONFLICT (email) WHERE merged_into_id IS NULL DO UPDATE.
    동시 로그인 시 레이스 컨디션 없이 단일 쿼리로 처리. 기존 유저의 provider는 바꾸지 않고 last_login_at만 갱신.
    """
    now = clock.utcnow()
    insert = _insert_for(session)
    base = insert(User).values(
        email=email,
        provider=provider,
        has_completed_onboarding=False,
        created_at=now,
        updated_at=now,
        last_login_at=now,
    )
    stmt = base.on_conflict_do_update(
        index_elements=[User.email],
        index_where=User.merged_into_id.is_(None),
        set_={User.last_login_at: now},
    ).returning(User.id)
    result = await session.execute(stmt)
    user_id = result.scalars().one()
    await session.flush()
    user = await session.get(User, user_id, populate_existing=True)
    if user is None:
        raise RuntimeError("User not found after upsert")
    return user


async def update_fields(session: AsyncSession, user_id: int, values: dict[str, Any]) -> None:
    """지정 컬럼만 UPDATE. updated_at 자동 갱신. R Number 유니크 위반은 IntegrityError로 전파."""
    if not values:
        return
    await session.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values, updated_at=clock.utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.flush()


async def retire_into(session: AsyncSession, duplicate_id: int, survivor_id: int) -> None:
    """병합된 중복 행을 은퇴 처리(merged_into_id 설정). 행은 생존 유저 삭제 시까지 남는다."""
    await session.execute(
        update(User)
        .where(User.id == duplicate_id)
        .values(merged_into_id=survivor_id, updated_at=clock.utcnow())
        .execution_options(synchronize_session=False)
    )


async def list_retired_ids(session: AsyncSession, survivor_id: int) -> list[int]:
    """survivor_id로 병합되어 은퇴한 중복 행 id 목록."""
    result = await session.execute(select(User.id).where(User.merged_into_id == survivor_id))
    return list(result.scalars().all())


async def set_password_hash(session: AsyncSession, user_id: int, password_hash: str) -> None:
    await update_fields(session, user_id, {"password_hash": password_hash})


async def delete_user(session: AsyncSession, user_id: int) -> None:
    """유저 행 삭제. 세션·토큰·파일 행은 FK CASCADE (호출자가 명시 삭제도 수행)."""
    await session.execute(delete(User).where(User.id == user_id))
