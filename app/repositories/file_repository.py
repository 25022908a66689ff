"""StoredFile Repository. 파일 메타데이터 행만 다룬다 (디스크 바이트는 file_service)."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.stored_file import StoredFile


async def create(
    session: AsyncSession,
    user_id: int,
    kind: str,
    original_name: str,
    stored_name: str,
    mime_type: str,
    size: int,
) -> StoredFile:
    row = StoredFile(
        user_id=user_id,
        kind=kind,
        original_name=original_name,
        stored_name=stored_name,
        mime_type=mime_type,
        size=size,
    )
    session.add(row)
    await session.flush()
    return row


async def get_by_id(session: AsyncSession, file_id: int) -> StoredFile | None:
    result = await session.execute(select(StoredFile).where(StoredFile.id == file_id))
    return result.scalars().one_or_none()


async def list_for_user(session: AsyncSession, user_id: int) -> list[StoredFile]:
    result = await session.execute(
        select(StoredFile).where(StoredFile.user_id == user_id).order_by(StoredFile.id)
    )
    return list(result.scalars().all())


async def delete_all_for_user(session: AsyncSession, user_id: int) -> None:
    await session.execute(delete(StoredFile).where(StoredFile.user_id == user_id))


async def delete_by_id(session: AsyncSession, file_id: int) -> None:
    await session.execute(delete(StoredFile).where(StoredFile.id == file_id))
