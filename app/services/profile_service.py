"""Profile Service. 프로필 조회·부분 수정·계정 삭제·프로필 파일 교체/삭제."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from app.core.database import bounded, transaction
from app.core.errors import FileNotFound, RNumberTaken, UserNotFound, ValidatorRejected, WriteInProgress
from app.core.redis import acquire_user_write_lock, release_user_write_lock
from app.models.stored_file import FileKind, StoredFile
from app.models.user import User
from app.repositories import file_repository, linking_token_repository, user_repository
from app.schemas.user import ProfileUpdate
from app.services import identity_service, session_service
from app.services.file_service import FileValidator, Rejected, UploadedFile, remove_blob, store_blob
from app.services.onboarding_service import is_r_number_violation

logger = logging.getLogger(__name__)

REF_BY_KIND = {FileKind.PROFILE_PICTURE: "profile_picture_id", FileKind.RESUME: "resume_id"}


async def get_profile(user_id: int) -> User:
    async with transaction() as session:
        user = await user_repository.get_active_by_id(session, user_id)
    if user is None:
        raise UserNotFound()
    return user


async def _acquire(lock_client: Any, user_id: int) -> str | None:
    acquired, lock_token = await acquire_user_write_lock(lock_client, user_id)
    if not acquired:
        raise WriteInProgress()
    return lock_token


async def update_profile(user_id: int, data: ProfileUpdate, *, lock_client: Any = None) -> User:
    """
    부분 수정. 보내지 않았거나 빈 문자열인 필드는 유지.
    R Number 변경은 온보딩과 같은 사전 검사 + 제약 위반 해석을 거쳐 RNumberTaken.
    """
    values: dict[str, Any] = {
        k: (str(v) if k == "university_level" else v)
        for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None
    }

    lock_token = await _acquire(lock_client, user_id)
    try:
        async with transaction() as session:
            user = await user_repository.get_active_by_id(session, user_id)
            if user is None:
                raise UserNotFound()
            new_r_number = values.get("r_number")
            if new_r_number is not None and new_r_number != user.r_number:
                holder = await bounded(
                    identity_service.find_by_r_number(session, new_r_number), what="find_by_r_number"
                )
                if holder is not None and holder.id != user_id:
                    raise RNumberTaken()
            try:
                await bounded(user_repository.update_fields(session, user_id, values), what="profile update")
            except IntegrityError as e:
                if is_r_number_violation(e):
                    raise RNumberTaken() from e
                raise
            updated = await session.get(User, user_id, populate_existing=True)
    finally:
        await release_user_write_lock(lock_client, user_id, lock_token)
    logger.info("Profile updated: user_id=%s fields=%s", user_id, sorted(values))
    return updated


async def replace_file(
    user_id: int,
    upload: UploadedFile,
    *,
    validator: FileValidator,
    lock_client: Any = None,
) -> StoredFile:
    """
    프로필 사진/이력서 교체. 새 blob 저장 → 한 트랜잭션에서 새 행 생성 + 프로필 참조 교체 + 이전 행 삭제.
    커밋 후 이전 blob 삭제. 트랜잭션 실패 시 새 blob을 지운다.
    """
    ref = REF_BY_KIND.get(upload.kind)
    if ref is None:
        raise ValidatorRejected(f"Unknown file kind: {upload.kind}")
    result = validator.validate(upload.data, upload.mime_type, upload.kind)
    if isinstance(result, Rejected):
        raise ValidatorRejected(result.reason)

    lock_token = await _acquire(lock_client, user_id)
    try:
        stored_name = await store_blob(upload)
        old_name: str | None = None
        try:
            async with transaction() as session:
                user = await user_repository.get_active_by_id(session, user_id)
                if user is None:
                    raise UserNotFound()
                old_id = getattr(user, ref)
                row = await file_repository.create(
                    session,
                    user_id,
                    upload.kind,
                    upload.filename,
                    stored_name,
                    upload.mime_type,
                    len(upload.data),
                )
                await user_repository.update_fields(session, user_id, {ref: row.id})
                if old_id is not None:
                    old = await file_repository.get_by_id(session, old_id)
                    if old is not None and old.user_id == user_id:
                        old_name = old.stored_name
                        await file_repository.delete_by_id(session, old.id)
        except Exception:
            await remove_blob(stored_name)
            raise
    finally:
        await release_user_write_lock(lock_client, user_id, lock_token)

    if old_name is not None:
        await remove_blob(old_name)
    logger.info("Profile file replaced: user_id=%s kind=%s file_id=%s", user_id, upload.kind, row.id)
    return row


async def delete_file(user_id: int, file_id: int, *, lock_client: Any = None) -> None:
    """소유자만. 행 삭제 + 이 파일을 가리키는 프로필 참조 해제, 커밋 후 blob 삭제."""
    lock_token = await _acquire(lock_client, user_id)
    try:
        async with transaction() as session:
            row = await file_repository.get_by_id(session, file_id)
            if row is None or row.user_id != user_id:
                raise FileNotFound()
            user = await user_repository.get_active_by_id(session, user_id)
            if user is None:
                raise UserNotFound()
            cleared = {ref: None for ref in REF_BY_KIND.values() if getattr(user, ref) == file_id}
            await user_repository.update_fields(session, user_id, cleared)
            stored_name = row.stored_name
            await file_repository.delete_by_id(session, file_id)
    finally:
        await release_user_write_lock(lock_client, user_id, lock_token)
    await remove_blob(stored_name)
    logger.info("File deleted: user_id=%s file_id=%s", user_id, file_id)


async def delete_account(user_id: int) -> None:
    """
    세션·연결 토큰·파일 행·유저 삭제 후 디스크 blob 베스트 에포트 삭제.
    이 유저로 병합되어 은퇴한 중복 행도 함께 삭제 (남기면 같은 이메일의 활성 행으로 되살아난다).
    """
    async with transaction() as session:
        user = await user_repository.get_active_by_id(session, user_id)
        if user is None:
            raise UserNotFound()
        retired_ids = await user_repository.list_retired_ids(session, user_id)
        stored_names: list[str] = []
        for owner_id in (user_id, *retired_ids):
            files = await file_repository.list_for_user(session, owner_id)
            stored_names.extend(f.stored_name for f in files)
            await session_service.destroy_all_for_user(session, owner_id)
            await linking_token_repository.delete_all_for_user(session, owner_id)
            await file_repository.delete_all_for_user(session, owner_id)
        for retired_id in retired_ids:
            await user_repository.delete_user(session, retired_id)
        await user_repository.delete_user(session, user_id)
    for name in stored_names:
        await remove_blob(name)
    logger.info(
        "Account deleted: user_id=%s retired=%d files=%d", user_id, len(retired_ids), len(stored_names)
    )
