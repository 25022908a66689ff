"""Files API. 업로드 파일 다운로드·프로필 사진/이력서 교체·삭제 (소유자만)."""

from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.errors import to_http
from app.api.v1.auth import get_current_user
from app.api.v1.onboarding import read_upload
from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_file_validator, get_redis
from app.core.errors import IdentityError
from app.models.stored_file import FileKind, StoredFile
from app.models.user import User
from app.repositories import file_repository
from app.schemas.user import StoredFileResponse
from app.services import profile_service
from app.services.file_service import FileValidator, path_for

router = APIRouter(prefix="/files", tags=["files"])


async def _replace(
    kind: str,
    limit: int,
    upload: UploadFile,
    user: User,
    validator: FileValidator,
    redis_client: Any,
) -> StoredFile:
    uploaded = await read_upload(upload, kind, limit)
    if uploaded is None:
        raise HTTPException(status_code=422, detail="File is required")
    try:
        return await profile_service.replace_file(
            user.id, uploaded, validator=validator, lock_client=redis_client
        )
    except IdentityError as e:
        raise to_http(e) from e


@router.post("/profile-picture", response_model=StoredFileResponse, status_code=201)
async def post_profile_picture(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    validator: FileValidator = Depends(get_file_validator),
    redis_client: Any = Depends(get_redis),
) -> StoredFile:
    """프로필 사진 업로드/교체. 이전 사진은 삭제."""
    return await _replace(
        FileKind.PROFILE_PICTURE, settings.max_profile_picture_bytes, file, user, validator, redis_client
    )


@router.post("/resume", response_model=StoredFileResponse, status_code=201)
async def post_resume(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    validator: FileValidator = Depends(get_file_validator),
    redis_client: Any = Depends(get_redis),
) -> StoredFile:
    """이력서(PDF) 업로드/교체. 이전 이력서는 삭제."""
    return await _replace(FileKind.RESUME, settings.max_resume_bytes, file, user, validator, redis_client)


@router.get("/{file_id}")
async def get_file(
    file_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
) -> FileResponse:
    """다른 유저의 파일은 존재 여부도 노출하지 않고 404."""
    row = await file_repository.get_by_id(session, file_id)
    if row is None or row.user_id != user.id:
        raise HTTPException(status_code=404, detail="File not found")
    path = path_for(row.stored_name)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type=row.mime_type, filename=row.original_name)


@router.delete("/{file_id}", status_code=204)
async def delete_file(
    file_id: int,
    user: User = Depends(get_current_user),
    redis_client: Any = Depends(get_redis),
) -> None:
    try:
        await profile_service.delete_file(user.id, file_id, lock_client=redis_client)
    except IdentityError as e:
        raise to_http(e) from e
