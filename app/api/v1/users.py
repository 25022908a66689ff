"""Users API. 내 프로필 조회·부분 수정·계정 삭제."""

from typing import Any

from fastapi import APIRouter, Depends

from app.api.errors import to_http
from app.api.v1.auth import get_current_user
from app.core.deps import get_redis
from app.core.errors import IdentityError
from app.models.user import User
from app.schemas.user import ProfileUpdate, UserResponse
from app.services import profile_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_my_profile(user: User = Depends(get_current_user)) -> User:
    return user


@router.put("/me", response_model=UserResponse)
async def put_my_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    redis_client: Any = Depends(get_redis),
) -> User:
    """부분 수정. R Number 중복 시 409 DUPLICATE_R_NUMBER, 다른 쓰기 진행 중이면 409 IN_PROGRESS."""
    try:
        return await profile_service.update_profile(user.id, payload, lock_client=redis_client)
    except IdentityError as e:
        raise to_http(e) from e


@router.delete("/me", status_code=204)
async def delete_my_account(user: User = Depends(get_current_user)) -> None:
    """계정 삭제. 세션·연결 토큰·파일 모두 제거."""
    try:
        await profile_service.delete_account(user.id)
    except IdentityError as e:
        raise to_http(e) from e
