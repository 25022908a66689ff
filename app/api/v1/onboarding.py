"""Onboarding API. multipart: payload(JSON 문자열) + profile_picture + resume."""

from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.api.errors import status_for
from app.api.v1.auth import get_current_user
from app.core.config import settings
from app.core.deps import get_file_validator, get_redis
from app.models.stored_file import FileKind
from app.models.user import User
from app.schemas.account_link import (
    FailureResponse,
    OnboardingDuplicateResponse,
    OnboardingSuccessResponse,
)
from app.schemas.user import ProfileData, UserResponse
from app.services import profile_service
from app.services.file_service import FileValidator, UploadedFile
from app.services.onboarding_service import (
    OnboardingDuplicate,
    OnboardingFailure,
    complete_onboarding,
)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


async def read_upload(upload: UploadFile | None, kind: str, limit: int) -> UploadedFile | None:
    """상한 + 1 바이트까지만 읽는다. 초과 여부는 검증기가 판정."""
    if upload is None or not upload.filename:
        return None
    data = await upload.read(limit + 1)
    return UploadedFile(
        kind=kind,
        filename=upload.filename[:255],
        mime_type=(upload.content_type or "application/octet-stream").lower(),
        data=data,
    )


@router.post(
    "",
    response_model=OnboardingSuccessResponse,
    responses={409: {"model": OnboardingDuplicateResponse}, 400: {"model": FailureResponse}},
)
async def post_onboarding(
    payload: str = Form(..., description="ProfileData JSON"),
    profile_picture: UploadFile | None = File(None),
    resume: UploadFile | None = File(None),
    user: User = Depends(get_current_user),
    validator: FileValidator = Depends(get_file_validator),
    redis_client: Any = Depends(get_redis),
) -> Any:
    """
    온보딩 제출. 200 Success | 409 Duplicate(기존 유저 요약 + 연결 토큰) | 4xx/503 Failure.
    Duplicate 시 password·reset 두 경로 모두 안내.
    """
    try:
        data = ProfileData.model_validate_json(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e

    files = [
        f
        for f in (
            await read_upload(profile_picture, FileKind.PROFILE_PICTURE, settings.max_profile_picture_bytes),
            await read_upload(resume, FileKind.RESUME, settings.max_resume_bytes),
        )
        if f is not None
    ]

    outcome = await complete_onboarding(
        user.id, data, files, validator=validator, lock_client=redis_client
    )
    if isinstance(outcome, OnboardingDuplicate):
        body = OnboardingDuplicateResponse(
            existing_user=outcome.existing_user, linking_token=outcome.linking_token
        )
        return JSONResponse(status_code=409, content=body.model_dump(mode="json"))
    if isinstance(outcome, OnboardingFailure):
        body = FailureResponse(code=outcome.code, message=outcome.message)
        return JSONResponse(status_code=status_for(outcome.code), content=body.model_dump(mode="json"))

    profile = await profile_service.get_profile(outcome.user_id)
    return OnboardingSuccessResponse(user=UserResponse.model_validate(profile))
