"""
Onboarding Orchestrator. 여러 단계로 나뉘고 부분 실패가 가능한 작업을 하나의 결과로 묶는다.

complete_onboarding 순서:
1. 파일 검증 (DB 접근 전)
2. R Number 사전 검사 (권고, 타임아웃 상한. 결과 불명이면 Fail-closed)
3. blob 저장 → 한 트랜잭션에서 files 행 + 유저 프로필 갱신
4. R Number 유니크 제약 위반(경합) → 현재 소유자로 연결 토큰 발급 → Duplicate
5. 그 외 실패 → Failure. files 행은 프로필과 함께 rollback (디스크 blob은 남을 수 있음)
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from app.core.database import bounded, transaction
from app.core.errors import (
    ConstraintRace,
    IdentityError,
    LinkingTokenInvalid,
    UserNotFound,
    Unavailable,
    ValidatorRejected,
    WriteInProgress,
)
from app.core.redis import acquire_user_write_lock, release_user_write_lock
from app.models.stored_file import FileKind
from app.models.user import User
from app.repositories import file_repository, user_repository
from app.schemas.user import ProfileData
from app.services import identity_service, session_service
from app.services.file_service import FileValidator, Rejected, UploadedFile, remove_blob, store_blob
from app.services.identity_service import ExistingUserSummary
from app.services.session_service import SessionToken

logger = logging.getLogger(__name__)

INTERNAL = "INTERNAL"


class OnboardingSuccess(BaseModel):
    kind: Literal["success"] = "success"
    user_id: int


class OnboardingDuplicate(BaseModel):
    kind: Literal["duplicate"] = "duplicate"
    existing_user: ExistingUserSummary
    linking_token: str


class OnboardingFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    code: str
    message: str


class LinkingSuccess(BaseModel):
    kind: Literal["success"] = "success"
    user_id: int | None = None
    session: SessionToken | None = None
    message: str | None = None


OnboardingOutcome = OnboardingSuccess | OnboardingDuplicate | OnboardingFailure
LinkingOutcome = LinkingSuccess | OnboardingFailure


def _failure(exc: IdentityError) -> OnboardingFailure:
    return OnboardingFailure(code=exc.code, message=exc.message)


def is_r_number_violation(exc: IntegrityError) -> bool:
    """uq_users_r_number 위반 여부. PostgreSQL은 제약 이름, SQLite는 컬럼명으로 보고."""
    text = str(exc.orig) if exc.orig is not None else str(exc)
    return "uq_users_r_number" in text or "users.r_number" in text


async def _issue_duplicate(existing: User, user: User) -> OnboardingDuplicate:
    async with transaction() as session:
        token = await identity_service.create_linking_token(
            session, existing.id, user.email, user.provider
        )
    return OnboardingDuplicate(existing_user=identity_service.summarize(existing), linking_token=token)


async def _duplicate_after_race(r_number: str, user: User) -> OnboardingOutcome:
    """제약 위반 후 현재 소유자를 다시 읽어 Duplicate로 전환."""
    async with transaction() as session:
        holder = await bounded(
            identity_service.find_by_r_number(session, r_number), what="find_by_r_number(race)"
        )
        if holder is None or holder.id == user.id:
            # 소유자가 그 사이 사라짐. 재시도 가능한 실패로 보고.
            return _failure(Unavailable("R Number ownership changed, please retry"))
        token = await identity_service.create_linking_token(
            session, holder.id, user.email, user.provider
        )
    return OnboardingDuplicate(existing_user=identity_service.summarize(holder), linking_token=token)


async def _write_profile(user_id: int, data: ProfileData, files: list[UploadedFile]) -> None:
    """
    blob 저장 후 한 트랜잭션에서 files 행 + 프로필 갱신.
    재온보딩으로 교체된 이전 파일 행은 같은 트랜잭션에서 삭제, blob은 커밋 후 삭제.
    """
    stored: list[str] = []
    for upload in files:
        stored.append(await store_blob(upload))

    replaced: list[str] = []
    async with transaction() as session:
        current = await session.get(User, user_id, populate_existing=True)
        values: dict[str, Any] = {
            "first_name": data.first_name,
            "last_name": data.last_name,
            "major": data.major,
            "r_number": data.r_number,
            "university_level": str(data.university_level),
            "aspired_position": data.aspired_position,
            "github_url": data.github_url,
            "linkedin_url": data.linkedin_url,
            "twitter_url": data.twitter_url,
            "technology_skills": data.technology_skills,
            "has_completed_onboarding": True,
        }
        for upload, stored_name in zip(files, stored):
            row = await file_repository.create(
                session,
                user_id,
                upload.kind,
                upload.filename,
                stored_name,
                upload.mime_type,
                len(upload.data),
            )
            ref = "profile_picture_id" if upload.kind == FileKind.PROFILE_PICTURE else "resume_id"
            values[ref] = row.id
            old_id = getattr(current, ref) if current is not None else None
            if old_id is not None:
                old = await file_repository.get_by_id(session, old_id)
                if old is not None and old.user_id == user_id:
                    replaced.append(old.stored_name)
                    await file_repository.delete_by_id(session, old_id)
        try:
            await bounded(user_repository.update_fields(session, user_id, values), what="profile write")
        except IntegrityError as e:
            if is_r_number_violation(e):
                raise ConstraintRace() from e
            raise

    for name in replaced:
        await remove_blob(name)


async def complete_onboarding(
    user_id: int,
    data: ProfileData,
    files: list[UploadedFile],
    *,
    validator: FileValidator,
    lock_client: Any = None,
) -> OnboardingOutcome:
    """온보딩 완료. Success | Duplicate(기존 유저 요약, 연결 토큰) | Failure(code)."""
    for upload in files:
        result = validator.validate(upload.data, upload.mime_type, upload.kind)
        if isinstance(result, Rejected):
            logger.info("Onboarding file rejected: user_id=%s kind=%s", user_id, upload.kind)
            return _failure(ValidatorRejected(result.reason))

    try:
        acquired, lock_token = await acquire_user_write_lock(lock_client, user_id)
    except Unavailable as e:
        return _failure(e)
    if not acquired:
        return _failure(WriteInProgress())

    try:
        return await _complete_locked(user_id, data, files)
    finally:
        await release_user_write_lock(lock_client, user_id, lock_token)


async def _complete_locked(
    user_id: int, data: ProfileData, files: list[UploadedFile]
) -> OnboardingOutcome:
    try:
        async with transaction() as session:
            user = await bounded(user_repository.get_active_by_id(session, user_id), what="load user")
            if user is None:
                return _failure(UserNotFound())
            holder = await bounded(
                identity_service.find_by_r_number(session, data.r_number), what="find_by_r_number"
            )
    except Unavailable as e:
        logger.warning("Onboarding pre-check unavailable: user_id=%s", user_id)
        return _failure(e)

    if holder is not None and holder.id != user.id:
        logger.info("Duplicate R Number on onboarding: user_id=%s holder_id=%s", user_id, holder.id)
        try:
            return await _issue_duplicate(holder, user)
        except Unavailable as e:
            return _failure(e)

    try:
        await _write_profile(user_id, data, files)
    except ConstraintRace:
        logger.info("R Number claimed concurrently: user_id=%s", user_id)
        try:
            return await _duplicate_after_race(data.r_number, user)
        except Unavailable as e:
            return _failure(e)
    except IdentityError as e:
        return _failure(e)
    except Exception:
        logger.exception("Onboarding profile write failed: user_id=%s", user_id)
        return OnboardingFailure(code=INTERNAL, message="Could not save profile, please try again")

    logger.info("Onboarding completed: user_id=%s", user_id)
    return OnboardingSuccess(user_id=user_id)


async def complete_account_linking(
    linking_token: str,
    method: str,
    secret: str | None = None,
) -> LinkingOutcome:
    """
    password: secret 필수. process_linking 성공 시 병합된 유저로 새 세션 발급.
    reset: 토큰의 기존 유저 이메일로 재설정 메일 발송 후 항상 동일한 "sent" 응답.
    """
    if method == "password":
        if not secret:
            return OnboardingFailure(code="INVALID_SECRET", message="Password is required")
        try:
            async with transaction() as session:
                user = await identity_service.process_linking(session, linking_token, secret=secret)
                token = await session_service.create_session(session, user)
        except IdentityError as e:
            logger.info("Account linking failed: code=%s", e.code)
            return _failure(e)
        return LinkingSuccess(user_id=user.id, session=token)

    if method == "reset":
        existing = None
        async with transaction() as session:
            if await identity_service.validate_linking_token(session, linking_token):
                details = await identity_service.get_linking_token_details(session, linking_token)
                existing = await user_repository.get_active_by_id(session, details.existing_user.id)
        if existing is None:
            return _failure(LinkingTokenInvalid())
        await identity_service.send_password_reset_for_linking(existing.email)
        return LinkingSuccess(message="If an account exists, a reset email has been sent")

    return OnboardingFailure(code="INVALID_METHOD", message="Unsupported linking method")
