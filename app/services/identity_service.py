"""
Identity Resolver. R Number 충돌 감지, 계정 연결 토큰 생명주기, 병합.

상태 전이: 충돌 → 토큰 발급(used=false, +1h)
  → password: 비밀번호 확인 성공 시 MERGE(used=true), 실패 시 토큰은 미사용 상태로 유지
  → reset: 기존 유저 이메일로 재설정 메일 발송 후 종료(재설정 뒤 password로 재진입)
병합 후 새 채널로 생긴 중복 행은 삭제하지 않고 merged_into_id만 설정해 은퇴시킨다.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import clock
from app.core.config import settings
from app.core.database import transaction
from app.core.errors import (
    EmailCollision,
    InvalidSecret,
    LinkingTokenAlreadyUsed,
    LinkingTokenInvalid,
    TokenAlreadyUsed,
    UserNotFound,
)
from app.core.redis import consume_token_once, release_consumed_token
from app.core.security import hash_password, verify_password
from app.models.user import User
from app.repositories import linking_token_repository, user_repository
from app.services import email_service, session_service, token_service
from app.services.token_service import TokenKind

logger = logging.getLogger(__name__)


class ExistingUserSummary(BaseModel):
    """중복 감지 시 노출하는 기존 유저 요약. 이메일은 마스킹."""

    id: int
    first_name: str | None = None
    last_name: str | None = None
    masked_email: str
    has_password: bool


class LinkingTokenDetails(BaseModel):
    valid: bool
    used: bool
    expires_at: datetime
    new_email: str
    new_provider: str
    existing_user: ExistingUserSummary


def mask_email(email: str) -> str:
    """j***@ttu.edu 형태. 도메인은 그대로."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    head = local[:1] if local else ""
    return f"{head}***@{domain}"


def summarize(user: User) -> ExistingUserSummary:
    return ExistingUserSummary(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        masked_email=mask_email(user.email),
        has_password=bool(user.password_hash),
    )


async def find_by_r_number(session: AsyncSession, r_number: str) -> User | None:
    """R Number 소유 유저. 사전 검사용(권고). 최종 판정은 DB 유니크 제약."""
    return await user_repository.get_by_r_number(session, r_number)


async def create_linking_token(
    session: AsyncSession, existing_user_id: int, new_email: str, new_provider: str
) -> str:
    """used=false, 만료 now + linking_token_expire_minutes 인 토큰 1행 생성."""
    token = token_service.generate_opaque_token()
    expires_at = clock.utcnow() + timedelta(minutes=settings.linking_token_expire_minutes)
    await linking_token_repository.create(
        session, existing_user_id, new_email, new_provider, token, expires_at
    )
    logger.info(
        "Linking token issued: existing_user_id=%s new_provider=%s", existing_user_id, new_provider
    )
    return token


async def link_by_r_number(
    session: AsyncSession,
    r_number: str,
    new_email: str,
    new_provider: str,
    secret: str | None = None,
) -> User:
    """
    병합 본체. 토큰 유효성은 보지 않는다(호출자 책임).
    1. R Number 소유 유저 없음 → UserNotFound
    2. secret이 주어지면 기존 유저의 비밀번호와 일치해야 함 → InvalidSecret
    3. new_email이 R Number/온보딩 완료 상태의 다른 유저 소유 → EmailCollision
       미완료 중복 행이면 은퇴(merged_into_id) + 세션 삭제
    4. 기존 유저의 email/provider를 새 채널로 갱신
    """
    existing = await user_repository.get_by_r_number(session, r_number)
    if existing is None:
        raise UserNotFound()
    if secret is not None and not await verify_password(secret, existing.password_hash):
        raise InvalidSecret()

    if new_email != existing.email:
        other = await user_repository.get_active_by_email(session, new_email)
        if other is not None and other.id != existing.id:
            if other.r_number is not None or other.has_completed_onboarding:
                raise EmailCollision()
            await session_service.destroy_all_for_user(session, other.id)
            await user_repository.retire_into(session, other.id, existing.id)
            logger.info("Retired duplicate user_id=%s into user_id=%s", other.id, existing.id)

    await user_repository.update_fields(
        session, existing.id, {"email": new_email, "provider": new_provider}
    )
    merged = await session.get(User, existing.id, populate_existing=True)
    if merged is None:
        raise UserNotFound()
    return merged


async def process_linking(session: AsyncSession, token: str, secret: str | None = None) -> User:
    """
    토큰 검증 + used 전이 + 병합. 호출자는 transaction() 안에서 호출해야 하며
    어느 단계든 실패하면 전체가 rollback되어 토큰은 미사용 상태로 남는다.
    """
    row = await linking_token_repository.get_by_token(session, token, for_update=True)
    if row is None:
        raise LinkingTokenInvalid()
    if row.used:
        raise LinkingTokenAlreadyUsed()
    now = clock.utcnow()
    if now >= clock.as_utc(row.expires_at):
        raise LinkingTokenInvalid()
    if not await linking_token_repository.mark_used_if_unused(session, row.id, now):
        raise LinkingTokenAlreadyUsed()

    existing = await user_repository.get_active_by_id(session, row.existing_user_id)
    if existing is None or existing.r_number is None:
        raise UserNotFound()
    user = await link_by_r_number(
        session, existing.r_number, row.new_email, row.new_provider, secret=secret
    )
    logger.info("Account linked: user_id=%s provider=%s", user.id, row.new_provider)
    return user


async def get_linking_token_details(session: AsyncSession, token: str) -> LinkingTokenDetails | None:
    """토큰 + 기존 유저 요약. 토큰 또는 유저가 없으면 None."""
    row = await linking_token_repository.get_by_token(session, token)
    if row is None:
        return None
    existing = await user_repository.get_active_by_id(session, row.existing_user_id)
    if existing is None:
        return None
    expires_at = clock.as_utc(row.expires_at)
    return LinkingTokenDetails(
        valid=not row.used and clock.utcnow() < expires_at,
        used=row.used,
        expires_at=expires_at,
        new_email=row.new_email,
        new_provider=row.new_provider,
        existing_user=summarize(existing),
    )


async def validate_linking_token(session: AsyncSession, token: str) -> bool:
    details = await get_linking_token_details(session, token)
    return details is not None and details.valid


async def send_password_reset_for_linking(email: str) -> None:
    """
    계정 존재 여부를 노출하지 않기 위해 항상 정상 반환.
    모르는 이메일이면 아무것도 하지 않고, 아는 이메일이면 password-reset 토큰 메일 발송(실패는 로그만).
    """
    async with transaction() as session:
        user = await user_repository.get_active_by_email(session, email)
    if user is None:
        logger.info("Password reset for linking requested for unknown email; no-op")
        return
    token = token_service.issue(
        TokenKind.PASSWORD_RESET,
        {"user_id": user.id, "email": user.email},
        timedelta(minutes=settings.password_reset_expire_minutes),
    )
    link = f"{settings.client_url.rstrip('/')}/reset-password?token={token}"
    sent = await email_service.send(
        user.email, "Reset your MLH TTU password", email_service.password_reset_html(link)
    )
    if not sent:
        logger.warning("Password reset email not delivered: user_id=%s", user.id)


async def complete_password_reset(token: str, new_password: str, *, redis_client: Any) -> None:
    """
    password-reset 토큰 검증 → jti 1회 소비 → bcrypt 해시 저장.
    이후 유저는 계정 연결 password 방식으로 재진입할 수 있다.
    """
    claims = token_service.verify_claims(token, TokenKind.PASSWORD_RESET)
    data = claims.get("data") or {}
    consumed = await consume_token_once(
        redis_client,
        claims["jti"],
        token_service.remaining_seconds(claims),
        fail_closed=settings.redis_blocklist_fail_closed,
    )
    if not consumed:
        raise TokenAlreadyUsed()
    try:
        password_hash = await hash_password(new_password)
        async with transaction() as session:
            user = await user_repository.get_active_by_id(session, int(data.get("user_id", 0)))
            if user is None or user.email != data.get("email"):
                raise UserNotFound()
            await user_repository.set_password_hash(session, user.id, password_hash)
    except Exception:
        await release_consumed_token(redis_client, claims["jti"])
        raise
    logger.info("Password set via reset: user_id=%s", user.id)
