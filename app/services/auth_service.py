"""Auth Service. OAuth(구글·Microsoft) code 검증, 매직링크, 이메일 기준 User upsert, 세션 발급."""

import logging
from datetime import timedelta
from typing import Any

import httpx
import jwt
from pydantic import ValidationError
from pyjwt_key_fetcher import AsyncKeyFetcher

from app.core.config import settings
from app.core.database import transaction
from app.core.errors import TokenAlreadyUsed
from app.core.redis import consume_token_once, release_consumed_token
from app.models.user import AuthProvider, User
from app.repositories.user_repository import upsert_by_email
from app.schemas.auth import GoogleTokenResponse, MicrosoftTokenResponse
from app.services import email_service, session_service, token_service
from app.services.session_service import SessionToken
from app.services.token_service import TokenKind

logger = logging.getLogger(__name__)

GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"
NETWORK_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)


class AuthError(Exception):
    """Auth 관련 예외. Router에서 HTTPException으로 변환."""

    pass


async def exchange_google_code(
    code: str,
    redirect_uri: str | None,
    client: httpx.AsyncClient,
) -> GoogleTokenResponse:
    """
    구글 OAuth Authorization Code를 액세스 토큰으로 교환.
    Pydantic 스키마로 검증. 네트워크 예외(Timeout, Connect) 시 AuthError로 변환(500 전파 방지).
    """
    client_secret = settings.google_client_secret.get_secret_value()
    try:
        resp = await client.post(
            "https://oauth2.googleapis.com/token",
            data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": client_secret,
                "redirect_uri": redirect_uri or "http://localhost",
                "grant_type": "authorization_code",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except NETWORK_ERRORS as e:
        logger.warning("Google token exchange network error: %s", e, exc_info=True)
        raise AuthError("Google auth temporarily unavailable") from e
    if resp.status_code != 200:
        logger.warning("Google token exchange failed: %s %s", resp.status_code, resp.text)
        raise AuthError("Invalid or expired authorization code")

    try:
        return GoogleTokenResponse.model_validate(resp.json())
    except ValidationError as e:
        raise AuthError("Invalid Google token response") from e


async def decode_google_id_token(
    id_token_str: str, key_fetcher: AsyncKeyFetcher
) -> dict[str, Any]:
    """구글 ID token 서명 검증 후 디코딩. key_fetcher는 lifespan 싱글톤(Depends)."""
    try:
        key_entry = await key_fetcher.get_key(id_token_str)
        payload = jwt.decode(
            jwt=id_token_str,
            audience=settings.google_client_id,
            options={"verify_exp": True, "verify_aud": True},
            **key_entry,
        )
        return payload
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid id_token: %s", e)
        raise AuthError("Invalid id_token") from e


def _allowed_redirect_uris() -> set[str]:
    """설정된 허용 redirect_uri 목록(쉼표 구분). 비어 있으면 빈 set(검사 생략)."""
    raw = (settings.google_redirect_uris or "").strip()
    if not raw:
        return set()
    return {u.strip() for u in raw.split(",") if u.strip()}


def _check_redirect_uri(redirect_uri: str | None) -> None:
    allowed = _allowed_redirect_uris()
    if allowed and redirect_uri is not None and redirect_uri.strip() not in allowed:
        raise AuthError("redirect_uri not allowed")


async def google_identity(
    code: str,
    redirect_uri: str | None = None,
    *,
    http_client: httpx.AsyncClient,
    key_fetcher: AsyncKeyFetcher,
) -> str:
    """
    구글 OAuth code → 검증된 이메일.
    1. redirect_uri 허용 목록 검사(설정 시)
    2. code → 구글 토큰 교환
    3. id_token JWKS 검증, email·email_verified 필수(누락 시 AuthError)
    """
    _check_redirect_uri(redirect_uri)
    token_data = await exchange_google_code(code, redirect_uri, http_client)
    claims = await decode_google_id_token(token_data.id_token, key_fetcher)
    email = (claims.get("email") or "").strip().lower()
    if not email:
        raise AuthError("Invalid id_token: missing email")
    if claims.get("email_verified") is False:
        raise AuthError("Google email not verified")
    return email


def microsoft_configured() -> bool:
    return bool(settings.microsoft_client_id and settings.microsoft_client_secret)


async def exchange_microsoft_code(
    code: str,
    redirect_uri: str | None,
    client: httpx.AsyncClient,
) -> MicrosoftTokenResponse:
    """Microsoft identity platform v2.0 토큰 엔드포인트에서 code 교환."""
    if not microsoft_configured():
        raise AuthError("Microsoft sign-in is not configured")
    url = f"https://login.microsoftonline.com/{settings.microsoft_tenant}/oauth2/v2.0/token"
    try:
        resp = await client.post(
            url,
            data={
                "code": code,
                "client_id": settings.microsoft_client_id,
                "client_secret": settings.microsoft_client_secret.get_secret_value(),
                "redirect_uri": redirect_uri or "http://localhost",
                "grant_type": "authorization_code",
                "scope": "openid email profile User.Read",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except NETWORK_ERRORS as e:
        logger.warning("Microsoft token exchange network error: %s", e, exc_info=True)
        raise AuthError("Microsoft auth temporarily unavailable") from e
    if resp.status_code != 200:
        logger.warning("Microsoft token exchange failed: %s %s", resp.status_code, resp.text)
        raise AuthError("Invalid or expired authorization code")
    try:
        return MicrosoftTokenResponse.model_validate(resp.json())
    except ValidationError as e:
        raise AuthError("Invalid Microsoft token response") from e


async def microsoft_identity(
    code: str,
    redirect_uri: str | None = None,
    *,
    http_client: httpx.AsyncClient,
) -> str:
    """Microsoft code → Graph /me 의 mail (없으면 userPrincipalName)."""
    _check_redirect_uri(redirect_uri)
    token_data = await exchange_microsoft_code(code, redirect_uri, http_client)
    try:
        resp = await http_client.get(
            GRAPH_ME_URL,
            headers={"Authorization": f"Bearer {token_data.access_token}"},
        )
    except NETWORK_ERRORS as e:
        logger.warning("Microsoft Graph network error: %s", e, exc_info=True)
        raise AuthError("Microsoft auth temporarily unavailable") from e
    if resp.status_code != 200:
        logger.warning("Microsoft Graph /me failed: %s", resp.status_code)
        raise AuthError("Could not read Microsoft profile")
    profile = resp.json()
    email = (profile.get("mail") or profile.get("userPrincipalName") or "").strip().lower()
    if not email:
        raise AuthError("Microsoft profile has no email")
    return email


def redirect_path_for(user: User) -> str:
    """로그인 후 이동 경로. 온보딩 미완료면 /onboarding."""
    return "/profile" if user.has_completed_onboarding else "/onboarding"


async def login_with_identity(email: str, provider: str) -> tuple[User, SessionToken]:
    """
    인증 채널이 확인한 (email, provider)로 로그인.
    이메일 기준 find-or-create(단일 upsert) 후 새 세션 발급. 한 트랜잭션.
    """
    async with transaction() as session:
        user = await upsert_by_email(session, email, provider)
        token = await session_service.create_session(session, user)
    logger.info("Login: user_id=%s provider=%s", user.id, provider)
    return user, token


async def oauth_login(
    provider: str,
    code: str,
    redirect_uri: str | None = None,
    *,
    http_client: httpx.AsyncClient,
    key_fetcher: AsyncKeyFetcher,
) -> tuple[User, SessionToken]:
    if provider == AuthProvider.GOOGLE:
        email = await google_identity(
            code, redirect_uri, http_client=http_client, key_fetcher=key_fetcher
        )
    elif provider == AuthProvider.MICROSOFT:
        email = await microsoft_identity(code, redirect_uri, http_client=http_client)
    else:
        raise AuthError("Unsupported provider")
    return await login_with_identity(email, provider)


async def request_magic_link(email: str) -> None:
    """
    매직링크 발급 + 메일 발송. 계정 존재 여부와 무관하게 동일 동작(열거 방지).
    메일 실패는 로그만 남긴다.
    """
    token = token_service.issue(
        TokenKind.MAGIC_LINK,
        {"email": email},
        timedelta(minutes=settings.magic_link_expire_minutes),
    )
    link = f"{settings.server_url.rstrip('/')}/v1/auth/magic-link/verify?token={token}"
    sent = await email_service.send(
        email, "Your MLH TTU sign-in link", email_service.magic_link_html(link)
    )
    if not sent:
        logger.warning("Magic link email not delivered")


async def verify_magic_link(token: str, *, redis_client: Any = None) -> tuple[User, SessionToken]:
    """
    매직링크 검증 → jti 1회 소비(Redis) → email-magic-link 채널로 로그인. 로그인 실패 시 소비 취소.
    TokenExpired·TokenMalformed·TokenWrongKind·TokenAlreadyUsed는 호출자가 400으로 변환.
    """
    claims = token_service.verify_claims(token, TokenKind.MAGIC_LINK)
    email = str((claims.get("data") or {}).get("email") or "").strip().lower()
    if not email:
        raise AuthError("Invalid magic link")
    consumed = await consume_token_once(
        redis_client,
        claims["jti"],
        token_service.remaining_seconds(claims),
        fail_closed=settings.redis_blocklist_fail_closed,
    )
    if not consumed:
        raise TokenAlreadyUsed()
    try:
        return await login_with_identity(email, AuthProvider.EMAIL_MAGIC_LINK)
    except Exception:
        # 로그인이 확정되지 않았으면 링크를 되살린다.
        await release_consumed_token(redis_client, claims["jti"])
        raise


async def authenticate(bearer_token: str) -> User:
    """Bearer 세션 토큰 → User. SessionNotFound·SessionExpired 전파."""
    async with transaction() as session:
        return await session_service.validate(session, bearer_token)


async def logout(bearer_token: str) -> None:
    """현재 세션 삭제. 멱등."""
    async with transaction() as session:
        await session_service.destroy(session, bearer_token)
