"""Auth API. OAuth(구글·Microsoft)·매직링크 로그인, 세션 Bearer 토큰."""

from typing import Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.api.errors import to_http
from app.core.deps import get_google_key_fetcher, get_httpx_client, get_redis
from app.core.errors import IdentityError, SessionError
from app.models.user import User
from app.schemas.auth import (
    MagicLinkRequest,
    PasswordResetPayload,
    SentResponse,
    SessionRequest,
    SessionResponse,
)
from app.schemas.user import UserResponse
from app.services import auth_service, identity_service
from app.services.auth_service import AuthError
from app.services.session_service import SessionToken

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    if not credentials:
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization")
    return credentials.credentials


async def get_current_user(token: str = Depends(get_bearer_token)) -> User:
    """Authorization Bearer 세션 토큰 검증 후 User 반환. 만료·없음 → 401(재인증)."""
    try:
        return await auth_service.authenticate(token)
    except SessionError:
        raise HTTPException(status_code=401, detail="Invalid or expired session") from None


def _session_response(user: User, token: SessionToken) -> SessionResponse:
    return SessionResponse(
        bearer_token=token.bearer_token,
        expires_at=token.expires_at,
        redirect_to=auth_service.redirect_path_for(user),
    )


@router.post("/session", response_model=SessionResponse)
async def post_session(
    payload: SessionRequest,
    http_client: httpx.AsyncClient = Depends(get_httpx_client),
    key_fetcher=Depends(get_google_key_fetcher),
) -> SessionResponse:
    """
    OAuth Authorization Code로 로그인.
    provider(google|microsoft) 검증 후 이메일 기준 유저 upsert + 세션 발급.
    """
    try:
        user, token = await auth_service.oauth_login(
            payload.provider,
            payload.code,
            payload.redirect_uri,
            http_client=http_client,
            key_fetcher=key_fetcher,
        )
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return _session_response(user, token)


@router.post("/magic-link", response_model=SentResponse)
async def post_magic_link(payload: MagicLinkRequest) -> SentResponse:
    """매직링크 메일 요청. 계정 존재 여부와 무관하게 항상 {sent: true}."""
    await auth_service.request_magic_link(payload.email)
    return SentResponse()


@router.get("/magic-link/verify", response_model=SessionResponse)
async def get_magic_link_verify(
    token: str = Query(..., min_length=1, max_length=4096),
    redis_client: Any = Depends(get_redis),
) -> SessionResponse:
    """매직링크 검증 후 세션 발급. 만료·위조·재사용은 400(새 링크 요청 안내)."""
    try:
        user, session_token = await auth_service.verify_magic_link(token, redis_client=redis_client)
    except IdentityError as e:
        raise to_http(e) from e
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _session_response(user, session_token)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)) -> User:
    return user


@router.post("/logout", status_code=204)
async def post_logout(token: str = Depends(get_bearer_token)) -> None:
    """로그아웃. 현재 세션 행 삭제(멱등). 204 No Content."""
    await auth_service.logout(token)


@router.post("/password-reset", status_code=204)
async def post_password_reset(
    payload: PasswordResetPayload,
    redis_client: Any = Depends(get_redis),
) -> None:
    """계정 연결용 비밀번호 설정. 이후 /v1/account-link method=password로 재진입."""
    try:
        await identity_service.complete_password_reset(
            payload.token, payload.new_password, redis_client=redis_client
        )
    except IdentityError as e:
        raise to_http(e) from e
