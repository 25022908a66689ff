"""Auth Service 테스트. 외부 OAuth 호출은 mock, DB는 임시 SQLite."""

import re
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import SecretStr

from app.core.errors import SessionNotFound, TokenAlreadyUsed, TokenWrongKind, Unavailable
from app.models.user import AuthProvider
from app.schemas.auth import GoogleTokenResponse
from app.services import auth_service, email_service
from app.services.auth_service import AuthError, decode_google_id_token


def _google_token() -> GoogleTokenResponse:
    return GoogleTokenResponse(id_token="fake-id-token", access_token="fake-access")


@pytest.mark.asyncio
async def test_decode_google_id_token_valid() -> None:
    """decode_google_id_token: key_fetcher.get_key + jwt.decode mock 시 claims 반환."""
    mock_fetcher = AsyncMock()
    mock_fetcher.get_key = AsyncMock(return_value={"key": "dummy-key-for-test"})
    with patch(
        "app.services.auth_service.jwt.decode",
        return_value={"sub": "123", "email": "a@ttu.edu"},
    ):
        result = await decode_google_id_token("fake-id-token", mock_fetcher)
    assert result["email"] == "a@ttu.edu"


@pytest.mark.asyncio
async def test_decode_google_id_token_invalid() -> None:
    """서명 검증 실패 → AuthError."""
    mock_fetcher = AsyncMock()
    mock_fetcher.get_key = AsyncMock(return_value={"key": "dummy-key-for-test"})
    with pytest.raises(AuthError):
        await decode_google_id_token("not-a-jwt", mock_fetcher)


@pytest.mark.asyncio
async def test_google_identity_returns_lowercased_email() -> None:
    with (
        patch.object(auth_service, "exchange_google_code", AsyncMock(return_value=_google_token())),
        patch.object(
            auth_service,
            "decode_google_id_token",
            AsyncMock(return_value={"email": "JDoe@TTU.edu", "email_verified": True}),
        ),
    ):
        email = await auth_service.google_identity(
            "code", http_client=AsyncMock(), key_fetcher=AsyncMock()
        )
    assert email == "jdoe@ttu.edu"


@pytest.mark.asyncio
async def test_google_identity_rejects_unverified_email() -> None:
    with (
        patch.object(auth_service, "exchange_google_code", AsyncMock(return_value=_google_token())),
        patch.object(
            auth_service,
            "decode_google_id_token",
            AsyncMock(return_value={"email": "a@ttu.edu", "email_verified": False}),
        ),
        pytest.raises(AuthError),
    ):
        await auth_service.google_identity("code", http_client=AsyncMock(), key_fetcher=AsyncMock())


@pytest.mark.asyncio
async def test_google_identity_checks_redirect_uri(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth_service.settings, "google_redirect_uris", "https://app.example/cb")
    with pytest.raises(AuthError):
        await auth_service.google_identity(
            "code", "https://evil.example/cb", http_client=AsyncMock(), key_fetcher=AsyncMock()
        )


@pytest.mark.asyncio
async def test_microsoft_not_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth_service.settings, "microsoft_client_id", None)
    async with httpx.AsyncClient() as client:
        with pytest.raises(AuthError):
            await auth_service.microsoft_identity("code", http_client=client)


@pytest.mark.asyncio
async def test_microsoft_identity_reads_graph_profile(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth_service.settings, "microsoft_client_id", "ms-client")
    monkeypatch.setattr(auth_service.settings, "microsoft_client_secret", SecretStr("ms-secret"))

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.microsoftonline.com":
            return httpx.Response(200, json={"access_token": "ms-access", "token_type": "Bearer"})
        assert request.headers["Authorization"] == "Bearer ms-access"
        return httpx.Response(200, json={"mail": None, "userPrincipalName": "JDoe@ttu.edu"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        email = await auth_service.microsoft_identity("code", http_client=client)
    assert email == "jdoe@ttu.edu"


@pytest.mark.asyncio
async def test_microsoft_bad_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(auth_service.settings, "microsoft_client_id", "ms-client")
    monkeypatch.setattr(auth_service.settings, "microsoft_client_secret", SecretStr("ms-secret"))
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(AuthError):
            await auth_service.microsoft_identity("code", http_client=client)


@pytest.mark.asyncio
async def test_login_with_identity_is_find_or_create(db) -> None:
    """같은 이메일로 두 번 로그인 → 같은 유저, 세션은 각각 발급."""
    user1, token1 = await auth_service.login_with_identity("a@ttu.edu", AuthProvider.GOOGLE)
    user2, token2 = await auth_service.login_with_identity("a@ttu.edu", AuthProvider.MICROSOFT)
    assert user1.id == user2.id
    assert user2.provider == AuthProvider.GOOGLE
    assert token1.bearer_token != token2.bearer_token
    assert auth_service.redirect_path_for(user2) == "/onboarding"


@pytest.mark.asyncio
async def test_oauth_login_unsupported_provider(db) -> None:
    with pytest.raises(AuthError):
        await auth_service.oauth_login("github", "code", http_client=AsyncMock(), key_fetcher=AsyncMock())


@pytest.mark.asyncio
async def test_magic_link_round_trip_single_use(db, fake_redis, monkeypatch) -> None:
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(email_service, "send", send)

    await auth_service.request_magic_link("a@ttu.edu")
    to, _subject, html = send.await_args.args
    assert to == "a@ttu.edu"
    token = re.search(r"token=([A-Za-z0-9_\-.]+)", html).group(1)

    user, session_token = await auth_service.verify_magic_link(token, redis_client=fake_redis)
    assert user.email == "a@ttu.edu"
    assert user.provider == AuthProvider.EMAIL_MAGIC_LINK
    assert (await auth_service.authenticate(session_token.bearer_token)).id == user.id

    with pytest.raises(TokenAlreadyUsed):
        await auth_service.verify_magic_link(token, redis_client=fake_redis)


@pytest.mark.asyncio
async def test_magic_link_email_failure_does_not_raise(db, monkeypatch) -> None:
    monkeypatch.setattr(email_service, "send", AsyncMock(return_value=False))
    await auth_service.request_magic_link("a@ttu.edu")


@pytest.mark.asyncio
async def test_magic_link_rejects_other_token_kinds(db) -> None:
    from datetime import timedelta

    from app.services import token_service
    from app.services.token_service import TokenKind

    token = token_service.issue(TokenKind.PASSWORD_RESET, {"email": "a@ttu.edu"}, timedelta(minutes=5))
    with pytest.raises(TokenWrongKind):
        await auth_service.verify_magic_link(token)


@pytest.mark.asyncio
async def test_logout_invalidates_session(db) -> None:
    _user, token = await auth_service.login_with_identity("a@ttu.edu", AuthProvider.GOOGLE)
    await auth_service.logout(token.bearer_token)
    await auth_service.logout(token.bearer_token)
    with pytest.raises(SessionNotFound):
        await auth_service.authenticate(token.bearer_token)


@pytest.mark.asyncio
async def test_magic_link_not_burned_when_login_fails(db, fake_redis) -> None:
    from datetime import timedelta

    from app.services import token_service
    from app.services.token_service import TokenKind

    token = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(minutes=15))
    with patch.object(auth_service, "login_with_identity", AsyncMock(side_effect=Unavailable())):
        with pytest.raises(Unavailable):
            await auth_service.verify_magic_link(token, redis_client=fake_redis)
    assert fake_redis.store == {}

    user, _session_token = await auth_service.verify_magic_link(token, redis_client=fake_redis)
    assert user.email == "a@ttu.edu"
    with pytest.raises(TokenAlreadyUsed):
        await auth_service.verify_magic_link(token, redis_client=fake_redis)
