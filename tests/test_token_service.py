"""Token Issuer 테스트. 서명·만료·종류 검증, 부수효과 없음."""

from datetime import timedelta

import jwt
import pytest

from app.core.errors import TokenExpired, TokenMalformed, TokenWrongKind
from app.services import token_service
from app.services.token_service import TokenKind


def test_issue_and_verify_returns_payload():
    token = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(minutes=15))
    assert token_service.verify(token, TokenKind.MAGIC_LINK) == {"email": "a@ttu.edu"}


def test_each_token_has_unique_jti():
    a = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(minutes=15))
    b = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(minutes=15))
    jti_a = token_service.verify_claims(a, TokenKind.MAGIC_LINK)["jti"]
    jti_b = token_service.verify_claims(b, TokenKind.MAGIC_LINK)["jti"]
    assert jti_a != jti_b


def test_expired_token_rejected():
    token = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(seconds=-30))
    with pytest.raises(TokenExpired):
        token_service.verify(token, TokenKind.MAGIC_LINK)


def test_wrong_kind_rejected():
    token = token_service.issue(TokenKind.PASSWORD_RESET, {"user_id": 1}, timedelta(minutes=5))
    with pytest.raises(TokenWrongKind):
        token_service.verify(token, TokenKind.MAGIC_LINK)


def test_tampered_token_rejected():
    token = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(minutes=5))
    head, body, sig = token.split(".")
    tampered = ".".join([head, body, sig[:-2] + ("AA" if sig[-2:] != "AA" else "BB")])
    with pytest.raises(TokenMalformed):
        token_service.verify(tampered, TokenKind.MAGIC_LINK)


def test_foreign_secret_rejected():
    forged = jwt.encode(
        {"type": "magic-link", "data": {"email": "a@ttu.edu"}, "jti": "x", "iat": 0, "exp": 4102444800},
        "some-other-secret-that-is-long-enough-000",
        algorithm="HS256",
    )
    with pytest.raises(TokenMalformed):
        token_service.verify(forged, TokenKind.MAGIC_LINK)


def test_garbage_rejected():
    with pytest.raises(TokenMalformed):
        token_service.verify("not-a-jwt", TokenKind.MAGIC_LINK)


def test_remaining_seconds_is_positive():
    token = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(minutes=15))
    claims = token_service.verify_claims(token, TokenKind.MAGIC_LINK)
    assert 0 < token_service.remaining_seconds(claims) <= 15 * 60


def test_opaque_tokens_are_unique():
    tokens = {token_service.generate_opaque_token() for _ in range(100)}
    assert len(tokens) == 100
