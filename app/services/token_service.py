"""
Token Issuer. 서명된 단기 토큰(HS256 JWT) 발급·검증. 부수효과 없음.
사용 여부(used) 영속화는 호출자 책임: 매직링크/비밀번호 재설정은 Redis 소비 기록, 계정 연결은 DB 행.
"""

import logging
import secrets
import uuid
from datetime import timedelta
from enum import StrEnum
from typing import Any

import jwt

from app.core import clock
from app.core.config import settings
from app.core.errors import TokenExpired, TokenMalformed, TokenWrongKind

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class TokenKind(StrEnum):
    MAGIC_LINK = "magic-link"
    ACCOUNT_LINKING = "account-linking"
    PASSWORD_RESET = "password-reset"


def generate_opaque_token() -> str:
    """세션·계정 연결 토큰용 불투명 문자열 (256bit)."""
    return secrets.token_urlsafe(32)


def issue(kind: TokenKind | str, payload: dict[str, Any], ttl: timedelta) -> str:
    """kind 전용 토큰 발급. payload는 data 클레임에 그대로 담긴다. jti는 1회 사용 추적용."""
    secret = settings.jwt_secret.get_secret_value()
    now = clock.utcnow()
    claims = {
        "type": str(kind),
        "data": payload,
        "jti": uuid.uuid4().hex,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_claims(token: str, expected_kind: TokenKind | str) -> dict[str, Any]:
    """
    서명·iss·aud·exp 검증 후 전체 클레임 반환.
    만료 → TokenExpired, 서명/형식 오류 → TokenMalformed, type 불일치 → TokenWrongKind.
    """
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret.get_secret_value(),
            algorithms=[ALGORITHM],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options={"require": ["exp", "iat", "type", "jti"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpired() from e
    except jwt.InvalidTokenError as e:
        logger.info("Token rejected: %s", e)
        raise TokenMalformed() from e
    if claims.get("type") != str(expected_kind):
        raise TokenWrongKind()
    return claims


def verify(token: str, expected_kind: TokenKind | str) -> dict[str, Any]:
    """verify_claims 후 발급 시 payload를 그대로 반환."""
    claims = verify_claims(token, expected_kind)
    data = claims.get("data")
    if not isinstance(data, dict):
        raise TokenMalformed()
    return data


def remaining_seconds(claims: dict[str, Any]) -> int:
    """exp까지 남은 초. 소비 기록 TTL 계산용 (최소 1)."""
    exp = int(claims["exp"])
    return max(1, exp - int(clock.utcnow().timestamp()))
