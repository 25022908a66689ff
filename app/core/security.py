"""비밀번호 해시 (bcrypt). 해시/검증은 CPU 바운드라 스레드로 넘겨 이벤트 루프를 막지 않는다."""

import asyncio

import bcrypt

from app.core.config import settings

# bcrypt 입력 상한(바이트). 초과분은 bcrypt가 무시하므로 스키마에서 길이 제한.
BCRYPT_MAX_BYTES = 72


def _hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _verify(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # 저장된 해시 형식 오류
        return False


async def hash_password(password: str) -> str:
    return await asyncio.to_thread(_hash, password)


async def verify_password(password: str, password_hash: str | None) -> bool:
    """해시가 없으면(비밀번호 미설정) 항상 False."""
    if not password_hash:
        return False
    return await asyncio.to_thread(_verify, password, password_hash)
