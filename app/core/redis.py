"""
Redis 비동기 클라이언트.
1) 소비된 토큰 Blocklist: 무상태 JWT(magic-link, password-reset)의 jti를 TTL 동안 기록해 재사용 차단.
2) 유저별 쓰기 락: 같은 유저의 온보딩/프로필 쓰기를 직렬화. SET NX EX + 소유자만 해제.
"""

import logging
import uuid
from typing import Any

from app.core.config import settings
from app.core.errors import Unavailable

logger = logging.getLogger(__name__)

CONSUMED_TOKEN_KEY_PREFIX = "mlh:consumed:"
USER_WRITE_LOCK_KEY_PREFIX = "mlh:user_write_lock:"

# Lua: 값이 token일 때만 삭제 (소유권 검증). 1=삭제됨, 0=소유자 아님/키 없음.
LUA_RELEASE_IF_OWNER = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def _redis_pool_kwargs() -> dict:
    """Redis ConnectionPool 공통 옵션. 타임아웃·디코드."""
    return {
        "decode_responses": True,
        "socket_timeout": settings.redis_socket_timeout,
        "socket_connect_timeout": settings.redis_socket_connect_timeout,
    }


def create_redis_client() -> Any:
    """
    비동기 Redis 클라이언트. max_connections·타임아웃 명시.
    redis_url 없으면 None(Blocklist·락 비활성). lifespan에서 한 번 생성해 app.state에 보관.
    """
    if not settings.redis_url:
        return None
    import redis.asyncio as redis

    pool = redis.ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        **_redis_pool_kwargs(),
    )
    return redis.Redis(connection_pool=pool)


async def consume_token_once(
    client: Any, jti: str, ttl_seconds: int, *, fail_closed: bool
) -> bool:
    """
    jti를 원자적으로 소비(SET NX EX). 처음 소비면 True, 이미 소비된 토큰이면 False.
    Redis 장애 시: fail_closed=True면 False(토큰 거부), False면 True(서명만 믿고 통과).
    client가 None이면 단일 사용 강제 없이 True.
    """
    if client is None:
        return True
    if ttl_seconds <= 0:
        return False
    key = f"{CONSUMED_TOKEN_KEY_PREFIX}{jti}"
    try:
        ok = await client.set(key, "1", nx=True, ex=ttl_seconds)
        return bool(ok)
    except Exception as e:
        logger.warning("Consumed-token check failed (jti=%s): %s", jti, e, exc_info=True)
        return not fail_closed


async def release_consumed_token(client: Any, jti: str) -> None:
    """소비 기록 취소. 소비 직후 후속 처리가 실패해 토큰을 다시 쓸 수 있게 할 때만 사용."""
    if client is None:
        return
    try:
        await client.delete(f"{CONSUMED_TOKEN_KEY_PREFIX}{jti}")
    except Exception as e:
        logger.warning("Consumed-token release failed (jti=%s): %s", jti, e, exc_info=True)


async def acquire_user_write_lock(client: Any, user_id: int) -> tuple[bool, str | None]:
    """
    유저별 쓰기 락 획득. SET key <uuid> NX EX.
    성공 시 (True, token), 이미 잠김 시 (False, None).
    Redis 인프라 오류 시 Unavailable.
    client가 None이면 락 없이 (True, None) 반환(비활성).
    """
    if client is None:
        return (True, None)
    key = f"{USER_WRITE_LOCK_KEY_PREFIX}{user_id}"
    token = str(uuid.uuid4())
    try:
        ok = await client.set(key, token, nx=True, ex=settings.onboarding_lock_ttl_seconds)
        return (bool(ok), token if ok else None)
    except Exception as e:
        logger.warning("User write lock acquire failed (user_id=%s): %s", user_id, e, exc_info=True)
        raise Unavailable("Redis unavailable") from e


async def release_user_write_lock(client: Any, user_id: int, token: str | None) -> bool:
    """
    락 해제(소유자만). Lua compare-and-del.
    반환: True=삭제됨, False=소유자 아님 또는 이미 없음(TTL 만료 등).
    """
    if client is None or not token:
        return False
    key = f"{USER_WRITE_LOCK_KEY_PREFIX}{user_id}"
    try:
        n = await client.eval(LUA_RELEASE_IF_OWNER, 1, key, token)
        return n == 1
    except Exception as e:
        logger.warning("User write lock release failed (user_id=%s): %s", user_id, e, exc_info=True)
        return False
