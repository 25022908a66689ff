"""Health check. DB·Redis 상태. Redis는 lifespan에서 만든 비동기 클라이언트 재사용."""

import asyncio
import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from app.core.database import get_async_session_maker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

HEALTH_PING_TIMEOUT = 2.0


async def _check_db() -> str:
    """'ok' | 'error'. 미초기화도 'error'."""
    maker = get_async_session_maker()
    if not maker:
        return "error"
    try:
        async with maker() as session:
            await asyncio.wait_for(session.execute(text("SELECT 1")), timeout=HEALTH_PING_TIMEOUT)
        return "ok"
    except Exception as e:
        logger.warning("Health DB check failed: %s", e)
        return "error"


async def _check_redis(request: Request) -> str:
    """'ok' | 'error' | 'disabled'. REDIS_URL 미설정이면 매직링크 1회 사용·유저 락이 꺼진 상태."""
    client = getattr(request.app.state, "redis_client", None)
    if client is None:
        return "disabled"
    try:
        await asyncio.wait_for(client.ping(), timeout=HEALTH_PING_TIMEOUT)
        return "ok"
    except Exception as e:
        logger.warning("Health Redis check failed: %s", e)
        return "error"


@router.get("/health")
async def get_health(request: Request) -> dict[str, str]:
    """status: ok | degraded. Redis disabled는 degraded로 보지 않는다."""
    db_status = await _check_db()
    redis_status = await _check_redis(request)
    healthy = db_status == "ok" and redis_status != "error"
    return {
        "status": "ok" if healthy else "degraded",
        "db": db_status,
        "redis": redis_status,
    }
