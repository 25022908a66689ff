"""
비동기 DB 계층. SQLAlchemy 2.0 AsyncEngine (운영 asyncpg, 테스트 aiosqlite).
요청 경로의 쓰기는 transaction() 한 곳에서만 commit/rollback 한다.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.errors import Unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _DbState:
    engine: AsyncEngine | None = None
    session_maker: async_sessionmaker[AsyncSession] | None = None


_state = _DbState()

# 현재 태스크가 연 트랜잭션 세션. 중첩 transaction()은 이 세션을 그대로 쓴다.
_current_session: ContextVar[AsyncSession | None] = ContextVar("current_session", default=None)


def _async_database_url(url: str) -> str:
    """postgresql:// 계열은 asyncpg 드라이버로 고정. sqlite+aiosqlite 등은 그대로."""
    parsed = make_url(url.strip())
    if parsed.get_backend_name() == "postgresql":
        parsed = parsed.set(drivername="postgresql+asyncpg")
    return parsed.render_as_string(hide_password=False)


def get_engine() -> AsyncEngine | None:
    return _state.engine


def get_async_session_maker() -> async_sessionmaker[AsyncSession] | None:
    return _state.session_maker


def init_db() -> None:
    """DATABASE_URL이 없으면 DB 기능 비활성(경고만). 있으면 엔진·세션 팩토리 생성."""
    if not settings.database_url:
        logger.warning("DATABASE_URL not set. DB features disabled.")
        return

    url = _async_database_url(settings.database_url)
    connect_args: dict[str, Any] = {}
    if make_url(url).get_backend_name() == "postgresql":
        # 쿼리 단위 상한 (asyncpg)
        connect_args["command_timeout"] = settings.db_call_timeout_seconds

    engine = create_async_engine(url, pool_pre_ping=True, connect_args=connect_args)
    _state.engine = engine
    _state.session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def override_db_for_testing(
    engine: AsyncEngine | None = None,
    async_session_maker_instance: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    """테스트용 엔진·세션 팩토리 주입. None, None으로 호출하면 해제."""
    _state.engine = engine
    _state.session_maker = async_session_maker_instance


def _report_startup_failure(exc: Exception | None, attempts: int) -> None:
    if not settings.sentry_dsn:
        return
    import sentry_sdk

    with sentry_sdk.push_scope() as scope:
        scope.set_tag("context", "database_connection_check")
        scope.set_context("database", {"attempts": attempts})
        sentry_sdk.capture_exception(exc)


async def verify_db_connection() -> None:
    """
    부팅 시 SELECT 1. db_connect_retries 만큼 재시도 후에도 실패하면 RuntimeError로 부팅 중단.
    미초기화(DATABASE_URL 없음)면 검사 생략.
    """
    maker = _state.session_maker
    if maker is None:
        return

    attempts = max(1, settings.db_connect_retries)
    interval = max(0.5, settings.db_connect_retry_interval_sec)
    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            async with maker() as session:
                await session.execute(text("SELECT 1"))
            return
        except Exception as exc:
            last_exc = exc
            if attempt == attempts:
                break
            logger.warning(
                "DB not ready (attempt %d/%d): %s. Retrying in %.1fs",
                attempt,
                attempts,
                exc,
                interval,
            )
            await asyncio.sleep(interval)

    _report_startup_failure(last_exc, attempts)
    logger.critical("DB unreachable after %d attempts. Aborting startup.", attempts, exc_info=last_exc)
    raise RuntimeError(f"Database connection failed after {attempts} attempts: {last_exc}") from last_exc


def _require_maker() -> async_sessionmaker[AsyncSession]:
    maker = _state.session_maker
    if maker is None:
        raise RuntimeError("Database not initialized. Set DATABASE_URL.")
    return maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Depends용 읽기 세션. 쓰기는 서비스의 transaction()에서."""
    async with _require_maker()() as session:
        yield session


@asynccontextmanager
async def transaction() -> AsyncGenerator[AsyncSession, None]:
    """
    최외곽 호출만 세션을 열고 commit(성공)/rollback(예외)한다.
    안쪽 호출은 같은 세션을 공유하며 경계를 건드리지 않는다.
    """
    outer = _current_session.get()
    if outer is not None:
        yield outer
        return

    session = _require_maker()()
    token = _current_session.set(session)
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
    finally:
        _current_session.reset(token)
        await session.close()


@asynccontextmanager
async def detached_transaction() -> AsyncGenerator[AsyncSession, None]:
    """
    바깥 transaction()과 무관한 별도 세션. 바깥이 rollback되어도 확정되어야 하는 쓰기 전용.
    현재 태스크의 공유 세션(_current_session)은 건드리지 않는다.
    """
    async with _require_maker()() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def bounded(awaitable: Awaitable[T], *, what: str) -> T:
    """
    DB 호출 1건에 db_call_timeout_seconds 상한.
    시간 초과·연결 오류 → Unavailable (결과를 알 수 없으므로 호출자는 Fail-closed).
    IntegrityError는 호출자가 해석하도록 그대로 전파.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=settings.db_call_timeout_seconds)
    except TimeoutError as e:
        logger.warning("DB call timed out: %s (%.1fs)", what, settings.db_call_timeout_seconds)
        raise Unavailable() from e
    except IntegrityError:
        raise
    except (OSError, SQLAlchemyError) as e:
        logger.warning("DB call failed: %s: %s", what, e, exc_info=True)
        raise Unavailable() from e
