"""
동기 DB 계층 (Celery 워커·Alembic 전용). psycopg3, 로컬/테스트는 내장 sqlite3.
웹 프로세스의 asyncpg 풀과 분리해 워커가 작은 풀만 쓰도록 한다.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

_SYNC_DRIVERS = {"postgresql": "postgresql+psycopg", "sqlite": "sqlite"}

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def sync_database_url() -> str | None:
    """DATABASE_URL의 드라이버를 동기용으로 교체. asyncpg → psycopg, aiosqlite → sqlite3."""
    if not settings.database_url:
        return None
    parsed = make_url(settings.database_url.strip())
    driver = _SYNC_DRIVERS.get(parsed.get_backend_name())
    if driver is not None:
        parsed = parsed.set(drivername=driver)
    return parsed.render_as_string(hide_password=False)


def _init_sync_db() -> sessionmaker[Session] | None:
    global _engine, _session_factory
    url = sync_database_url()
    if not url:
        logger.warning("DATABASE_URL not set. Sync DB features disabled.")
        return None
    pool_kwargs = {} if url.startswith("sqlite") else {"pool_size": 2, "max_overflow": 0}
    _engine = create_engine(url, pool_pre_ping=True, **pool_kwargs)
    _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    return _session_factory


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """with get_sync_session() as session: 성공 시 commit, 예외 시 rollback."""
    factory = _session_factory or _init_sync_db()
    if factory is None:
        raise RuntimeError("Sync database not initialized. Set DATABASE_URL.")
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
