"""
Celery 워커가 실행할 작업(Task) 정의.
동기 DB(psycopg) 사용. 정리 작업은 위생용일 뿐 정합성은 조회 시점 만료 판정이 보장한다.
"""

import logging

import sentry_sdk
from celery import shared_task
from sqlalchemy.exc import OperationalError

from app.core import clock
from app.core.database_sync import get_sync_session
from app.repositories.linking_token_repository import cleanup_expired_sync
from app.repositories.session_repository import sweep_expired_sync

logger = logging.getLogger(__name__)


def _set_task_context(task_id: str | None) -> None:
    """Sentry·로그용 컨텍스트. Sentry 미초기화 시 no-op."""
    if task_id:
        sentry_sdk.set_tag("celery.task_id", task_id)


@shared_task(
    name="app.services.tasks.sweep_expired_tokens_task",
    bind=True,
    autoretry_for=(OperationalError, ConnectionError, TimeoutError, OSError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=3,
)
def sweep_expired_tokens_task(self) -> dict[str, int]:
    """만료 세션·만료 계정 연결 토큰 일괄 삭제. 한 트랜잭션."""
    task_id = getattr(self.request, "id", None) or ""
    _set_task_context(str(task_id) if task_id else None)
    now = clock.utcnow()
    with get_sync_session() as session:
        sessions = sweep_expired_sync(session, now)
        tokens = cleanup_expired_sync(session, now)
    logger.info(
        "Sweep done: task_id=%s sessions=%d linking_tokens=%d", task_id, sessions, tokens
    )
    return {"sessions": sessions, "linking_tokens": tokens}
