"""Celery 정리 작업 테스트. 동기 SQLite 세션으로 태스크 본문 직접 실행."""

from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from app.core import clock
from app.models import AccountLinkingToken, Base, Session, User
from app.services import tasks


def test_sweep_removes_only_expired_rows(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'worker.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    now = clock.utcnow()

    with factory.begin() as s:
        user = User(email="a@ttu.edu", provider="google")
        s.add(user)
        s.flush()
        s.add_all(
            [
                Session(user_id=user.id, token="old", expires_at=now - timedelta(days=1)),
                Session(user_id=user.id, token="live", expires_at=now + timedelta(days=1)),
                AccountLinkingToken(
                    existing_user_id=user.id,
                    new_email="a@gmail.com",
                    new_provider="google",
                    token="stale",
                    expires_at=now - timedelta(minutes=1),
                ),
            ]
        )

    @contextmanager
    def fake_sync_session():
        session = factory()
        try:
            yield session
            session.commit()
        finally:
            session.close()

    monkeypatch.setattr(tasks, "get_sync_session", fake_sync_session)

    result = tasks.sweep_expired_tokens_task.apply().get()

    assert result == {"sessions": 1, "linking_tokens": 1}
    with factory() as s:
        assert s.execute(select(Session.token)).scalars().all() == ["live"]
        assert s.execute(select(func.count()).select_from(AccountLinkingToken)).scalar_one() == 0
    engine.dispose()
