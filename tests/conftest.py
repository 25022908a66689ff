"""Pytest fixtures. 테스트마다 임시 SQLite(aiosqlite) DB를 override_db_for_testing으로 주입."""

import os

# 외부 DB·Redis·SMTP 없이 실행. Settings Fail-fast 대비 필수 Auth env 설정.
os.environ["DATABASE_URL"] = ""
os.environ.pop("REDIS_URL", None)
os.environ.pop("SMTP_HOST", None)
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-pytest-0123456789")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-client-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.core.config import settings  # noqa: E402
from app.core.database import override_db_for_testing, transaction  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.models import Base, User  # noqa: E402
from app.repositories import user_repository  # noqa: E402


class FakeRedis:
    """redis.asyncio 클라이언트 중 SET NX EX·DEL·EVAL(compare-and-del)·PING만 흉내내는 메모리 구현."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    async def ping(self):
        return True

    async def aclose(self):
        return None


def _create_schema(db_path) -> None:
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    engine.dispose()


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite는 연결마다 FK 강제를 켜야 PostgreSQL과 같은 CASCADE·SET NULL 동작
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _async_engine(db_path):
    # NullPool: 커넥션을 이벤트 루프 간에 공유하지 않음 (TestClient 루프 포함)
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    return engine


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(path))
    return path


@pytest_asyncio.fixture
async def db(tmp_path):
    """테스트 전용 SQLite 파일 DB. yield 값은 세션 팩토리."""
    db_path = tmp_path / "test.db"
    _create_schema(db_path)
    engine = _async_engine(db_path)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    override_db_for_testing(engine, maker)
    yield maker
    override_db_for_testing(None, None)
    await engine.dispose()


@pytest.fixture
def make_user(db):
    """유저 생성 헬퍼. 실제 로그인 경로(upsert_by_email) 후 필요한 필드만 갱신."""

    async def _make(
        email: str,
        provider: str = "google",
        *,
        r_number: str | None = None,
        onboarded: bool = False,
        password: str | None = None,
    ) -> User:
        values: dict = {}
        if r_number is not None:
            values["r_number"] = r_number
        if onboarded:
            values.update(has_completed_onboarding=True, first_name="Test", last_name="User")
        if password is not None:
            values["password_hash"] = await hash_password(password)
        async with transaction() as session:
            user = await user_repository.upsert_by_email(session, email, provider)
            await user_repository.update_fields(session, user.id, values)
            return await session.get(User, user.id, populate_existing=True)

    return _make


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def client() -> TestClient:
    """FastAPI TestClient (lifespan 미실행). DB 없이 /health 등 테스트용."""
    from app.main import app

    app.state.redis_client = None
    return TestClient(app)


@pytest.fixture
def api(tmp_path):
    """lifespan까지 실행한 TestClient + 임시 SQLite DB + 메모리 Redis."""
    from app.main import app

    db_path = tmp_path / "api.db"
    _create_schema(db_path)
    engine = _async_engine(db_path)
    with TestClient(app) as test_client:
        override_db_for_testing(
            engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        )
        app.state.redis_client = FakeRedis()
        yield test_client
    override_db_for_testing(None, None)
