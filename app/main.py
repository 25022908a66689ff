"""FastAPI 앱 진입점. uvicorn app.main:app"""

import asyncio
import logging
from contextlib import asynccontextmanager

from app.core.config import settings


def _init_sentry() -> None:
    """SENTRY_DSN이 있을 때만. 라우터 임포트 단계 예외도 잡히도록 앱 생성 전에 호출."""
    if not settings.sentry_dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn.get_secret_value(),
        environment=settings.environment,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.1,
        # 이메일·R Number가 이벤트에 실리지 않도록
        send_default_pii=False,
    )


_init_sentry()

import httpx  # noqa: E402
from fastapi import FastAPI, Request  # noqa: E402
from fastapi.exception_handlers import request_validation_exception_handler  # noqa: E402
from fastapi.exceptions import HTTPException, RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from pyjwt_key_fetcher import AsyncKeyFetcher  # noqa: E402

from app.api import health  # noqa: E402
from app.api.errors import to_http  # noqa: E402
from app.api.v1 import account_link, auth, files, onboarding, users  # noqa: E402
from app.core.database import get_engine, init_db, verify_db_connection  # noqa: E402
from app.core.errors import IdentityError  # noqa: E402
from app.core.redis import create_redis_client  # noqa: E402
from app.services.file_service import DefaultFileValidator  # noqa: E402

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ["https://accounts.google.com", "accounts.google.com"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    시작: DB 검증 → 공용 협력자(httpx, Google JWKS, Redis, 파일 검증기)를 app.state에 1개씩.
    종료: 역순으로 닫는다.
    """
    init_db()
    await verify_db_connection()
    app.state.httpx_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
    app.state.google_key_fetcher = AsyncKeyFetcher(valid_issuers=GOOGLE_ISSUERS)
    app.state.redis_client = create_redis_client()
    app.state.file_validator = DefaultFileValidator()
    try:
        yield
    finally:
        if getattr(app.state, "redis_client", None) is not None:
            await app.state.redis_client.aclose()
        await app.state.httpx_client.aclose()
        engine = get_engine()
        if engine is not None:
            await engine.dispose()


app = FastAPI(
    title="MLH TTU API",
    description="MLH TTU 챕터 백엔드: 로그인 채널 통합·R Number 기반 계정 연결",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
for router in (auth.router, onboarding.router, account_link.router, users.router, files.router):
    app.include_router(router, prefix="/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.allowed_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Request validation failed: %s %s", request.method, request.url.path)
    return await request_validation_exception_handler(request, exc)


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    """라우터가 변환하지 않은 서비스 예외."""
    http_exc = to_http(exc)
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})


@app.exception_handler(httpx.HTTPError)
async def httpx_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    """OAuth·Graph 호출 지연/장애 → 503."""
    logger.warning("External HTTP error: %s", exc, exc_info=True)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, asyncio.CancelledError):
        # 클라이언트 연결 종료
        raise exc
    if isinstance(exc, HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
