"""환경 변수 기반 설정. pydantic-settings 사용."""

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """앱 설정. 환경변수에서 로드. 시크릿은 SecretStr로 마스킹, 필수 시크릿은 기본값 없음(Fail-fast)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    sentry_dsn: SecretStr | None = None
    environment: str = "development"  # Sentry/로깅용. production, staging, development 등.

    # DB
    database_url: str | None = None
    db_connect_retries: int = Field(5, ge=1, le=20)  # 연결 실패 시 재시도 횟수.
    db_connect_retry_interval_sec: float = Field(2.0, ge=0.5, le=60.0)  # 재시도 간격(초).
    # 요청 경로의 개별 DB 호출 상한(초). 초과 시 "알 수 없음"으로 보고 Fail-closed.
    db_call_timeout_seconds: float = Field(5.0, ge=0.1, le=60.0)

    # Auth (필수: 기본값 없음 → 부팅 시점 Fail-fast)
    jwt_secret: SecretStr
    jwt_issuer: str = "mlh-ttu"  # 토큰 iss 클레임.
    jwt_audience: str = "mlh-ttu-api"  # 토큰 aud 클레임.
    session_expire_days: int = Field(7, ge=1, le=90)  # 세션 만료(일). 접근 시 연장하지 않음.
    magic_link_expire_minutes: int = Field(15, ge=1, le=120)
    linking_token_expire_minutes: int = Field(60, ge=5, le=1440)  # 계정 연결 토큰. 민감 권한이라 짧게.
    password_reset_expire_minutes: int = Field(60, ge=5, le=1440)
    bcrypt_rounds: int = Field(12, ge=4, le=16)

    google_client_id: str  # 필수. 기본값 없음.
    google_client_secret: SecretStr  # 필수. 기본값 없음.
    # 허용 redirect_uri 목록(쉼표 구분). 비어 있으면 검사 생략.
    google_redirect_uris: str = ""
    # Microsoft는 선택. 미설정 시 /v1/auth/session provider=microsoft 거부.
    microsoft_client_id: str | None = None
    microsoft_client_secret: SecretStr | None = None
    microsoft_tenant: str = "common"

    # 메일 발송 (SMTP). 미설정 시 발송 생략 + 경고 로그.
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: SecretStr | None = None
    smtp_use_tls: bool = True
    from_email: str = "noreply@mlhttu.com"

    client_url: str = "http://localhost:3000"
    server_url: str = "http://localhost:8000"

    # 파일 업로드
    upload_dir: str = "uploads"
    max_profile_picture_bytes: int = Field(5 * 1024 * 1024, ge=1024)
    max_resume_bytes: int = Field(10 * 1024 * 1024, ge=1024)

    # Redis
    redis_url: str | None = None
    # Redis 소켓/연결 타임아웃(초). 풀 포화·장애 시 무한 대기 방지.
    redis_socket_timeout: float = Field(5.0, ge=1.0, le=60.0)
    redis_socket_connect_timeout: float = Field(2.0, ge=0.5, le=30.0)
    # Blocklist: Redis 장애 시 정책. True=Fail-Closed(토큰 거부), False=Fail-Open(서명만 검증 후 통과).
    redis_blocklist_fail_closed: bool = True
    redis_max_connections: int = Field(20, ge=1, le=100)
    # 유저별 온보딩/프로필 쓰기 락 TTL(초). 워커 비정상 종료 시 TTL 만료로만 해제.
    onboarding_lock_ttl_seconds: int = Field(30, ge=5, le=600)

    # CORS
    allowed_origins: str = ""

    @model_validator(mode="after")
    def fail_fast_production(self: "Settings") -> "Settings":
        """프로덕션 환경 시 필수 변수 누락이면 부팅 거부(Fail-Fast)."""
        if (self.environment or "").strip().lower() != "production":
            return self
        missing: list[str] = []
        if not (self.database_url or "").strip():
            missing.append("DATABASE_URL")
        if not (self.redis_url or "").strip():
            missing.append("REDIS_URL")
        if len(self.jwt_secret.get_secret_value() or "") < 32:
            missing.append("JWT_SECRET (>= 32 chars)")
        if not (self.google_client_id or "").strip():
            missing.append("GOOGLE_CLIENT_ID")
        if not (self.google_client_secret.get_secret_value() or "").strip():
            missing.append("GOOGLE_CLIENT_SECRET")
        if not (self.smtp_host or "").strip():
            missing.append("SMTP_HOST")
        if missing:
            raise ValueError(
                f"Production environment requires these variables to be set: {', '.join(missing)}. "
                "Set them in Secret Manager or environment before boot."
            )
        return self


settings = Settings()
