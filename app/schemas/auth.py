"""Auth·세션 관련 Pydantic 스키마. extra='forbid'로 페이로드 오염 방지."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


def normalize_email(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class GoogleTokenResponse(BaseModel):
    """구글 OAuth 토큰 교환 응답. model_validate로 검증 (cast 금지)."""

    id_token: str
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    refresh_token: str | None = None


class MicrosoftTokenResponse(BaseModel):
    """Microsoft identity platform 토큰 교환 응답. Graph 호출용 access_token만 사용."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    id_token: str | None = None


class SessionRequest(BaseModel):
    """OAuth code 교환 요청. code/redirect_uri 길이·형식 제약. 알 수 없는 필드 거부."""

    model_config = ConfigDict(extra="forbid")

    provider: Literal["google", "microsoft"]
    code: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="OAuth Authorization Code",
    )
    redirect_uri: str | None = Field(
        None,
        max_length=2048,
        description="OAuth redirect_uri (허용 목록과 일치해야 함)",
    )


class SessionResponse(BaseModel):
    """세션 발급 응답 (응답 body JSON 방식). 이후 요청은 Authorization: Bearer <bearer_token>."""

    bearer_token: str
    expires_at: datetime
    redirect_to: str = Field(..., description="온보딩 미완료면 /onboarding, 완료면 /profile")


class MagicLinkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: object) -> object:
        return normalize_email(v)


class SentResponse(BaseModel):
    """계정 존재 여부와 무관하게 항상 동일한 응답 (열거 방지)."""

    sent: bool = True


class PasswordResetPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: str = Field(..., min_length=1, max_length=4096)
    # bcrypt 입력 상한 72바이트
    new_password: str = Field(..., min_length=8, max_length=72)
