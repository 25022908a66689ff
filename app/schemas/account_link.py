"""계정 연결·온보딩 결과 스키마."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.auth import EMAIL_PATTERN, SessionResponse, normalize_email
from app.schemas.user import UserResponse
from app.services.identity_service import ExistingUserSummary


class AccountLinkPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    linking_token: str = Field(..., min_length=1, max_length=128)
    method: Literal["password", "reset"]
    secret: str | None = Field(None, max_length=72)


class ResetRequestPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., max_length=320, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def lower_email(cls, v: object) -> object:
        return normalize_email(v)


class OnboardingSuccessResponse(BaseModel):
    status: Literal["success"] = "success"
    user: UserResponse


class OnboardingDuplicateResponse(BaseModel):
    """중복 감지. password·reset 두 경로 모두 제시."""

    status: Literal["duplicate"] = "duplicate"
    existing_user: ExistingUserSummary
    linking_token: str
    methods: list[str] = ["password", "reset"]


class FailureResponse(BaseModel):
    status: Literal["failure"] = "failure"
    code: str
    message: str


class AccountLinkSuccessResponse(BaseModel):
    status: Literal["success"] = "success"
    session: SessionResponse | None = None
    message: str | None = None
