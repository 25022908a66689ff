"""User·프로필 관련 Pydantic 스키마. 입력은 extra='forbid'로 페이로드 오염 방지."""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.user import UniversityLevel

R_NUMBER_PATTERN = r"^R\d{8}$"
GITHUB_URL_PATTERN = r"^https://(www\.)?github\.com/[a-zA-Z0-9]([a-zA-Z0-9-]){0,38}$"
LINKEDIN_URL_PATTERN = r"^https://(www\.)?linkedin\.com/(in|company)/[a-zA-Z0-9-]+/?$"
TWITTER_URL_PATTERN = r"^https://(www\.)?(twitter\.com|x\.com)/[a-zA-Z0-9_]{1,15}/?$"

RNumber = Annotated[str, Field(pattern=R_NUMBER_PATTERN, description="R + 8자리 숫자 (예: R12345678)")]
Skill = Annotated[str, Field(min_length=1, max_length=50)]


def _strip_or_none(value: object) -> object:
    """문자열 앞뒤 공백 제거. 빈 문자열은 None(미입력) 취급."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _unique_skills(skills: list[str] | None) -> list[str] | None:
    if skills is None:
        return None
    if len({s.casefold() for s in skills}) != len(skills):
        raise ValueError("Duplicate technology skills are not allowed")
    return skills


class ProfileData(BaseModel):
    """온보딩 제출 프로필. 모든 필수 항목 포함."""

    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    major: str = Field(..., min_length=1, max_length=100)
    r_number: RNumber
    university_level: UniversityLevel
    aspired_position: str = Field(..., min_length=1, max_length=100)
    github_url: str | None = Field(None, pattern=GITHUB_URL_PATTERN)
    linkedin_url: str | None = Field(None, pattern=LINKEDIN_URL_PATTERN)
    twitter_url: str | None = Field(None, pattern=TWITTER_URL_PATTERN)
    technology_skills: list[Skill] = Field(default_factory=list, max_length=50)

    @field_validator(
        "first_name",
        "last_name",
        "major",
        "r_number",
        "aspired_position",
        "github_url",
        "linkedin_url",
        "twitter_url",
        mode="before",
    )
    @classmethod
    def strip_strings(cls, v: object) -> object:
        return _strip_or_none(v)

    @field_validator("technology_skills")
    @classmethod
    def skills_unique(cls, v: list[str]) -> list[str]:
        return _unique_skills(v) or []


class ProfileUpdate(BaseModel):
    """프로필 부분 수정. 빈 문자열은 기존 값을 덮어쓰지 않는다(None 취급)."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(None, min_length=1, max_length=50)
    last_name: str | None = Field(None, min_length=1, max_length=50)
    major: str | None = Field(None, min_length=1, max_length=100)
    r_number: RNumber | None = None
    university_level: UniversityLevel | None = None
    aspired_position: str | None = Field(None, min_length=1, max_length=100)
    github_url: str | None = Field(None, pattern=GITHUB_URL_PATTERN)
    linkedin_url: str | None = Field(None, pattern=LINKEDIN_URL_PATTERN)
    twitter_url: str | None = Field(None, pattern=TWITTER_URL_PATTERN)
    technology_skills: list[Skill] | None = Field(None, max_length=50)

    @field_validator(
        "first_name",
        "last_name",
        "major",
        "r_number",
        "aspired_position",
        "github_url",
        "linkedin_url",
        "twitter_url",
        mode="before",
    )
    @classmethod
    def strip_strings(cls, v: object) -> object:
        return _strip_or_none(v)

    @field_validator("technology_skills")
    @classmethod
    def skills_unique(cls, v: list[str] | None) -> list[str] | None:
        return _unique_skills(v)


class UserResponse(BaseModel):
    """User 응답."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    provider: str
    has_completed_onboarding: bool
    first_name: str | None = None
    last_name: str | None = None
    major: str | None = None
    r_number: str | None = None
    university_level: str | None = None
    aspired_position: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    twitter_url: str | None = None
    technology_skills: list[str] | None = None
    profile_picture_id: int | None = None
    resume_id: int | None = None
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None = None


class StoredFileResponse(BaseModel):
    """업로드 파일 메타데이터. 다운로드는 GET /v1/files/{id}."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    original_name: str
    mime_type: str
    size: int
    created_at: datetime
