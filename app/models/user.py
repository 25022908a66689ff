"""User 모델. 인증 채널(google, microsoft, email-magic-link)과 무관하게 이메일 기준 1행."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.models.account_linking_token import AccountLinkingToken
    from app.models.session import Session
    from app.models.stored_file import StoredFile

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType


class AuthProvider(StrEnum):
    GOOGLE = "google"
    MICROSOFT = "microsoft"
    EMAIL_MAGIC_LINK = "email-magic-link"


class UniversityLevel(StrEnum):
    FRESHMAN = "freshman"
    SOPHOMORE = "sophomore"
    JUNIOR = "junior"
    SENIOR = "senior"
    GRADUATE = "graduate"


class User(Base):
    """
    유저. R Number는 실제 사람 단위 유니크 키(DB 제약 uq_users_r_number로 강제).
    이메일은 활성 행(merged_into_id IS NULL) 사이에서만 유니크. 병합으로 은퇴한 중복 행은 생존 유저가 삭제될 때 함께 삭제된다.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("r_number", name="uq_users_r_number"),
        Index(
            "uq_users_email_active",
            "email",
            unique=True,
            postgresql_where=text("merged_into_id IS NULL"),
            sqlite_where=text("merged_into_id IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    has_completed_onboarding: Mapped[bool] = mapped_column(default=False, nullable=False)

    # 프로필
    first_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    major: Mapped[str | None] = mapped_column(String(100), nullable=True)
    r_number: Mapped[str | None] = mapped_column(String(9), nullable=True)
    university_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    aspired_position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    github_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    twitter_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    # 예: ["Python", "React", "PostgreSQL"]
    technology_skills: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    # files.id 참조. users↔files 순환 FK를 피하려고 DB 제약 없이 애플리케이션에서만 관리.
    profile_picture_id: Mapped[int | None] = mapped_column(nullable=True)
    resume_id: Mapped[int | None] = mapped_column(nullable=True)

    # 계정 연결(reset 경로) 후 password 방식 재진입용. bcrypt 해시. OAuth/매직링크 로그인에는 쓰지 않음.
    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # 병합으로 은퇴한 중복 행이면 흡수한 유저 id. 활성 행은 NULL.
    merged_into_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sessions: Mapped[list["Session"]] = relationship(
        "Session", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    linking_tokens: Mapped[list["AccountLinkingToken"]] = relationship(
        "AccountLinkingToken",
        back_populates="existing_user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    files: Mapped[list["StoredFile"]] = relationship(
        "StoredFile", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
