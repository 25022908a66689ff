"""AccountLinkingToken 모델. R Number 충돌 시 발급되는 1회용 계정 연결 권한."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.models.user import User

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base


class AccountLinkingToken(Base):
    """
    existing_user: R Number를 이미 가진 유저. new_email/new_provider: 충돌을 일으킨 새 로그인 채널.
    used는 false → true 단방향, 만료 전 1회만. 전이는 compare-and-set UPDATE로만 수행.
    """

    __tablename__ = "account_linking_tokens"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    existing_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    new_email: Mapped[str] = mapped_column(String(320), nullable=False)
    new_provider: Mapped[str] = mapped_column(String(32), nullable=False)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    used: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )

    existing_user: Mapped["User"] = relationship("User", back_populates="linking_tokens")
