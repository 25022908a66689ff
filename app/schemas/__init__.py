# Pydantic schemas
from app.schemas.auth import (
    MagicLinkRequest,
    PasswordResetPayload,
    SentResponse,
    SessionRequest,
    SessionResponse,
)
from app.schemas.user import ProfileData, ProfileUpdate, UserResponse

__all__ = [
    "MagicLinkRequest",
    "PasswordResetPayload",
    "ProfileData",
    "ProfileUpdate",
    "SentResponse",
    "SessionRequest",
    "SessionResponse",
    "UserResponse",
]
