# ORM models
from app.models.account_linking_token import AccountLinkingToken
from app.models.base import Base
from app.models.session import Session
from app.models.stored_file import FileKind, StoredFile
from app.models.user import AuthProvider, UniversityLevel, User

__all__ = [
    "AccountLinkingToken",
    "AuthProvider",
    "Base",
    "FileKind",
    "Session",
    "StoredFile",
    "UniversityLevel",
    "User",
]
