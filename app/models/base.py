"""SQLAlchemy Declarative Base."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# 운영은 JSONB, 테스트(SQLite)는 JSON.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """공통 베이스 클래스."""

    pass
