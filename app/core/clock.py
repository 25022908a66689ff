"""시간 소스. 만료 판정은 모두 여기를 거친다(테스트에서 monkeypatch)."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite 등 tz 정보를 버리는 드라이버가 돌려준 naive datetime을 UTC로 간주."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
