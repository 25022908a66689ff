"""
업로드 파일 검증·저장.
FileValidator는 외부 협력자 인터페이스(순수 함수 취급). 기본 구현은 MIME 허용 목록·크기·매직 바이트·실행 파일 시그니처 검사.
바이트는 settings.upload_dir 디스크에, 메타데이터는 files 테이블에 저장.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from app.core.config import settings
from app.models.stored_file import FileKind

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: dict[str, frozenset[str]] = {
    FileKind.PROFILE_PICTURE: frozenset({"image/jpeg", "image/png", "image/webp"}),
    FileKind.RESUME: frozenset({"application/pdf"}),
}

EXTENSION_BY_MIME = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
}

# 실행 파일·아카이브 시그니처 (PE, ELF, Mach-O, ZIP)
EXECUTABLE_SIGNATURES = (
    b"MZ",
    b"\x7fELF",
    b"\xfe\xed\xfa\xce",
    b"\xfe\xed\xfa\xcf",
    b"\xce\xfa\xed\xfe",
    b"\xcf\xfa\xed\xfe",
    b"\xca\xfe\xba\xbe",
    b"PK\x03\x04",
)


@dataclass(frozen=True)
class Accepted:
    pass


@dataclass(frozen=True)
class Rejected:
    reason: str


ValidationResult = Accepted | Rejected


class FileValidator(Protocol):
    def validate(self, data: bytes, mime_type: str, kind: str) -> ValidationResult: ...


@dataclass(frozen=True)
class UploadedFile:
    """라우터에서 읽어 넘기는 업로드 1건."""

    kind: str
    filename: str
    mime_type: str
    data: bytes


def _matches_magic(data: bytes, mime_type: str) -> bool:
    if mime_type == "image/jpeg":
        return data.startswith(b"\xff\xd8\xff")
    if mime_type == "image/png":
        return data.startswith(b"\x89PNG\r\n\x1a\n")
    if mime_type == "image/webp":
        return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP"
    if mime_type == "application/pdf":
        return data.startswith(b"%PDF-")
    return False


class DefaultFileValidator:
    """선언 MIME 허용 여부, 종류별 크기 상한, 매직 바이트 일치, 실행 파일 시그니처 거부."""

    def __init__(
        self,
        max_profile_picture_bytes: int | None = None,
        max_resume_bytes: int | None = None,
    ) -> None:
        self._max_bytes = {
            FileKind.PROFILE_PICTURE: max_profile_picture_bytes or settings.max_profile_picture_bytes,
            FileKind.RESUME: max_resume_bytes or settings.max_resume_bytes,
        }

    def validate(self, data: bytes, mime_type: str, kind: str) -> ValidationResult:
        allowed = ALLOWED_MIME_TYPES.get(kind)
        if allowed is None:
            return Rejected(f"Unknown file kind: {kind}")
        if not data:
            return Rejected("File is empty")
        if mime_type not in allowed:
            return Rejected(f"File type {mime_type} is not allowed for {kind}")
        limit = self._max_bytes[kind]
        if len(data) > limit:
            return Rejected(f"File exceeds {limit // (1024 * 1024)}MB limit")
        if data.startswith(EXECUTABLE_SIGNATURES):
            return Rejected("Executable content is not allowed")
        if not _matches_magic(data, mime_type):
            return Rejected("File content does not match its declared type")
        return Accepted()


def _upload_root() -> Path:
    return Path(settings.upload_dir)


def path_for(stored_name: str) -> Path:
    """stored_name은 서버가 만든 uuid 기반 이름만 허용 (경로 조작 방지)."""
    return _upload_root() / Path(stored_name).name


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def store_blob(upload: UploadedFile) -> str:
    """디스크에 바이트 저장 후 stored_name 반환."""
    stored_name = f"{uuid.uuid4().hex}{EXTENSION_BY_MIME.get(upload.mime_type, '')}"
    await asyncio.to_thread(_write, path_for(stored_name), upload.data)
    return stored_name


async def remove_blob(stored_name: str) -> None:
    """베스트 에포트 삭제. 실패는 경고 로그만 (고아 blob은 별도 정리 대상)."""
    try:
        await asyncio.to_thread(path_for(stored_name).unlink, missing_ok=True)
    except OSError as e:
        logger.warning("Blob removal failed: %s: %s", stored_name, e)
