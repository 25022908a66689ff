"""서비스 예외·실패 코드 → HTTPException. 연결/매직링크 오류는 계정 존재 여부를 드러내지 않는 일반 메시지로."""

from fastapi import HTTPException

from app.core.errors import (
    EmailCollision,
    IdentityError,
    LinkingTokenAlreadyUsed,
    LinkingTokenInvalid,
    SessionError,
    TokenError,
    UserNotFound,
    ValidatorRejected,
)

GENERIC_LINK_MESSAGE = "This link is invalid or has expired. Please request a new link."

STATUS_BY_CODE: dict[str, int] = {
    "INVALID_OR_EXPIRED": 400,
    "ALREADY_USED": 400,
    "EXPIRED": 400,
    "MALFORMED": 400,
    "WRONG_KIND": 400,
    "INVALID_TOKEN": 400,
    "VALIDATOR_REJECTED": 400,
    "INVALID_METHOD": 400,
    "NOT_FOUND": 404,
    "INVALID_SECRET": 401,
    "EMAIL_COLLISION": 409,
    "DUPLICATE_R_NUMBER": 409,
    "CONSTRAINT_RACE": 409,
    "IN_PROGRESS": 409,
    "UNAVAILABLE": 503,
    "INTERNAL": 503,
}


def status_for(code: str) -> int:
    return STATUS_BY_CODE.get(code, 400)


def error_detail(code: str, message: str) -> dict[str, str]:
    return {"code": code, "message": message}


def to_http(exc: IdentityError) -> HTTPException:
    """예외 분류별 상태 코드. EmailCollision·ValidatorRejected는 메시지 그대로, 토큰 계열은 일반 메시지."""
    if isinstance(exc, SessionError):
        return HTTPException(status_code=401, detail="Invalid or expired session")
    if isinstance(exc, (TokenError, LinkingTokenInvalid, LinkingTokenAlreadyUsed)):
        return HTTPException(status_code=400, detail=error_detail(exc.code, GENERIC_LINK_MESSAGE))
    if isinstance(exc, (EmailCollision, ValidatorRejected)):
        return HTTPException(status_code=status_for(exc.code), detail=error_detail(exc.code, exc.message))
    if isinstance(exc, UserNotFound):
        return HTTPException(status_code=404, detail=error_detail(exc.code, exc.message))
    return HTTPException(status_code=status_for(exc.code), detail=error_detail(exc.code, exc.message))
