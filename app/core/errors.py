"""
인증·계정 연결 예외 분류. 서비스 레이어에서 발생, Router에서 HTTPException으로 변환.
code는 API 응답에 그대로 노출되는 안정적인 식별자.
"""


class IdentityError(Exception):
    """공통 베이스. 사용자 노출용 message와 분류 code를 가진다."""

    code = "IDENTITY_ERROR"
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# --- 토큰 (Token Issuer) ---


class TokenError(IdentityError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenExpired(TokenError):
    code = "EXPIRED"
    default_message = "Token expired"


class TokenMalformed(TokenError):
    code = "MALFORMED"
    default_message = "Token malformed or signature invalid"


class TokenWrongKind(TokenError):
    code = "WRONG_KIND"
    default_message = "Token type mismatch"


class TokenAlreadyUsed(TokenError):
    code = "ALREADY_USED"
    default_message = "Token already used"


# --- 세션 ---


class SessionError(IdentityError):
    code = "INVALID_SESSION"
    default_message = "Invalid or expired session"


class SessionNotFound(SessionError):
    code = "NOT_FOUND"
    default_message = "Session not found"


class SessionExpired(SessionError):
    code = "EXPIRED"
    default_message = "Session expired"


# --- 계정 연결 (Identity Resolver) ---


class UserNotFound(IdentityError):
    code = "NOT_FOUND"
    default_message = "No account found"


class LinkingTokenInvalid(IdentityError):
    """토큰 없음 또는 만료. 둘을 구분해 노출하지 않는다."""

    code = "INVALID_OR_EXPIRED"
    default_message = "Invalid or expired linking token"


class LinkingTokenAlreadyUsed(IdentityError):
    code = "ALREADY_USED"
    default_message = "Linking token has already been used"


class InvalidSecret(IdentityError):
    code = "INVALID_SECRET"
    default_message = "Invalid credentials"


class EmailCollision(IdentityError):
    code = "EMAIL_COLLISION"
    default_message = "This email is already used by a different account"


class ConstraintRace(IdentityError):
    """R Number 유니크 제약 위반(동시 온보딩 경합). 호출자에게는 Duplicate로 전환된다."""

    code = "CONSTRAINT_RACE"
    default_message = "R Number was claimed concurrently"


class RNumberTaken(IdentityError):
    code = "DUPLICATE_R_NUMBER"
    default_message = "An account with this R Number already exists"


# --- 파일 / 인프라 ---


class FileNotFound(IdentityError):
    """없거나 다른 유저 소유. 둘을 구분해 노출하지 않는다."""

    code = "NOT_FOUND"
    default_message = "File not found"


class ValidatorRejected(IdentityError):
    code = "VALIDATOR_REJECTED"
    default_message = "File rejected"


class Unavailable(IdentityError):
    code = "UNAVAILABLE"
    default_message = "Service temporarily unavailable"


class WriteInProgress(IdentityError):
    """같은 유저의 다른 쓰기(온보딩·프로필·파일 교체)가 유저별 락을 잡고 있음."""

    code = "IN_PROGRESS"
    default_message = "Another update is already in progress"
