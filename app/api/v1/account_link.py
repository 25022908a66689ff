"""Account Link API. 중복 감지 후 password / reset 두 경로."""

from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from app.api.errors import GENERIC_LINK_MESSAGE, error_detail, status_for
from app.core.database import transaction
from app.schemas.account_link import (
    AccountLinkPayload,
    AccountLinkSuccessResponse,
    FailureResponse,
    ResetRequestPayload,
)
from app.schemas.auth import SentResponse, SessionResponse
from app.services import identity_service
from app.services.identity_service import LinkingTokenDetails
from app.services.onboarding_service import OnboardingFailure, complete_account_linking

router = APIRouter(prefix="/account-link", tags=["account-link"])

# 토큰 계열 실패는 구체 원인 대신 일반 메시지 (열거 방지)
_GENERIC_CODES = {"INVALID_OR_EXPIRED", "ALREADY_USED", "NOT_FOUND"}


@router.post(
    "",
    response_model=AccountLinkSuccessResponse,
    responses={400: {"model": FailureResponse}, 401: {"model": FailureResponse}},
)
async def post_account_link(payload: AccountLinkPayload) -> Any:
    """
    method=password: 비밀번호 확인 후 병합 + 새 세션.
    method=reset: 기존 계정 이메일로 재설정 메일 발송. 항상 동일 메시지.
    """
    outcome = await complete_account_linking(payload.linking_token, payload.method, payload.secret)
    if isinstance(outcome, OnboardingFailure):
        message = GENERIC_LINK_MESSAGE if outcome.code in _GENERIC_CODES else outcome.message
        status = 400 if outcome.code == "NOT_FOUND" else status_for(outcome.code)
        body = FailureResponse(code=outcome.code, message=message)
        return JSONResponse(status_code=status, content=body.model_dump(mode="json"))

    session = None
    if outcome.session is not None:
        session = SessionResponse(
            bearer_token=outcome.session.bearer_token,
            expires_at=outcome.session.expires_at,
            redirect_to="/profile",
        )
    return AccountLinkSuccessResponse(session=session, message=outcome.message)


@router.post("/reset-request", response_model=SentResponse)
async def post_reset_request(payload: ResetRequestPayload) -> SentResponse:
    """이메일로 연결용 비밀번호 재설정 요청. 계정 존재 여부와 무관하게 항상 {sent: true}."""
    await identity_service.send_password_reset_for_linking(payload.email)
    return SentResponse()


@router.get("/{token}", response_model=LinkingTokenDetails)
async def get_linking_token(token: str) -> LinkingTokenDetails:
    """토큰 유효성 + 기존 계정 요약(이메일 마스킹). 없는 토큰은 400."""
    async with transaction() as session:
        details = await identity_service.get_linking_token_details(session, token)
    if details is None:
        raise HTTPException(
            status_code=400, detail=error_detail("INVALID_OR_EXPIRED", GENERIC_LINK_MESSAGE)
        )
    return details
