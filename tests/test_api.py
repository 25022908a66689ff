"""HTTP 계약 테스트. 매직링크 로그인 → 온보딩 → 중복 감지 → 계정 연결."""

import json
import re
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.services import email_service, token_service
from app.services.token_service import TokenKind

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.7\n" + b"0" * 64

PROFILE = {
    "first_name": "Raider",
    "last_name": "Red",
    "major": "Computer Science",
    "r_number": "R12345678",
    "university_level": "junior",
    "aspired_position": "Backend Engineer",
    "technology_skills": ["Python"],
}


@pytest.fixture
def outbox(monkeypatch):
    send = AsyncMock(return_value=True)
    monkeypatch.setattr(email_service, "send", send)
    return send


def _token_from(html: str) -> str:
    return re.search(r"token=([A-Za-z0-9_\-.]+)", html).group(1)


def _sign_in(api, outbox, email: str) -> dict[str, str]:
    response = api.post("/v1/auth/magic-link", json={"email": email})
    assert response.status_code == 200
    token = _token_from(outbox.await_args.args[2])
    response = api.get("/v1/auth/magic-link/verify", params={"token": token})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['bearer_token']}"}


def _onboard(api, headers, profile=PROFILE, files=None):
    return api.post(
        "/v1/onboarding",
        data={"payload": json.dumps(profile)},
        files=files or {},
        headers=headers,
    )


def test_magic_link_always_reports_sent(api, outbox):
    response = api.post("/v1/auth/magic-link", json={"email": "Nobody@TTU.edu"})
    assert response.status_code == 200
    assert response.json() == {"sent": True}
    assert outbox.await_args.args[0] == "nobody@ttu.edu"


def test_magic_link_login_and_reuse(api, outbox):
    api.post("/v1/auth/magic-link", json={"email": "a@ttu.edu"})
    token = _token_from(outbox.await_args.args[2])

    first = api.get("/v1/auth/magic-link/verify", params={"token": token})
    assert first.status_code == 200
    assert first.json()["redirect_to"] == "/onboarding"

    second = api.get("/v1/auth/magic-link/verify", params={"token": token})
    assert second.status_code == 400
    assert second.json()["detail"]["code"] == "ALREADY_USED"


def test_expired_magic_link(api):
    token = token_service.issue(TokenKind.MAGIC_LINK, {"email": "a@ttu.edu"}, timedelta(seconds=-5))
    response = api.get("/v1/auth/magic-link/verify", params={"token": token})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "EXPIRED"


def test_me_requires_session(api):
    assert api.get("/v1/auth/me").status_code == 401
    assert api.get("/v1/auth/me", headers={"Authorization": "Bearer bogus"}).status_code == 401


def test_logout(api, outbox):
    headers = _sign_in(api, outbox, "a@ttu.edu")
    assert api.get("/v1/auth/me", headers=headers).json()["email"] == "a@ttu.edu"
    assert api.post("/v1/auth/logout", headers=headers).status_code == 204
    assert api.get("/v1/auth/me", headers=headers).status_code == 401
    assert api.post("/v1/auth/logout", headers=headers).status_code == 204


def test_onboarding_success_and_file_download(api, outbox):
    headers = _sign_in(api, outbox, "a@ttu.edu")
    response = _onboard(
        api,
        headers,
        files={
            "profile_picture": ("me.png", PNG_BYTES, "image/png"),
            "resume": ("cv.pdf", PDF_BYTES, "application/pdf"),
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["has_completed_onboarding"] is True
    resume_id = body["user"]["resume_id"]

    download = api.get(f"/v1/files/{resume_id}", headers=headers)
    assert download.status_code == 200
    assert download.content == PDF_BYTES

    stranger = _sign_in(api, outbox, "b@ttu.edu")
    assert api.get(f"/v1/files/{resume_id}", headers=stranger).status_code == 404


def test_onboarding_rejects_invalid_payload(api, outbox):
    headers = _sign_in(api, outbox, "a@ttu.edu")
    response = _onboard(api, headers, profile={**PROFILE, "r_number": "12345678"})
    assert response.status_code == 422


def test_onboarding_rejects_executable_upload(api, outbox):
    headers = _sign_in(api, outbox, "a@ttu.edu")
    response = _onboard(api, headers, files={"resume": ("cv.pdf", b"MZ" + b"\x00" * 32, "application/pdf")})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATOR_REJECTED"


def test_duplicate_then_link_with_password(api, outbox):
    first = _sign_in(api, outbox, "jdoe@ttu.edu")
    assert _onboard(api, first).status_code == 200

    # 기존 계정 비밀번호 설정 (reset-request 메일 경유)
    api.post("/v1/account-link/reset-request", json={"email": "jdoe@ttu.edu"})
    reset_token = _token_from(outbox.await_args.args[2])
    assert (
        api.post(
            "/v1/auth/password-reset", json={"token": reset_token, "new_password": "correct-horse"}
        ).status_code
        == 204
    )

    second = _sign_in(api, outbox, "jdoe@gmail.com")
    duplicate = _onboard(api, second)
    assert duplicate.status_code == 409
    body = duplicate.json()
    assert body["existing_user"]["masked_email"] == "j***@ttu.edu"
    linking_token = body["linking_token"]

    details = api.get(f"/v1/account-link/{linking_token}")
    assert details.status_code == 200
    assert details.json()["valid"] is True

    wrong = api.post(
        "/v1/account-link",
        json={"linking_token": linking_token, "method": "password", "secret": "nope-nope"},
    )
    assert wrong.status_code == 401

    linked = api.post(
        "/v1/account-link",
        json={"linking_token": linking_token, "method": "password", "secret": "correct-horse"},
    )
    assert linked.status_code == 200
    session = linked.json()["session"]
    assert session["redirect_to"] == "/profile"
    me = api.get("/v1/auth/me", headers={"Authorization": f"Bearer {session['bearer_token']}"})
    assert me.json()["email"] == "jdoe@gmail.com"
    assert me.json()["r_number"] == "R12345678"

    reused = api.post(
        "/v1/account-link",
        json={"linking_token": linking_token, "method": "password", "secret": "correct-horse"},
    )
    assert reused.status_code == 400
    assert reused.json()["code"] == "ALREADY_USED"


def test_link_reset_method_reports_sent(api, outbox):
    first = _sign_in(api, outbox, "jdoe@ttu.edu")
    _onboard(api, first)
    second = _sign_in(api, outbox, "jdoe@gmail.com")
    linking_token = _onboard(api, second).json()["linking_token"]

    response = api.post("/v1/account-link", json={"linking_token": linking_token, "method": "reset"})

    assert response.status_code == 200
    assert response.json()["session"] is None
    assert outbox.await_args.args[0] == "jdoe@ttu.edu"


def test_unknown_linking_token(api):
    assert api.get("/v1/account-link/does-not-exist").status_code == 400
    response = api.post(
        "/v1/account-link",
        json={"linking_token": "does-not-exist", "method": "password", "secret": "whatever1"},
    )
    assert response.status_code == 400


def test_reset_request_for_unknown_email(api, outbox):
    response = api.post("/v1/account-link/reset-request", json={"email": "ghost@ttu.edu"})
    assert response.status_code == 200
    assert response.json() == {"sent": True}
    outbox.assert_not_awaited()


def test_profile_update_and_delete(api, outbox):
    headers = _sign_in(api, outbox, "a@ttu.edu")
    _onboard(api, headers)

    updated = api.put("/v1/users/me", json={"major": "Mathematics"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["major"] == "Mathematics"
    assert updated.json()["r_number"] == "R12345678"

    other = _sign_in(api, outbox, "b@ttu.edu")
    _onboard(api, other, profile={**PROFILE, "r_number": "R87654321"})
    taken = api.put("/v1/users/me", json={"r_number": "R12345678"}, headers=other)
    assert taken.status_code == 409

    assert api.delete("/v1/users/me", headers=headers).status_code == 204
    assert api.get("/v1/auth/me", headers=headers).status_code == 401


def test_profile_picture_upload_replace_and_delete(api, outbox):
    headers = _sign_in(api, outbox, "pic@ttu.edu")

    first = api.post(
        "/v1/files/profile-picture", files={"file": ("me.png", PNG_BYTES, "image/png")}, headers=headers
    )
    assert first.status_code == 201
    assert first.json()["kind"] == "profile_picture"
    second = api.post(
        "/v1/files/profile-picture", files={"file": ("me2.png", PNG_BYTES, "image/png")}, headers=headers
    )
    assert second.status_code == 201
    second_id = second.json()["id"]

    assert api.get("/v1/users/me", headers=headers).json()["profile_picture_id"] == second_id
    assert api.get(f"/v1/files/{first.json()['id']}", headers=headers).status_code == 404

    stranger = _sign_in(api, outbox, "other@ttu.edu")
    assert api.delete(f"/v1/files/{second_id}", headers=stranger).status_code == 404

    assert api.delete(f"/v1/files/{second_id}", headers=headers).status_code == 204
    assert api.get("/v1/users/me", headers=headers).json()["profile_picture_id"] is None
    assert api.delete(f"/v1/files/{second_id}", headers=headers).status_code == 404


def test_resume_upload_rejects_wrong_type(api, outbox):
    headers = _sign_in(api, outbox, "cv@ttu.edu")
    response = api.post(
        "/v1/files/resume", files={"file": ("cv.png", PNG_BYTES, "image/png")}, headers=headers
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATOR_REJECTED"

    ok = api.post("/v1/files/resume", files={"file": ("cv.pdf", PDF_BYTES, "application/pdf")}, headers=headers)
    assert ok.status_code == 201
    assert api.get("/v1/users/me", headers=headers).json()["resume_id"] == ok.json()["id"]


def test_profile_update_while_another_write_in_progress(api, outbox):
    headers = _sign_in(api, outbox, "busy@ttu.edu")
    user_id = api.get("/v1/users/me", headers=headers).json()["id"]
    api.app.state.redis_client.store[f"mlh:user_write_lock:{user_id}"] = "someone-else"

    response = api.put("/v1/users/me", json={"major": "Mathematics"}, headers=headers)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "IN_PROGRESS"
