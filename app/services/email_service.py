"""
메일 발송 (SMTP, aiosmtplib). 매직링크·계정 연결용 비밀번호 재설정 메일.
발송 실패는 로그만 남기고 False 반환: 토큰 발급과 전달은 분리되어 있어 호출자를 실패시키지 않는다.
"""

import logging
from email.message import EmailMessage
from html import escape

import aiosmtplib

from app.core.config import settings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10.0


def is_configured() -> bool:
    return bool((settings.smtp_host or "").strip())


async def send(to: str, subject: str, html: str) -> bool:
    """HTML 메일 1통 발송. 성공 True, 미설정·실패 False (예외 전파 없음)."""
    if not is_configured():
        logger.warning("SMTP not configured. Skipping email to=%s subject=%s", to, subject)
        return False

    message = EmailMessage()
    message["From"] = settings.from_email
    message["To"] = to
    message["Subject"] = subject
    message.set_content("This message requires an HTML-capable email client.")
    message.add_alternative(html, subtype="html")

    password = settings.smtp_password.get_secret_value() if settings.smtp_password else None
    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or None,
            password=password,
            start_tls=settings.smtp_use_tls,
            timeout=SMTP_TIMEOUT_SECONDS,
        )
    except (aiosmtplib.SMTPException, OSError, TimeoutError) as e:
        logger.warning("Email dispatch failed to=%s subject=%s: %s", to, subject, e, exc_info=True)
        return False
    logger.info("Email sent to=%s subject=%s", to, subject)
    return True


def magic_link_html(link: str) -> str:
    url = escape(link, quote=True)
    return (
        "<h2>Sign in to MLH TTU</h2>"
        f'<p><a href="{url}">Click here to sign in</a>. '
        f"This link expires in {settings.magic_link_expire_minutes} minutes.</p>"
        "<p>If you did not request this email, you can safely ignore it.</p>"
    )


def password_reset_html(link: str) -> str:
    url = escape(link, quote=True)
    return (
        "<h2>Link your MLH TTU account</h2>"
        "<p>Someone tried to connect a new sign-in method to your account. "
        f'To continue, <a href="{url}">set a password</a> and then link the account with it. '
        f"This link expires in {settings.password_reset_expire_minutes} minutes.</p>"
        "<p>If this was not you, no action is needed.</p>"
    )
