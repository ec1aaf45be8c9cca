from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage

from app.core.logging import logger
from core.settings import Settings, get_settings


def _build_message(settings: Settings, *, subject: str, body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"[{settings.app_name}] {subject}"
    msg["From"] = settings.smtp_user or settings.admin_email
    msg["To"] = settings.admin_email
    msg.set_content(body)
    return msg


def _deliver(settings: Settings, msg: EmailMessage) -> None:
    host = settings.smtp_host
    port = int(settings.smtp_port)
    # Port 465 is implicit TLS; anything else negotiates STARTTLS when offered.
    smtp_cls = smtplib.SMTP_SSL if port == 465 else smtplib.SMTP
    with smtp_cls(host, port, timeout=20) as smtp:
        if smtp_cls is smtplib.SMTP:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            else:
                logger.info("SMTP: STARTTLS not available; continuing without TLS")
        if settings.smtp_user:
            smtp.login(settings.smtp_user, settings.smtp_password.get_secret_value())
        smtp.send_message(msg)


def _send_email_sync(*, subject: str, body: str) -> None:
    settings = get_settings()
    if not settings.smtp_host or not settings.admin_email:
        logger.warning(
            "Admin email alert skipped: SMTP_HOST or ADMIN_EMAIL not configured."
        )
        return
    _deliver(settings, _build_message(settings, subject=subject, body=body))


async def send_admin_alert_email(*, subject: str, body: str) -> None:
    """Send an operator alert e-mail without blocking the event loop.

    Args:
        subject: Email subject; the application name is prefixed.
        body: Plain-text body, typically a traceback.
    """

    await asyncio.to_thread(_send_email_sync, subject=subject, body=body)
