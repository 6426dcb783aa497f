"""
Outbound transactional email over SMTP.

Configuration comes from SMTP_SERVER / SMTP_PORT / SMTP_USE_TLS /
SMTP_USERNAME / SMTP_PASSWORD / EMAIL_FROM. Callers get a (sent, error)
tuple instead of an exception so that a mail outage never rolls back the
business change that triggered the message.
"""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from flask import current_app

logger = logging.getLogger(__name__)


def send_email(
    to: str,
    subject: str,
    body: str,
    *,
    html: str | None = None,
    attachments: list[tuple[str, bytes, str]] | None = None,
    config=None,
) -> tuple[bool, str]:
    """
    Send one message. `attachments` holds (filename, bytes, content_type) tuples.
    Returns (True, message_id) on success, (False, error) otherwise.
    """
    cfg = config if config is not None else current_app.config
    smtp_server = (cfg.get("SMTP_SERVER") or "").strip()
    email_from = (cfg.get("EMAIL_FROM") or "").strip()
    if not smtp_server:
        logger.warning("Email to %s not sent: SMTP_SERVER is not configured", to)
        return False, "Email is not configured (SMTP_SERVER missing)"
    if not email_from:
        logger.warning("Email to %s not sent: EMAIL_FROM is not configured", to)
        return False, "Email is not configured (EMAIL_FROM missing)"
    if not to:
        return False, "Recipient has no email address"

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = email_from
    msg["To"] = to
    msg["Message-ID"] = make_msgid()
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    for filename, data, content_type in attachments or []:
        maintype, _, subtype = (content_type or "application/octet-stream").partition("/")
        msg.add_attachment(data, maintype=maintype, subtype=subtype or "octet-stream", filename=filename)

    username = (cfg.get("SMTP_USERNAME") or "").strip()
    password = (cfg.get("SMTP_PASSWORD") or "").strip()
    try:
        with smtplib.SMTP(smtp_server, int(cfg.get("SMTP_PORT") or 587), timeout=30) as server:
            if cfg.get("SMTP_USE_TLS", True):
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email to %s failed (subject=%r): %s", to, subject, e)
        return False, f"Email delivery failed: {e}"

    message_id = msg["Message-ID"]
    logger.info("Email sent to %s (subject=%r)", to, subject)
    return True, message_id
