"""Transactional email carrying the removal secret code."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

from flask import current_app, render_template

LOGGER = logging.getLogger(__name__)
_SENDER_NAME = "Love Wall"


class EmailError(RuntimeError):
    """Raised when the secret code email could not be delivered."""


class EmailConfigurationError(EmailError):
    """Raised when SMTP settings are missing."""


def build_secret_code_message(*, email: str, names: str, secret_code: str) -> EmailMessage:
    config = current_app.config
    message = EmailMessage()
    message["Subject"] = f"Your Love Wall secret code: {secret_code}"
    message["From"] = formataddr((_SENDER_NAME, config.get("MAIL_FROM", "")))
    message["To"] = email
    message["Message-ID"] = make_msgid(domain=_sender_domain(config.get("MAIL_FROM")))
    context = {
        "names": names,
        "secret_code": secret_code,
        "site_url": config.get("SITE_URL", ""),
    }
    message.set_content(render_template("email/secret_code.txt", **context))
    message.add_alternative(
        render_template("email/secret_code.html", **context), subtype="html"
    )
    return message


def send_secret_code(
    email: str,
    names: str,
    secret_code: str,
    *,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Send the removal code to ``email`` and return the message id."""
    log = logger or LOGGER
    if not email:
        raise EmailError("An email address is required")
    message = build_secret_code_message(email=email, names=names, secret_code=secret_code)
    send(message)
    log.info("Secret code email sent (message %s)", message["Message-ID"])
    return str(message["Message-ID"])


def send(message: EmailMessage) -> None:
    config = current_app.config
    server = config.get("MAIL_SERVER")
    if not server:
        raise EmailConfigurationError("MAIL_SERVER is not configured")
    port = int(config.get("MAIL_PORT", 587))
    timeout = int(config.get("MAIL_TIMEOUT", 10))
    username = config.get("MAIL_USERNAME")
    password = config.get("MAIL_PASSWORD")

    try:
        with smtplib.SMTP(server, port, timeout=timeout) as smtp:
            if config.get("MAIL_USE_TLS", True):
                smtp.starttls(context=ssl.create_default_context())
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailError(f"Failed to send email: {exc}") from exc


def _sender_domain(address: str | None) -> str | None:
    if address and "@" in address:
        return address.rsplit("@", 1)[-1]
    return None
