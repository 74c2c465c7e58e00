# app/services/email.py
from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import structlog
from jinja2 import BaseLoader, Environment, select_autoescape

from app.core.config import Settings
from app.core.errors import MailDeliveryError

log = structlog.get_logger(__name__)

RESET_TEMPLATE = """\
<div style="background-color: #F6F6F6; display: block; max-width: 960px;">
  <div style="background-color: #F6F6F6; padding: 20px; max-width: 960px;">
    <h1 style="color: #302E3E; font-family: Calibri; font-size: 46px; text-align: center;">{{ app_name }}</h1>
    <p style="max-width: 600px; padding: 0 100px; font-family: Calibri; font-size: 20px; color: #302E3E;">
      To reset your {{ app_name }} password, please click this link:
    </p>
    <a href="{{ link }}" style="max-width: 600px; padding: 0 100px; font-family: Calibri; font-size: 20px;">{{ link }}</a>
    <p style="max-width: 600px; padding: 0 100px; font-family: Calibri; font-size: 20px; color: #302E3E;">
      This link expires in {{ minutes }} minutes.<br/>
      Thanks,<br/>{{ app_name }} Team
    </p>
  </div>
</div>
"""

_env = Environment(loader=BaseLoader(), autoescape=select_autoescape(["html", "xml"]))


def render_reset_email(link: str, minutes: int, app_name: str = "BitFest") -> str:
    return _env.from_string(RESET_TEMPLATE).render(link=link, minutes=minutes, app_name=app_name)


class MailSender(Protocol):
    def send_email(self, to: str, subject: str, html_body: str) -> None: ...


class SmtpMailSender:
    """Sends HTML mail over SMTP+SSL; the SMTP account is picked by recipient domain."""

    def __init__(self, settings: Settings, timeout: float = 15.0):
        self.settings = settings
        self.timeout = timeout

    def send_email(self, to: str, subject: str, html_body: str) -> None:
        cfg = self.settings.smtp_for(to)
        if cfg is None:
            raise MailDeliveryError("Unsupported email provider for this address.")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = cfg.from_address
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=self.timeout) as server:
                server.login(cfg.username, cfg.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            log.error("mail_delivery_failed", provider=cfg.provider, error_type=type(exc).__name__)
            raise MailDeliveryError("Failed to send email.") from exc
        log.info("mail_sent", provider=cfg.provider, subject=subject)
