"""
WifiDesk — Email Channel

Renders and sends the escalation notice over SMTP. The channel is optional:
with no MAIL_SERVER configured every message is still written to EmailLog,
with status 'skipped', and nothing leaves the process.

Configuration (see wifidesk.config):
    MAIL_SERVER          SMTP host; unset disables the channel
    MAIL_PORT            587
    MAIL_USE_TLS         STARTTLS before login (true)
    MAIL_USERNAME        optional login
    MAIL_PASSWORD        optional login
    MAIL_DEFAULT_SENDER  From header
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Any

from flask import current_app

from wifidesk.models import db
from wifidesk.models.scheduling import EmailLog

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


# ── Templates ────────────────────────────────────────────────────────────────
# str.format placeholders; unknown keys are left in place.

_ESCALATED_TEXT = """\
Request {request_id} from {name} ({email}) has been escalated.
Room: {room_number}
Issue Type: {issue_type}
Device Type: {device_type}
Description: {description}

{reason}

Please address this request as soon as possible.
"""

_ESCALATED_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px;">
  <h2 style="background: #dc2626; color: #fff; padding: 12px 20px; margin: 0;">
    WiFi Request Escalated &middot; {request_id}
  </h2>
  <table style="width: 100%; padding: 12px 20px; border: 1px solid #e2e8f0;">
    <tr><th align="left">Guest</th><td>{name} ({email})</td></tr>
    <tr><th align="left">Room</th><td>{room_number}</td></tr>
    <tr><th align="left">Issue Type</th><td>{issue_type}</td></tr>
    <tr><th align="left">Device Type</th><td>{device_type}</td></tr>
    <tr><th align="left">Description</th><td>{description}</td></tr>
  </table>
  <p>{reason}</p>
  <p style="color: #64748b;">Please address this request as soon as possible.</p>
</div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "request_escalated": {
        "subject": "WiFi Request Escalated - {request_id}",
        "text": _ESCALATED_TEXT,
        "html": _ESCALATED_HTML,
    },
}


class _Placeholders(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def _render(template: str, context: dict[str, Any]) -> str:
    return template.format_map(_Placeholders(context))


class EmailService:
    """SMTP sender that audits every message in EmailLog.

    Only flushes; the caller commits the EmailLog rows.
    """

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> dict[str, str] | None:
        return _TEMPLATES.get(template_name)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        subject: str,
        text_body: str,
        html_body: str | None = None,
        template_name: str | None = None,
        request_id: str | None = None,
    ) -> EmailLog:
        """Send one message and return its EmailLog (sent / failed / skipped).

        SMTP and socket errors are recorded on the log row, never raised.
        """
        log = EmailLog(
            recipient_email=to_email,
            subject=subject,
            template_name=template_name,
            status="queued",
            request_id=request_id,
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            log.mark_skipped("MAIL_SERVER not configured")
            return log

        extra = {"tracking_id": request_id}
        try:
            cls._send_smtp(to_email=to_email, subject=subject,
                           text_body=text_body, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            log.mark_failed(exc)
            logger.error("Email to %s failed: %s", to_email, exc, extra=extra)
        else:
            log.mark_sent()
            logger.info("Email sent to %s: %s", to_email, subject, extra=extra)
        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        template_name: str,
        context: dict[str, Any],
        request_id: str | None = None,
    ) -> EmailLog | None:
        """Render a named template and send it. Returns None for an unknown template."""
        template = cls.get_template(template_name)
        if template is None:
            logger.warning("Unknown email template %r", template_name)
            return None

        escaped = {key: html.escape(str(value)) for key, value in context.items()}
        return cls.send(
            to_email=to_email,
            subject=_render(template["subject"], context),
            text_body=_render(template["text"], context),
            html_body=_render(template["html"], escaped),
            template_name=template_name,
            request_id=request_id,
        )

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str,
                   text_body: str, html_body: str | None) -> None:
        cfg = current_app.config
        server = cfg["MAIL_SERVER"]

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{server}"
        msg["To"] = to_email
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(server, cfg.get("MAIL_PORT", 587), timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(msg)
