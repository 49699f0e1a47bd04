"""
Clearance Workflow Service
Email Service — clearance notification mails over SMTP.

Every mail gets an EmailLog row first; SMTP is only contacted when
MAIL_SERVER is set, otherwise the row is marked sent and the mail is just
logged (development and tests).

Configuration (env vars):
    MAIL_SERVER          SMTP host (unset → log-only)
    MAIL_PORT            default 587
    MAIL_USE_TLS         default true
    MAIL_USERNAME / MAIL_PASSWORD
    MAIL_DEFAULT_SENDER  From address (default noreply@<MAIL_SERVER>)
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

from app.models import db
from app.models.scheduling import EmailLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailTemplate:
    subject: str
    heading: str
    body: str
    accent: str = "#1e293b"


_FRAME = """
<table role="presentation" width="100%" style="font-family: Arial, sans-serif; max-width: 600px;">
  <tr><td style="background: {accent}; color: #fff; padding: 14px 22px;">
    <strong style="font-size: 17px;">{heading}</strong>
  </td></tr>
  <tr><td style="padding: 22px; border: 1px solid #e2e8f0; color: #334155;">
    <p>Dear {recipient_name},</p>
    <p style="line-height: 1.6;">{body}</p>
    <p style="font-size: 12px; color: #64748b;">{document_type} &middot; request #{request_id}</p>
  </td></tr>
  <tr><td style="padding: 10px 22px; font-size: 11px; color: #94a3b8; text-align: center;">
    Sent automatically by the clearance office. Replies are not monitored.
  </td></tr>
</table>
"""

TEMPLATES: dict[str, MailTemplate] = {
    "request_submitted": MailTemplate(
        subject="[Clearance] Request #{request_id} submitted",
        heading="We received your clearance request",
        body="Your {document_type} request is queued for sign-off by the {stage} office.",
    ),
    "request_approved": MailTemplate(
        subject="[Clearance] Request #{request_id}: {stage} approved",
        heading="One more office signed off",
        body="The {stage} office approved your request; the {next_stage} office is next.",
        accent="#2563eb",
    ),
    "clearance_completed": MailTemplate(
        subject="[Clearance] Request #{request_id} completed",
        heading="Clearance complete",
        body="Every office has signed off and your clearance certificate is issued.",
        accent="#16a34a",
    ),
    "request_on_hold": MailTemplate(
        subject="[Clearance] Request #{request_id} on hold at {stage}",
        heading="Your request is on hold",
        body="The {stage} office paused your request: <em>{reason}</em>. "
             "Fix the issue, then resubmit from your dashboard.",
        accent="#d97706",
    ),
    "request_escalated": MailTemplate(
        subject="[Clearance] Escalation L{level}: request #{request_id} pending {days_pending} days",
        heading="Escalated clearance request",
        body="Request #{request_id} has waited {days_pending} days at the {stage} office "
             "and is now at escalation level {level}. Reason: {reason}.",
        accent="#dc2626",
    ),
    "request_escalated_requester": MailTemplate(
        subject="[Clearance] Request #{request_id} has been escalated",
        heading="We escalated your request",
        body="Your request has been with the {stage} office for {days_pending} days, "
             "so it was flagged to the clearance supervisors.",
        accent="#dc2626",
    ),
}


class _Placeholders(dict):
    """format_map() mapping that leaves unknown ``{keys}`` in place."""

    def __missing__(self, key):
        return "{" + key + "}"


def render(template: MailTemplate, context: dict[str, Any], recipient_name: str) -> tuple[str, str]:
    """Return ``(subject, html)`` for ``template``."""
    values = _Placeholders(context)
    values.setdefault("recipient_name", recipient_name)
    html = _FRAME.format_map(_Placeholders(
        values,
        accent=template.accent,
        heading=template.heading,
        body=template.body.format_map(values),
    ))
    return template.subject.format_map(values), html


class EmailService:
    """Static helpers; the caller owns the surrounding transaction."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def get_template(template_name: str) -> MailTemplate | None:
        return TEMPLATES.get(template_name)

    @staticmethod
    def template_names() -> list[str]:
        return sorted(TEMPLATES)

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
        category: str = "system",
        notification_id: int | None = None,
        request_id: int | None = None,
    ) -> EmailLog:
        """Log the mail, then hand it to SMTP when configured.

        SMTP failures mark the log row failed; they are not raised.
        """
        entry = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            category=category,
            status="queued",
            notification_id=notification_id,
            request_id=request_id,
        )
        db.session.add(entry)
        db.session.flush()

        if not cls.is_configured():
            entry.mark_sent()
            logger.info("Email (log-only) %s → %s: %s", template_name or "-", to_email, subject,
                        extra={"request_id": request_id})
            return entry

        try:
            cls._deliver(to_email=to_email, to_name=to_name, subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            entry.mark_failed(exc)
            logger.error("SMTP delivery to %s failed: %s", to_email, exc, extra={"request_id": request_id})
        else:
            entry.mark_sent()
            logger.info("Email sent to %s: %s", to_email, subject, extra={"request_id": request_id})
        return entry

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        category: str = "system",
        notification_id: int | None = None,
        request_id: int | None = None,
    ) -> EmailLog | None:
        template = cls.get_template(template_name)
        if template is None:
            logger.warning("Unknown email template %r; nothing sent", template_name)
            return None

        subject, html = render(template, context, to_name or to_email)
        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html,
            template_name=template_name,
            category=category,
            notification_id=notification_id,
            request_id=request_id,
        )

    @staticmethod
    def _deliver(*, to_email: str, to_name: str | None, subject: str, html_body: str) -> None:
        cfg = current_app.config
        host = cfg["MAIL_SERVER"]

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{host}"
        message["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        message.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(host, cfg.get("MAIL_PORT", 587), timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(message)
