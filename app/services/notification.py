"""
Clearance Workflow Service
Notification Service.

NotificationService  – stateless queries/actions behind the notifications API.
NotificationGateway  – outbound lifecycle events emitted by the transition
                       handler after commit (in-app row + templated e-mail).

The gateway is best effort: the caller wraps any exception it raises in
DependencyError and logs it; the lifecycle transition is already committed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app

from app.models import db
from app.models.notification import Notification
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)

ESCALATION_DESK = None  # recipient_id of rows addressed to the super-admin desk


class NotificationService:
    """Stateless service class for notification operations."""

    @staticmethod
    def create(*, title, message="", category="system", severity="info",
               recipient_id=None, request_id=None, commit=True):
        """Create a single notification record."""
        notif = Notification(
            recipient_id=recipient_id,
            request_id=request_id,
            title=title,
            message=message,
            category=category,
            severity=severity,
        )
        db.session.add(notif)
        if commit:
            db.session.commit()
        return notif

    @staticmethod
    def list_for_recipient(recipient_id=ESCALATION_DESK, unread_only=False, limit=50, offset=0):
        """Notifications for one user (or the desk when ``recipient_id`` is None), newest first."""
        q = Notification.query
        if recipient_id is None:
            q = q.filter(Notification.recipient_id.is_(None))
        else:
            q = q.filter(Notification.recipient_id == recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (q.order_by(Notification.created_at.desc(), Notification.id.desc())
                 .offset(offset).limit(limit).all())
        return items, total

    @staticmethod
    def unread_count(recipient_id=ESCALATION_DESK):
        q = Notification.query.filter_by(is_read=False)
        if recipient_id is None:
            return q.filter(Notification.recipient_id.is_(None)).count()
        return q.filter(Notification.recipient_id == recipient_id).count()

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id=ESCALATION_DESK):
        q = Notification.query.filter_by(is_read=False)
        if recipient_id is None:
            q = q.filter(Notification.recipient_id.is_(None))
        else:
            q = q.filter(Notification.recipient_id == recipient_id)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count


class NotificationGateway:
    """
    Lifecycle notifications for clearance requests.

    Each notify_* call writes its in-app rows and e-mail logs and commits
    them in one go. Stage-queue notifications go to every active user whose
    role owns the stage now awaiting action.
    """

    def __init__(self, repository, authorities, *, send_email=True):
        self._repo = repository
        self._authorities = authorities
        self._send_email = send_email

    # ── Lifecycle events ──────────────────────────────────────────────────

    def notify_submitted(self, request):
        stage = request.current_stage
        self._to_requester(
            request,
            title=f"Clearance request #{request.id} submitted",
            message=f"Awaiting sign-off from {stage}.",
            category="submitted",
            template="request_submitted",
            context={"stage": stage},
        )
        self._to_stage_owners(request, stage)
        self._repo.commit()

    def notify_approved(self, request, stage_name, is_completed):
        if is_completed:
            self._to_requester(
                request,
                title=f"Clearance request #{request.id} completed",
                message="All stages approved. Your certificate is available.",
                category="completed",
                severity="success",
                template="clearance_completed",
            )
        else:
            next_stage = request.current_stage
            self._to_requester(
                request,
                title=f"{stage_name} approved request #{request.id}",
                message=f"Now awaiting {next_stage}.",
                category="approved",
                severity="success",
                template="request_approved",
                context={"stage": stage_name, "next_stage": next_stage},
            )
            self._to_stage_owners(request, next_stage)
        self._repo.commit()

    def notify_rejected(self, request, stage_name, reason):
        self._to_requester(
            request,
            title=f"Request #{request.id} put on hold at {stage_name}",
            message=reason,
            category="rejected",
            severity="warning",
            template="request_on_hold",
            context={"stage": stage_name, "reason": reason},
        )
        self._repo.commit()

    def notify_escalated(self, request, level, days_pending, reason=None):
        """Alert the escalation desk and tell the requester."""
        stage = request.current_stage
        context = {"stage": stage, "level": level, "days_pending": days_pending,
                   "reason": reason or ""}
        title = f"Escalation L{level}: request #{request.id} pending {days_pending} days"
        desk = NotificationService.create(
            title=title,
            message=reason or "",
            category="escalated",
            severity="error",
            recipient_id=ESCALATION_DESK,
            request_id=request.id,
            commit=False,
        )
        alert_email = current_app.config.get("ESCALATION_ALERT_EMAIL")
        if self._send_email and alert_email:
            self._repo.flush()
            EmailService.send_from_template(
                to_email=alert_email,
                to_name="Clearance escalation desk",
                template_name="request_escalated",
                context=self._context(request, context),
                category="escalated",
                notification_id=desk.id,
                request_id=request.id,
            )
        self._to_requester(
            request,
            title=f"Your request #{request.id} was escalated",
            message=f"Pending at {stage} for {days_pending} days.",
            category="escalated",
            severity="warning",
            template="request_escalated_requester",
            context=context,
        )
        self._repo.commit()

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _context(request, extra=None):
        ctx = {
            "request_id": request.id,
            "document_type": request.document_type.name if request.document_type else "",
        }
        ctx.update(extra or {})
        return ctx

    def _to_requester(self, request, *, title, message, category, template,
                      severity="info", context=None):
        notif = NotificationService.create(
            title=title,
            message=message,
            category=category,
            severity=severity,
            recipient_id=request.requester_id,
            request_id=request.id,
            commit=False,
        )
        requester = request.requester
        if self._send_email and requester is not None and requester.email:
            self._repo.flush()
            EmailService.send_from_template(
                to_email=requester.email,
                to_name=requester.full_name,
                template_name=template,
                context=self._context(request, context),
                category=category,
                notification_id=notif.id,
                request_id=request.id,
            )
        return notif

    def _to_stage_owners(self, request, stage_name):
        if stage_name is None:
            return []
        owners = self._repo.users_with_roles(self._authorities.owners_of(stage_name))
        rows = [
            NotificationService.create(
                title=f"Request #{request.id} awaits {stage_name} sign-off",
                message=request.purpose or "",
                category="submitted",
                recipient_id=user.id,
                request_id=request.id,
                commit=False,
            )
            for user in owners
        ]
        logger.debug("Queued %d stage notifications for request %s", len(rows), request.id)
        return rows
