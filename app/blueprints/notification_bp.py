"""
Clearance Workflow Service
Notification & Scheduling Blueprint.

Provides:
    - In-app notifications for a user or for the escalation desk
    - Scheduled job management (list, status, trigger, toggle)
    - Email log viewing

Endpoints (all under /api/v1):
    GET   /notifications?user_id=&unread_only=      (no user_id → escalation desk)
    GET   /notifications/unread-count?user_id=
    PATCH /notifications/<id>/read
    POST  /notifications/mark-all-read              {user_id?}
    GET   /scheduler/jobs
    GET   /scheduler/jobs/<job_name>
    POST  /scheduler/jobs/<job_name>/trigger
    PATCH /scheduler/jobs/<job_name>/toggle         {enabled}
    GET   /email-logs?status=&category=&request_id=
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import page_args, register_error_handlers
from app.core.exceptions import NotFoundError, ValidationError
from app.models.scheduling import EmailLog
from app.services.notification import NotificationService
from app.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


def _recipient_arg(source):
    """user_id from query/body, or None for the escalation desk."""
    value = source.get("user_id")
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError("user_id must be an integer id", details={"user_id": "invalid"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("user_id must be an integer id", details={"user_id": "invalid"}) from None


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    recipient_id = _recipient_arg(request.args)
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit, offset = page_args(default_limit=50, max_limit=200)

    items, total = NotificationService.list_for_recipient(
        recipient_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(recipient_id),
        "limit": limit,
        "offset": offset,
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    recipient_id = _recipient_arg(request.args)
    return jsonify({"user_id": recipient_id, "unread_count": NotificationService.unread_count(recipient_id)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
def mark_read(nid):
    notif = NotificationService.mark_read(nid)
    if not notif:
        raise NotFoundError(resource="Notification", resource_id=nid)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
def mark_all_read():
    data = request.get_json(silent=True) or {}
    recipient_id = _recipient_arg(data)
    count = NotificationService.mark_all_read(recipient_id)
    return jsonify({"user_id": recipient_id, "marked": count})


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULER
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    """Registered jobs with their persisted run history."""
    SchedulerService.ensure_jobs_registered()
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@notification_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def job_status(job_name):
    status = SchedulerService.get_job_status(job_name)
    if status is None:
        raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
    return jsonify(status)


@notification_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Manually trigger a scheduled job (runs even when paused)."""
    result = SchedulerService.run_job(job_name, force=True)
    if result.get("status") == "error" and "Unknown job" in (result.get("error") or ""):
        return jsonify(result), 404
    return jsonify(result)


@notification_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        raise ValidationError("'enabled' field is required (true/false)", details={"enabled": "required"})

    SchedulerService.ensure_jobs_registered()
    result = SchedulerService.toggle_job(job_name, enabled)
    if not result:
        raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
    return jsonify(result)


# ═══════════════════════════════════════════════════════════════════════════
#  EMAIL LOG
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/email-logs", methods=["GET"])
def list_email_logs():
    """List email send logs with pagination."""
    limit, offset = page_args(default_limit=50, max_limit=200)
    status = request.args.get("status")
    category = request.args.get("category")
    request_id = request.args.get("request_id", type=int)

    q = EmailLog.query
    if status:
        q = q.filter_by(status=status)
    if category:
        q = q.filter_by(category=category)
    if request_id:
        q = q.filter_by(request_id=request_id)

    total = q.count()
    items = q.order_by(EmailLog.created_at.desc(), EmailLog.id.desc()).offset(offset).limit(limit).all()

    return jsonify({
        "items": [e.to_dict() for e in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })
