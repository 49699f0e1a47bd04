"""
Clearance Workflow Service
Scheduled Jobs.

Concrete job implementations that run on a schedule. The cadence is owned
by an external scheduler (cron / k8s CronJob) hitting the trigger API or
``SchedulerService.run_job``.

Jobs:
    - escalation_sweep: escalates stale pending clearance requests
    - stale_notification_cleanup: deletes old read notifications
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from app.models import db
from app.models.notification import Notification
from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)

NOTIFICATION_RETENTION_DAYS = 30


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Escalation Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("escalation_sweep", schedule={"hour": "*", "minute": "0", "description": "Hourly"})
def run_escalation_sweep(app) -> dict[str, Any]:
    """Escalate pending clearance requests idle longer than the threshold."""
    workflow = app.extensions["clearance"]
    report = workflow.sweep.run()
    return report.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Stale Notification Cleanup
# ═══════════════════════════════════════════════════════════════════════════

@register_job(
    "stale_notification_cleanup",
    schedule={"hour": "2", "minute": "0", "description": "Daily at 02:00"},
)
def cleanup_stale_notifications(app) -> dict[str, Any]:
    """Delete read notifications older than the retention window."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=NOTIFICATION_RETENTION_DAYS)

    deleted = Notification.query.filter(
        Notification.is_read.is_(True),
        Notification.read_at < cutoff,
    ).delete(synchronize_session="fetch")

    db.session.commit()
    logger.info("Stale notification cleanup: deleted %d old read notifications", deleted)
    return {"deleted": deleted, "cutoff": cutoff.isoformat()}
