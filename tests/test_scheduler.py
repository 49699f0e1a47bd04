"""
Tests: scheduler registry and the scheduled jobs.

SchedulerService.run_job() executes in a fresh app context (its own
session), so test data is committed first and the test session is expired
before asserting.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.models import db as _db
from app.models.auth import Role
from app.models.clearance import ClearanceRequest
from app.models.notification import Notification
from app.models.scheduling import ScheduledJob
from app.services.scheduler_service import SchedulerService, get_registered_jobs


@pytest.fixture()
def stale_request(workflow, users, doc_type):
    rid = workflow.transitions.submit(users[Role.STUDENT].id, doc_type.id).id
    req = _db.session.get(ClearanceRequest, rid)
    req.last_activity_at = datetime.now(timezone.utc) - timedelta(days=5)
    _db.session.commit()
    return rid


def test_jobs_registered():
    jobs = get_registered_jobs()
    assert "escalation_sweep" in jobs
    assert "stale_notification_cleanup" in jobs


def test_ensure_jobs_registered_is_idempotent():
    SchedulerService.ensure_jobs_registered()
    SchedulerService.ensure_jobs_registered()
    _db.session.expire_all()
    job = ScheduledJob.query.filter_by(job_name="escalation_sweep").one()
    assert job.schedule_config["description"] == "Hourly"
    assert job.is_enabled is True


def test_escalation_sweep_job(stale_request):
    SchedulerService.ensure_jobs_registered()

    result = SchedulerService.run_job("escalation_sweep")

    assert result["status"] == "success"
    assert result["result"]["escalated"] == 1
    assert result["result"]["escalated_ids"] == [stale_request]

    _db.session.expire_all()
    assert _db.session.get(ClearanceRequest, stale_request).escalation_level == 1
    job = ScheduledJob.query.filter_by(job_name="escalation_sweep").one()
    assert job.run_count == 1
    assert job.last_run_status == "success"
    assert job.last_run_result["escalated"] == 1


def test_paused_job_skipped_unless_forced(stale_request):
    SchedulerService.ensure_jobs_registered()
    SchedulerService.toggle_job("escalation_sweep", False)

    skipped = SchedulerService.run_job("escalation_sweep")
    assert skipped["status"] == "skipped"
    _db.session.expire_all()
    assert _db.session.get(ClearanceRequest, stale_request).escalation_level == 0

    forced = SchedulerService.run_job("escalation_sweep", force=True)
    assert forced["status"] == "success"
    assert forced["result"]["escalated"] == 1


def test_unknown_job():
    result = SchedulerService.run_job("does_not_exist")
    assert result["status"] == "error"
    assert "Unknown job" in result["error"]


def test_stale_notification_cleanup():
    old = datetime.now(timezone.utc) - timedelta(days=45)
    _db.session.add_all([
        Notification(title="old read", recipient_id=1, is_read=True, read_at=old),
        Notification(title="old unread", recipient_id=1, is_read=False),
        Notification(title="recent read", recipient_id=1, is_read=True,
                     read_at=datetime.now(timezone.utc)),
    ])
    _db.session.commit()

    result = SchedulerService.run_job("stale_notification_cleanup")

    assert result["status"] == "success"
    assert result["result"]["deleted"] == 1
    _db.session.expire_all()
    assert {n.title for n in Notification.query.all()} == {"old unread", "recent read"}
