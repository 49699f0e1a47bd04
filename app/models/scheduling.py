"""
Clearance Workflow Service
Background job registry and outbound mail audit.

Models:
    - ScheduledJob: one row per registered job (escalation sweep, cleanup)
      holding its pause switch and the outcome of its latest run
    - EmailLog: every notification e-mail handed to (or withheld from) SMTP
"""

from datetime import datetime, timezone

from app.models import db

JOB_STATUSES = ("active", "paused")
RUN_STATUSES = ("success", "failed")
EMAIL_STATUSES = ("queued", "sent", "failed")


def _now():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ScheduledJob(db.Model):
    """
    Persisted state of a background job.

    The timetable is owned by the deployment's cron / CronJob; this row only
    records whether the job may run and what its last run produced. For the
    escalation sweep `last_run_result` is the SweepReport dict.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="cron")
    schedule_config = db.Column(db.JSON, default=dict, comment="Advisory cadence for the external trigger")
    status = db.Column(db.String(20), default="active", comment=" | ".join(JOB_STATUSES))
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True, comment=" | ".join(RUN_STATUSES))
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    def set_enabled(self, enabled: bool) -> None:
        self.is_enabled = enabled
        self.status = "active" if enabled else "paused"

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Store the outcome of one execution; failures bump error_count."""
        self.last_run_at = _now()
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": _iso(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} ({self.status}, runs={self.run_count})>"


class EmailLog(db.Model):
    """
    One outbound clearance e-mail.

    In log-only mode (no MAIL_SERVER) rows are marked sent without an SMTP
    hand-off. `request_id` links the mail to the clearance request that
    triggered it; `notification_id` to the in-app row it mirrors.
    """

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True)
    category = db.Column(db.String(30), default="system", comment="submitted | approved | ... | escalated")
    status = db.Column(db.String(20), default="queued", comment=" | ".join(EMAIL_STATUSES))
    error_message = db.Column(db.Text, nullable=True)

    notification_id = db.Column(db.Integer, nullable=True)
    request_id = db.Column(db.Integer, nullable=True, index=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def mark_sent(self):
        self.status = "sent"
        self.sent_at = _now()

    def mark_failed(self, error):
        self.status = "failed"
        self.error_message = str(error)[:1000]

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "category": self.category,
            "status": self.status,
            "error_message": self.error_message,
            "notification_id": self.notification_id,
            "request_id": self.request_id,
            "sent_at": _iso(self.sent_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<EmailLog {self.id} {self.template_name or '-'} to={self.recipient_email} ({self.status})>"
