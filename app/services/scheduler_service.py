"""
Clearance Workflow Service
Scheduler Service — registry of background jobs and their run history.

Nothing here keeps time. A deployment cron (or k8s CronJob) calls
``SchedulerService.run_job(name)`` or POSTs to the trigger endpoint; the
``schedule`` attached to each job is advisory and only shown to operators.
Every run is recorded on the job's ScheduledJob row.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from flask import Flask

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE = {"hour": "0", "minute": "0", "description": "Daily at midnight"}


@dataclass
class JobSpec:
    name: str
    fn: Callable[[Flask], Any]
    schedule: dict = field(default_factory=lambda: dict(DEFAULT_SCHEDULE))

    @property
    def description(self) -> str:
        return (self.fn.__doc__ or f"Scheduled job: {self.name}").strip()


_jobs: dict[str, JobSpec] = {}


def register_job(name: str, *, schedule: dict | None = None):
    """Decorator adding ``fn(app)`` to the registry under ``name``."""
    def decorator(fn):
        _jobs[name] = JobSpec(name, fn, dict(schedule or DEFAULT_SCHEDULE))
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return {name: job.fn for name, job in _jobs.items()}


def _outcome(job_name, status, *, duration_ms=0, result=None, error=None) -> dict:
    return {
        "job_name": job_name,
        "status": status,
        "duration_ms": duration_ms,
        "result": result,
        "error": error,
    }


def _find(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


class SchedulerService:
    """Class-level registry bound to one Flask app by ``init_app``."""

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        from app.services import scheduled_jobs  # noqa: F401  (fills the registry)

        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Scheduler bound; jobs: %s", ", ".join(sorted(_jobs)) or "none")

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Insert a ScheduledJob row for every registered job lacking one."""
        if cls._app is None:
            return []

        with cls._app.app_context():
            known = {row.job_name for row in ScheduledJob.query.all()}
            missing = [
                ScheduledJob(
                    job_name=job.name,
                    description=job.description,
                    schedule_type="cron",
                    schedule_config=job.schedule,
                    status="active",
                    is_enabled=True,
                )
                for job in _jobs.values()
                if job.name not in known
            ]
            if missing:
                db.session.add_all(missing)
                db.session.commit()
                logger.info("Registered %d new scheduled job(s)", len(missing))
        return missing

    @classmethod
    def run_job(cls, job_name: str, *, force: bool = False) -> dict:
        """
        Run ``job_name`` once and record the outcome.

        Paused jobs are skipped unless ``force`` is set (the trigger API
        always forces). Job exceptions are logged and reported as
        ``status="failed"``; they do not propagate.
        """
        job = _jobs.get(job_name)
        if job is None:
            return _outcome(job_name, "error", error=f"Unknown job: {job_name}")
        if cls._app is None:
            return _outcome(job_name, "error", error="Scheduler not initialized")

        with cls._app.app_context():
            row = _find(job_name)
            if row is not None and not row.is_enabled and not force:
                logger.info("Job %s paused; not running", job_name)
                return _outcome(job_name, "skipped")

        started = time.monotonic()
        status, result, error = "success", None, None
        try:
            with cls._app.app_context():
                result = job.fn(cls._app)
        except Exception as exc:
            status, error = "failed", str(exc)
            logger.exception("Job %s failed", job_name)
        duration_ms = int((time.monotonic() - started) * 1000)

        cls._record(job_name, status, duration_ms, result, error)
        logger.info("Job %s finished: %s in %dms", job_name, status, duration_ms,
                    extra={"duration_ms": duration_ms})
        return _outcome(job_name, status, duration_ms=duration_ms, result=result, error=error)

    @classmethod
    def _record(cls, job_name, status, duration_ms, result, error) -> None:
        stored = result if isinstance(result, dict) or result is None else {"output": str(result)}
        with cls._app.app_context():
            row = _find(job_name)
            if row is None:
                return
            try:
                row.record_run(status=status, duration_ms=duration_ms, result=stored, error=error)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Could not store run history for %s", job_name)

    @staticmethod
    def list_jobs() -> list[dict]:
        rows = {row.job_name: row for row in ScheduledJob.query.all()}
        return [
            {
                "job_name": job.name,
                "registered": True,
                "schedule": job.schedule,
                "db_record": rows[job.name].to_dict() if job.name in rows else None,
            }
            for job in _jobs.values()
        ]

    @staticmethod
    def get_job_status(job_name: str) -> dict | None:
        row = _find(job_name)
        return row.to_dict() if row else None

    @staticmethod
    def toggle_job(job_name: str, enabled: bool) -> dict | None:
        row = _find(job_name)
        if row is None:
            return None
        row.set_enabled(enabled)
        db.session.commit()
        logger.info("Job %s %s", job_name, "resumed" if enabled else "paused")
        return row.to_dict()
