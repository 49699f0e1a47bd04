"""
Escalation Service — staleness evaluation and the escalation sweep.

Escalation is an alerting layer orthogonal to the stage state machine: it
raises ``escalation_level`` and writes an audit row, never moving a request
between stages or statuses. The transition itself lives in
``TransitionHandler.escalate``; this module decides *who* is eligible and
drives the batch.

Eligibility (system source):
    status == pending, not completed,
    now - last_activity_at >= threshold,
    and escalated_at is NULL or now - escalated_at >= threshold.

The escalated_at gate means a stale request is escalated at most once per
threshold window: two sweeps in immediate succession escalate it once.
Escalation does not refresh last_activity_at, so "days pending" stays
truthful across repeated escalations.

Usage:
    report = workflow.sweep.run()
    report.to_dict()  # {"scanned": 4, "escalated": 3, "failed": 1, ...}
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from app.core.exceptions import ClearanceError, ConflictError, TransientError
from app.models.clearance import RequestStatus
from app.models.escalation import SYSTEM_ACTOR
from app.utils.helpers import as_utc, utcnow

if TYPE_CHECKING:
    from app.services.clearance_service import TransitionHandler
    from app.services.repository import ClearanceRepository

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_DAYS = 3


# ═════════════════════════════════════════════════════════════════════════════
# Evaluator
# ═════════════════════════════════════════════════════════════════════════════


def days_pending(last_activity_at: datetime | None, now: datetime) -> int:
    """Whole days since the last state-changing transition (floored, >= 0)."""
    if last_activity_at is None:
        return 0
    elapsed = now - as_utc(last_activity_at)
    return max(0, math.floor(elapsed.total_seconds() / 86400))


@dataclass(frozen=True)
class EscalationPolicy:
    """Pure staleness predicate."""

    threshold_days: int = DEFAULT_THRESHOLD_DAYS

    def __post_init__(self):
        # a zero window would let every sweep re-escalate the same request
        days = self.threshold_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValueError(f"threshold_days must be a positive integer, got {days!r}")

    @property
    def threshold(self) -> timedelta:
        return timedelta(days=self.threshold_days)

    def cutoff(self, now: datetime) -> datetime:
        return now - self.threshold

    def is_eligible(self, request, now: datetime) -> bool:
        """True if the sweep may escalate ``request`` at ``now``."""
        if request.current_status is not RequestStatus.PENDING or request.is_completed:
            return False
        cutoff = self.cutoff(now)
        if as_utc(request.last_activity_at) > cutoff:
            return False
        return request.escalated_at is None or as_utc(request.escalated_at) <= cutoff

    def default_reason(self, request, now: datetime) -> str:
        return f"pending {days_pending(request.last_activity_at, now)} days without action"


@dataclass(frozen=True)
class EscalationSource:
    """Who raised an escalation: the sweep (``admin_id is None``) or an admin."""

    admin_id: int | None = None

    @classmethod
    def system(cls) -> "EscalationSource":
        return cls()

    @classmethod
    def admin(cls, admin_id: int) -> "EscalationSource":
        return cls(admin_id=admin_id)

    @property
    def is_system(self) -> bool:
        return self.admin_id is None

    @property
    def label(self) -> str:
        """Value stored in ``escalation_history.escalated_by``."""
        return SYSTEM_ACTOR if self.is_system else str(self.admin_id)


SYSTEM = EscalationSource.system()


# ═════════════════════════════════════════════════════════════════════════════
# Sweep
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class SweepReport:
    """Aggregate outcome of one sweep. Always returned, even on partial failure."""

    scanned: int = 0
    escalated: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    escalated_ids: list[int] = field(default_factory=list)
    started_at: datetime | None = None
    duration_ms: int = 0

    def record_failure(self, request_id: int, error: Exception) -> None:
        self.failed += 1
        self.errors.append({
            "request_id": request_id,
            "error": str(error),
            "kind": type(error).__name__,
        })

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "escalated": self.escalated,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "escalated_ids": list(self.escalated_ids),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "duration_ms": self.duration_ms,
        }


class EscalationSweep:
    """
    Batch process applying ``escalate(System)`` to every eligible request.

    Continue-on-error: each item runs in its own transaction; a conflict,
    timeout or any other failure is logged, counted, and the sweep moves on.
    Items are processed one at a time in oldest-activity-first order; a
    failed item is re-evaluated from scratch on the next scheduled run.
    """

    def __init__(
        self,
        repository: "ClearanceRepository",
        transitions: "TransitionHandler",
        policy: EscalationPolicy,
        *,
        item_timeout_seconds: float | None = None,
        batch_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._repo = repository
        self._transitions = transitions
        self._policy = policy
        self._item_timeout = item_timeout_seconds
        self._batch_size = batch_size
        self._clock = clock

    @property
    def policy(self) -> EscalationPolicy:
        return self._policy

    def eligible_ids(self, now: datetime | None = None) -> list[int]:
        now = now or self._clock()
        return self._repo.stale_request_ids(self._policy.cutoff(now), limit=self._batch_size)

    def run(self) -> SweepReport:
        report = SweepReport(started_at=self._clock())
        start = time.monotonic()

        try:
            candidate_ids = self.eligible_ids(report.started_at)
        except Exception as exc:
            # The scan itself failed; nothing was touched.
            self._repo.rollback()
            logger.exception("Escalation sweep could not query candidates")
            report.record_failure(0, TransientError(f"candidate query failed: {exc}"))
            report.duration_ms = int((time.monotonic() - start) * 1000)
            return report

        report.scanned = len(candidate_ids)
        for request_id in candidate_ids:
            deadline = time.monotonic() + self._item_timeout if self._item_timeout else None
            try:
                self._transitions.escalate(request_id, SYSTEM, deadline=deadline)
            except ConflictError as exc:
                if exc.retryable:
                    report.record_failure(request_id, exc)
                    logger.warning("Escalation of request %s lost a concurrent write: %s", request_id, exc,
                                   extra={"request_id": request_id})
                else:
                    # Moved on (approved / rejected / escalated) since the scan.
                    report.skipped += 1
                    logger.info("Escalation of request %s skipped: %s", request_id, exc,
                                extra={"request_id": request_id})
            except ClearanceError as exc:
                report.record_failure(request_id, exc)
                logger.error("Escalation of request %s failed: %s", request_id, exc,
                             extra={"request_id": request_id})
            except Exception as exc:
                self._repo.rollback()
                report.record_failure(request_id, exc)
                logger.exception("Unexpected error escalating request %s", request_id,
                                 extra={"request_id": request_id})
            else:
                report.escalated += 1
                report.escalated_ids.append(request_id)

        report.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Escalation sweep: scanned=%d escalated=%d skipped=%d failed=%d (%dms)",
            report.scanned, report.escalated, report.skipped, report.failed, report.duration_ms,
        )
        return report
