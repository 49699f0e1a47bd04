"""
Tests: staleness policy and the escalation sweep.

Covers:
    - days_pending flooring and eligibility predicate edge cases
    - Sweep escalates only stale pending requests (on-hold, completed,
      fresh rows untouched)
    - Anti re-escalation: back-to-back sweeps escalate once; a second
      escalation needs another full threshold window
    - escalate() never refreshes last_activity_at
    - Continue-on-error: one failing item does not stop the batch
    - Per-item time budget → TransientError, rolled back
    - Race skip: a row that is no longer eligible is counted as skipped

Stale rows are produced by back-dating last_activity_at and committing.
"""

import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.core.exceptions import ConflictError, TransientError
from app.models import db as _db
from app.models.auth import Role
from app.models.clearance import ClearanceRequest, RequestStatus
from app.models.escalation import EscalationHistory
from app.services.escalation import (
    SYSTEM,
    EscalationPolicy,
    EscalationSource,
    EscalationSweep,
    days_pending,
)
from app.utils.helpers import as_utc

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _reload(request_id):
    _db.session.expire_all()
    return _db.session.get(ClearanceRequest, request_id)


def _backdate(request_id, days, *, escalated_days=None):
    """Move last_activity_at (and optionally escalated_at) into the past."""
    req = _db.session.get(ClearanceRequest, request_id)
    now = datetime.now(timezone.utc)
    req.last_activity_at = now - timedelta(days=days)
    if escalated_days is not None:
        req.escalated_at = now - timedelta(days=escalated_days)
    _db.session.commit()


@pytest.fixture()
def handler(workflow):
    return workflow.transitions


@pytest.fixture()
def submit(handler, users, doc_type):
    def _submit():
        return handler.submit(users[Role.STUDENT].id, doc_type.id).id
    return _submit


# ═════════════════════════════════════════════════════════════════════════
# Policy
# ═════════════════════════════════════════════════════════════════════════


class TestPolicy:
    def _req(self, **kw):
        base = dict(current_status=RequestStatus.PENDING, is_completed=False,
                    last_activity_at=NOW - timedelta(days=4), escalated_at=None)
        base.update(kw)
        return SimpleNamespace(**base)

    def test_days_pending_is_floored(self):
        assert days_pending(NOW - timedelta(days=2, hours=23), NOW) == 2
        assert days_pending(NOW - timedelta(days=3), NOW) == 3

    def test_days_pending_never_negative(self):
        assert days_pending(NOW + timedelta(hours=5), NOW) == 0
        assert days_pending(None, NOW) == 0

    def test_days_pending_accepts_naive_db_values(self):
        naive = (NOW - timedelta(days=6)).replace(tzinfo=None)
        assert days_pending(naive, NOW) == 6

    def test_exactly_at_threshold_is_eligible(self):
        policy = EscalationPolicy(threshold_days=3)
        assert policy.is_eligible(self._req(last_activity_at=NOW - timedelta(days=3)), NOW)

    def test_just_under_threshold_is_not(self):
        policy = EscalationPolicy(threshold_days=3)
        req = self._req(last_activity_at=NOW - timedelta(days=3) + timedelta(seconds=1))
        assert not policy.is_eligible(req, NOW)

    def test_on_hold_and_completed_never_eligible(self):
        policy = EscalationPolicy()
        assert not policy.is_eligible(self._req(current_status=RequestStatus.ON_HOLD), NOW)
        assert not policy.is_eligible(
            self._req(current_status=RequestStatus.COMPLETED, is_completed=True), NOW)

    def test_recent_escalation_blocks(self):
        policy = EscalationPolicy()
        assert not policy.is_eligible(self._req(escalated_at=NOW - timedelta(days=1)), NOW)
        assert policy.is_eligible(self._req(escalated_at=NOW - timedelta(days=3)), NOW)

    def test_default_reason(self):
        req = self._req(last_activity_at=NOW - timedelta(days=5))
        assert EscalationPolicy().default_reason(req, NOW) == "pending 5 days without action"

    @pytest.mark.parametrize("days", [-1, 0, 1.5, True])
    def test_threshold_must_be_a_positive_whole_day_count(self, days):
        with pytest.raises(ValueError):
            EscalationPolicy(threshold_days=days)

    def test_one_day_threshold_blocks_immediate_re_escalation(self):
        policy = EscalationPolicy(threshold_days=1)
        req = self._req(last_activity_at=NOW - timedelta(days=9), escalated_at=NOW)
        assert not policy.is_eligible(req, NOW)
        assert policy.is_eligible(req, NOW + timedelta(days=1))

    def test_source_labels(self):
        assert SYSTEM.is_system and SYSTEM.label == "system"
        admin = EscalationSource.admin(7)
        assert not admin.is_system and admin.label == "7"


# ═════════════════════════════════════════════════════════════════════════
# Sweep
# ═════════════════════════════════════════════════════════════════════════


class TestSweep:
    def test_escalates_only_stale_pending_requests(self, workflow, handler, users, submit):
        stale = submit()
        fresh = submit()
        held = submit()
        handler.reject(held, users[Role.LIBRARY_ADMIN].id, "Overdue books")
        _backdate(stale, 5)
        _backdate(fresh, 1)
        _backdate(held, 10)

        report = workflow.sweep.run()

        assert report.scanned == 1
        assert report.escalated == 1
        assert report.failed == 0
        assert report.escalated_ids == [stale]

        esc = _reload(stale)
        assert esc.escalated is True
        assert esc.escalation_level == 1
        assert esc.escalated_at is not None
        assert esc.current_status is RequestStatus.PENDING
        assert esc.current_stage_index == 0
        assert _reload(fresh).escalation_level == 0
        assert _reload(held).escalation_level == 0

        entry = EscalationHistory.query.filter_by(request_id=stale).one()
        assert entry.escalated_by == "system"
        assert entry.escalation_level == 1
        assert entry.days_pending == 5
        assert entry.reason == "pending 5 days without action"

    def test_escalation_does_not_refresh_last_activity(self, workflow, submit):
        rid = submit()
        _backdate(rid, 5)
        before = as_utc(_reload(rid).last_activity_at)

        workflow.sweep.run()

        assert as_utc(_reload(rid).last_activity_at) == before

    def test_back_to_back_sweeps_escalate_once(self, workflow, submit):
        rid = submit()
        _backdate(rid, 5)

        first = workflow.sweep.run()
        second = workflow.sweep.run()

        assert first.escalated == 1
        assert second.scanned == 0
        assert second.escalated == 0
        assert _reload(rid).escalation_level == 1
        assert EscalationHistory.query.filter_by(request_id=rid).count() == 1

    def test_re_escalates_after_another_window(self, workflow, submit):
        rid = submit()
        _backdate(rid, 8)
        workflow.sweep.run()

        _backdate(rid, 8, escalated_days=4)
        report = workflow.sweep.run()

        assert report.escalated == 1
        assert _reload(rid).escalation_level == 2
        levels = [e.escalation_level for e in workflow.ledger.history_for(rid)]
        assert levels == [2, 1]

    def test_empty_sweep(self, workflow):
        report = workflow.sweep.run()
        assert report.to_dict()["scanned"] == 0
        assert report.errors == []

    def test_continue_on_error(self, workflow, handler, submit, monkeypatch):
        broken = submit()
        healthy = submit()
        _backdate(broken, 6)
        _backdate(healthy, 5)
        original = handler.escalate

        def flaky(request_id, source, reason=None, *, deadline=None):
            if request_id == broken:
                raise RuntimeError("ledger unavailable")
            return original(request_id, source, reason, deadline=deadline)

        monkeypatch.setattr(handler, "escalate", flaky)
        report = workflow.sweep.run()

        assert report.scanned == 2
        assert report.escalated == 1
        assert report.failed == 1
        assert report.errors == [
            {"request_id": broken, "error": "ledger unavailable", "kind": "RuntimeError"},
        ]
        assert _reload(broken).escalation_level == 0
        assert _reload(healthy).escalation_level == 1

    def test_retryable_conflict_counts_as_failure(self, workflow, handler, submit, monkeypatch):
        rid = submit()
        _backdate(rid, 5)

        def lost_race(request_id, source, reason=None, *, deadline=None):
            raise ConflictError("modified concurrently", retryable=True)

        monkeypatch.setattr(handler, "escalate", lost_race)
        report = workflow.sweep.run()

        assert report.failed == 1
        assert report.skipped == 0
        assert report.errors[0]["kind"] == "ConflictError"

    def test_row_no_longer_eligible_is_skipped(self, workflow, submit, monkeypatch):
        rid = submit()  # fresh, so the escalate re-check refuses it
        monkeypatch.setattr(workflow.sweep, "eligible_ids", lambda now=None: [rid])

        report = workflow.sweep.run()

        assert report.scanned == 1
        assert report.skipped == 1
        assert report.failed == 0
        assert _reload(rid).escalation_level == 0

    def test_candidate_query_failure_returns_report(self, workflow, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("db down")

        monkeypatch.setattr(workflow.repository, "stale_request_ids", boom)
        report = workflow.sweep.run()

        assert report.scanned == 0
        assert report.failed == 1
        assert report.errors[0]["request_id"] == 0
        assert report.errors[0]["kind"] == "TransientError"

    def test_item_time_budget(self, workflow, submit):
        rid = submit()
        _backdate(rid, 5)
        sweep = EscalationSweep(
            workflow.repository, workflow.transitions, workflow.policy,
            item_timeout_seconds=1e-9,
        )

        report = sweep.run()

        assert report.failed == 1
        assert report.errors[0]["kind"] == "TransientError"
        assert _reload(rid).escalation_level == 0
        assert EscalationHistory.query.filter_by(request_id=rid).count() == 0

    def test_batch_size_limits_scan(self, workflow, submit):
        ids = [submit() for _ in range(3)]
        for offset, rid in enumerate(ids):
            _backdate(rid, 10 - offset)
        sweep = EscalationSweep(workflow.repository, workflow.transitions, workflow.policy, batch_size=2)

        report = sweep.run()

        # oldest activity first
        assert report.escalated_ids == ids[:2]


class TestEscalateDirect:
    def test_system_escalation_of_fresh_request_conflicts(self, handler, submit):
        rid = submit()
        with pytest.raises(ConflictError) as exc:
            handler.escalate(rid, SYSTEM)
        assert exc.value.retryable is False

    def test_expired_deadline_rolls_back(self, handler, submit):
        rid = submit()
        _backdate(rid, 5)
        with pytest.raises(TransientError):
            handler.escalate(rid, SYSTEM, deadline=time.monotonic() - 1)
        fresh = _reload(rid)
        assert fresh.escalation_level == 0
        assert fresh.escalated is False
        assert EscalationHistory.query.count() == 0

    def test_on_hold_cannot_be_escalated(self, handler, users, submit):
        rid = submit()
        handler.reject(rid, users[Role.LIBRARY_ADMIN].id, "Overdue books")
        _backdate(rid, 10)
        with pytest.raises(ConflictError):
            handler.escalate(rid, SYSTEM)
