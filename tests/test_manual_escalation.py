"""
Tests: admin-initiated escalation, the escalation ledger and statistics.

Covers:
    - Manual escalation bypasses staleness, records the admin id
    - Default and custom reasons
    - Only admins may escalate; only pending requests can be escalated
    - Ledger is newest-first and records level after increment
    - Stats: totals, by-level histogram, recent window, pending count
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from app.models import db as _db
from app.models.auth import Role
from app.models.clearance import ClearanceRequest
from app.models.escalation import EscalationHistory
from app.services.clearance_service import MANUAL_ESCALATION_REASON
from app.services.escalation import SYSTEM, EscalationSource
from app.services.escalation_stats import EscalationStats


def _reload(request_id):
    _db.session.expire_all()
    return _db.session.get(ClearanceRequest, request_id)


@pytest.fixture()
def handler(workflow):
    return workflow.transitions


@pytest.fixture()
def rid(handler, users, doc_type):
    return handler.submit(users[Role.STUDENT].id, doc_type.id).id


class TestManualEscalation:
    def test_fresh_request_escalated_by_admin(self, handler, users, rid):
        admin = users[Role.SUPER_ADMIN].id

        handler.escalate(rid, EscalationSource.admin(admin), "Dean asked for priority")

        req = _reload(rid)
        assert req.escalation_level == 1
        assert req.escalated is True
        entry = EscalationHistory.query.filter_by(request_id=rid).one()
        assert entry.escalated_by == str(admin)
        assert entry.reason == "Dean asked for priority"
        assert entry.days_pending == 0

    def test_default_reason(self, handler, users, rid):
        handler.escalate(rid, EscalationSource.admin(users[Role.CASHIER_ADMIN].id), "   ")
        entry = EscalationHistory.query.filter_by(request_id=rid).one()
        assert entry.reason == MANUAL_ESCALATION_REASON

    def test_repeated_manual_escalations_accumulate(self, handler, users, rid):
        source = EscalationSource.admin(users[Role.SUPER_ADMIN].id)
        handler.escalate(rid, source)
        handler.escalate(rid, source)
        assert _reload(rid).escalation_level == 2
        assert EscalationHistory.query.filter_by(request_id=rid).count() == 2

    def test_student_cannot_escalate(self, handler, users, rid):
        with pytest.raises(UnauthorizedError):
            handler.escalate(rid, EscalationSource.admin(users[Role.STUDENT].id))
        assert _reload(rid).escalation_level == 0

    def test_unknown_admin(self, handler, rid):
        with pytest.raises(UnauthorizedError):
            handler.escalate(rid, EscalationSource.admin(98765))

    def test_on_hold_request_rejected(self, handler, users, rid):
        handler.reject(rid, users[Role.LIBRARY_ADMIN].id, "Overdue books")
        with pytest.raises(ConflictError):
            handler.escalate(rid, EscalationSource.admin(users[Role.SUPER_ADMIN].id))

    def test_unknown_request(self, handler, users):
        with pytest.raises(NotFoundError):
            handler.escalate(555, EscalationSource.admin(users[Role.SUPER_ADMIN].id))

    def test_missing_request_id(self, handler, users):
        with pytest.raises(ValidationError):
            handler.escalate(None, EscalationSource.admin(users[Role.SUPER_ADMIN].id))


class TestLedger:
    def test_history_newest_first_with_levels(self, workflow, handler, users, rid):
        source = EscalationSource.admin(users[Role.SUPER_ADMIN].id)
        handler.escalate(rid, source, "first")
        handler.escalate(rid, source, "second")

        entries = workflow.ledger.history_for(rid)

        assert [e.reason for e in entries] == ["second", "first"]
        assert [e.escalation_level for e in entries] == [2, 1]

    def test_history_for_unknown_request(self, workflow):
        with pytest.raises(NotFoundError):
            workflow.ledger.history_for(404)

    def test_history_empty_for_never_escalated(self, workflow, rid):
        assert workflow.ledger.history_for(rid) == []

    def test_ledger_survives_request_deletion(self, workflow, handler, users, rid):
        handler.escalate(rid, EscalationSource.admin(users[Role.SUPER_ADMIN].id), reason="Visa deadline")
        handler.delete_request(rid, users[Role.STUDENT].id)

        assert _reload(rid) is None
        entries = EscalationHistory.query.filter_by(request_id=rid).all()
        assert [(e.escalation_level, e.reason) for e in entries] == [(1, "Visa deadline")]
        assert workflow.stats.get_escalation_stats()["total_history_entries"] == 1


class TestStats:
    def test_empty_database(self, workflow):
        stats = workflow.stats.get_escalation_stats()
        assert stats["total_escalated"] == 0
        assert stats["by_level"] == {}
        assert stats["recent_escalations"] == 0
        assert stats["total_history_entries"] == 0
        assert stats["pending_requests"] == 0
        assert stats["window_days"] == 7

    def test_rollups(self, workflow, handler, users, doc_type):
        student = users[Role.STUDENT].id
        admin = EscalationSource.admin(users[Role.SUPER_ADMIN].id)
        a = handler.submit(student, doc_type.id).id
        b = handler.submit(student, doc_type.id).id
        c = handler.submit(student, doc_type.id).id
        handler.submit(student, doc_type.id)

        handler.escalate(a, admin)
        handler.escalate(b, admin)
        handler.escalate(b, admin)

        # c: escalated long ago by the sweep
        req = _db.session.get(ClearanceRequest, c)
        req.last_activity_at = datetime.now(timezone.utc) - timedelta(days=30)
        _db.session.commit()
        handler.escalate(c, SYSTEM)
        req = _db.session.get(ClearanceRequest, c)
        req.escalated_at = datetime.now(timezone.utc) - timedelta(days=20)
        _db.session.commit()

        stats = workflow.stats.get_escalation_stats()

        assert stats["total_escalated"] == 3
        assert stats["by_level"] == {"1": 2, "2": 1}
        assert stats["recent_escalations"] == 2
        assert stats["total_history_entries"] == 4
        assert stats["system_history_entries"] == 1
        assert stats["pending_requests"] == 4

    def test_clock_is_injectable(self, workflow):
        fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
        stats = EscalationStats(workflow.repository, clock=lambda: fixed).get_escalation_stats()
        assert stats["generated_at"] == fixed.isoformat()

    def test_advanced_request_no_longer_counted_as_escalated(self, workflow, handler, users, rid):
        handler.escalate(rid, EscalationSource.admin(users[Role.SUPER_ADMIN].id))
        handler.approve(rid, users[Role.LIBRARY_ADMIN].id)
        stats = workflow.stats.get_escalation_stats()
        assert stats["total_escalated"] == 0
        assert stats["total_history_entries"] == 1
