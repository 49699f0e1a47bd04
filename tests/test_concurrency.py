"""
Tests: optimistic locking on clearance_requests.version.

A competing writer is simulated by bumping the row through a separate
connection between the loser's read and its commit. The loser must get a
retryable ConflictError, roll back entirely (no history/ledger row), and a
reload must show the winner's state.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from app.core.exceptions import ConflictError, TransientError
from app.models import db as _db
from app.models.auth import Role
from app.models.clearance import ClearanceRequest, RequestHistory, RequestStatus
from app.models.escalation import EscalationHistory
from app.services.escalation import EscalationSource

_table = ClearanceRequest.__table__


def _competing_write(request_id, **values):
    """Commit a version bump outside the ORM session."""
    with _db.engine.begin() as conn:
        conn.execute(
            update(_table)
            .where(_table.c.id == request_id)
            .values(version=_table.c.version + 1, **values)
        )


@pytest.fixture()
def handler(workflow):
    return workflow.transitions


@pytest.fixture()
def loaded(handler, users, doc_type):
    """A submitted request whose ORM instance is loaded (and cached) at version 1."""
    rid = handler.submit(users[Role.STUDENT].id, doc_type.id).id
    _db.session.expire_all()
    req = _db.session.get(ClearanceRequest, rid)
    assert req.version == 1
    return req


class TestOptimisticLocking:
    def test_version_bumps_on_each_transition(self, handler, users, loaded):
        rid = loaded.id
        handler.approve(rid, users[Role.LIBRARY_ADMIN].id)
        handler.reject(rid, users[Role.CASHIER_ADMIN].id, "fees")
        handler.resubmit(rid, users[Role.STUDENT].id)
        _db.session.expire_all()
        assert _db.session.get(ClearanceRequest, rid).version == 4

    def test_losing_approve_gets_retryable_conflict(self, handler, users, loaded):
        rid = loaded.id
        # The session keeps its loaded (version 1) instance; the winner moves it to stage 1.
        _competing_write(rid, current_stage_index=1)

        with pytest.raises(ConflictError) as exc:
            handler.approve(rid, users[Role.LIBRARY_ADMIN].id)

        assert exc.value.retryable is True
        assert exc.value.code == "ERR_CONFLICT_CONCURRENT"
        _db.session.expire_all()
        fresh = _db.session.get(ClearanceRequest, rid)
        assert fresh.version == 2
        assert fresh.current_stage_index == 1
        assert RequestHistory.query.filter_by(request_id=rid).count() == 1  # only "submitted"

    def test_losing_escalation_leaves_no_ledger_row(self, handler, users, loaded):
        rid = loaded.id
        _competing_write(rid, current_status=RequestStatus.ON_HOLD.value, rejection_reason="fees")

        with pytest.raises(ConflictError) as exc:
            handler.escalate(rid, EscalationSource.admin(users[Role.SUPER_ADMIN].id))

        assert exc.value.retryable is True
        assert EscalationHistory.query.count() == 0
        _db.session.expire_all()
        fresh = _db.session.get(ClearanceRequest, rid)
        assert fresh.current_status is RequestStatus.ON_HOLD
        assert fresh.escalation_level == 0

    def test_retry_after_conflict_sees_winner(self, handler, users, loaded):
        rid = loaded.id
        _competing_write(rid, current_stage_index=1)
        with pytest.raises(ConflictError):
            handler.approve(rid, users[Role.LIBRARY_ADMIN].id)

        # library already signed off; the retry is now the cashier's to make
        handler.approve(rid, users[Role.CASHIER_ADMIN].id)
        _db.session.expire_all()
        assert _db.session.get(ClearanceRequest, rid).current_stage_index == 2

    def test_losing_delete_gets_conflict(self, handler, users, loaded):
        rid = loaded.id
        _competing_write(rid)
        with pytest.raises(ConflictError) as exc:
            handler.delete_request(rid, users[Role.STUDENT].id)
        assert exc.value.retryable is True
        _db.session.expire_all()
        assert _db.session.get(ClearanceRequest, rid) is not None


class TestStorageFailure:
    def test_operational_error_becomes_transient(self, workflow, handler, users, loaded, monkeypatch):
        def unavailable():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(workflow.repository, "commit", unavailable)
        with pytest.raises(TransientError):
            handler.approve(loaded.id, users[Role.LIBRARY_ADMIN].id)

        monkeypatch.undo()
        _db.session.expire_all()
        assert _db.session.get(ClearanceRequest, loaded.id).current_stage_index == 0
