"""
Tests: stage sequencer transition rules.

Pure functions, no database:
    - initial position and empty/blank stage lists
    - approve advances, last approve completes
    - reject / resubmit keep the stage index
    - completed is terminal
    - is_consistent() over stored invariants
"""

from types import SimpleNamespace

import pytest

from app.core.exceptions import ConflictError, ValidationError
from app.models.clearance import RequestStatus
from app.services import stage_sequencer as seq
from app.services.stage_sequencer import Action, StagePosition

STAGES = ("library", "cashier", "registrar")


def _pos(index=0, status=RequestStatus.PENDING, stages=STAGES):
    return StagePosition(tuple(stages), index, status)


class TestInitialPosition:
    def test_starts_pending_at_first_stage(self):
        pos = seq.initial_position(["library", "cashier"])
        assert pos.index == 0
        assert pos.status is RequestStatus.PENDING
        assert pos.current_stage == "library"

    def test_empty_stage_list_rejected(self):
        with pytest.raises(ValidationError):
            seq.initial_position([])

    def test_blank_stage_name_rejected(self):
        with pytest.raises(ValidationError):
            seq.initial_position(["library", "  "])

    def test_index_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            StagePosition(STAGES, 4, RequestStatus.PENDING)


class TestDecide:
    def test_approve_advances_to_next_stage(self):
        decision = seq.decide(_pos(0), Action.APPROVE)
        assert decision.index == 1
        assert decision.status is RequestStatus.PENDING
        assert decision.stage_name == "library"
        assert decision.advances and not decision.completes

    def test_approve_last_stage_completes(self):
        decision = seq.decide(_pos(2), Action.APPROVE)
        assert decision.index == len(STAGES)
        assert decision.status is RequestStatus.COMPLETED
        assert decision.stage_name == "registrar"
        assert decision.completes

    def test_single_stage_type_completes_on_first_approve(self):
        decision = seq.decide(_pos(0, stages=("library",)), Action.APPROVE)
        assert decision.completes
        assert decision.index == 1

    def test_reject_holds_at_same_stage(self):
        decision = seq.decide(_pos(1), Action.REJECT)
        assert decision.index == 1
        assert decision.status is RequestStatus.ON_HOLD
        assert decision.stage_name == "cashier"

    def test_resubmit_returns_to_pending_at_same_stage(self):
        decision = seq.decide(_pos(1, RequestStatus.ON_HOLD), Action.RESUBMIT)
        assert decision.index == 1
        assert decision.status is RequestStatus.PENDING

    def test_escalate_does_not_move(self):
        decision = seq.decide(_pos(2), Action.ESCALATE)
        assert (decision.index, decision.status) == (2, RequestStatus.PENDING)

    @pytest.mark.parametrize("action", [Action.APPROVE, Action.REJECT, Action.ESCALATE])
    def test_on_hold_only_resubmit_or_delete(self, action):
        with pytest.raises(ConflictError) as exc:
            seq.decide(_pos(0, RequestStatus.ON_HOLD), action)
        assert exc.value.retryable is False

    @pytest.mark.parametrize("action", list(Action))
    def test_completed_is_terminal(self, action):
        with pytest.raises(ConflictError):
            seq.decide(_pos(3, RequestStatus.COMPLETED), action)

    def test_resubmit_pending_rejected(self):
        with pytest.raises(ConflictError):
            seq.decide(_pos(0), Action.RESUBMIT)

    def test_delete_allowed_from_pending_and_on_hold(self):
        assert seq.is_allowed(_pos(0), Action.DELETE)
        assert seq.is_allowed(_pos(0, RequestStatus.ON_HOLD), Action.DELETE)


class TestIsConsistent:
    def _req(self, **kw):
        base = dict(stages=list(STAGES), current_stage_index=0, current_status=RequestStatus.PENDING,
                    is_completed=False, rejection_reason=None)
        base.update(kw)
        return SimpleNamespace(**base)

    def test_fresh_request(self):
        assert seq.is_consistent(self._req())

    def test_completed_request(self):
        assert seq.is_consistent(self._req(current_stage_index=3, current_status=RequestStatus.COMPLETED,
                                           is_completed=True))

    def test_completed_flag_without_final_index(self):
        assert not seq.is_consistent(self._req(current_stage_index=2, current_status=RequestStatus.COMPLETED,
                                               is_completed=True))

    def test_on_hold_needs_reason(self):
        assert not seq.is_consistent(self._req(current_status=RequestStatus.ON_HOLD))
        assert seq.is_consistent(self._req(current_status=RequestStatus.ON_HOLD, rejection_reason="fees"))

    def test_reason_without_hold(self):
        assert not seq.is_consistent(self._req(rejection_reason="stale"))
