"""
Stage Sequencer — pure transition rules for clearance requests.

Maps (stage position, action) → next (stage index, status). Performs no I/O
and knows nothing about users; authorisation and persistence belong to the
transition handler (app.services.clearance_service).

State space:
    RequestStatus {pending, on_hold, completed} × current_stage_index

    pending   --approve-->   pending @ index+1   (or completed @ len(stages))
    pending   --reject--->   on_hold @ index
    on_hold   --resubmit->   pending @ index
    pending   --escalate->   unchanged           (alerting layer only)
    pending / on_hold --delete--> (row removed)
    completed                terminal
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from app.core.exceptions import ConflictError, ValidationError
from app.models.clearance import RequestStatus


class Action(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RESUBMIT = "resubmit"
    DELETE = "delete"
    ESCALATE = "escalate"


ALLOWED_ACTIONS: dict[RequestStatus, frozenset[Action]] = {
    RequestStatus.PENDING: frozenset({Action.APPROVE, Action.REJECT, Action.DELETE, Action.ESCALATE}),
    RequestStatus.ON_HOLD: frozenset({Action.RESUBMIT, Action.DELETE}),
    RequestStatus.COMPLETED: frozenset(),
}

_uncovered = set(RequestStatus) - set(ALLOWED_ACTIONS)
if _uncovered:
    raise RuntimeError(f"ALLOWED_ACTIONS missing statuses: {sorted(s.value for s in _uncovered)}")


@dataclass(frozen=True)
class StagePosition:
    """Snapshot of where a request sits in its stage sequence."""

    stages: tuple[str, ...]
    index: int
    status: RequestStatus

    def __post_init__(self):
        if not 0 <= self.index <= len(self.stages):
            raise ValueError(f"stage index {self.index} outside 0..{len(self.stages)}")

    @classmethod
    def of(cls, request) -> "StagePosition":
        return cls(tuple(request.stages or ()), request.current_stage_index, request.current_status)

    @property
    def current_stage(self) -> str | None:
        if self.index < len(self.stages):
            return self.stages[self.index]
        return None

    @property
    def is_last_stage(self) -> bool:
        return self.index == len(self.stages) - 1


@dataclass(frozen=True)
class Decision:
    """Outcome of a legal action."""

    index: int
    status: RequestStatus
    stage_name: str | None
    completes: bool = False
    advances: bool = False


def initial_position(stages) -> StagePosition:
    """Position of a newly submitted request; rejects an empty stage list."""
    cleaned = tuple(s for s in (stages or ()) if isinstance(s, str) and s.strip())
    if not cleaned or len(cleaned) != len(stages or ()):
        raise ValidationError("Document type must define at least one named stage")
    return StagePosition(cleaned, 0, RequestStatus.PENDING)


def is_allowed(position: StagePosition, action: Action) -> bool:
    return action in ALLOWED_ACTIONS[position.status]


def decide(position: StagePosition, action: Action) -> Decision:
    """Return the next position for ``action`` or raise ConflictError."""
    if not is_allowed(position, action):
        raise ConflictError(
            f"Cannot {action.value} a request that is {position.status.value}",
            details={"status": position.status.value, "action": action.value},
        )

    stage = position.current_stage
    if action is Action.APPROVE:
        if position.is_last_stage:
            return Decision(len(position.stages), RequestStatus.COMPLETED, stage, completes=True)
        return Decision(position.index + 1, RequestStatus.PENDING, stage, advances=True)
    if action is Action.REJECT:
        return Decision(position.index, RequestStatus.ON_HOLD, stage)
    if action is Action.RESUBMIT:
        return Decision(position.index, RequestStatus.PENDING, stage)
    # DELETE and ESCALATE never move the stage position.
    return Decision(position.index, position.status, stage)


def is_consistent(request) -> bool:
    """Check the stored invariants of a request row."""
    stages = request.stages or []
    if not 0 <= request.current_stage_index <= len(stages):
        return False
    completed = (
        request.current_stage_index == len(stages)
        and request.current_status is RequestStatus.COMPLETED
    )
    if bool(request.is_completed) != completed:
        return False
    on_hold = request.current_status is RequestStatus.ON_HOLD
    return (request.rejection_reason is not None) == on_hold
