"""
Clearance Workflow Service
Clearance domain models.

Models:
    - DocumentType: authoritative ordered stage list new requests copy from
    - ClearanceRequest: one multi-stage clearance, optimistic-locked by `version`
    - RequestHistory: append-only log of lifecycle transitions
"""

import enum
from datetime import datetime, timezone

from app.models import db, enum_values


# ── Constants ────────────────────────────────────────────────────────────────


class RequestStatus(str, enum.Enum):
    """Lifecycle status. Stage position is tracked separately by index."""

    PENDING = "pending"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"


HISTORY_ACTIONS = ("submitted", "approved", "completed", "rejected", "resubmitted")


def _utcnow():
    return datetime.now(timezone.utc)


class DocumentType(db.Model):
    """
    A kind of clearance document (e.g. graduation clearance).

    `required_stages` is copied into every new request; editing it later
    never affects requests already in flight.
    """

    __tablename__ = "document_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    required_stages = db.Column(db.JSON, nullable=False, default=list,
                                comment="Ordered stage names, e.g. ['library', 'cashier', 'registrar']")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "required_stages": list(self.required_stages or []),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DocumentType {self.id}: {self.name}>"


class ClearanceRequest(db.Model):
    """
    A single clearance request moving through its stages.

    Business rules:
    - `stages` is a snapshot taken at submission and never mutated.
    - 0 <= current_stage_index <= len(stages); the index equals len(stages)
      only once the request is completed.
    - rejection_reason is set iff current_status == on_hold.
    - escalation_level only ever increases.
    - Every UPDATE/DELETE is guarded by `version` (compare-and-swap);
      a concurrent writer that lost the race gets StaleDataError on flush.
    """

    __tablename__ = "clearance_requests"

    id = db.Column(db.Integer, primary_key=True)
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    requester_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    purpose = db.Column(db.Text, nullable=True)

    # Stage position
    stages = db.Column(db.JSON, nullable=False)
    current_stage_index = db.Column(db.Integer, nullable=False, default=0)
    current_status = db.Column(
        db.Enum(RequestStatus, native_enum=False, length=20, values_callable=enum_values,
                validate_strings=True),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    is_completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    # Escalation (orthogonal to the stage state machine)
    escalated = db.Column(db.Boolean, nullable=False, default=False, index=True)
    escalation_level = db.Column(db.Integer, nullable=False, default=0)
    escalated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    document_type = db.relationship("DocumentType", lazy="joined")
    requester = db.relationship("User", lazy="joined")
    history = db.relationship(
        "RequestHistory",
        back_populates="request",
        order_by="RequestHistory.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.Index("ix_clearance_requests_sweep", "current_status", "is_completed", "last_activity_at"),
    )

    @property
    def current_stage(self):
        """Stage awaiting action, or None once every stage has approved."""
        stages = self.stages or []
        if self.current_stage_index < len(stages):
            return stages[self.current_stage_index]
        return None

    def to_dict(self, include_history=False):
        data = {
            "id": self.id,
            "document_type_id": self.document_type_id,
            "document_type": self.document_type.name if self.document_type else None,
            "requester_id": self.requester_id,
            "purpose": self.purpose,
            "stages": list(self.stages or []),
            "current_stage_index": self.current_stage_index,
            "current_stage": self.current_stage,
            "current_status": self.current_status.value if self.current_status else None,
            "is_completed": self.is_completed,
            "rejection_reason": self.rejection_reason,
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "escalated": self.escalated,
            "escalation_level": self.escalation_level,
            "escalated_at": self.escalated_at.isoformat() if self.escalated_at else None,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_history:
            data["history"] = [h.to_dict() for h in self.history]
        return data

    def __repr__(self):
        status = self.current_status.value if self.current_status else "?"
        return f"<ClearanceRequest {self.id} [{status} @ {self.current_stage_index}]>"


class RequestHistory(db.Model):
    """
    Append-only transition log for a clearance request.

    Written in the same transaction as the transition it describes.
    Escalations are recorded separately in escalation_history.
    """

    __tablename__ = "request_history"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("clearance_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    action = db.Column(db.String(20), nullable=False, comment=" | ".join(HISTORY_ACTIONS))
    stage_name = db.Column(db.String(100), nullable=True)
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True, comment="User who performed the transition")
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    request = db.relationship("ClearanceRequest", back_populates="history")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "action": self.action,
            "stage_name": self.stage_name,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "actor_id": self.actor_id,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RequestHistory #{self.id} request={self.request_id} {self.action}>"
