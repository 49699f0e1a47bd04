"""
Clearance Workflow Service
Escalation audit model.

Models:
    - EscalationHistory: append-only record of every escalation event
"""

from datetime import datetime, timezone

from app.models import db

SYSTEM_ACTOR = "system"


class EscalationHistory(db.Model):
    """
    Immutable escalation record.

    Business rules:
    - Rows are only ever inserted, by the transition that raised the level.
    - request_id is a plain snapshot, not a foreign key: the ledger outlives
      a request deleted by its owner.
    - escalation_level is the request's level *after* the escalation.
    - escalated_by is "system" for sweep escalations, otherwise the admin's
      user id rendered as a string.
    """

    __tablename__ = "escalation_history"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, nullable=False, index=True, comment="Snapshot of clearance_requests.id")
    escalation_level = db.Column(db.Integer, nullable=False)
    escalated_by = db.Column(db.String(64), nullable=False, comment="'system' or admin user id")
    reason = db.Column(db.Text, nullable=False)
    days_pending = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    @property
    def is_system(self) -> bool:
        return self.escalated_by == SYSTEM_ACTOR

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "escalation_level": self.escalation_level,
            "escalated_by": self.escalated_by,
            "reason": self.reason,
            "days_pending": self.days_pending,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<EscalationHistory #{self.id} request={self.request_id} L{self.escalation_level} by={self.escalated_by}>"
