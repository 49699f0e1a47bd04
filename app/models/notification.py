"""
Clearance Workflow Service
In-app notifications for requesters and the escalation desk.
"""

from datetime import datetime, timezone

from app.models import db

CATEGORIES = ("submitted", "approved", "completed", "rejected", "escalated", "system")
SEVERITIES = ("info", "success", "warning", "error")


def _now():
    return datetime.now(timezone.utc)


class Notification(db.Model):
    """
    A single message shown in a user's notification feed.

    ``recipient_id`` NULL addresses the escalation desk, the shared feed
    read by super authorities. ``request_id`` points back at the clearance
    request the message is about.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, nullable=True, index=True)
    request_id = db.Column(db.Integer, nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="system", comment=" | ".join(CATEGORIES))
    severity = db.Column(db.String(20), default="info", comment=" | ".join(SEVERITIES))
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = _now()

    def to_dict(self):
        data = {col: getattr(self, col) for col in (
            "id", "recipient_id", "request_id", "title", "message", "category", "severity", "is_read",
        )}
        data["read_at"] = self.read_at.isoformat() if self.read_at else None
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data

    def __repr__(self):
        return f"<Notification #{self.id} to={self.recipient_id} {self.category}>"
