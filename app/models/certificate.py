"""
Clearance Workflow Service
Issued clearance certificates.

Only the issuance record lives here; rendering the certificate document
(PDF, QR code) belongs to the document service.
"""

from datetime import datetime, timezone

from app.models import db


class ClearanceCertificate(db.Model):
    """One certificate per completed request (unique request_id)."""

    __tablename__ = "clearance_certificates"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer,
        db.ForeignKey("clearance_requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    certificate_number = db.Column(db.String(40), unique=True, nullable=False)
    verification_code = db.Column(db.String(32), unique=True, nullable=False, index=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False,
                             default=lambda: datetime.now(timezone.utc))

    request = db.relationship("ClearanceRequest", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "certificate_number": self.certificate_number,
            "verification_code": self.verification_code,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    def __repr__(self):
        return f"<ClearanceCertificate {self.certificate_number}>"
