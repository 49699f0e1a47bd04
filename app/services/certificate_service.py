"""
Certificate Issuer — records the clearance certificate of a completed request.

Issuance is exactly-once per request: ``generate`` returns the existing
certificate when one is already recorded, and the unique constraint on
``clearance_certificates.request_id`` rejects a racing duplicate.

Certificate number format: ``CLR-YYYYMMDD-000042`` (issue date, request id).
"""

from __future__ import annotations

import logging
import secrets

from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.certificate import ClearanceCertificate
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

VERIFICATION_CODE_BYTES = 12


def certificate_number(request_id: int, issued_at) -> str:
    return f"CLR-{issued_at:%Y%m%d}-{request_id:06d}"


class CertificateIssuer:

    def __init__(self, repository, *, clock=utcnow):
        self._repo = repository
        self._clock = clock

    def generate(self, request_id: int) -> ClearanceCertificate:
        """Issue (or return the already issued) certificate for a completed request.

        Raises:
            NotFoundError: unknown request.
            ConflictError: the request has not completed every stage.
        """
        request = self._repo.get_request(request_id)
        if request is None:
            raise NotFoundError(resource="ClearanceRequest", resource_id=request_id)
        if not request.is_completed:
            raise ConflictError(
                "Certificates are only issued for completed requests",
                details={"request_id": request_id},
            )

        existing = self._repo.certificate_for(request_id)
        if existing is not None:
            return existing

        now = self._clock()
        cert = ClearanceCertificate(
            request_id=request_id,
            certificate_number=certificate_number(request_id, now),
            verification_code=secrets.token_hex(VERIFICATION_CODE_BYTES),
            generated_at=now,
        )
        self._repo.add(cert)
        try:
            self._repo.commit()
        except IntegrityError:
            self._repo.rollback()
            existing = self._repo.certificate_for(request_id)
            if existing is None:
                raise
            return existing

        logger.info("Certificate %s issued for request %s", cert.certificate_number, request_id,
                    extra={"request_id": request_id})
        return cert

    def get_for_request(self, request_id: int) -> ClearanceCertificate:
        cert = self._repo.certificate_for(request_id)
        if cert is None:
            raise NotFoundError(resource="ClearanceCertificate", resource_id=request_id)
        return cert

    def verify(self, code: str) -> dict:
        """Look up a certificate by verification code.

        Returns ``{"valid": False}`` for an unknown code rather than raising,
        so the public verify endpoint never leaks which ids exist.
        """
        code = (code or "").strip().lower()
        if not code:
            raise ValidationError("verification code is required", details={"code": "required"})
        cert = self._repo.certificate_by_code(code)
        if cert is None:
            return {"valid": False}
        request = cert.request
        requester = request.requester if request else None
        return {
            "valid": True,
            "certificate_number": cert.certificate_number,
            "generated_at": cert.generated_at.isoformat() if cert.generated_at else None,
            "request_id": cert.request_id,
            "document_type": request.document_type.name if request and request.document_type else None,
            "holder": requester.full_name if requester else None,
        }
