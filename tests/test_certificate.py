"""
Tests: certificate issuance and verification.
"""

from datetime import datetime, timezone

import pytest

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.auth import Role
from app.models.certificate import ClearanceCertificate
from app.services.certificate_service import CertificateIssuer, certificate_number


@pytest.fixture()
def handler(workflow):
    return workflow.transitions


@pytest.fixture()
def completed(handler, users, doc_type):
    rid = handler.submit(users[Role.STUDENT].id, doc_type.id).id
    sup = users[Role.SUPER_ADMIN].id
    for _ in range(3):
        handler.approve(rid, sup)
    return rid


def test_certificate_number_format():
    issued = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)
    assert certificate_number(42, issued) == "CLR-20240601-000042"


class TestIssue:
    def test_issued_once_on_completion(self, workflow, completed):
        first = workflow.certificates.get_for_request(completed)
        again = workflow.certificates.generate(completed)
        assert again.id == first.id
        assert ClearanceCertificate.query.filter_by(request_id=completed).count() == 1
        assert len(first.verification_code) == 24

    def test_pending_request_has_no_certificate(self, workflow, handler, users, doc_type):
        rid = handler.submit(users[Role.STUDENT].id, doc_type.id).id
        with pytest.raises(ConflictError):
            workflow.certificates.generate(rid)
        with pytest.raises(NotFoundError):
            workflow.certificates.get_for_request(rid)

    def test_unknown_request(self, workflow):
        with pytest.raises(NotFoundError):
            workflow.certificates.generate(8080)

    def test_issue_date_from_clock(self, workflow, handler, users, doc_type, monkeypatch):
        rid = handler.submit(users[Role.STUDENT].id, doc_type.id).id
        sup = users[Role.SUPER_ADMIN].id
        monkeypatch.setattr(workflow.certificates, "generate", lambda request_id: None)
        for _ in range(3):
            handler.approve(rid, sup)

        fixed = datetime(2025, 2, 3, tzinfo=timezone.utc)
        cert = CertificateIssuer(workflow.repository, clock=lambda: fixed).generate(rid)
        assert cert.certificate_number == f"CLR-20250203-{rid:06d}"


class TestVerify:
    def test_valid_code(self, workflow, users, completed):
        cert = workflow.certificates.get_for_request(completed)
        result = workflow.certificates.verify(cert.verification_code.upper())
        assert result["valid"] is True
        assert result["request_id"] == completed
        assert result["certificate_number"] == cert.certificate_number
        assert result["document_type"] == "Graduation Clearance"
        assert result["holder"] == users[Role.STUDENT].full_name

    def test_unknown_code(self, workflow):
        assert workflow.certificates.verify("deadbeef") == {"valid": False}

    def test_blank_code(self, workflow):
        with pytest.raises(ValidationError):
            workflow.certificates.verify("  ")
