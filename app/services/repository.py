"""
Clearance repository — the single store handle handed to every service.

Constructed once in ``create_app()`` around the Flask-SQLAlchemy scoped
session and passed explicitly to the transition handler, sweep, ledger and
stats aggregator. Services never import ``db`` directly.

Rules:
  - Reads return ORM objects or None; "not found" policy belongs to callers.
  - commit()/rollback() are only called by the transition handler, the
    notification gateway and the certificate issuer.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, or_, select

from app.models.auth import User
from app.models.certificate import ClearanceCertificate
from app.models.clearance import ClearanceRequest, DocumentType, RequestStatus
from app.models.escalation import SYSTEM_ACTOR, EscalationHistory

logger = logging.getLogger(__name__)


class ClearanceRepository:
    """Thin query/persistence facade over a SQLAlchemy session."""

    def __init__(self, session):
        self._session = session

    @property
    def session(self):
        return self._session

    # ── Unit of work ──────────────────────────────────────────────────────

    def add(self, obj) -> None:
        self._session.add(obj)

    def delete(self, obj) -> None:
        self._session.delete(obj)

    def flush(self) -> None:
        self._session.flush()

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    # ── Users & document types ────────────────────────────────────────────

    def get_user(self, user_id: int) -> User | None:
        return self._session.get(User, user_id)

    def users_with_roles(self, roles) -> list[User]:
        roles = list(roles)
        if not roles:
            return []
        return list(self._session.execute(
            select(User)
            .where(User.role.in_(roles), User.is_active.is_(True))
            .order_by(User.id.asc())
        ).scalars().all())

    def get_document_type(self, document_type_id: int) -> DocumentType | None:
        return self._session.get(DocumentType, document_type_id)

    def list_document_types(self, *, active_only: bool = True) -> list[DocumentType]:
        stmt = select(DocumentType).order_by(DocumentType.name.asc())
        if active_only:
            stmt = stmt.where(DocumentType.is_active.is_(True))
        return list(self._session.execute(stmt).scalars().all())

    # ── Requests ──────────────────────────────────────────────────────────

    def get_request(self, request_id: int) -> ClearanceRequest | None:
        return self._session.get(ClearanceRequest, request_id)

    def list_requests(
        self,
        *,
        requester_id: int | None = None,
        status: RequestStatus | None = None,
        stages: list[str] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ClearanceRequest], int]:
        """One page of requests plus the number matching the filters.

        ``stages`` keeps rows whose *current* stage is one of them.
        """
        filters = []
        if requester_id is not None:
            filters.append(ClearanceRequest.requester_id == requester_id)
        if status is not None:
            filters.append(ClearanceRequest.current_status == status)
        stmt = (
            select(ClearanceRequest)
            .where(*filters)
            .order_by(ClearanceRequest.last_activity_at.asc(), ClearanceRequest.id.asc())
        )

        if stages is None:
            total = self._session.execute(
                select(func.count(ClearanceRequest.id)).where(*filters)
            ).scalar_one()
            rows = self._session.execute(stmt.limit(limit).offset(offset)).scalars().unique().all()
            return list(rows), total

        wanted = set(stages)
        # current stage is a JSON element lookup; filtered here to stay dialect-neutral
        rows = [
            r for r in self._session.execute(stmt).scalars().unique().all()
            if r.current_stage in wanted
        ]
        return rows[offset:offset + limit], len(rows)

    def stale_request_ids(self, cutoff: datetime, *, limit: int | None = None) -> list[int]:
        """Ids of pending requests idle since ``cutoff`` and not escalated since it.

        Oldest ``last_activity_at`` first, id as tie-breaker, so repeated
        sweeps visit rows in a stable order.
        """
        stmt = (
            select(ClearanceRequest.id)
            .where(
                ClearanceRequest.current_status == RequestStatus.PENDING,
                ClearanceRequest.is_completed.is_(False),
                ClearanceRequest.last_activity_at <= cutoff,
                or_(
                    ClearanceRequest.escalated_at.is_(None),
                    ClearanceRequest.escalated_at <= cutoff,
                ),
            )
            .order_by(ClearanceRequest.last_activity_at.asc(), ClearanceRequest.id.asc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def count_pending(self) -> int:
        return self._session.execute(
            select(func.count(ClearanceRequest.id)).where(
                ClearanceRequest.current_status == RequestStatus.PENDING,
            )
        ).scalar_one()

    # ── Escalation ledger reads ───────────────────────────────────────────

    def escalation_history(self, request_id: int) -> list[EscalationHistory]:
        return list(self._session.execute(
            select(EscalationHistory)
            .where(EscalationHistory.request_id == request_id)
            .order_by(EscalationHistory.created_at.desc(), EscalationHistory.id.desc())
        ).scalars().all())

    def count_escalated(self) -> int:
        return self._session.execute(
            select(func.count(ClearanceRequest.id)).where(ClearanceRequest.escalated.is_(True))
        ).scalar_one()

    def escalated_by_level(self) -> dict[int, int]:
        rows = self._session.execute(
            select(ClearanceRequest.escalation_level, func.count(ClearanceRequest.id))
            .where(ClearanceRequest.escalated.is_(True))
            .group_by(ClearanceRequest.escalation_level)
            .order_by(ClearanceRequest.escalation_level.asc())
        ).all()
        return {int(level or 0): int(cnt) for level, cnt in rows}

    def count_escalated_since(self, since: datetime) -> int:
        return self._session.execute(
            select(func.count(ClearanceRequest.id)).where(
                ClearanceRequest.escalated.is_(True),
                ClearanceRequest.escalated_at >= since,
            )
        ).scalar_one()

    def count_escalation_entries(self, *, since: datetime | None = None, system_only: bool = False) -> int:
        stmt = select(func.count(EscalationHistory.id))
        if since is not None:
            stmt = stmt.where(EscalationHistory.created_at >= since)
        if system_only:
            stmt = stmt.where(EscalationHistory.escalated_by == SYSTEM_ACTOR)
        return self._session.execute(stmt).scalar_one()

    # ── Certificates ──────────────────────────────────────────────────────

    def certificate_for(self, request_id: int) -> ClearanceCertificate | None:
        return self._session.execute(
            select(ClearanceCertificate).where(ClearanceCertificate.request_id == request_id)
        ).scalar_one_or_none()

    def certificate_by_code(self, code: str) -> ClearanceCertificate | None:
        return self._session.execute(
            select(ClearanceCertificate).where(ClearanceCertificate.verification_code == code)
        ).scalar_one_or_none()
