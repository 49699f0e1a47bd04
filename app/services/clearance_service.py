"""
Clearance Transition Handler — the only writer of clearance request state.

Every command follows the same shape:

    resolve actor → load request → sequencer.decide() → authority check
    → mutate + history row → commit (version-guarded) → post-commit effects

Transactions:
    Each command commits its state change and its history/ledger row in one
    transaction. ``clearance_requests.version`` is the mapper's version_id_col,
    so a writer that lost a race fails its UPDATE/DELETE with StaleDataError;
    that is rolled back and surfaced as a retryable ConflictError.

Post-commit effects:
    Notifications and certificate issuance run only after commit. Their
    failures are wrapped in DependencyError and logged at WARNING; they never
    undo or fail the transition and are not retried inline.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    ConflictError,
    DependencyError,
    NotFoundError,
    TransientError,
    UnauthorizedError,
    ValidationError,
)
from app.models.clearance import ClearanceRequest, RequestHistory, RequestStatus
from app.services import stage_sequencer as sequencer
from app.services.escalation import EscalationPolicy, EscalationSource, days_pending
from app.services.escalation_ledger import EscalationLedger
from app.services.permission import AccessGuard, Authority, AuthorityTable
from app.services.stage_sequencer import Action, StagePosition
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

MANUAL_ESCALATION_REASON = "Manually escalated by admin"


class TransitionHandler:
    """Applies lifecycle commands to clearance requests."""

    def __init__(
        self,
        repository,
        authorities: AuthorityTable,
        ledger: EscalationLedger,
        policy: EscalationPolicy,
        *,
        notifier=None,
        certificate_issuer=None,
        clock: Callable = utcnow,
    ):
        self._repo = repository
        self._guard = AccessGuard(repository, authorities)
        self._ledger = ledger
        self._policy = policy
        self._notifier = notifier
        self._certificates = certificate_issuer
        self._clock = clock

    # ═════════════════════════════════════════════════════════════════════
    # Commands
    # ═════════════════════════════════════════════════════════════════════

    def submit(self, requester_id: int, document_type_id: int, purpose: str | None = None) -> ClearanceRequest:
        """Create a request at (stage 0, pending) with the document type's stages copied in."""
        _require_id(requester_id, "requester_id")
        _require_id(document_type_id, "document_type_id")
        if purpose is not None and not isinstance(purpose, str):
            raise ValidationError("purpose must be a string", details={"purpose": "invalid"})

        with self._transaction():
            user = self._repo.get_user(requester_id)
            if user is None:
                raise ValidationError(
                    f"Unknown requester: {requester_id}",
                    details={"requester_id": "unknown"},
                )
            authority = self._guard.active(user)
            if not authority.capability.can_submit:
                raise UnauthorizedError(
                    f"Role '{authority.role.value}' may not submit clearance requests",
                    details={"role": authority.role.value},
                )

            doc_type = self._repo.get_document_type(document_type_id)
            if doc_type is None or not doc_type.is_active:
                raise ValidationError(
                    f"Unknown document type: {document_type_id}",
                    details={"document_type_id": "unknown"},
                )
            position = sequencer.initial_position(doc_type.required_stages)

            now = self._clock()
            request = ClearanceRequest(
                document_type_id=doc_type.id,
                requester_id=user.id,
                purpose=(purpose or "").strip() or None,
                stages=list(position.stages),
                current_stage_index=position.index,
                current_status=position.status,
                is_completed=False,
                last_activity_at=now,
                escalated=False,
                escalation_level=0,
                created_at=now,
                updated_at=now,
            )
            self._repo.add(request)
            self._repo.flush()
            self._record(request, "submitted", position.current_stage, None, user.id, now)

        logger.info(
            "Clearance request %s submitted by user %s (%s)",
            request.id, requester_id, doc_type.name,
            extra={"request_id": request.id, "actor_id": requester_id, "stage": position.current_stage},
        )
        self._emit("notification", "notify_submitted", request)
        return request

    def approve(self, request_id: int, actor_id: int) -> ClearanceRequest:
        """Sign off the current stage; completing the last stage issues the certificate."""
        _require_id(request_id, "request_id")
        _require_id(actor_id, "actor_id")

        with self._transaction(request_id):
            authority = self._guard.authority(actor_id)
            request = self._load(request_id)
            before = StagePosition.of(request)
            decision = sequencer.decide(before, Action.APPROVE)
            self._require_stage_authority(authority, decision.stage_name, request_id)

            now = self._clock()
            request.current_stage_index = decision.index
            request.current_status = decision.status
            request.is_completed = decision.completes
            request.last_activity_at = now
            request.updated_at = now
            if decision.advances:
                # New stage, new staleness clock. escalation_level is cumulative.
                request.escalated = False
            self._record(request, "completed" if decision.completes else "approved",
                         decision.stage_name, before.status, actor_id, now)

        logger.info(
            "Clearance request %s: stage '%s' approved by user %s%s",
            request_id, decision.stage_name, actor_id, " (completed)" if decision.completes else "",
            extra={"request_id": request_id, "actor_id": actor_id, "stage": decision.stage_name},
        )
        if decision.completes:
            self._emit_certificate(request_id)
        self._emit("notification", "notify_approved", request, decision.stage_name, decision.completes)
        return request

    def reject(self, request_id: int, actor_id: int, reason: str) -> ClearanceRequest:
        """Put the request on hold at its current stage with a reason."""
        _require_id(request_id, "request_id")
        _require_id(actor_id, "actor_id")
        cleaned = reason.strip() if isinstance(reason, str) else ""
        if not cleaned:
            raise ValidationError("A rejection reason is required", details={"reason": "required"})

        with self._transaction(request_id):
            authority = self._guard.authority(actor_id)
            request = self._load(request_id)
            before = StagePosition.of(request)
            decision = sequencer.decide(before, Action.REJECT)
            self._require_stage_authority(authority, decision.stage_name, request_id)

            now = self._clock()
            request.current_status = decision.status
            request.rejection_reason = cleaned
            request.last_activity_at = now
            request.updated_at = now
            self._record(request, "rejected", decision.stage_name, before.status, actor_id, now, comment=cleaned)

        logger.info(
            "Clearance request %s: stage '%s' put on hold by user %s",
            request_id, decision.stage_name, actor_id,
            extra={"request_id": request_id, "actor_id": actor_id, "stage": decision.stage_name},
        )
        self._emit("notification", "notify_rejected", request, decision.stage_name, cleaned)
        return request

    def resubmit(self, request_id: int, owner_id: int) -> ClearanceRequest:
        """Return an on-hold request to pending at the same stage (owner only)."""
        _require_id(request_id, "request_id")
        _require_id(owner_id, "owner_id")

        with self._transaction(request_id):
            request = self._load(request_id)
            self._require_owner(request, owner_id)
            before = StagePosition.of(request)
            decision = sequencer.decide(before, Action.RESUBMIT)

            now = self._clock()
            request.current_status = decision.status
            request.rejection_reason = None
            request.last_activity_at = now
            request.updated_at = now
            self._record(request, "resubmitted", decision.stage_name, before.status, owner_id, now)

        logger.info(
            "Clearance request %s resubmitted by owner %s",
            request_id, owner_id,
            extra={"request_id": request_id, "actor_id": owner_id, "stage": decision.stage_name},
        )
        return request

    def delete_request(self, request_id: int, owner_id: int) -> None:
        """Hard-delete a pending or on-hold request and its dependent rows (owner only)."""
        _require_id(request_id, "request_id")
        _require_id(owner_id, "owner_id")

        with self._transaction(request_id):
            request = self._load(request_id)
            self._require_owner(request, owner_id)
            sequencer.decide(StagePosition.of(request), Action.DELETE)
            self._repo.delete(request)

        logger.info("Clearance request %s deleted by owner %s", request_id, owner_id,
                    extra={"request_id": request_id, "actor_id": owner_id})

    def escalate(
        self,
        request_id: int,
        source: EscalationSource,
        reason: str | None = None,
        *,
        deadline: float | None = None,
    ) -> ClearanceRequest:
        """Raise the escalation level of a pending request.

        System escalations re-check staleness against the policy (the row may
        have moved on since the sweep scanned it). Admin escalations bypass
        staleness but require an admin authority.

        ``deadline`` is a ``time.monotonic()`` value; if it has passed before
        commit the transaction is rolled back and TransientError is raised.
        """
        _require_id(request_id, "request_id")

        with self._transaction(request_id):
            if not source.is_system:
                self._guard.require_admin(source.admin_id)

            request = self._load(request_id)
            sequencer.decide(StagePosition.of(request), Action.ESCALATE)

            now = self._clock()
            if source.is_system and not self._policy.is_eligible(request, now):
                raise ConflictError(
                    "Request is no longer eligible for escalation",
                    details={"request_id": request_id},
                )

            pending_days = days_pending(request.last_activity_at, now)
            text = (reason or "").strip()
            if not text:
                text = (self._policy.default_reason(request, now) if source.is_system
                        else MANUAL_ESCALATION_REASON)

            request.escalation_level = (request.escalation_level or 0) + 1
            request.escalated = True
            request.escalated_at = now
            request.updated_at = now
            level = request.escalation_level
            self._ledger.append(
                request,
                escalated_by=source.label,
                reason=text,
                days_pending=pending_days,
                at=now,
            )

            if deadline is not None and time.monotonic() > deadline:
                raise TransientError(
                    f"Escalation of request {request_id} exceeded its time budget",
                    details={"request_id": request_id},
                )

        logger.info(
            "Clearance request %s escalated to level %d by %s (%d days pending)",
            request_id, level, source.label, pending_days,
            extra={"request_id": request_id, "actor_id": source.admin_id,
                   "stage": request.current_stage, "escalation_level": level},
        )
        self._emit("notification", "notify_escalated", request, level, pending_days, text)
        return request

    # ═════════════════════════════════════════════════════════════════════
    # Internals
    # ═════════════════════════════════════════════════════════════════════

    @contextmanager
    def _transaction(self, request_id: int | None = None):
        """Commit on success; roll back and translate storage errors on failure."""
        try:
            yield
            self._repo.commit()
        except StaleDataError as exc:
            self._repo.rollback()
            logger.warning("Concurrent modification of clearance request %s", request_id,
                           extra={"request_id": request_id})
            raise ConflictError(
                "Request was modified by another transaction; reload and retry",
                retryable=True,
                details={"request_id": request_id},
            ) from exc
        except OperationalError as exc:
            self._repo.rollback()
            logger.error("Storage unavailable while updating request %s: %s", request_id, exc,
                         extra={"request_id": request_id})
            raise TransientError("Storage temporarily unavailable", details={"request_id": request_id}) from exc
        except Exception:
            self._repo.rollback()
            raise

    def _load(self, request_id: int) -> ClearanceRequest:
        request = self._repo.get_request(request_id)
        if request is None:
            raise NotFoundError(resource="ClearanceRequest", resource_id=request_id)
        return request

    @staticmethod
    def _require_stage_authority(authority: Authority, stage_name: str | None, request_id: int) -> None:
        if not authority.can_act_on(stage_name):
            raise UnauthorizedError(
                f"Role '{authority.role.value}' cannot act on stage '{stage_name}'",
                details={"request_id": request_id, "stage": stage_name, "role": authority.role.value},
            )

    @staticmethod
    def _require_owner(request: ClearanceRequest, owner_id: int) -> None:
        if request.requester_id != owner_id:
            raise UnauthorizedError(
                "Only the requester can perform this action",
                details={"request_id": request.id},
            )

    def _record(self, request, action, stage_name, previous_status: RequestStatus | None, actor_id, at,
                comment=None):
        # Added by foreign key, not through request.history, so no lazy load
        # triggers an autoflush before the version-guarded commit.
        self._repo.add(RequestHistory(
            request_id=request.id,
            action=action,
            stage_name=stage_name,
            previous_status=previous_status.value if previous_status is not None else None,
            new_status=request.current_status.value,
            actor_id=actor_id,
            comment=comment,
            created_at=at,
        ))

    def _emit(self, collaborator: str, method: str, *args) -> None:
        """Invoke a notifier method after commit; failures are logged only."""
        if self._notifier is None:
            return
        try:
            getattr(self._notifier, method)(*args)
        except Exception as exc:
            self._repo.rollback()
            error = DependencyError(collaborator, exc)
            logger.warning("%s (%s)", error, method, exc_info=True)

    def _emit_certificate(self, request_id: int) -> None:
        if self._certificates is None:
            return
        try:
            self._certificates.generate(request_id)
        except Exception as exc:
            self._repo.rollback()
            error = DependencyError("certificate_issuer", exc)
            logger.warning("%s", error, exc_info=True, extra={"request_id": request_id})


def _require_id(value, field: str) -> None:
    if value is None:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer id", details={field: "invalid"})
