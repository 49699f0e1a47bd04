"""
Escalation History Ledger — append-only audit trail of escalations.

There is deliberately no update or delete API. Entries are appended by the
transition handler inside the escalation transaction and read back by admin
review surfaces, newest first.
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import NotFoundError
from app.models.escalation import EscalationHistory

logger = logging.getLogger(__name__)


class EscalationLedger:

    def __init__(self, repository):
        self._repo = repository

    def append(
        self,
        request,
        *,
        escalated_by: str,
        reason: str,
        days_pending: int,
        at: datetime,
    ) -> EscalationHistory:
        """Stage a new entry in the current transaction (caller commits).

        The entry records the request's level *after* the increment.
        """
        entry = EscalationHistory(
            request_id=request.id,
            escalation_level=request.escalation_level,
            escalated_by=escalated_by,
            reason=reason,
            days_pending=days_pending,
            created_at=at,
        )
        self._repo.add(entry)
        return entry

    def history_for(self, request_id: int) -> list[EscalationHistory]:
        """Entries for one request, newest first.

        Raises:
            NotFoundError: If the request does not exist.
        """
        if self._repo.get_request(request_id) is None:
            raise NotFoundError(resource="ClearanceRequest", resource_id=request_id)
        return self._repo.escalation_history(request_id)
