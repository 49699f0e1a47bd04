"""
Escalation statistics for admin dashboards.

Pure read-side rollups over clearance_requests and escalation_history,
recomputed on every call.
"""

from __future__ import annotations

from datetime import timedelta

from app.utils.helpers import utcnow

RECENT_WINDOW_DAYS = 7


class EscalationStats:

    def __init__(self, repository, *, clock=utcnow):
        self._repo = repository
        self._clock = clock

    def get_escalation_stats(self) -> dict:
        """Return escalation rollups.

        Returns:
            {
                "total_escalated": int,         # requests with escalated == True
                "by_level": {"1": 3, "2": 1},   # histogram over escalation_level
                "recent_escalations": int,      # escalated_at within last 7 days
                "total_history_entries": int,
                "system_history_entries": int,
                "pending_requests": int,
            }
        """
        now = self._clock()
        since = now - timedelta(days=RECENT_WINDOW_DAYS)
        by_level = self._repo.escalated_by_level()
        return {
            "total_escalated": self._repo.count_escalated(),
            # JSON object keys are strings; keep the histogram JSON-stable.
            "by_level": {str(level): count for level, count in by_level.items()},
            "recent_escalations": self._repo.count_escalated_since(since),
            "total_history_entries": self._repo.count_escalation_entries(),
            "system_history_entries": self._repo.count_escalation_entries(system_only=True),
            "pending_requests": self._repo.count_pending(),
            "window_days": RECENT_WINDOW_DAYS,
            "generated_at": now.isoformat(),
        }
