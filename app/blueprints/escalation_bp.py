"""
Escalation Blueprint — admin surfaces of the escalation subsystem.

Endpoints (all under /api/v1/escalation):
    POST /check                      {admin_id}
         Run the escalation sweep now. Returns the SweepReport.
    POST /manual                     {request_id, admin_id, reason?}
         Escalate one pending request regardless of staleness.
    GET  /stats?admin_id=
         Escalation rollups (total, by level, last 7 days, ledger size).
    GET  /history/<request_id>?user_id=
         Escalation ledger for one request, newest first (owner or admin).
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import register_error_handlers, workflow
from app.core.exceptions import NotFoundError
from app.services.escalation import EscalationSource
from app.utils.helpers import require_int

logger = logging.getLogger(__name__)

escalation_bp = Blueprint("escalation", __name__, url_prefix="/api/v1/escalation")
register_error_handlers(escalation_bp)


@escalation_bp.route("/check", methods=["POST"])
def run_escalation_check():
    data = request.get_json(silent=True) or {}
    admin_id = require_int(data, "admin_id")
    wf = workflow()
    wf.guard.require_admin(admin_id)

    report = wf.sweep.run()
    logger.info("Escalation sweep triggered by admin %s", admin_id, extra={"actor_id": admin_id})
    return jsonify({
        "message": f"Escalation check completed. {report.escalated} request(s) escalated.",
        **report.to_dict(),
    })


@escalation_bp.route("/manual", methods=["POST"])
def manual_escalate():
    data = request.get_json(silent=True) or {}
    request_id = require_int(data, "request_id")
    admin_id = require_int(data, "admin_id")
    clearance = workflow().transitions.escalate(
        request_id, EscalationSource.admin(admin_id), data.get("reason"),
    )
    return jsonify(clearance.to_dict())


@escalation_bp.route("/stats", methods=["GET"])
def escalation_stats():
    wf = workflow()
    wf.guard.require_admin(require_int(request.args, "admin_id"))
    return jsonify(wf.stats.get_escalation_stats())


@escalation_bp.route("/history/<int:request_id>", methods=["GET"])
def escalation_history(request_id: int):
    wf = workflow()
    clearance = wf.repository.get_request(request_id)
    if clearance is None:
        raise NotFoundError(resource="ClearanceRequest", resource_id=request_id)
    wf.guard.require_owner_or_admin(clearance, require_int(request.args, "user_id"))

    entries = wf.ledger.history_for(request_id)
    return jsonify({
        "request_id": request_id,
        "escalation_level": clearance.escalation_level,
        "items": [e.to_dict() for e in entries],
        "total": len(entries),
    })
