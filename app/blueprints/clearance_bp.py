"""
Clearance Request Blueprint.

Endpoints (all under /api/v1):
    GET    /document-types
    POST   /requests                      {requester_id, document_type_id, purpose?}
    GET    /requests/<id>?user_id=
    GET    /requests?user_id=&requester_id=&status=&stage=
    POST   /requests/<id>/approve         {actor_id}
    POST   /requests/<id>/reject          {actor_id, reason}
    POST   /requests/<id>/resubmit        {owner_id}
    DELETE /requests/<id>                 {owner_id}

Layer contract:
    - Blueprint: parse + validate input shape, call the transition handler,
      return JSON.
    - NO db.session calls here and NO inline role checks. Transitions are
      guarded by TransitionHandler, reads by AccessGuard.
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import page_args, register_error_handlers, workflow
from app.core.exceptions import NotFoundError, ValidationError
from app.models.clearance import RequestStatus
from app.utils.helpers import require_int

logger = logging.getLogger(__name__)

clearance_bp = Blueprint("clearance", __name__, url_prefix="/api/v1")
register_error_handlers(clearance_bp)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── Document types ─────────────────────────────────────────────────────────────


@clearance_bp.route("/document-types", methods=["GET"])
def list_document_types():
    types = workflow().repository.list_document_types()
    return jsonify({"items": [t.to_dict() for t in types], "total": len(types)})


# ── Requests ───────────────────────────────────────────────────────────────────


@clearance_bp.route("/requests", methods=["POST"])
def submit_request():
    """Create a clearance request. Returns 201 with the new request."""
    data = _body()
    clearance = workflow().transitions.submit(
        require_int(data, "requester_id"),
        require_int(data, "document_type_id"),
        purpose=data.get("purpose"),
    )
    return jsonify(clearance.to_dict(include_history=True)), 201


@clearance_bp.route("/requests", methods=["GET"])
def list_requests():
    """List requests visible to ``user_id``. ``stage`` may repeat to build a multi-stage queue."""
    status = request.args.get("status")
    if status:
        try:
            status = RequestStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid status '{status}'",
                details={"status": sorted(s.value for s in RequestStatus)},
            ) from None
    requester_id = require_int(request.args, "requester_id") if request.args.get("requester_id") else None
    limit, offset = page_args()

    wf = workflow()
    requester_id, stages = wf.guard.listing_scope(
        require_int(request.args, "user_id"),
        requester_id=requester_id,
        stages=request.args.getlist("stage") or None,
    )
    items, total = wf.repository.list_requests(
        requester_id=requester_id,
        status=status or None,
        stages=stages,
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [r.to_dict() for r in items], "total": total,
                    "limit": limit, "offset": offset})


@clearance_bp.route("/requests/<int:request_id>", methods=["GET"])
def get_request(request_id: int):
    wf = workflow()
    clearance = wf.repository.get_request(request_id)
    if clearance is None:
        raise NotFoundError(resource="ClearanceRequest", resource_id=request_id)
    wf.guard.require_owner_or_admin(clearance, require_int(request.args, "user_id"))
    return jsonify(clearance.to_dict(include_history=True))


@clearance_bp.route("/requests/<int:request_id>/approve", methods=["POST"])
def approve_request(request_id: int):
    actor_id = require_int(_body(), "actor_id")
    clearance = workflow().transitions.approve(request_id, actor_id)
    return jsonify(clearance.to_dict())


@clearance_bp.route("/requests/<int:request_id>/reject", methods=["POST"])
def reject_request(request_id: int):
    data = _body()
    actor_id = require_int(data, "actor_id")
    clearance = workflow().transitions.reject(request_id, actor_id, data.get("reason"))
    return jsonify(clearance.to_dict())


@clearance_bp.route("/requests/<int:request_id>/resubmit", methods=["POST"])
def resubmit_request(request_id: int):
    owner_id = require_int(_body(), "owner_id")
    clearance = workflow().transitions.resubmit(request_id, owner_id)
    return jsonify(clearance.to_dict())


@clearance_bp.route("/requests/<int:request_id>", methods=["DELETE"])
def delete_request(request_id: int):
    """Owner deletes a pending/on-hold request. ``owner_id`` may be a query param."""
    data = _body() or request.args
    owner_id = require_int(data, "owner_id")
    workflow().transitions.delete_request(request_id, owner_id)
    return jsonify({"deleted": True, "id": request_id})
