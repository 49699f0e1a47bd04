"""
Certificate Blueprint.

Endpoints (all under /api/v1/certificates):
    GET /request/<request_id>?user_id=   issued certificate (owner or admin)
    GET /verify/<code>                    public verification lookup
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import register_error_handlers, workflow
from app.core.exceptions import NotFoundError
from app.utils.helpers import require_int

logger = logging.getLogger(__name__)

certificate_bp = Blueprint("certificate", __name__, url_prefix="/api/v1/certificates")
register_error_handlers(certificate_bp)


@certificate_bp.route("/request/<int:request_id>", methods=["GET"])
def get_certificate(request_id: int):
    wf = workflow()
    clearance = wf.repository.get_request(request_id)
    if clearance is None:
        raise NotFoundError(resource="ClearanceRequest", resource_id=request_id)
    wf.guard.require_owner_or_admin(clearance, require_int(request.args, "user_id"))
    return jsonify(wf.certificates.get_for_request(request_id).to_dict())


@certificate_bp.route("/verify/<code>", methods=["GET"])
def verify_certificate(code: str):
    result = workflow().certificates.verify(code)
    return jsonify(result), 200 if result["valid"] else 404
