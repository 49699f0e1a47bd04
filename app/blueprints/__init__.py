"""
Clearance Workflow Service
Blueprint helpers shared by every API blueprint.
"""

import logging

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import ClearanceError
from app.utils.errors import domain_error

logger = logging.getLogger(__name__)


def workflow():
    """The ClearanceWorkflow bundle built by create_app()."""
    return current_app.extensions["clearance"]


def page_args(default_limit=100, max_limit=500):
    """Read limit/offset query params.

    Query params:
        limit  — max items (default 100, capped at max_limit)
        offset — starting position (default 0)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def register_error_handlers(bp):
    """Map the service exception hierarchy onto JSON error responses for ``bp``."""

    @bp.errorhandler(ClearanceError)
    def _handle_domain_error(error: ClearanceError):
        if error.status >= 500:
            logger.warning("%s on %s: %s", type(error).__name__, request.endpoint, error)
        return domain_error(error)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error"}), 500

    return bp
