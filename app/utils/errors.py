"""JSON error bodies for the clearance API.

Every error response looks like::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty. Services raise ``ClearanceError``
subclasses carrying one of the ``E`` codes; blueprints render them with
``domain_error``.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes. The HTTP status each one defaults to is in ``STATUS``."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    FORBIDDEN = "ERR_FORBIDDEN"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"  # lost an optimistic-lock race; retry
    DEPENDENCY = "ERR_DEPENDENCY"
    TRANSIENT = "ERR_TRANSIENT"
    INTERNAL = "ERR_INTERNAL"


STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.FORBIDDEN: 403,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_CONCURRENT: 409,
    E.DEPENDENCY: 502,
    E.TRANSIENT: 503,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` for ``code``; status defaults from ``STATUS``, else 400."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS.get(code, 400)


def domain_error(error):
    details = dict(error.details or {})
    if getattr(error, "retryable", False):
        details["retryable"] = True
    return api_error(error.code, str(error), status=error.status, details=details)
