"""
Service-wide exception hierarchy.

Every service raises one of these types; blueprints register a single
handler against ``ClearanceError`` and get consistent HTTP status codes and
machine-readable error codes (``app.utils.errors.E``) everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ClearanceRequest", resource_id=42)
    raise ValidationError("reason is required", details={"reason": "empty"})

Propagation rules:
    - DependencyError is never raised to an API caller. Collaborator
      failures (notification, certificate) are wrapped in it only so they
      can be logged uniformly after the transition has committed.
    - TransientError surfaces from direct commands as 503; inside the
      escalation sweep it is a per-item failure retried on the next run.
"""

from app.utils.errors import E


class ClearanceError(Exception):
    """Base class. Subclasses pin ``status`` and ``code``."""

    status = 500
    code = E.INTERNAL

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(ClearanceError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "ClearanceRequest").
        resource_id: The PK that was looked up.
    """

    status = 404
    code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(ClearanceError):
    """Raised when input is missing or violates a business rule
    (unknown document type, empty rejection reason, ...).

    Maps to HTTP 422.
    """

    status = 422
    code = E.VALIDATION_INVALID


class UnauthorizedError(ClearanceError):
    """Raised when the actor's role does not own the current stage, or the
    actor is not the owner for an owner-only operation.

    Maps to HTTP 403.
    """

    status = 403
    code = E.FORBIDDEN


class ConflictError(ClearanceError):
    """Raised when a transition is attempted from an incompatible status,
    or when a concurrent writer committed first.

    ``retryable`` is True only for lost races: re-reading the request and
    retrying may succeed. Status conflicts are final.

    Maps to HTTP 409.
    """

    status = 409

    def __init__(self, message: str, *, retryable: bool = False, details: dict | None = None) -> None:
        self.retryable = retryable
        self.code = E.CONFLICT_CONCURRENT if retryable else E.CONFLICT_STATE
        super().__init__(message, details)


class DependencyError(ClearanceError):
    """A downstream collaborator (notification gateway, certificate issuer)
    failed after the transition committed. Logged, never propagated.
    """

    status = 502
    code = E.DEPENDENCY

    def __init__(self, collaborator: str, cause: Exception) -> None:
        self.collaborator = collaborator
        self.cause = cause
        super().__init__(f"{collaborator} failed: {cause}")


class TransientError(ClearanceError):
    """Storage timeout or connectivity failure. Safe to retry later.

    Maps to HTTP 503.
    """

    status = 503
    code = E.TRANSIENT
