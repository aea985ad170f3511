"""JSON error bodies for the WifiDesk API.

Every error response has the shape ``{"error": <message>, "code": <ERR_*>}``
plus an optional ``details`` object. Blueprints either build one directly
with :func:`api_error` or hand a service exception to :func:`error_from`.

    return api_error(E.VALIDATION_REQUIRED, "comment_text is required")
    return error_from(exc)   # NotFoundError -> 404, TransitionError -> 409, ...
"""

from __future__ import annotations

from flask import jsonify

from wifidesk.core.exceptions import (
    ConflictError,
    NotFoundError,
    TransitionError,
    ValidationError,
)


class E:
    """Error codes returned in the ``code`` field."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # missing field / body
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # wrong enum / bad date
    VALIDATION_RULE = "ERR_VALIDATION_RULE"           # well-formed but rejected
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"     # tracking ID collision
    CONFLICT_STATE = "ERR_CONFLICT_STATE"             # illegal or lost transition
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None):
    """Return ``(response, status)`` for an error code.

    The HTTP status defaults to the one registered for ``code`` (400 when the
    code is unknown).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def error_from(exc: Exception):
    """Map a service exception onto its API error response.

    Raises the exception again when it is not one of the service types, so
    callers only use this inside handlers registered for those types.
    """
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    # TransitionError is a ValidationError; check it first
    if isinstance(exc, TransitionError):
        return api_error(E.CONFLICT_STATE, str(exc), details=exc.details)
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)
    if isinstance(exc, ConflictError):
        message = "Could not assign a tracking ID, please submit again" if exc.retryable else str(exc)
        return api_error(E.CONFLICT_DUPLICATE, message, details={"retryable": exc.retryable})
    raise exc
