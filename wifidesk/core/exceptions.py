"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from wifidesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="WifiRequest", resource_id="john101a")
    raise ValidationError("email is invalid", details={"email": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "WifiRequest").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (invalid email, duplicate recipient, threshold out of range).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class TransitionError(ValidationError):
    """Raised when an actor asks for a status change the lifecycle forbids.

    Maps to HTTP 409 (state conflict).
    """

    def __init__(self, request_id: str, actor: str, current: str, target: str,
                 reason: str | None = None) -> None:
        self.request_id = request_id
        self.actor = actor
        self.current_status = current
        self.target_status = target
        msg = f"{actor} cannot move request {request_id} from '{current}' to '{target}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"status": target, "current_status": current})


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
        retryable: True when the caller may simply submit again.
    """

    def __init__(self, resource: str, field: str, value: str | None = None,
                 retryable: bool = False) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        self.retryable = retryable
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class StoreReadError(Exception):
    """Raised when a read the escalation sweep depends on fails.

    Fatal for the current sweep; the next scheduled run retries.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Store read failed during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
