"""
Platform-wide exception hierarchy.

Services raise these types; the app factory registers one handler per type
and maps it to a stable HTTP status and machine-readable error code
(see app.utils.errors).

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Epic", resource_id="epic-1a2b3c4d")
    raise ValidationError("title is required", details={"title": "missing"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Epic", "Ticket").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


# ── Relationship graph ───────────────────────────────────────────────────────


class SelfReferenceError(ValidationError):
    """A ticket cannot block itself."""

    def __init__(self, ticket: str) -> None:
        self.ticket = ticket
        super().__init__(f"Ticket {ticket} cannot block itself", details={"ticket": ticket})


class DuplicateEdgeError(ConflictError):
    """The ordered (blocker, blocked) pair already exists."""

    def __init__(self, blocker: str, blocked: str) -> None:
        self.blocker = blocker
        self.blocked = blocked
        super().__init__("Relationship", "edge", f"{blocker} -> {blocked}")


class CycleDetectedError(Exception):
    """Adding blocker → blocked would close a cycle in the blocking graph.

    Maps to HTTP 409.

    Args:
        blocker: The proposed blocker ticket.
        blocked: The proposed blocked ticket.
        path: Existing chain blocked → … → blocker that the new edge would close.
    """

    def __init__(self, blocker: str, blocked: str, path: list[str]) -> None:
        self.blocker = blocker
        self.blocked = blocked
        self.path = path
        super().__init__(
            f"Adding {blocker} -> {blocked} would create a cycle"
        )


class WriteConflictError(Exception):
    """Concurrent writers kept invalidating the read snapshot.

    Raised after the bounded optimistic-concurrency retries are exhausted.
    Maps to HTTP 409; the caller may retry.
    """

    def __init__(self, resource: str, attempts: int) -> None:
        self.resource = resource
        self.attempts = attempts
        super().__init__(
            f"{resource} was modified concurrently; gave up after {attempts} attempts"
        )


class StorageUnavailableError(Exception):
    """The backing store failed transiently (timeout, throttling, lost connection).

    Nothing was applied; safe for the caller to retry. Maps to HTTP 503.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Storage unavailable during {operation}")


class OperationTimeoutError(Exception):
    """The operation deadline expired before a write could be applied.

    Maps to HTTP 503.
    """

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds:g}s")
