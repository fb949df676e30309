"""
App-wide JSON error handlers.

Every service exception type maps to one HTTP status and error code
(see app.utils.errors). Werkzeug HTTP errors keep their status but are
rendered as JSON; anything else is logged and returned as a 500.
"""

import logging

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    ConflictError,
    CycleDetectedError,
    DuplicateEdgeError,
    NotFoundError,
    OperationTimeoutError,
    SelfReferenceError,
    StorageUnavailableError,
    ValidationError,
    WriteConflictError,
)
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    """Attach JSON error handlers for service exceptions and HTTP errors."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(SelfReferenceError)
    def _handle_self_reference(error: SelfReferenceError):
        return api_error(E.RELATIONSHIP_SELF_REFERENCE, str(error), details=error.details)

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(DuplicateEdgeError)
    def _handle_duplicate_edge(error: DuplicateEdgeError):
        return api_error(
            E.RELATIONSHIP_DUPLICATE, str(error),
            details={"blocker": error.blocker, "blocked": error.blocked},
        )

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={error.field: error.value})

    @app.errorhandler(CycleDetectedError)
    def _handle_cycle(error: CycleDetectedError):
        return api_error(E.RELATIONSHIP_CYCLE, str(error), details={"path": error.path})

    @app.errorhandler(WriteConflictError)
    def _handle_write_conflict(error: WriteConflictError):
        return api_error(E.CONFLICT_CONCURRENT_WRITE, str(error), details={"attempts": error.attempts})

    @app.errorhandler(StorageUnavailableError)
    def _handle_storage(error: StorageUnavailableError):
        logger.error("Storage unavailable endpoint=%s op=%s", request.endpoint, error.operation)
        return api_error(E.STORAGE_UNAVAILABLE, str(error))

    @app.errorhandler(OperationTimeoutError)
    def _handle_timeout(error: OperationTimeoutError):
        logger.warning("Operation timed out endpoint=%s op=%s", request.endpoint, error.operation)
        return api_error(E.TIMEOUT, str(error))

    @app.errorhandler(404)
    def _not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return {"error": error.description}, error.code
        logger.exception("Unexpected error endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
