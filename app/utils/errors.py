"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Epic not found")
    return api_error(E.VALIDATION_REQUIRED, "title is required")
    return api_error(E.RELATIONSHIP_CYCLE, str(exc), details={"path": exc.path})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • ERR_RELATIONSHIP_ prefix for blocking-graph invariant violations
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    RELATIONSHIP_SELF_REFERENCE = "ERR_RELATIONSHIP_SELF_REFERENCE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_CONCURRENT_WRITE = "ERR_CONFLICT_CONCURRENT_WRITE"
    RELATIONSHIP_DUPLICATE = "ERR_RELATIONSHIP_DUPLICATE"
    RELATIONSHIP_CYCLE = "ERR_RELATIONSHIP_CYCLE"

    # Unavailable – HTTP 503
    STORAGE_UNAVAILABLE = "ERR_STORAGE_UNAVAILABLE"
    TIMEOUT = "ERR_TIMEOUT"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.RELATIONSHIP_SELF_REFERENCE: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_CONCURRENT_WRITE: 409,
    E.RELATIONSHIP_DUPLICATE: 409,
    E.RELATIONSHIP_CYCLE: 409,
    E.STORAGE_UNAVAILABLE: 503,
    E.TIMEOUT: 503,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (cycle path, field errors, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
