"""
Ticketing API
Blueprint registry and shared request helpers.
"""

from flask import abort, request


def json_body() -> dict:
    """Return the request JSON object, ``{}`` when there is no body.

    Malformed JSON or a non-object payload aborts with 400.
    """
    if not request.data:
        return {}
    data = request.get_json(silent=True)
    if data is None:
        abort(400, description="Malformed JSON body")
    if not isinstance(data, dict):
        abort(400, description="JSON body must be an object")
    return data


def blank(value) -> bool:
    """Missing or whitespace-only. Non-string values are left for the service to reject."""
    return value is None or (isinstance(value, str) and not value.strip())


def register_blueprints(app):
    from app.blueprints.health_bp import health_bp
    from app.blueprints.epic_bp import epic_bp
    from app.blueprints.slice_bp import slice_bp
    from app.blueprints.ticket_bp import ticket_bp
    from app.blueprints.relationship_bp import relationship_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(epic_bp)
    app.register_blueprint(slice_bp)
    app.register_blueprint(ticket_bp)
    app.register_blueprint(relationship_bp)
