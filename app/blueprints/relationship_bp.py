"""
Ticket Relationship Blueprint — blocking edges between tickets.

Endpoints (prefix /api/epics/<e>/slices/<s>/tickets/<t>/relationships):
    GET     ""   — {"blocks": [Edge], "blocked_by": [Edge]} for the ticket
    POST    ""   — Add an edge.    Body: {blocker_id | blocked_id, slice_id?, epic_id?, created_by?}
    DELETE  ""   — Remove an edge. Body or query: {blocker_id | blocked_id, slice_id?, epic_id?}

``blocker_id`` means "that ticket blocks this one"; ``blocked_id`` means
"this ticket blocks that one". ``slice_id`` / ``epic_id`` locate the other
ticket and default to a search of this ticket's epic.

Invariant violations are raised by the relationship service and mapped to
HTTP status codes by the app-level error handlers.
"""

from flask import Blueprint, jsonify, request

import app.services.ticket_service as ticket_svc
from app.blueprints import json_body
from app.services.relationship_service import get_relationship_manager, partition
from app.utils.errors import E, api_error

relationship_bp = Blueprint(
    "relationships", __name__,
    url_prefix="/api/epics/<epic_id>/slices/<slice_id>/tickets/<ticket_id>/relationships",
)


def _resolve_pair(epic_id, slice_id, ticket_id, data):
    """
    Turn a request payload into (blocker, blocked) refs.
    Returns (pair, None) or (None, error_response).
    """
    blocker_id = data.get("blocker_id")
    blocked_id = data.get("blocked_id")
    if bool(blocker_id) == bool(blocked_id):
        return None, api_error(
            E.VALIDATION_REQUIRED, "Exactly one of blocker_id or blocked_id is required",
        )
    this = ticket_svc.ticket_ref(epic_id, slice_id, ticket_id)
    other = ticket_svc.find_ticket_ref(
        data.get("epic_id") or epic_id,
        blocker_id or blocked_id,
        data.get("slice_id") or None,
    )
    if blocker_id:
        return (other, this), None
    return (this, other), None


@relationship_bp.route("", methods=["GET"])
def list_relationships(epic_id, slice_id, ticket_id):
    ref = ticket_svc.ticket_ref(epic_id, slice_id, ticket_id)
    views = partition(ref, get_relationship_manager().list_relationships(ref))
    return jsonify({
        "blocks": [e.to_dict() for e in views["blocks"]],
        "blocked_by": [e.to_dict() for e in views["blocked_by"]],
    })


@relationship_bp.route("", methods=["POST"])
def create_relationship(epic_id, slice_id, ticket_id):
    data = json_body()
    creator = data.get("created_by")
    if creator is not None and not isinstance(creator, str):
        return api_error(E.VALIDATION_INVALID, "created_by must be a string")
    pair, err = _resolve_pair(epic_id, slice_id, ticket_id, data)
    if err:
        return err
    blocker, blocked = pair
    edge = get_relationship_manager().add_relationship(
        blocker, blocked, creator=creator,
    )
    return jsonify(edge.to_dict()), 201


@relationship_bp.route("", methods=["DELETE"])
def delete_relationship(epic_id, slice_id, ticket_id):
    data = json_body() or request.args.to_dict()
    pair, err = _resolve_pair(epic_id, slice_id, ticket_id, data)
    if err:
        return err
    get_relationship_manager().remove_relationship(*pair)
    return "", 204
