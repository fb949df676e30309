"""
Ticket Blueprint.

Endpoints:
    GET    /api/epics/<e>/tickets[?slice_id=]                — Tickets of an epic (or one slice)
    GET    /api/epics/<e>/slices/<s>/tickets                 — Tickets of a slice
    POST   /api/epics/<e>/slices/<s>/tickets                 — Create ticket
    GET    /api/epics/<e>/slices/<s>/tickets/<t>             — Detail (+ blocks / blocked-by ids)
    PATCH  /api/epics/<e>/slices/<s>/tickets/<t>             — Partial update / status change
    DELETE /api/epics/<e>/slices/<s>/tickets/<t>             — Delete (cascades relationship edges)
"""

from flask import Blueprint, jsonify, request

import app.services.ticket_service as svc
from app.blueprints import blank, json_body
from app.utils.errors import E, api_error

ticket_bp = Blueprint("tickets", __name__, url_prefix="/api/epics/<epic_id>")


@ticket_bp.route("/tickets", methods=["GET"])
def list_epic_tickets(epic_id):
    return jsonify(svc.list_tickets(epic_id, request.args.get("slice_id") or None))


@ticket_bp.route("/slices/<slice_id>/tickets", methods=["GET"])
def list_slice_tickets(epic_id, slice_id):
    return jsonify(svc.list_tickets(epic_id, slice_id))


@ticket_bp.route("/slices/<slice_id>/tickets", methods=["POST"])
def create_ticket(epic_id, slice_id):
    """
    Body: { "title": str, "intent": str, "description"?: str, "type"?: str,
            "priority"?: str, "assignee"?: str, "notes"?: str }
    """
    data = json_body()
    missing = [f for f in ("title", "intent") if blank(data.get(f))]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"{', '.join(missing)} required")
    return jsonify(svc.create_ticket(epic_id, slice_id, data)), 201


@ticket_bp.route("/slices/<slice_id>/tickets/<ticket_id>", methods=["GET"])
def get_ticket(epic_id, slice_id, ticket_id):
    return jsonify(svc.get_ticket(epic_id, slice_id, ticket_id))


@ticket_bp.route("/slices/<slice_id>/tickets/<ticket_id>", methods=["PATCH"])
def update_ticket(epic_id, slice_id, ticket_id):
    """Body: any of title, intent, description, type, status, priority, assignee, notes."""
    return jsonify(svc.update_ticket(epic_id, slice_id, ticket_id, json_body()))


@ticket_bp.route("/slices/<slice_id>/tickets/<ticket_id>", methods=["DELETE"])
def delete_ticket(epic_id, slice_id, ticket_id):
    svc.delete_ticket(epic_id, slice_id, ticket_id)
    return "", 204
