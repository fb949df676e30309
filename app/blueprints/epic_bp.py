"""
Epic Blueprint.

Endpoints:
    GET    /api/epics             — List epics (with slice / ticket counts)
    POST   /api/epics             — Create epic
    GET    /api/epics/<epic_id>   — Detail
    DELETE /api/epics/<epic_id>   — Delete epic, its slices, tickets and relationships
"""

from flask import Blueprint, jsonify

import app.services.ticket_service as svc
from app.blueprints import blank, json_body
from app.utils.errors import E, api_error

epic_bp = Blueprint("epics", __name__, url_prefix="/api/epics")


@epic_bp.route("", methods=["GET"])
def list_epics():
    return jsonify({"epics": svc.list_epics()})


@epic_bp.route("", methods=["POST"])
def create_epic():
    """
    Create an epic.
    Body: { "title": str, "epic_id"?: str, "notes"?: str, "assignees"?: [str] }
    """
    data = json_body()
    if blank(data.get("title")):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    return jsonify(svc.create_epic(data)), 201


@epic_bp.route("/<epic_id>", methods=["GET"])
def get_epic(epic_id):
    return jsonify(svc.get_epic(epic_id))


@epic_bp.route("/<epic_id>", methods=["DELETE"])
def delete_epic(epic_id):
    svc.delete_epic(epic_id)
    return "", 204
