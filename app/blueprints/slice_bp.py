"""
Slice Blueprint.

Endpoints:
    GET    /api/epics/<epic_id>/slices              — List slices of an epic
    POST   /api/epics/<epic_id>/slices              — Create slice
    GET    /api/epics/<epic_id>/slices/<slice_id>   — Detail
    DELETE /api/epics/<epic_id>/slices/<slice_id>   — Delete slice and its tickets
"""

from flask import Blueprint, jsonify

import app.services.ticket_service as svc
from app.blueprints import blank, json_body
from app.utils.errors import E, api_error

slice_bp = Blueprint("slices", __name__, url_prefix="/api/epics/<epic_id>/slices")


@slice_bp.route("", methods=["GET"])
def list_slices(epic_id):
    return jsonify(svc.list_slices(epic_id))


@slice_bp.route("", methods=["POST"])
def create_slice(epic_id):
    """Body: { "title": str, "slice_id"?: str, "notes"?: str, "assignees"?: [str] }"""
    data = json_body()
    if blank(data.get("title")):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    return jsonify(svc.create_slice(epic_id, data)), 201


@slice_bp.route("/<slice_id>", methods=["GET"])
def get_slice(epic_id, slice_id):
    return jsonify(svc.get_slice(epic_id, slice_id))


@slice_bp.route("/<slice_id>", methods=["DELETE"])
def delete_slice(epic_id, slice_id):
    svc.delete_slice(epic_id, slice_id)
    return "", 204
