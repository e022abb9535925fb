# Overview: Flask API routes for locations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_membership, require_user
from ..services import location_service
from ..services.tenant_service import MANAGER_ROLES, TenantAccessError
from ..validation import ValidationError

locations_bp = Blueprint("locations", __name__, url_prefix="/api/environments/<env_slug>/locations")


@locations_bp.get("")
@require_user
@require_membership()
def list_locations():
    items = location_service.list_locations(g.environment.id)
    return jsonify({"items": items, "count": len(items)}), 200


@locations_bp.get("/stats")
@require_user
@require_membership()
def location_stats():
    """Product count per location."""
    return jsonify({"items": location_service.get_location_stats(g.environment.id)}), 200


@locations_bp.post("")
@require_user
@require_membership(*MANAGER_ROLES)
def create_location_route():
    payload = request.get_json(silent=True) or {}
    try:
        created = location_service.create_location(
            payload=payload, environment_id=g.environment.id, user_id=g.user_id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(created), 201


@locations_bp.get("/<location_id>")
@require_user
@require_membership()
def get_location_route(location_id: str):
    try:
        location = location_service.get_location(location_id=location_id, environment_id=g.environment.id)
    except TenantAccessError:
        return jsonify({"error": "Location not found"}), 404
    return jsonify(location), 200


@locations_bp.put("/<location_id>")
@require_user
@require_membership(*MANAGER_ROLES)
def update_location_route(location_id: str):
    payload = request.get_json(silent=True) or {}
    try:
        updated = location_service.update_location(
            location_id=location_id, payload=payload, environment_id=g.environment.id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError:
        return jsonify({"error": "Location not found"}), 404
    return jsonify(updated), 200


@locations_bp.delete("/<location_id>")
@require_user
@require_membership(*MANAGER_ROLES)
def delete_location_route(location_id: str):
    try:
        location_service.delete_location(location_id=location_id, environment_id=g.environment.id)
    except TenantAccessError:
        return jsonify({"error": "Location not found"}), 404
    return jsonify({"ok": True}), 200
