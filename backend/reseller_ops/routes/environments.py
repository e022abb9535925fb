# Overview: Flask API routes for environments and memberships.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_membership, require_system_admin, require_user
from ..services import environment_service, tenant_service
from ..services.tenant_service import MANAGER_ROLES, MembershipError
from ..validation import ConflictError, ValidationError

environments_bp = Blueprint("environments", __name__, url_prefix="/api/environments")


@environments_bp.get("")
@require_user
def list_environments():
    """Environments the caller belongs to (all of them for system admins)."""
    envs = tenant_service.get_user_environments(g.user_id)
    return jsonify({"items": [e.to_dict() for e in envs], "count": len(envs)}), 200


@environments_bp.post("")
@require_user
def create_environment_route():
    payload = request.get_json(silent=True) or {}
    try:
        created = environment_service.create_environment(payload=payload, user_id=g.user_id)
    except MembershipError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(created), 201


@environments_bp.get("/<env_slug>")
@require_user
@require_membership()
def get_environment_route():
    data = g.environment.to_dict()
    data["role"] = g.role
    return jsonify(data), 200


@environments_bp.patch("/<env_slug>")
@require_user
@require_membership(*MANAGER_ROLES)
def update_environment_route():
    payload = request.get_json(silent=True) or {}
    try:
        updated = environment_service.update_environment(g.environment, payload=payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(updated), 200


@environments_bp.delete("/<env_slug>")
@require_user
@require_system_admin
@require_membership()
def delete_environment_route():
    environment_service.delete_environment(g.environment, user_id=g.user_id)
    return jsonify({"ok": True}), 200


@environments_bp.get("/<env_slug>/members")
@require_user
@require_membership()
def list_members_route():
    items = environment_service.list_members(g.environment.id)
    return jsonify({"items": items, "count": len(items)}), 200


@environments_bp.post("/<env_slug>/members")
@require_user
@require_membership(*MANAGER_ROLES)
def add_member_route():
    """Body: {"user_id": str, "role": str}"""
    payload = request.get_json(silent=True) or {}
    try:
        member = environment_service.add_member(
            environment_id=g.environment.id,
            user_id=payload.get("user_id"),
            role=payload.get("role"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(member), 201


@environments_bp.delete("/<env_slug>/members/<user_id>")
@require_user
@require_membership(*MANAGER_ROLES)
def remove_member_route(user_id: str):
    removed = environment_service.remove_member(environment_id=g.environment.id, user_id=user_id)
    if not removed:
        return jsonify({"error": "Member not found"}), 404
    return jsonify({"ok": True}), 200
