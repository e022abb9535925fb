# Overview: Flask API routes for dashboard statistics and cache monitoring.

"""
Dashboard Routes

The dashboard view is async: its three statistics are fetched concurrently.
Statistics never fail the request; a degraded statistic is reported with
degraded=true and the error message alongside its default value.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_membership, require_system_admin, require_user
from ..extensions import get_cache_store
from ..services.cache_service import invalidate_cache
from ..services.dashboard_service import build_dashboard_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/environments/<env_slug>/dashboard")
cache_bp = Blueprint("cache", __name__, url_prefix="/api/cache")


@dashboard_bp.get("")
@require_user
@require_membership()
async def dashboard_stats():
    """
    Status distribution, trailing revenue and average time-to-sale for the environment.
    """
    service = build_dashboard_service()
    stats = await service.get_dashboard_stats(g.environment.id)
    payload = stats.to_dict()
    payload["environment"] = {"id": g.environment.id, "slug": g.environment.slug}
    return jsonify(payload), 200


@cache_bp.get("/stats")
@require_user
@require_system_admin
def cache_stats():
    return jsonify(get_cache_store().monitor.get_stats()), 200


@cache_bp.post("/invalidate")
@require_user
@require_system_admin
def cache_invalidate():
    payload = request.get_json(silent=True) or {}
    tags = payload.get("tags")
    if not isinstance(tags, list) or not tags or not all(isinstance(t, str) and t for t in tags):
        return jsonify({"error": "tags must be a non-empty list of strings"}), 400

    affected = invalidate_cache(tags)
    return jsonify({"ok": True, "tags": tags, "affected_keys": affected}), 200
