# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/reseller_ops/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the environment in the URL.
g.environment is set by @require_membership.

SECURITY: All routes require an authenticated user.
- Any member may read and edit single products
- Bulk actions and imports require a manager role
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_membership, require_user
from ..services import import_service, products_service
from ..services.import_service import ImportError
from ..services.tenant_service import MANAGER_ROLES, MembershipError, TenantAccessError
from ..validation import ValidationError

products_bp = Blueprint("products", __name__, url_prefix="/api/environments/<env_slug>/products")


@products_bp.get("")
@require_user
@require_membership()
def list_products():
    """
    List products, newest first.

    Query params:
    - status: str (optional) - filter by lifecycle status
    - location_id: str (optional) - filter by location
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        result = products_service.list_products(
            g.environment.id,
            status=request.args.get("status"),
            location_id=request.args.get("location_id"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(result), 200


@products_bp.post("")
@require_user
@require_membership()
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        created = products_service.create_product(
            payload=payload, environment_id=g.environment.id, user_id=g.user_id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError:
        return jsonify({"error": "Location not found"}), 404

    return jsonify(created), 201


@products_bp.get("/<product_id>")
@require_user
@require_membership()
def get_product_route(product_id: str):
    try:
        product = products_service.get_product(product_id=product_id, environment_id=g.environment.id)
    except TenantAccessError:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product), 200


@products_bp.put("/<product_id>")
@require_user
@require_membership()
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}

    try:
        updated = products_service.update_product(
            product_id=product_id, payload=payload, environment_id=g.environment.id
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(updated), 200


@products_bp.delete("/<product_id>")
@require_user
@require_membership()
def delete_product_route(product_id: str):
    try:
        products_service.delete_product(product_id=product_id, environment_id=g.environment.id)
    except TenantAccessError:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"ok": True}), 200


@products_bp.post("/<product_id>/status")
@require_user
@require_membership()
def update_status_route(product_id: str):
    """
    Change one product's status.

    Body: {"status": str, "notes": str?, "sold_price": number?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        updated = products_service.update_product_status(
            product_id=product_id,
            new_status=payload.get("status"),
            environment_id=g.environment.id,
            user_id=g.user_id,
            notes=payload.get("notes"),
            sold_price=payload.get("sold_price"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError:
        return jsonify({"error": "Product not found"}), 404

    return jsonify(updated), 200


@products_bp.post("/bulk/status")
@require_user
@require_membership(*MANAGER_ROLES)
def bulk_status_route():
    """Body: {"product_ids": [str], "status": str}"""
    payload = request.get_json(silent=True) or {}

    try:
        result = products_service.bulk_update_status(
            product_ids=payload.get("product_ids"),
            new_status=payload.get("status"),
            environment_id=g.environment.id,
            user_id=g.user_id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(result), 200


@products_bp.post("/bulk/delete")
@require_user
@require_membership(*MANAGER_ROLES)
def bulk_delete_route():
    """Body: {"product_ids": [str]}"""
    payload = request.get_json(silent=True) or {}

    try:
        result = products_service.bulk_delete_products(
            product_ids=payload.get("product_ids"),
            environment_id=g.environment.id,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(result), 200


@products_bp.post("/import")
@require_user
@require_membership()
def import_products_route():
    """
    Import products.

    Accepts text/csv (header row required) or JSON {"rows": [...]} / {"csv": "..."}.
    Any invalid row rejects the whole import with per-row errors.
    """
    csv_text, rows = None, None
    if request.mimetype == "text/csv":
        csv_text = request.get_data(as_text=True)
    else:
        payload = request.get_json(silent=True) or {}
        csv_text = payload.get("csv")
        rows = payload.get("rows")

    try:
        result = import_service.import_products(
            environment=g.environment,
            user_id=g.user_id,
            rows=rows,
            csv_text=csv_text,
        )
    except MembershipError as e:
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    except ImportError as e:
        body = {"error": str(e)}
        if getattr(e, "row_errors", None):
            body["rows"] = e.row_errors
        return jsonify(body), 400
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 201
