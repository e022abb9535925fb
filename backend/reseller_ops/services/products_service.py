# backend/reseller_ops/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are environment-scoped.
- list_products filters by environment_id
- create/update validate location ownership
- status changes and deletes validate product ownership

STATUS CHANGES:
    Any status may follow any other. Every change appends a
    ProductStatusHistory row. Moving a product into "sold" also records a
    Sale and sets sold_at / sold_price in the same transaction.

CACHE: Every mutation invalidates the products and dashboard-stats tags.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, ProductStatusHistory
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
    validate_status,
)
from .cache_service import CacheTags, invalidate_cache
from .sales_service import list_product_sales, record_sale, resolve_sale_price
from .tenant_service import (
    require_location_in_environment,
    require_product_in_environment,
    require_products_in_environment,
)


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "sku", "barcode", "description", "status",
        "location_id", "purchase_price", "selling_price", "sold_price",
    },
    required_on_create={"title", "status"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "sku", "barcode", "description",
        "location_id", "purchase_price", "selling_price",
    },
)

PRODUCT_INVALIDATION_TAGS = [CacheTags.PRODUCTS, CacheTags.DASHBOARD_STATS]


def _invalidate_products() -> None:
    invalidate_cache(PRODUCT_INVALIDATION_TAGS)


def _check_location(patch: dict, environment_id: str) -> None:
    if patch.get("location_id"):
        require_location_in_environment(patch["location_id"], environment_id)


def list_products(
    environment_id: str,
    *,
    status: str | None = None,
    location_id: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Environment-scoped product listing, newest first, with optional pagination.

    Args:
        environment_id: Environment to list
        status: Only products in this status
        location_id: Only products at this location
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Product).filter(Product.environment_id == environment_id)
    if status is not None:
        base_query = base_query.filter(Product.status == validate_status(status))
    if location_id is not None:
        base_query = base_query.filter(Product.location_id == location_id)
    base_query = base_query.order_by(Product.created_at.desc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(*, product_id: str, environment_id: str) -> dict:
    product = require_product_in_environment(product_id, environment_id)
    data = product.to_dict()
    data["sales"] = list_product_sales(product.id)
    data["status_history"] = [
        h.to_dict()
        for h in sorted(product.status_history, key=lambda h: (h.created_at is None, h.created_at))
    ]
    return data


def create_product(*, payload: dict, environment_id: str, user_id: str | None = None) -> dict:
    """
    Create a product from a raw payload.

    A product created directly in "sold" gets its Sale recorded immediately,
    priced from sold_price or selling_price.

    Raises:
        ValidationError: invalid payload, or "sold" without any price
        TenantAccessError: location_id belongs to another environment
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_location(patch, environment_id)

    now = utcnow()
    sold_price = patch.pop("sold_price", None)
    product = Product(environment_id=environment_id, created_at=now, status_updated_at=now, **patch)
    sale_amount = resolve_sale_price(product, sold_price) if product.status == "sold" else None

    db.session.add(product)
    db.session.flush()

    db.session.add(ProductStatusHistory(
        product_id=product.id,
        from_status=None,
        to_status=product.status,
        changed_by=user_id,
        notes="Product created",
    ))
    if sale_amount is not None:
        record_sale(product, amount=sale_amount, sold_by=user_id, sale_date=now)

    db.session.commit()
    _invalidate_products()

    current_app.logger.info("Product created id=%s environment=%s", product.id, environment_id)
    return product.to_dict()


def update_product(*, product_id: str, payload: dict, environment_id: str) -> dict:
    product = require_product_in_environment(product_id, environment_id)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)
    _check_location(patch, environment_id)

    for k, v in patch.items():
        setattr(product, k, v)
    db.session.commit()
    _invalidate_products()
    return product.to_dict()


def delete_product(*, product_id: str, environment_id: str) -> None:
    """Hard delete; sales and status history go with the product."""
    product = require_product_in_environment(product_id, environment_id)
    db.session.delete(product)
    db.session.commit()
    _invalidate_products()


def _apply_status_change(
    product: Product,
    new_status: str,
    *,
    changed_by: str | None,
    notes: str | None = None,
    sold_price: float | None = None,
    now=None,
) -> None:
    now = now or utcnow()
    old_status = product.status

    if new_status == "sold" and old_status != "sold":
        record_sale(product, amount=resolve_sale_price(product, sold_price), sold_by=changed_by, sale_date=now)

    product.status = new_status
    product.status_updated_at = now
    db.session.add(ProductStatusHistory(
        product_id=product.id,
        from_status=old_status,
        to_status=new_status,
        changed_by=changed_by,
        notes=notes or f"Status changed from {old_status} to {new_status}",
    ))


def update_product_status(
    *,
    product_id: str,
    new_status: str,
    environment_id: str,
    user_id: str | None = None,
    notes: str | None = None,
    sold_price: float | None = None,
) -> dict:
    validate_status(new_status)
    product = require_product_in_environment(product_id, environment_id)

    try:
        _apply_status_change(product, new_status, changed_by=user_id, notes=notes, sold_price=sold_price)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    _invalidate_products()
    return product.to_dict()


def _require_ids(product_ids) -> list[str]:
    if not isinstance(product_ids, list) or not product_ids:
        raise ValidationError("product_ids must be a non-empty list")
    if not all(isinstance(pid, str) and pid for pid in product_ids):
        raise ValidationError("product_ids must contain product id strings")
    return product_ids


def bulk_update_status(
    *,
    product_ids: list[str],
    new_status: str,
    environment_id: str,
    user_id: str | None = None,
) -> dict:
    """
    Move every listed product to `new_status` in one transaction.

    All ids must belong to the environment. Moving to "sold" requires every
    product not already sold to carry a price; otherwise nothing is changed.
    """
    product_ids = _require_ids(product_ids)
    validate_status(new_status)
    products = require_products_in_environment(product_ids, environment_id)

    if new_status == "sold":
        unpriced = [
            p.id for p in products
            if p.status != "sold" and p.sold_price is None and p.selling_price is None
        ]
        if unpriced:
            raise ValidationError(f"Products without a price cannot be marked sold: {', '.join(unpriced)}")

    now = utcnow()
    for product in products:
        _apply_status_change(product, new_status, changed_by=user_id, now=now)
    db.session.commit()
    _invalidate_products()

    current_app.logger.info(
        "Bulk status update environment=%s status=%s count=%d", environment_id, new_status, len(products)
    )
    return {"success": True, "updated_count": len(products)}


def bulk_delete_products(*, product_ids: list[str], environment_id: str) -> dict:
    product_ids = _require_ids(product_ids)
    products = require_products_in_environment(product_ids, environment_id)

    for product in products:
        db.session.delete(product)
    db.session.commit()
    _invalidate_products()

    current_app.logger.info("Bulk delete environment=%s count=%d", environment_id, len(products))
    return {"success": True, "deleted_count": len(products)}
