"""
Multi-Tenant Service: Environment Resolution, Membership and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to an environment, and cross-environment access must
be explicitly denied.

SECURITY INVARIANTS:
1. Routes resolve the environment from the URL slug and set g.environment
2. Product/location ids from client input are validated against that environment
3. Queries touching environment-owned data filter by environment_id
4. A record from another environment is reported as "not found" (no existence leak)

USAGE:
    from reseller_ops.services.tenant_service import require_product_in_environment

    product = require_product_in_environment(product_id, g.environment.id)
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Environment, Location, Membership, Product


DEMO_ENVIRONMENT_SLUG = "demo"

# Roles allowed to import and bulk-edit products
MANAGER_ROLES = ("reseller_manager", "grady_staff", "grady_admin")
SYSTEM_ADMIN_ROLE = "grady_admin"


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted or the target does not exist."""
    pass


class MembershipError(Exception):
    """Raised when the user lacks the membership or role an operation requires."""
    pass


def _demo_slug() -> str:
    return current_app.config.get("DEMO_ENVIRONMENT_SLUG", DEMO_ENVIRONMENT_SLUG)


def get_environment_by_slug(slug: str) -> Environment:
    """
    Look up an environment by slug.

    The demo slug always resolves: the demo environment is created on first use.

    Raises:
        TenantAccessError if no environment has this slug
    """
    if slug == _demo_slug():
        return get_or_create_demo_environment()

    env = db.session.query(Environment).filter_by(slug=slug).first()
    if not env:
        raise TenantAccessError("Environment not found")
    return env


def get_or_create_demo_environment() -> Environment:
    slug = _demo_slug()
    env = db.session.query(Environment).filter_by(slug=slug).first()
    if env:
        return env

    env = Environment(
        name="Demo Environment",
        slug=slug,
        description="Demo environment for testing and development",
        created_by=None,
    )
    db.session.add(env)
    db.session.commit()
    current_app.logger.info("Created demo environment id=%s", env.id)
    return env


def is_demo_environment(env: Environment) -> bool:
    return env.slug == _demo_slug()


def get_membership(environment_id: str | None, user_id: str) -> Membership | None:
    return (
        db.session.query(Membership)
        .filter_by(environment_id=environment_id, user_id=user_id)
        .first()
    )


def is_system_admin(user_id: str) -> bool:
    membership = get_membership(None, user_id)
    return membership is not None and membership.role == SYSTEM_ADMIN_ROLE


def require_environment_access(env: Environment, user_id: str, roles: tuple[str, ...] | None = None) -> str:
    """
    Check that `user_id` may act in `env`, optionally restricted to `roles`.

    System admins pass every check. The demo environment is open to any
    authenticated user for reads (roles=None).

    Returns:
        The effective role ("grady_admin" for system admins, "demo" for demo readers)

    Raises:
        TenantAccessError if the user has no membership (environment is not revealed)
        MembershipError if the membership's role is not in `roles`
    """
    if is_system_admin(user_id):
        return SYSTEM_ADMIN_ROLE

    membership = get_membership(env.id, user_id)
    if membership is None:
        if roles is None and is_demo_environment(env):
            return "demo"
        raise TenantAccessError("Environment not found")

    if roles is not None and membership.role not in roles:
        raise MembershipError(
            f"Role {membership.role} cannot perform this action; requires one of: {', '.join(roles)}"
        )
    return membership.role


def get_user_environments(user_id: str) -> list[Environment]:
    """Environments the user belongs to (all of them for system admins)."""
    query = db.session.query(Environment)
    if not is_system_admin(user_id):
        query = query.join(Membership, Membership.environment_id == Environment.id).filter(
            Membership.user_id == user_id
        )
    return query.order_by(Environment.name.asc()).all()


def require_product_in_environment(product_id: str, environment_id: str) -> Product:
    """
    Validate that a product belongs to the specified environment.

    Raises:
        TenantAccessError if product doesn't exist or belongs to another environment
    """
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product or product.environment_id != environment_id:
        raise TenantAccessError("Product not found")
    return product


def require_products_in_environment(product_ids: list[str], environment_id: str) -> list[Product]:
    """
    Batch validation for bulk operations. All ids must exist in the environment.

    Raises:
        TenantAccessError if any product is missing or foreign
    """
    if not product_ids:
        return []

    unique_ids = set(product_ids)
    products = db.session.query(Product).filter(Product.id.in_(unique_ids)).all()
    if len(products) != len(unique_ids) or any(p.environment_id != environment_id for p in products):
        raise TenantAccessError("One or more products not found")
    return products


def require_location_in_environment(location_id: str, environment_id: str) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if not location or location.environment_id != environment_id:
        raise TenantAccessError("Location not found")
    return location
