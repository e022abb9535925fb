# Overview: Service-layer operations for environments and their memberships.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Environment, Membership, MEMBERSHIP_ROLES
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_environment,
    validate_payload,
)
from .cache_service import CacheTags, invalidate_cache
from .tenant_service import MembershipError, is_system_admin


ENVIRONMENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "slug", "description"},
    required_on_create={"name", "slug"},
)

# Role given to the creator of a new environment
CREATOR_ROLE = "reseller_manager"


def create_environment(*, payload: dict, user_id: str) -> dict:
    """
    Create an environment and make the creator its manager.

    Only system administrators can create environments.

    Raises:
        MembershipError: caller is not a system admin
        ValidationError: invalid name/slug
        ConflictError: slug already taken
    """
    if not is_system_admin(user_id):
        raise MembershipError("Only system administrators can create environments")

    patch = validate_payload(model=Environment, payload=payload, policy=ENVIRONMENT_POLICY, partial=False)
    enforce_rules_environment(patch)

    if db.session.query(Environment.id).filter_by(slug=patch["slug"]).first():
        raise ConflictError("Environment with this slug already exists")

    env = Environment(created_by=user_id, **patch)
    db.session.add(env)
    db.session.flush()

    db.session.add(Membership(environment_id=env.id, user_id=user_id, role=CREATOR_ROLE))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Environment with this slug already exists")

    invalidate_cache([CacheTags.ENVIRONMENTS, CacheTags.MEMBERSHIPS])
    current_app.logger.info("Environment created slug=%s by=%s", env.slug, user_id)
    return env.to_dict()


def update_environment(env: Environment, *, payload: dict) -> dict:
    patch = validate_payload(model=Environment, payload=payload, policy=ENVIRONMENT_POLICY, partial=True)
    enforce_rules_environment(patch)

    if "slug" in patch and patch["slug"] != env.slug:
        taken = (
            db.session.query(Environment.id)
            .filter(Environment.slug == patch["slug"], Environment.id != env.id)
            .first()
        )
        if taken:
            raise ConflictError("Environment with this slug already exists")

    for k, v in patch.items():
        setattr(env, k, v)
    db.session.commit()

    invalidate_cache([CacheTags.ENVIRONMENTS])
    return env.to_dict()


def delete_environment(env: Environment, *, user_id: str) -> None:
    """Delete an environment together with its locations, products and sales."""
    if not is_system_admin(user_id):
        raise MembershipError("Only system administrators can delete environments")

    db.session.delete(env)
    db.session.commit()

    invalidate_cache([
        CacheTags.ENVIRONMENTS,
        CacheTags.MEMBERSHIPS,
        CacheTags.PRODUCTS,
        CacheTags.LOCATIONS,
        CacheTags.DASHBOARD_STATS,
    ])
    current_app.logger.info("Environment deleted id=%s by=%s", env.id, user_id)


def list_members(environment_id: str) -> list[dict]:
    members = (
        db.session.query(Membership)
        .filter_by(environment_id=environment_id)
        .order_by(Membership.created_at.asc())
        .all()
    )
    return [m.to_dict() for m in members]


def add_member(*, environment_id: str | None, user_id: str, role: str) -> dict:
    """
    Add (or re-role) a membership. environment_id=None creates a system-level membership.
    """
    if role not in MEMBERSHIP_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(MEMBERSHIP_ROLES)}")
    if not user_id or not str(user_id).strip():
        raise ValidationError("user_id is required")

    membership = (
        db.session.query(Membership)
        .filter_by(environment_id=environment_id, user_id=user_id)
        .first()
    )
    if membership:
        membership.role = role
    else:
        membership = Membership(environment_id=environment_id, user_id=str(user_id).strip(), role=role)
        db.session.add(membership)
    db.session.commit()

    invalidate_cache([CacheTags.MEMBERSHIPS])
    return membership.to_dict()


def remove_member(*, environment_id: str, user_id: str) -> bool:
    membership = (
        db.session.query(Membership)
        .filter_by(environment_id=environment_id, user_id=user_id)
        .first()
    )
    if not membership:
        return False

    db.session.delete(membership)
    db.session.commit()

    invalidate_cache([CacheTags.MEMBERSHIPS])
    return True
