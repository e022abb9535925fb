# Overview: Service-layer operations for locations; CRUD plus per-location product counts.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, get_cache_store
from ..models import Location, Product
from ..validation import ModelValidationPolicy, enforce_rules_location, validate_payload
from .cache_service import CacheDuration, CacheTags, invalidate_cache
from .tenant_service import require_location_in_environment


LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "address",
        "contact_person_name", "contact_email", "contact_phone",
    },
    required_on_create={"name"},
)


def list_locations(environment_id: str) -> list[dict]:
    locations = (
        db.session.query(Location)
        .filter_by(environment_id=environment_id)
        .order_by(Location.name.asc())
        .all()
    )
    return [loc.to_dict() for loc in locations]


def get_location(*, location_id: str, environment_id: str) -> dict:
    return require_location_in_environment(location_id, environment_id).to_dict()


def create_location(*, payload: dict, environment_id: str, user_id: str | None = None) -> dict:
    patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=False)
    enforce_rules_location(patch)

    location = Location(environment_id=environment_id, created_by=user_id, **patch)
    db.session.add(location)
    db.session.commit()

    invalidate_cache([CacheTags.LOCATIONS])
    return location.to_dict()


def update_location(*, location_id: str, payload: dict, environment_id: str) -> dict:
    location = require_location_in_environment(location_id, environment_id)

    patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=True)
    enforce_rules_location(patch)

    for k, v in patch.items():
        setattr(location, k, v)
    db.session.commit()

    invalidate_cache([CacheTags.LOCATIONS])
    return location.to_dict()


def delete_location(*, location_id: str, environment_id: str) -> None:
    """Delete a location; its products stay, without a location."""
    location = require_location_in_environment(location_id, environment_id)
    for product in list(location.products):
        product.location_id = None
    db.session.delete(location)
    db.session.commit()

    invalidate_cache([CacheTags.LOCATIONS, CacheTags.PRODUCTS])


def _compute_location_stats(environment_id: str) -> list[dict]:
    counts = dict(
        db.session.query(Product.location_id, func.count(Product.id))
        .filter(Product.environment_id == environment_id, Product.location_id.isnot(None))
        .group_by(Product.location_id)
        .all()
    )
    locations = (
        db.session.query(Location.id, Location.name)
        .filter_by(environment_id=environment_id)
        .order_by(Location.name.asc())
        .all()
    )
    return [
        {"id": loc_id, "name": name, "product_count": int(counts.get(loc_id, 0))}
        for loc_id, name in locations
    ]


def get_location_stats(environment_id: str) -> list[dict]:
    """Product count per location. Degrades to [] when the store fails."""
    fetch = get_cache_store().cached(
        _compute_location_stats,
        key="locations:stats",
        duration=CacheDuration.MEDIUM,
        tags=[CacheTags.LOCATIONS, CacheTags.PRODUCTS],
    )
    try:
        return fetch(environment_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Error fetching location stats for %s", environment_id)
        return []
