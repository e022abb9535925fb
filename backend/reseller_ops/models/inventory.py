from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .tenancy import new_id


# Lifecycle statuses, in display order. Transitions between them are unconstrained.
PRODUCT_STATUSES = ("taken", "in_repair", "selling", "sold", "returned", "discarded")


class Location(db.Model):
    """Physical place (shop, warehouse, repair partner) products are kept at."""
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_env_name", "environment_id", "name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    environment_id = db.Column(
        db.String(36),
        db.ForeignKey("environments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    address = db.Column(db.String(512), nullable=True)
    contact_person_name = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    environment = db.relationship(
        "Environment",
        backref=db.backref("locations", lazy=True, cascade="all, delete-orphan"),
    )

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} env={self.environment_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "environment_id": self.environment_id,
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "contact_person_name": self.contact_person_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    An item moving through the resale lifecycle.

    MULTI-TENANT: Products are scoped to environments via environment_id.

    sold_at / sold_price describe the product's latest sale and are written
    together with the Sale row when the product moves to "sold".
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_env_status", "environment_id", "status"),
        db.Index("ix_products_env_created", "environment_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    environment_id = db.Column(
        db.String(36),
        db.ForeignKey("environments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    location_id = db.Column(
        db.String(36),
        db.ForeignKey("locations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="taken")

    purchase_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    selling_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    sold_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    environment = db.relationship(
        "Environment",
        backref=db.backref("products", lazy=True, cascade="all, delete-orphan"),
    )
    location = db.relationship("Location", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} title={self.title!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "environment_id": self.environment_id,
            "location_id": self.location_id,
            "title": self.title,
            "sku": self.sku,
            "barcode": self.barcode,
            "description": self.description,
            "status": self.status,
            "purchase_price": self.purchase_price,
            "selling_price": self.selling_price,
            "sold_price": self.sold_price,
            "sold_at": to_utc_z(self.sold_at),
            "status_updated_at": to_utc_z(self.status_updated_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductStatusHistory(db.Model):
    """
    Append-only record of status changes.

    IMMUTABLE: Never update. Rows go away only with their product.
    """
    __tablename__ = "product_status_history"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    product_id = db.Column(
        db.String(36),
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship(
        "Product",
        backref=db.backref("status_history", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "notes": self.notes,
            "changed_by": self.changed_by,
            "created_at": to_utc_z(self.created_at),
        }
