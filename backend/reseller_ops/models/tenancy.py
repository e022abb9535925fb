from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import to_utc_z


MEMBERSHIP_ROLES = ("grady_admin", "grady_staff", "reseller_manager", "reseller_staff")


def new_id() -> str:
    return str(uuid.uuid4())


class Environment(db.Model):
    """
    Multi-tenant root: every partner organization is an Environment.

    DESIGN:
    - Environments are the tenant boundary
    - Products, locations and (transitively) sales belong to exactly one environment
    - The slug is the URL routing key and is globally unique
    """
    __tablename__ = "environments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Environment id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Membership(db.Model):
    """
    A user's role within an environment.

    A NULL environment_id marks a system-level membership (platform staff).
    """
    __tablename__ = "memberships"
    __table_args__ = (
        db.UniqueConstraint("environment_id", "user_id", name="uq_memberships_env_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    environment_id = db.Column(
        db.String(36),
        db.ForeignKey("environments.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    user_id = db.Column(db.String(64), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    environment = db.relationship(
        "Environment",
        backref=db.backref("memberships", lazy=True, cascade="all, delete-orphan"),
    )

    def __repr__(self) -> str:
        return f"<Membership user_id={self.user_id!r} env={self.environment_id} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "environment_id": self.environment_id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
        }
