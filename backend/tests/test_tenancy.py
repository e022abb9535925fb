# Overview: Pytest coverage for environments, memberships, demo seeding and the CLI.

"""
Multi-Tenant Tests

SECURITY TESTS: Prove that access is granted only through memberships.

Test Coverage:
- Membership lookup and role checks
- Environment create/update/delete rules
- Demo environment get-or-create and seeding
- CLI commands for environments, members, demo data and cache
"""

import pytest

from reseller_ops.models import Environment, Location, Membership, Product, Sale
from reseller_ops.services import environment_service, seed_service, tenant_service
from reseller_ops.services.tenant_service import MANAGER_ROLES, MembershipError, TenantAccessError
from reseller_ops.validation import ConflictError, ValidationError


class TestTenantServiceHelpers:

    def test_member_gets_their_role(self, env_a, staff_a):
        assert tenant_service.require_environment_access(env_a, staff_a) == "reseller_staff"

    def test_wrong_role_raises_membership_error(self, env_a, staff_a):
        with pytest.raises(MembershipError):
            tenant_service.require_environment_access(env_a, staff_a, MANAGER_ROLES)

    def test_non_member_sees_not_found(self, env_a, manager_b):
        with pytest.raises(TenantAccessError):
            tenant_service.require_environment_access(env_a, manager_b)

    def test_system_admin_passes_every_check(self, env_a, system_admin):
        assert tenant_service.is_system_admin(system_admin) is True
        assert tenant_service.require_environment_access(env_a, system_admin, MANAGER_ROLES) == "grady_admin"

    def test_environment_member_is_not_system_admin(self, manager_a):
        assert tenant_service.is_system_admin(manager_a) is False

    def test_unknown_slug(self, db_session):
        with pytest.raises(TenantAccessError):
            tenant_service.get_environment_by_slug("missing")

    def test_demo_slug_is_created_once(self, db_session):
        first = tenant_service.get_environment_by_slug("demo")
        second = tenant_service.get_environment_by_slug("demo")

        assert first.id == second.id
        assert tenant_service.is_demo_environment(first)
        assert db_session.query(Environment).filter_by(slug="demo").count() == 1

    def test_user_environments(self, env_a, env_b, manager_a, system_admin):
        assert [e.slug for e in tenant_service.get_user_environments(manager_a)] == ["acme"]
        assert [e.slug for e in tenant_service.get_user_environments(system_admin)] == ["acme", "beta"]
        assert tenant_service.get_user_environments("nobody") == []


class TestEnvironmentService:

    def test_create_gives_creator_manager_role(self, db_session, system_admin):
        created = environment_service.create_environment(
            payload={"name": "Vintage Finds", "slug": "vintage-finds"}, user_id=system_admin
        )

        membership = tenant_service.get_membership(created["id"], system_admin)
        assert membership.role == "reseller_manager"

    def test_create_requires_system_admin(self, manager_a):
        with pytest.raises(MembershipError):
            environment_service.create_environment(payload={"name": "X", "slug": "x"}, user_id=manager_a)

    @pytest.mark.parametrize("payload", [
        {"name": "No slug"},
        {"name": "Upper", "slug": "Upper"},
        {"name": "Spaces", "slug": "two words"},
    ])
    def test_create_validation(self, system_admin, payload):
        with pytest.raises(ValidationError):
            environment_service.create_environment(payload=payload, user_id=system_admin)

    def test_duplicate_slug(self, env_a, system_admin):
        with pytest.raises(ConflictError):
            environment_service.create_environment(payload={"name": "Again", "slug": "acme"}, user_id=system_admin)

    def test_update_slug_conflict(self, env_a, env_b):
        with pytest.raises(ConflictError):
            environment_service.update_environment(env_a, payload={"slug": "beta"})

        updated = environment_service.update_environment(env_a, payload={"description": "Flagship"})
        assert updated["description"] == "Flagship"

    def test_delete_cascades(self, db_session, env_a, manager_a, location_a, make_product, system_admin):
        from datetime import datetime

        make_product(env_a, location=location_a, sales=[(datetime(2024, 1, 2), 10.0)])

        environment_service.delete_environment(env_a, user_id=system_admin)

        assert db_session.query(Environment).filter_by(slug="acme").count() == 0
        assert db_session.query(Product).count() == 0
        assert db_session.query(Sale).count() == 0
        assert db_session.query(Location).count() == 0
        assert db_session.query(Membership).filter_by(user_id=manager_a).count() == 0

    def test_add_member_updates_existing_role(self, env_a, staff_a):
        environment_service.add_member(environment_id=env_a.id, user_id=staff_a, role="reseller_manager")

        assert tenant_service.get_membership(env_a.id, staff_a).role == "reseller_manager"
        assert len(environment_service.list_members(env_a.id)) == 1

    def test_add_member_rejects_unknown_role(self, env_a):
        with pytest.raises(ValidationError):
            environment_service.add_member(environment_id=env_a.id, user_id="carol", role="owner")


class TestDemoSeed:

    def test_seed_is_idempotent(self, db_session):
        first = seed_service.seed_demo_data()
        second = seed_service.seed_demo_data()

        assert first["skipped"] is False
        assert first["products"] == 7
        assert second["skipped"] is True
        assert db_session.query(Product).count() == 7
        assert db_session.query(Sale).count() == 2

        sold = db_session.query(Product).filter_by(status="sold").all()
        assert all(p.sold_at is not None and p.sold_price is not None for p in sold)


class TestCli:

    def test_envs_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["envs", "create", "--name", "Acme Resale", "--slug", "acme",
                                     "--admin-user", "alice"])
        assert "PASS Created environment" in result.output

        env = db_session.query(Environment).filter_by(slug="acme").one()
        assert tenant_service.get_membership(env.id, "alice").role == "reseller_manager"

        result = runner.invoke(args=["envs", "list"])
        assert "acme" in result.output

    def test_envs_create_duplicate(self, app, env_a):
        result = app.test_cli_runner().invoke(args=["envs", "create", "--name", "Dup", "--slug", "acme"])
        assert "already exists" in result.output

    def test_add_system_member(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["envs", "add-member", "--user-id", "root", "--role", "grady_admin"]
        )
        assert "root -> grady_admin (system)" in result.output
        assert tenant_service.is_system_admin("root")

    def test_add_member_unknown_environment(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["envs", "add-member", "--slug", "missing", "--user-id", "carol", "--role", "reseller_staff"]
        )
        assert "not found" in result.output

    def test_demo_seed_and_cache_stats(self, app, db_session):
        runner = app.test_cli_runner()

        assert "Seeded demo environment" in runner.invoke(args=["demo", "seed"]).output
        assert "skipping" in runner.invoke(args=["demo", "seed"]).output
        assert "Hit rate" in runner.invoke(args=["cache", "stats"]).output
