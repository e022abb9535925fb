"""
Pytest fixtures for reseller-ops backend tests.

Provides test database setup, tenant fixtures, and test client.
"""

from datetime import datetime

import pytest
from reseller_ops import create_app
from reseller_ops.extensions import db, init_cache
from reseller_ops.models import Environment, Membership, Location, Product, Sale


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database (and a fresh cache store) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        init_cache(app)

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def env_a(db_session):
    """Create Environment A (first tenant)."""
    env = Environment(name="Env A - Acme Resale", slug="acme")
    db_session.add(env)
    db_session.commit()
    return env


@pytest.fixture(scope='function')
def env_b(db_session):
    """Create Environment B (second tenant)."""
    env = Environment(name="Env B - Beta Resale", slug="beta")
    db_session.add(env)
    db_session.commit()
    return env


def _member(db_session, environment_id, user_id, role):
    membership = Membership(environment_id=environment_id, user_id=user_id, role=role)
    db_session.add(membership)
    db_session.commit()
    return user_id


@pytest.fixture(scope='function')
def manager_a(db_session, env_a):
    """User id of a reseller_manager in Environment A."""
    return _member(db_session, env_a.id, "alice", "reseller_manager")


@pytest.fixture(scope='function')
def staff_a(db_session, env_a):
    """User id of a reseller_staff member in Environment A."""
    return _member(db_session, env_a.id, "sam", "reseller_staff")


@pytest.fixture(scope='function')
def manager_b(db_session, env_b):
    """User id of a reseller_manager in Environment B."""
    return _member(db_session, env_b.id, "bob", "reseller_manager")


@pytest.fixture(scope='function')
def system_admin(db_session):
    """User id with a system-level grady_admin membership."""
    return _member(db_session, None, "root", "grady_admin")


@pytest.fixture(scope='function')
def location_a(db_session, env_a):
    """Create a Location in Environment A."""
    location = Location(environment_id=env_a.id, name="Main Warehouse")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create a product (optionally with sales) directly in the database."""
    def _make(environment, *, title="Product", status="taken", created_at=None,
              selling_price=None, sales=(), location=None):
        product = Product(
            environment_id=environment.id,
            location_id=location.id if location else None,
            title=title,
            status=status,
            selling_price=selling_price,
            created_at=created_at or datetime(2024, 1, 1),
        )
        db_session.add(product)
        db_session.flush()
        for sale_date, amount in sales:
            db_session.add(Sale(product_id=product.id, sale_price=amount, sale_date=sale_date))
        db_session.commit()
        return product
    return _make


def auth_headers(user_id: str) -> dict:
    """Helper to create identity headers for a user."""
    return {'X-User-Id': user_id}


@pytest.fixture(scope='function')
def manager_headers(manager_a):
    return auth_headers(manager_a)


@pytest.fixture(scope='function')
def staff_headers(staff_a):
    return auth_headers(staff_a)


@pytest.fixture(scope='function')
def outsider_headers(manager_b):
    """Headers for a manager of Environment B (no access to A)."""
    return auth_headers(manager_b)


@pytest.fixture(scope='function')
def admin_headers(system_admin):
    return auth_headers(system_admin)
