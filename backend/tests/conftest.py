"""
Pytest fixtures for OrderDesk backend tests.

Provides test database setup, one user per role, actors, auth headers
and a few order/stock builders.
"""

from datetime import timedelta

import pytest

from orderdesk import create_app
from orderdesk.actor import Actor
from orderdesk.extensions import db
from orderdesk.services import inventory_ledger, order_lifecycle
from orderdesk.services.auth_service import create_user
from orderdesk.time_utils import local_today


PASSWORD = "Password123"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'LOG_LEVEL': 'DEBUG',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def users(db_session):
    """One active user per role, plus a second courier."""
    created = {}
    for username, role in [
        ("admin", "admin"),
        ("manager", "sales_manager"),
        ("warehouse", "warehouse"),
        ("accountant", "accountant"),
        ("courier", "courier"),
        ("courier2", "courier"),
    ]:
        created[username] = create_user(username=username, password=PASSWORD, role=role, name=username.title())
    return created


@pytest.fixture
def admin(users):
    return Actor.from_user(users["admin"])


@pytest.fixture
def manager(users):
    return Actor.from_user(users["manager"])


@pytest.fixture
def warehouse(users):
    return Actor.from_user(users["warehouse"])


@pytest.fixture
def accountant(users):
    return Actor.from_user(users["accountant"])


@pytest.fixture
def courier(users):
    return Actor.from_user(users["courier"])


@pytest.fixture
def other_courier(users):
    return Actor.from_user(users["courier2"])


@pytest.fixture
def today():
    return local_today()


@pytest.fixture
def tomorrow(today):
    return today + timedelta(days=1)


# =============================================================================
# BUILDERS
# =============================================================================


@pytest.fixture
def arrive_units(warehouse):
    """arrive_units(product_id, *serials) -> list[StockUnit]"""
    def _arrive(product_id, *serials, **attrs):
        return [inventory_ledger.arrive(product_id, serial, dict(attrs), warehouse) for serial in serials]
    return _arrive


@pytest.fixture
def make_order(manager):
    """make_order(serials=[(product_id, serial), ...], **fields) -> Order"""
    def _make(serials=(), extra_items=(), **fields):
        items = [
            {"product_id": product_id, "serial": serial, "quantity": 1, "price_cents": 10000}
            for product_id, serial in serials
        ]
        items.extend(extra_items)
        return order_lifecycle.create_order(fields, items, manager)
    return _make


@pytest.fixture
def advance(manager):
    """advance(order, "picking") walks the lifecycle table up to the target."""
    path = ["new", "in_progress", "confirmed", "picking", "shipped", "completed"]

    def _advance(order, target, **kwargs):
        result = None
        start = path.index(order.status)
        for status in path[start + 1:path.index(target) + 1]:
            result = order_lifecycle.transition(order.id, status, manager, **kwargs)
        return result
    return _advance


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def headers_for(client, users):
    """headers_for("courier") -> Authorization headers for that user."""
    def _headers(username):
        return auth_headers(get_auth_token(client, username))
    return _headers
