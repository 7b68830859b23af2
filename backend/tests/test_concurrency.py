"""
Concurrency tests for stock reservation.

Uses a file-backed SQLite database so each thread gets its own connection,
the same way two API workers would.
"""

import threading

import pytest

from orderdesk import create_app
from orderdesk.actor import Actor
from orderdesk.errors import ReservationConflict
from orderdesk.extensions import db
from orderdesk.models import StockMovement, StockUnit
from orderdesk.services import inventory_ledger, order_lifecycle
from orderdesk.services.auth_service import create_user


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 15}},
        'BCRYPT_ROUNDS': 4,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def race_setup(file_app):
    with file_app.app_context():
        admin = Actor.from_user(create_user(username="admin", password="Password123", role="admin", name="Admin"))
        inventory_ledger.arrive(10, "SN-RACE", {}, admin)
        order_ids = [order_lifecycle.create_order({"customer_name": name}, [], admin).id for name in ("A", "B")]
    return admin, order_ids


def _reserve_concurrently(app, admin, order_ids):
    barrier = threading.Barrier(len(order_ids))
    results = {}

    def worker(order_id):
        with app.app_context():
            barrier.wait(timeout=10)
            try:
                inventory_ledger.reserve(10, "SN-RACE", order_id, admin)
                results[order_id] = "reserved"
            except ReservationConflict:
                results[order_id] = "conflict"
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(order_id,)) for order_id in order_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def test_exactly_one_concurrent_reservation_wins(file_app, race_setup):
    admin, order_ids = race_setup

    results = _reserve_concurrently(file_app, admin, order_ids)

    assert sorted(results.values()) == ["conflict", "reserved"]
    (winner,) = [order_id for order_id, outcome in results.items() if outcome == "reserved"]

    with file_app.app_context():
        unit = db.session.query(StockUnit).filter_by(serial="SN-RACE").one()
        assert unit.status == "reserved"
        assert unit.order_id == winner

        reserves = db.session.query(StockMovement).filter_by(serial="SN-RACE", type="reserve").all()
        assert [m.order_id for m in reserves] == [winner]
