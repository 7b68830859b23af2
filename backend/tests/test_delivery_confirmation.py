"""
Delivery confirmation workflow tests.

Verifies:
- Only the assigned courier can move the delivery sub-status
- delivered requires recipient name and photo, nothing persisted otherwise
- Replays of the same confirmation are no-ops
- Terminal delivery states cannot be left
"""

from datetime import datetime

import pytest

from orderdesk.commands import ConfirmDelivery
from orderdesk.errors import Conflict, InvalidTransition, PermissionDenied, ValidationError
from orderdesk.models import AuditEntry
from orderdesk.services import order_lifecycle
from orderdesk.services.delivery_service import update_delivery_status


DELIVERED_AT = datetime(2026, 3, 14, 15, 30, 0)


@pytest.fixture
def dispatched(db_session, make_order, advance, courier, today):
    """A shipped order assigned to `courier`, due today."""
    order = make_order(delivery_date=today.isoformat(), customer_name="Ann")
    advance(order, "shipped", courier_id=courier.id)
    return order


def _delivered(order_id, **overrides):
    fields = {
        "recipient_name": "Ann",
        "proof_photo_url": "https://files.example/proof/1.jpg",
        "lat": 55.75,
        "lng": 37.61,
        "occurred_at": DELIVERED_AT,
    }
    fields.update(overrides)
    return ConfirmDelivery(order_id=order_id, delivery_status="delivered", **fields)


def _delivery_audits(db_session, order_id):
    return (
        db_session.query(AuditEntry)
        .filter_by(entity_id=str(order_id), action="delivery_status_change")
        .order_by(AuditEntry.id)
        .all()
    )


class TestHappyPath:

    def test_en_route_then_delivered(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        order = update_delivery_status(dispatched.id, _delivered(dispatched.id), courier)

        assert order.delivery_status == "delivered"
        assert order.recipient_name == "Ann"
        assert order.proof_photo_url.endswith("1.jpg")
        assert order.delivered_at == DELIVERED_AT
        assert (order.delivered_lat, order.delivered_lng) == (55.75, 37.61)
        # Primary status is independent of the delivery sub-status
        assert order.status == "shipped"

        audits = _delivery_audits(db_session, dispatched.id)
        assert [(a.snapshot["from"], a.snapshot["to"]) for a in audits] == [
            ("assigned", "en_route"),
            ("en_route", "delivered"),
        ]
        assert all(a.snapshot["courier"] == courier.id for a in audits)

    def test_missing_location_is_tolerated(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        order = update_delivery_status(dispatched.id, _delivered(dispatched.id, lat=None, lng=None), courier)

        assert order.delivery_status == "delivered"
        assert order.delivered_lat is None

    def test_delivered_at_defaults_to_server_time(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        order = update_delivery_status(dispatched.id, _delivered(dispatched.id, occurred_at=None), courier)
        assert order.delivered_at is not None

    def test_failed_needs_no_proof(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        order = update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "failed"), courier)

        assert order.delivery_status == "failed"
        assert order.delivered_at is None


class TestProofRequired:

    @pytest.mark.parametrize("overrides", [
        {"recipient_name": ""},
        {"recipient_name": "   "},
        {"recipient_name": None},
        {"proof_photo_url": None},
    ])
    def test_delivered_without_proof_rejected(self, db_session, dispatched, courier, overrides):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)

        with pytest.raises(ValidationError):
            update_delivery_status(dispatched.id, _delivered(dispatched.id, **overrides), courier)

        db_session.expire_all()
        order = order_lifecycle.get_order(dispatched.id, courier)
        assert order.delivery_status == "en_route"
        assert order.delivered_at is None
        assert len(_delivery_audits(db_session, dispatched.id)) == 1


class TestAuthorization:

    def test_other_courier_rejected(self, db_session, dispatched, other_courier):
        with pytest.raises(PermissionDenied):
            update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), other_courier)

    def test_manager_cannot_confirm(self, db_session, dispatched, manager):
        with pytest.raises(PermissionDenied):
            update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), manager)

    def test_undeliverable_order_status(self, db_session, make_order, manager, courier):
        order = make_order()
        order_lifecycle.assign_courier(order.id, courier.id, manager)

        with pytest.raises(Conflict):
            update_delivery_status(order.id, ConfirmDelivery(order.id, "en_route"), courier)


class TestStateMachine:

    def test_cannot_deliver_before_en_route(self, db_session, dispatched, courier):
        with pytest.raises(InvalidTransition):
            update_delivery_status(dispatched.id, _delivered(dispatched.id), courier)

    def test_unknown_delivery_status(self, db_session, dispatched, courier):
        with pytest.raises(ValidationError):
            update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "lost"), courier)

    def test_terminal_state_cannot_be_left(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "failed"), courier)

        with pytest.raises(Conflict):
            update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)

    def test_replayed_delivery_is_noop(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        first = update_delivery_status(dispatched.id, _delivered(dispatched.id), courier).to_dict()

        second = update_delivery_status(dispatched.id, _delivered(dispatched.id), courier).to_dict()

        assert second == first
        audits = _delivery_audits(db_session, dispatched.id)
        assert [a.snapshot["to"] for a in audits].count("delivered") == 1

    def test_redelivery_with_different_proof_conflicts(self, db_session, dispatched, courier):
        update_delivery_status(dispatched.id, ConfirmDelivery(dispatched.id, "en_route"), courier)
        update_delivery_status(dispatched.id, _delivered(dispatched.id), courier)

        with pytest.raises(Conflict):
            update_delivery_status(dispatched.id, _delivered(dispatched.id, recipient_name="Bob"), courier)


class TestRequestBody:

    def test_from_request_body_parses_and_trims(self):
        command = ConfirmDelivery.from_request_body(7, {
            "delivery_status": "delivered",
            "recipient_name": "  Ann ",
            "proof_photo_url": "https://files.example/p.jpg",
            "lat": "55.7",
            "occurred_at": "2026-03-14T15:30:00Z",
        })

        assert command.order_id == 7
        assert command.recipient_name == "Ann"
        assert command.lat == 55.7
        assert command.lng is None
        assert command.occurred_at == DELIVERED_AT

    @pytest.mark.parametrize("body", [
        {},
        {"delivery_status": "delivered", "lat": "north"},
        {"delivery_status": "delivered", "occurred_at": "yesterday"},
    ])
    def test_malformed_body(self, body):
        with pytest.raises(ValidationError):
            ConfirmDelivery.from_request_body(7, body)
