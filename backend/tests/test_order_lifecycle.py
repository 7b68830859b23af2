"""
Order lifecycle tests.

Verifies:
- Strict adjacency table, idempotent same-status transitions
- Reservation on picking/shipped, write-off on completed, release on cancel
- Skipped reservations surface as warnings
- Courier assignment auditing
- Deletion only for new/cancelled orders
- total_cents invariant
"""

import pytest

from orderdesk.errors import Conflict, InvalidTransition, NotFound, PermissionDenied, ValidationError
from orderdesk.models import AuditEntry, Order, OrderItem, StockMovement, StockUnit
from orderdesk.services import inventory_ledger, order_lifecycle


def _unit(db_session, serial):
    db_session.expire_all()
    return db_session.query(StockUnit).filter_by(serial=serial).one()


def _audit_actions(db_session, order_id):
    return [
        e.action for e in db_session.query(AuditEntry)
        .filter_by(entity="order", entity_id=str(order_id))
        .order_by(AuditEntry.id)
    ]


# =============================================================================
# CREATE / UPDATE
# =============================================================================


class TestCreateAndUpdate:

    def test_create_order_starts_new_with_number_and_total(self, db_session, manager):
        order = order_lifecycle.create_order(
            {"customer_name": "Ann", "discount_cents": 500, "delivery_cost_cents": 300},
            [
                {"product_id": 1, "quantity": 2, "price_cents": 1000, "discount_cents": 100},
                {"product_id": 2, "quantity": 1, "price_cents": 2500, "serial": "SN-1"},
            ],
            manager,
        )

        assert order.status == "new"
        assert order.number == "ORD-000001"
        assert [i.amount_cents for i in order.items] == [1900, 2500]
        assert order.total_cents == 1900 + 2500 - 500 + 300
        assert _audit_actions(db_session, order.id) == ["create"]

    def test_order_numbers_increase(self, db_session, make_order):
        first = make_order()
        second = make_order()
        assert (first.number, second.number) == ("ORD-000001", "ORD-000002")

    @pytest.mark.parametrize("field", ["status", "total_cents", "number", "courier_id", "delivered_at"])
    def test_protected_fields_rejected(self, db_session, manager, field):
        with pytest.raises(ValidationError):
            order_lifecycle.create_order({field: "x"}, [], manager)

    def test_serialized_item_requires_quantity_one(self, db_session, manager):
        with pytest.raises(ValidationError):
            order_lifecycle.create_order({}, [{"product_id": 1, "serial": "SN-1", "quantity": 2}], manager)

    @pytest.mark.parametrize("raw,expected", [("false", False), ("True", True), (0, False), (True, True)])
    def test_accessory_flag_coercion(self, db_session, manager, raw, expected):
        order = order_lifecycle.create_order({}, [{"product_id": 1, "is_accessory": raw}], manager)
        assert order.items[0].is_accessory is expected

    @pytest.mark.parametrize("raw", ["maybe", "yes", 2])
    def test_accessory_flag_rejects_non_boolean(self, db_session, manager, raw):
        with pytest.raises(ValidationError):
            order_lifecycle.create_order({}, [{"product_id": 1, "is_accessory": raw}], manager)

    def test_update_replaces_items_and_recomputes_total(self, db_session, make_order, manager):
        order = make_order(extra_items=[{"product_id": 1, "quantity": 1, "price_cents": 1000}])

        updated = order_lifecycle.update_order(
            order.id,
            {"delivery_cost_cents": 200},
            [{"product_id": 3, "quantity": 3, "price_cents": 700}],
            manager,
        )

        assert [i.product_id for i in updated.items] == [3]
        assert updated.total_cents == 2100 + 200
        assert db_session.query(OrderItem).count() == 1
        assert _audit_actions(db_session, order.id) == ["create", "update"]

    def test_items_locked_after_picking(self, db_session, make_order, advance, manager):
        order = make_order()
        advance(order, "picking")

        with pytest.raises(Conflict):
            order_lifecycle.update_order(order.id, {}, [{"product_id": 1}], manager)

        updated = order_lifecycle.update_order(order.id, {"comment": "call first"}, None, manager)
        assert updated.comment == "call first"

    def test_terminal_order_cannot_be_edited(self, db_session, make_order, manager):
        order = make_order()
        order_lifecycle.transition(order.id, "cancelled", manager)

        with pytest.raises(Conflict):
            order_lifecycle.update_order(order.id, {"comment": "late"}, None, manager)

    def test_courier_cannot_create_orders(self, db_session, courier):
        with pytest.raises(PermissionDenied):
            order_lifecycle.create_order({}, [], courier)


# =============================================================================
# TRANSITION TABLE
# =============================================================================


class TestTransitionTable:

    def test_full_happy_path_writes_status_changes(self, db_session, make_order, advance):
        order = make_order()
        advance(order, "completed")

        entries = (
            db_session.query(AuditEntry)
            .filter_by(entity_id=str(order.id), action="status_change")
            .order_by(AuditEntry.id)
            .all()
        )
        assert [(e.snapshot["from"], e.snapshot["to"]) for e in entries] == [
            ("new", "in_progress"),
            ("in_progress", "confirmed"),
            ("confirmed", "picking"),
            ("picking", "shipped"),
            ("shipped", "completed"),
        ]

    @pytest.mark.parametrize("target", ["confirmed", "picking", "shipped", "completed"])
    def test_cannot_skip_states(self, db_session, make_order, manager, target):
        order = make_order()
        with pytest.raises(InvalidTransition):
            order_lifecycle.transition(order.id, target, manager)

    def test_cannot_go_backwards(self, db_session, make_order, advance, manager):
        order = make_order()
        advance(order, "confirmed")
        with pytest.raises(InvalidTransition):
            order_lifecycle.transition(order.id, "in_progress", manager)

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    def test_terminal_states_have_no_exits(self, db_session, make_order, advance, manager, terminal):
        order = make_order()
        if terminal == "completed":
            advance(order, "completed")
        else:
            order_lifecycle.transition(order.id, "cancelled", manager)

        with pytest.raises(InvalidTransition):
            order_lifecycle.transition(order.id, "cancelled" if terminal == "completed" else "new", manager)

    def test_unknown_status_is_validation_error(self, db_session, make_order, manager):
        order = make_order()
        with pytest.raises(ValidationError):
            order_lifecycle.transition(order.id, "ready", manager)

    def test_unknown_order(self, db_session, manager):
        with pytest.raises(NotFound):
            order_lifecycle.transition(999, "in_progress", manager)

    def test_same_status_is_noop(self, db_session, make_order, advance, manager):
        order = make_order()
        advance(order, "confirmed")
        before = _audit_actions(db_session, order.id)

        result = order_lifecycle.transition(order.id, "confirmed", manager)

        assert result.changed is False
        assert result.order.status == "confirmed"
        assert _audit_actions(db_session, order.id) == before

    def test_courier_cannot_transition(self, db_session, make_order, courier):
        order = make_order()
        with pytest.raises(PermissionDenied):
            order_lifecycle.transition(order.id, "in_progress", courier)


# =============================================================================
# STOCK SIDE EFFECTS
# =============================================================================


class TestStockSideEffects:

    @pytest.mark.parametrize("target", ["picking", "shipped"])
    def test_entering_reserving_state_reserves_serials(self, db_session, arrive_units, make_order, advance, target):
        arrive_units(10, "SN-1", "SN-2")
        order = make_order(serials=[(10, "SN-1"), (10, "SN-2")], extra_items=[{"product_id": 99}])

        result = advance(order, target)

        assert result.warnings == []
        for serial in ("SN-1", "SN-2"):
            unit = _unit(db_session, serial)
            assert unit.status == "reserved"
            assert unit.order_id == order.id
        reserves = db_session.query(StockMovement).filter_by(type="reserve", order_id=order.id).count()
        assert reserves == 2

    def test_shipped_after_picking_does_not_duplicate_reserve(self, db_session, arrive_units, make_order, advance):
        arrive_units(10, "SN-1")
        order = make_order(serials=[(10, "SN-1")])

        advance(order, "shipped")

        assert db_session.query(StockMovement).filter_by(type="reserve", serial="SN-1").count() == 1

    def test_unavailable_unit_skipped_with_warning(self, db_session, arrive_units, make_order, advance):
        arrive_units(10, "SN-1", "SN-2")
        holder = make_order(serials=[(10, "SN-1")])
        advance(holder, "picking")

        order = make_order(serials=[(10, "SN-1"), (10, "SN-2"), (10, "MISSING")])
        result = advance(order, "picking")

        assert result.order.status == "picking"
        assert {(w["serial"], w["code"]) for w in result.warnings} == {
            ("SN-1", "reservation_conflict"),
            ("MISSING", "not_found"),
        }
        assert _unit(db_session, "SN-1").order_id == holder.id
        assert _unit(db_session, "SN-2").order_id == order.id

    def test_completed_writes_off_every_serial(self, db_session, arrive_units, make_order, advance):
        arrive_units(10, "SN-1", "SN-2", "SN-3")
        holder = make_order(serials=[(10, "SN-3")])
        advance(holder, "picking")

        order = make_order(serials=[(10, "SN-1"), (10, "SN-2"), (10, "SN-3")])
        result = advance(order, "completed")

        assert result.order.status == "completed"
        for serial in ("SN-1", "SN-2", "SN-3"):
            unit = _unit(db_session, serial)
            assert unit.status == "sold"
            assert unit.order_id is None
        writeoffs = db_session.query(StockMovement).filter_by(type="writeoff", order_id=order.id).all()
        assert sorted(m.serial for m in writeoffs) == ["SN-1", "SN-2", "SN-3"]

    def test_completed_skips_missing_unit(self, db_session, arrive_units, make_order, advance):
        arrive_units(10, "SN-1")
        order = make_order(serials=[(10, "SN-1"), (10, "GONE")])

        result = advance(order, "completed")

        assert result.order.status == "completed"
        assert [w["serial"] for w in result.warnings if w["code"] == "conflict"] == ["GONE"]

    def test_completing_unit_sold_by_other_order_warns(self, db_session, arrive_units, make_order, advance):
        arrive_units(10, "SN-1")
        first = make_order(serials=[(10, "SN-1")])
        second = make_order(serials=[(10, "SN-1")])
        advance(first, "completed")
        advance(second, "shipped")

        result = advance(second, "completed")

        assert result.order.status == "completed"
        (warning,) = result.warnings
        assert (warning["serial"], warning["code"]) == ("SN-1", "already_sold")
        writeoffs = db_session.query(StockMovement).filter_by(type="writeoff", serial="SN-1").all()
        assert [m.order_id for m in writeoffs] == [first.id]

    def test_completing_after_manual_write_off_warns(self, db_session, arrive_units, make_order, advance, admin):
        arrive_units(10, "SN-1")
        order = make_order(serials=[(10, "SN-1")])
        advance(order, "shipped")
        inventory_ledger.write_off(10, "SN-1", admin)

        result = advance(order, "completed")

        assert [w["code"] for w in result.warnings] == ["already_sold"]

    def test_cancel_releases_reservations(self, db_session, arrive_units, make_order, advance, manager):
        arrive_units(10, "SN-1")
        order = make_order(serials=[(10, "SN-1")])
        advance(order, "picking")

        order_lifecycle.transition(order.id, "cancelled", manager)

        unit = _unit(db_session, "SN-1")
        assert unit.status == "available"
        assert unit.order_id is None
        assert db_session.query(StockMovement).filter_by(type="release", serial="SN-1").count() == 1

    def test_cancel_leaves_other_orders_units_alone(self, db_session, arrive_units, make_order, advance, manager):
        arrive_units(10, "SN-1")
        holder = make_order(serials=[(10, "SN-1")])
        advance(holder, "picking")
        order = make_order(serials=[(10, "SN-1")])
        advance(order, "picking")

        order_lifecycle.transition(order.id, "cancelled", manager)

        assert _unit(db_session, "SN-1").order_id == holder.id


# =============================================================================
# COURIER ASSIGNMENT
# =============================================================================


class TestCourierAssignment:

    def test_transition_with_courier_audits_both(self, db_session, make_order, advance, manager, courier):
        order = make_order()
        advance(order, "confirmed")

        result = order_lifecycle.transition(order.id, "picking", manager, courier_id=courier.id)

        assert result.order.courier_id == courier.id
        assert result.order.delivery_status == "assigned"
        actions = _audit_actions(db_session, order.id)
        assert actions[-2:] == ["courier_assigned", "status_change"]

    def test_same_status_with_new_courier_only_audits_courier(self, db_session, make_order, advance, manager, courier):
        order = make_order()
        advance(order, "confirmed")
        before = _audit_actions(db_session, order.id)

        result = order_lifecycle.transition(order.id, "confirmed", manager, courier_id=courier.id)

        assert result.changed is True
        assert _audit_actions(db_session, order.id) == before + ["courier_assigned"]

    def test_unchanged_courier_not_audited(self, db_session, make_order, manager, courier):
        order = make_order()
        order_lifecycle.assign_courier(order.id, courier.id, manager)
        order_lifecycle.assign_courier(order.id, courier.id, manager)

        assert _audit_actions(db_session, order.id).count("courier_assigned") == 1

    def test_reassignment_resets_delivery_status(self, db_session, make_order, manager, courier, other_courier):
        order = make_order()
        order_lifecycle.assign_courier(order.id, courier.id, manager)
        db_session.query(Order).filter_by(id=order.id).update({"delivery_status": "failed"})
        db_session.commit()

        updated = order_lifecycle.assign_courier(order.id, other_courier.id, manager)

        assert updated.courier_id == other_courier.id
        assert updated.delivery_status == "assigned"

    def test_unassign_clears_delivery_status(self, db_session, make_order, manager, courier):
        order = make_order()
        order_lifecycle.assign_courier(order.id, courier.id, manager)

        updated = order_lifecycle.assign_courier(order.id, None, manager)

        assert updated.courier_id is None
        assert updated.delivery_status is None

    def test_non_courier_user_rejected(self, db_session, make_order, manager):
        order = make_order()
        with pytest.raises(ValidationError):
            order_lifecycle.assign_courier(order.id, manager.id, manager)

    def test_warehouse_cannot_assign(self, db_session, make_order, warehouse, courier):
        order = make_order()
        with pytest.raises(PermissionDenied):
            order_lifecycle.assign_courier(order.id, courier.id, warehouse)


# =============================================================================
# DELETE
# =============================================================================


class TestDelete:

    @pytest.mark.parametrize("status,deletable", [
        ("new", True),
        ("in_progress", False),
        ("confirmed", False),
        ("picking", False),
        ("shipped", False),
        ("completed", False),
        ("cancelled", True),
    ])
    def test_delete_only_new_or_cancelled(self, db_session, make_order, advance, manager, admin, status, deletable):
        order = make_order(extra_items=[{"product_id": 1}])
        order_id = order.id
        if status == "cancelled":
            order_lifecycle.transition(order_id, "cancelled", manager)
        elif status != "new":
            advance(order, status)

        if deletable:
            order_lifecycle.delete_order(order_id, admin)
            assert db_session.get(Order, order_id) is None
            assert db_session.query(OrderItem).filter_by(order_id=order_id).count() == 0
            assert _audit_actions(db_session, order_id)[-1] == "delete"
        else:
            with pytest.raises(Conflict):
                order_lifecycle.delete_order(order_id, admin)
            assert db_session.get(Order, order_id) is not None

    def test_delete_does_not_touch_stock(self, db_session, arrive_units, make_order, admin):
        arrive_units(10, "SN-1")
        order = make_order(serials=[(10, "SN-1")])
        moves_before = db_session.query(StockMovement).count()

        order_lifecycle.delete_order(order.id, admin)

        assert _unit(db_session, "SN-1").status == "available"
        assert db_session.query(StockMovement).count() == moves_before

    def test_manager_cannot_delete(self, db_session, make_order, manager):
        order = make_order()
        with pytest.raises(PermissionDenied):
            order_lifecycle.delete_order(order.id, manager)


def test_reserve_via_ledger_then_complete_is_idempotent(db_session, arrive_units, make_order, advance, admin):
    arrive_units(10, "SN-1")
    order = make_order(serials=[(10, "SN-1")])
    advance(order, "shipped")
    inventory_ledger.write_off(10, "SN-1", admin, order_id=order.id)

    result = advance(order, "completed")

    assert result.warnings == []
    assert db_session.query(StockMovement).filter_by(type="writeoff", serial="SN-1").count() == 1
