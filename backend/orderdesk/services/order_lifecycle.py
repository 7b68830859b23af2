# Overview: Service-layer operations for the order lifecycle; owns Order/OrderItem and drives the ledger.

"""
Order Lifecycle Engine

================================================================================
PURPOSE: Move orders through a fixed status table and keep stock in step
================================================================================

STATE MACHINE:
    new -> in_progress -> confirmed -> picking -> shipped -> completed
    any non-terminal state -> cancelled

    completed and cancelled are terminal.

SIDE EFFECTS (applied in the same commit as the status change):
    entering picking / shipped  -> ReserveStock for every serialized item
    entering completed          -> WriteOffStock for every serialized item
    entering cancelled          -> ReleaseStock for units held by the order

RULES:
1. The adjacency table is enforced strictly (InvalidTransition otherwise).
2. A transition to the current status is a no-op: no side effects and no
   status_change entry. A differing courier_id is still applied.
3. A serialized unit that cannot be reserved is skipped, not fatal. Every
   skip is returned in TransitionResult.warnings and logged.
4. Courier changes are audited as courier_assigned, separately from
   status_change.
5. Orders are deleted only while new or cancelled; deletion never touches
   stock units.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app

from ..actor import Actor
from ..commands import AssignCourier, ReleaseStock, ReserveStock, WriteOffStock
from ..errors import AlreadySold, Conflict, InvalidTransition, NotFound, OrderDeskError, ValidationError
from ..extensions import db
from ..models import ORDER_STATUSES, Order, OrderItem, StockUnit, User
from ..time_utils import local_today, tomorrow_of
from ..validation import (
    ORDER_ITEM_POLICY,
    ORDER_POLICY,
    enforce_rules_order,
    enforce_rules_order_item,
    validate_payload,
)
from . import courier_visibility, inventory_ledger, permission_service
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number


TRANSITIONS = {
    "new": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"picking", "cancelled"}),
    "picking": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

TERMINAL_STATUSES = frozenset({"completed", "cancelled"})
DELETABLE_STATUSES = frozenset({"new", "cancelled"})
RESERVING_STATUSES = frozenset({"picking", "shipped"})
ITEMS_EDITABLE_STATUSES = frozenset({"new", "in_progress", "confirmed"})

# Distinguishes "courier_id not supplied" from an explicit unassign (None).
UNSET = object()


@dataclass
class TransitionResult:
    order: Order
    warnings: list = field(default_factory=list)
    changed: bool = True

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(include_items=True),
            "warnings": list(self.warnings),
            "changed": self.changed,
        }


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}",
            details={"status": status},
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """Same-status is allowed here; the caller treats it as a no-op."""
    validate_status(to_status)
    if from_status == to_status:
        return True
    return to_status in TRANSITIONS.get(from_status, frozenset())


# ================================================================================
# INTERNAL HELPERS
# ================================================================================

def _load_order(order_id: int, *, for_update: bool = False) -> Order:
    q = db.session.query(Order).filter_by(id=order_id)
    if for_update:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def _resolve_courier(courier_id: str | None) -> str | None:
    if courier_id is None:
        return None
    user = db.session.get(User, str(courier_id))
    if user is None or not user.is_active or user.role != "courier":
        raise ValidationError(
            "courier_id must reference an active courier",
            details={"courier_id": courier_id},
        )
    return user.id


def _build_items(items_payload) -> list[OrderItem]:
    if not isinstance(items_payload, list):
        raise ValidationError("items must be a list")

    items = []
    seen_serials = set()
    for position, raw in enumerate(items_payload):
        patch = validate_payload(model=OrderItem, payload=raw, policy=ORDER_ITEM_POLICY, partial=False)
        enforce_rules_order_item(patch)

        serial = patch.get("serial")
        if serial:
            key = (patch["product_id"], serial)
            if key in seen_serials:
                raise ValidationError(
                    "The same serial cannot appear twice in one order",
                    details={"product_id": key[0], "serial": serial},
                )
            seen_serials.add(key)

        patch.setdefault("quantity", 1)
        item = OrderItem(position=position, **patch)
        item.recalculate_amount()
        items.append(item)
    return items


def _apply_fields(order: Order, data: dict | None) -> None:
    patch = validate_payload(model=Order, payload=data or {}, policy=ORDER_POLICY, partial=True)
    enforce_rules_order(patch)

    manager_id = patch.get("manager_id")
    if manager_id and db.session.get(User, manager_id) is None:
        raise ValidationError("manager_id does not reference a user", details={"manager_id": manager_id})

    for key, value in patch.items():
        setattr(order, key, value)


def _apply_courier(order: Order, command: AssignCourier, actor: Actor) -> bool:
    """Apply a courier change to a loaded order. Returns False when unchanged."""
    courier_id = _resolve_courier(command.courier_id)
    if courier_id == order.courier_id:
        return False

    if order.status in TERMINAL_STATUSES:
        raise Conflict(
            f"Cannot change the courier of a {order.status} order",
            details={"status": order.status},
        )
    if order.delivery_status == "delivered":
        raise Conflict("Cannot reassign an order that was already delivered")

    previous = order.courier_id
    order.courier_id = courier_id
    order.delivery_status = "assigned" if courier_id else None
    order.updated_by = actor.id

    append_audit_entry(
        entity="order",
        entity_id=order.id,
        action="courier_assigned",
        user_id=actor.id,
        snapshot={"from": previous, "courier_id": courier_id},
    )
    return True


def _warning(item: OrderItem, err: OrderDeskError) -> dict:
    return {
        "product_id": item.product_id,
        "serial": item.serial,
        "code": err.code,
        "message": err.message,
    }


def _reserve_items(order: Order, actor: Actor) -> list[dict]:
    warnings = []
    for item in order.serialized_items():
        command = ReserveStock(item.product_id, item.serial, order.id, reason=f"Order {order.number}")
        try:
            inventory_ledger.apply(command, actor)
        except (NotFound, Conflict) as err:
            # Skipped on purpose; the CAS wrote nothing for this unit.
            current_app.logger.warning(
                "Reservation skipped: order=%s product=%s serial=%s reason=%s",
                order.id, item.product_id, item.serial, err.message,
            )
            warnings.append(_warning(item, err))
    return warnings


def _write_off_items(order: Order, actor: Actor) -> list[dict]:
    warnings = []
    for item in order.serialized_items():
        command = WriteOffStock(item.product_id, item.serial, order.id, reason=f"Order {order.number} completed")
        try:
            outcome = inventory_ledger.apply(command, actor)
        except Conflict as err:
            current_app.logger.warning(
                "Write-off skipped: order=%s product=%s serial=%s reason=%s",
                order.id, item.product_id, item.serial, err.message,
            )
            warnings.append(_warning(item, err))
            continue

        if outcome.changed:
            continue
        sold_for = inventory_ledger.written_off_for(item.product_id, item.serial)
        if sold_for != order.id:
            # Consumed earlier by another order (or a manual write-off).
            err = AlreadySold(f"Stock unit {item.serial!r} was already sold", details={"order_id": sold_for})
            current_app.logger.warning(
                "Write-off skipped: order=%s product=%s serial=%s already sold for order=%s",
                order.id, item.product_id, item.serial, sold_for,
            )
            warnings.append(_warning(item, err))
    return warnings


def _release_reservations(order: Order, actor: Actor) -> None:
    held = (
        db.session.query(StockUnit)
        .filter_by(order_id=order.id, status="reserved")
        .order_by(StockUnit.id)
        .all()
    )
    for unit in held:
        inventory_ledger.apply(
            ReleaseStock(unit.product_id, unit.serial, order.id, reason=f"Order {order.number} cancelled"),
            actor,
        )


# ================================================================================
# PUBLIC OPERATIONS
# ================================================================================

def create_order(data: dict | None, items: list | None, actor: Actor) -> Order:
    """
    Create an order in status "new" with a freshly allocated number.

    Raises:
        PermissionDenied: actor lacks CREATE_ORDER
        ValidationError: malformed order or item payload
    """
    permission_service.require_permission(actor, "CREATE_ORDER")

    def _op():
        order = Order(status="new", created_by=actor.id, updated_by=actor.id)
        _apply_fields(order, data)
        order.items = _build_items(items or [])
        order.recalculate_total()
        order.number = next_document_number(document_type="ORDER", prefix="ORD")

        db.session.add(order)
        db.session.flush()

        append_audit_entry(
            entity="order",
            entity_id=order.id,
            action="create",
            user_id=actor.id,
            snapshot=order.to_dict(include_items=True),
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_order(order_id: int, data: dict | None, items: list | None, actor: Actor) -> Order:
    """
    Update whitelisted order fields and optionally replace the item list.

    items=None leaves the items untouched. Replacing items is allowed only
    before any reservation could exist (new, in_progress, confirmed).

    Raises:
        NotFound, PermissionDenied, ValidationError
        Conflict: order is terminal, or items are locked by its status
    """
    permission_service.require_permission(actor, "EDIT_ORDER")

    def _op():
        order = _load_order(order_id, for_update=True)

        if order.status in TERMINAL_STATUSES:
            raise Conflict(
                f"Cannot edit a {order.status} order",
                details={"status": order.status},
            )

        _apply_fields(order, data)

        if items is not None:
            if order.status not in ITEMS_EDITABLE_STATUSES:
                raise Conflict(
                    f"Items cannot be changed once the order is {order.status}",
                    details={"status": order.status},
                )
            order.items = _build_items(items)

        order.recalculate_total()
        order.updated_by = actor.id
        db.session.flush()

        append_audit_entry(
            entity="order",
            entity_id=order.id,
            action="update",
            user_id=actor.id,
            snapshot=order.to_dict(include_items=True),
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def transition(order_id: int, target_status: str, actor: Actor, courier_id=UNSET) -> TransitionResult:
    """
    Move an order to target_status and apply the stock side effects.

    courier_id, when supplied and different from the current courier, is
    applied in the same commit and needs ASSIGN_COURIER on top of EDIT_ORDER.

    Raises:
        NotFound: unknown order
        ValidationError: target_status is not a known status
        InvalidTransition: target not reachable from the current status
        PermissionDenied: actor lacks EDIT_ORDER (or ASSIGN_COURIER)
    """
    permission_service.require_permission(actor, "EDIT_ORDER")
    validate_status(target_status)

    def _op():
        order = _load_order(order_id, for_update=True)
        from_status = order.status

        if not can_transition(from_status, target_status):
            raise InvalidTransition(
                f"Cannot move order from {from_status} to {target_status}",
                details={"from": from_status, "to": target_status},
            )

        courier_changed = False
        if courier_id is not UNSET and courier_id != order.courier_id:
            permission_service.require_permission(actor, "ASSIGN_COURIER")
            courier_changed = _apply_courier(order, AssignCourier(order.id, courier_id), actor)

        if from_status == target_status:
            if courier_changed:
                db.session.commit()
            return TransitionResult(order=order, warnings=[], changed=courier_changed)

        warnings = []
        if target_status in RESERVING_STATUSES:
            warnings = _reserve_items(order, actor)
        elif target_status == "completed":
            warnings = _write_off_items(order, actor)
        elif target_status == "cancelled":
            _release_reservations(order, actor)

        order.status = target_status
        order.updated_by = actor.id

        append_audit_entry(
            entity="order",
            entity_id=order.id,
            action="status_change",
            user_id=actor.id,
            snapshot={"from": from_status, "to": target_status},
        )
        db.session.commit()
        return TransitionResult(order=order, warnings=warnings, changed=True)

    result = run_with_retry(_op)
    if result.changed:
        current_app.logger.info(
            "Order %s now %s (user=%s, warnings=%d)",
            order_id, result.order.status, actor.id, len(result.warnings),
        )
    return result


def assign_courier(order_id: int, courier_id: str | None, actor: Actor) -> Order:
    """Change (or clear) the courier without touching status."""
    permission_service.require_permission(actor, "ASSIGN_COURIER")

    def _op():
        order = _load_order(order_id, for_update=True)
        if _apply_courier(order, AssignCourier(order.id, courier_id), actor):
            db.session.commit()
        return order

    return run_with_retry(_op)


def delete_order(order_id: int, actor: Actor) -> None:
    """
    Delete a new or cancelled order together with its items.

    Raises:
        NotFound, PermissionDenied
        Conflict: status is neither new nor cancelled
    """
    permission_service.require_permission(actor, "DELETE_ORDER")

    def _op():
        order = _load_order(order_id, for_update=True)
        if order.status not in DELETABLE_STATUSES:
            raise Conflict(
                f"Cannot delete an order that is {order.status}; only new or cancelled orders can be deleted",
                details={"status": order.status},
            )

        snapshot = order.to_dict(include_items=True)
        db.session.delete(order)
        append_audit_entry(
            entity="order",
            entity_id=order_id,
            action="delete",
            user_id=actor.id,
            snapshot=snapshot,
        )
        db.session.commit()

    run_with_retry(_op)


def get_order(order_id: int, actor: Actor, *, today: date | None = None) -> Order:
    """Couriers get NotFound for orders outside their visibility window."""
    permission_service.require_permission(actor, "VIEW_ORDERS")
    order = _load_order(order_id)
    if actor.is_courier and not courier_visibility.is_visible_to_courier(order, actor, today):
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(
    actor: Actor,
    *,
    status: str | None = None,
    courier_id: str | None = None,
    delivery_date: date | None = None,
    today: date | None = None,
    limit: int = 500,
) -> list[Order]:
    permission_service.require_permission(actor, "VIEW_ORDERS")

    q = db.session.query(Order)
    if status:
        q = q.filter(Order.status == status)
    if courier_id:
        q = q.filter(Order.courier_id == courier_id)
    if delivery_date:
        q = q.filter(Order.delivery_date == delivery_date)

    if actor.is_courier:
        # Narrow in SQL; the predicate below stays authoritative.
        day = today or local_today()
        q = q.filter(
            Order.courier_id == actor.id,
            Order.delivery_date.in_([day, tomorrow_of(day)]),
        )

    orders = q.order_by(Order.id.desc()).limit(limit).all()
    return courier_visibility.visible_orders(orders, actor, today)
