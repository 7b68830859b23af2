# Overview: Courier-driven delivery sub-status and proof of delivery.

"""
Delivery Confirmation Workflow

STATE MACHINE (order.delivery_status, independent of order.status):
    assigned -> en_route -> delivered
                         -> failed

    NULL is read as "assigned". delivered and failed are terminal.

RULES:
1. Only the courier the order is assigned to may change it.
2. The order itself must be in a deliverable status.
3. delivered needs recipient_name and proof_photo_url in the same command;
   otherwise ValidationError and nothing is written.
4. delivered_at comes from the command's occurred_at (device time) when
   present, so a replay stamps the same value.
5. Re-applying the current state with the same proof is a no-op (no audit
   entry, no re-stamp). The offline queue relies on this for at-least-once
   replay.
"""

from __future__ import annotations

from ..actor import Actor
from ..commands import ConfirmDelivery
from ..errors import Conflict, InvalidTransition, NotFound, PermissionDenied, ValidationError
from ..extensions import db
from ..models import DELIVERY_STATUSES, Order
from ..time_utils import utcnow
from . import permission_service
from .audit_service import append_audit_entry
from .concurrency import lock_for_update, run_with_retry
from .courier_visibility import DELIVERABLE_STATUSES


DELIVERY_TRANSITIONS = {
    "assigned": frozenset({"en_route"}),
    "en_route": frozenset({"delivered", "failed"}),
    "delivered": frozenset(),
    "failed": frozenset(),
}

TERMINAL_DELIVERY_STATUSES = frozenset({"delivered", "failed"})


def _require_proof(command: ConfirmDelivery) -> None:
    missing = [
        name for name in ("recipient_name", "proof_photo_url")
        if not (getattr(command, name) or "").strip()
    ]
    if missing:
        raise ValidationError(
            f"Delivery requires {' and '.join(missing)}",
            details={"missing": missing},
        )


def _same_proof(order: Order, command: ConfirmDelivery) -> bool:
    return (
        order.recipient_name == command.recipient_name
        and order.proof_photo_url == command.proof_photo_url
    )


def update_delivery_status(order_id: int, command: ConfirmDelivery, actor: Actor) -> Order:
    """
    Advance an order's delivery sub-status on behalf of its courier.

    Raises:
        PermissionDenied: missing UPDATE_DELIVERY_STATUS, or not the assigned courier
        NotFound: unknown order
        ValidationError: unknown delivery_status, or delivered without proof
        Conflict: order not deliverable, or a terminal state would be left
        InvalidTransition: target not reachable from the current sub-status
    """
    permission_service.require_permission(actor, "UPDATE_DELIVERY_STATUS")

    target = command.delivery_status
    if target not in DELIVERY_STATUSES:
        raise ValidationError(
            f"Invalid delivery_status '{target}'. Must be one of: {', '.join(DELIVERY_STATUSES)}",
            details={"delivery_status": target},
        )
    if command.order_id != order_id:
        raise ValidationError("Command targets a different order")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})

        if order.courier_id is None or order.courier_id != actor.id:
            raise PermissionDenied(
                "Only the assigned courier can update delivery status",
                details={"order_id": order_id},
            )

        if target == "delivered":
            _require_proof(command)

        if order.status not in DELIVERABLE_STATUSES:
            raise Conflict(
                f"Order is {order.status} and cannot be delivered",
                details={"status": order.status},
            )

        current = order.delivery_status or "assigned"

        if current == target:
            if target != "delivered" or _same_proof(order, command):
                return order
            raise Conflict(
                "Order was already delivered with different proof",
                details={"delivery_status": current},
            )

        if current in TERMINAL_DELIVERY_STATUSES:
            raise Conflict(
                f"Delivery is already {current}",
                details={"delivery_status": current},
            )

        if target not in DELIVERY_TRANSITIONS[current]:
            raise InvalidTransition(
                f"Cannot move delivery from {current} to {target}",
                details={"from": current, "to": target},
            )

        order.delivery_status = target
        order.updated_by = actor.id

        if target == "delivered":
            order.recipient_name = command.recipient_name
            order.proof_photo_url = command.proof_photo_url
            order.proof_signature_url = command.proof_signature_url
            order.delivered_at = command.occurred_at or utcnow()
            # Location is optional; a failed geolocation read is not an error.
            if command.lat is not None and command.lng is not None:
                order.delivered_lat = command.lat
                order.delivered_lng = command.lng

        append_audit_entry(
            entity="order",
            entity_id=order.id,
            action="delivery_status_change",
            user_id=actor.id,
            snapshot={"from": current, "to": target, "courier": actor.id},
        )
        db.session.commit()
        return order

    return run_with_retry(_op)
