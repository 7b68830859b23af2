# Overview: Serialized stock units and their append-only movement ledger.

"""
Inventory Ledger

================================================================================
PURPOSE: Own StockUnit state and the StockMovement history
================================================================================

STATE MACHINE (per unit):
    available -> reserved -> sold
    reserved  -> available          (release, order cancelled)
    any       -> sold               (write-off on order completion)

RULES:
1. (product_id, serial) is unique; arrive() with a taken pair raises
   DuplicateSerial.
2. available -> reserved is a single conditional UPDATE on status, so two
   concurrent reservations of one serial cannot both succeed. The loser gets
   ReservationConflict.
3. reserve() for the order already holding the unit is a no-op success.
4. write_off() fails only when the unit does not exist. Writing off a unit
   that is already sold is a no-op, which makes retried completions safe.
5. Every state change appends exactly one StockMovement in the same session.
   No-ops append nothing.
6. Sold units are never deleted or resurrected.

apply() runs inside the caller's transaction and never commits; the public
arrive/reserve/release/write_off wrappers require MANAGE_STOCK and commit on
their own. The order lifecycle goes through apply() under its own permissions.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..actor import Actor
from ..commands import Command, ReleaseStock, ReserveStock, WriteOffStock
from ..errors import Conflict, DuplicateSerial, NotFound, ReservationConflict, ValidationError
from ..extensions import db
from ..models import StockMovement, StockUnit
from ..validation import STOCK_UNIT_POLICY, enforce_rules_stock_unit, validate_payload
from . import permission_service
from .audit_service import append_audit_entry
from .concurrency import run_with_retry


@dataclass
class LedgerOutcome:
    unit: StockUnit
    changed: bool
    movement: Optional[StockMovement] = None


def normalize_serial(serial) -> str:
    value = str(serial or "").strip()
    if not value:
        raise ValidationError("serial is required")
    return value


def _load_unit(product_id: int, serial: str) -> StockUnit | None:
    # populate_existing: a conditional UPDATE may have changed the row
    # behind an instance already held by this session.
    return (
        db.session.query(StockUnit)
        .filter_by(product_id=product_id, serial=serial)
        .populate_existing()
        .first()
    )


def _append_movement(
    movement_type: str,
    unit: StockUnit,
    actor: Actor,
    *,
    order_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        type=movement_type,
        product_id=unit.product_id,
        serial=unit.serial,
        quantity=1,
        order_id=order_id,
        reason=reason,
        user_id=actor.id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


# ================================================================================
# COMMAND APPLICATION (no commit)
# ================================================================================

def _reserve(command: ReserveStock, actor: Actor) -> LedgerOutcome:
    serial = normalize_serial(command.serial)

    claimed = db.session.execute(
        update(StockUnit)
        .where(
            StockUnit.product_id == command.product_id,
            StockUnit.serial == serial,
            StockUnit.status == "available",
        )
        .values(
            status="reserved",
            order_id=command.order_id,
            version_id=StockUnit.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )

    unit = _load_unit(command.product_id, serial)

    if claimed.rowcount == 1:
        movement = _append_movement(
            "reserve", unit, actor, order_id=command.order_id, reason=command.reason,
        )
        return LedgerOutcome(unit=unit, changed=True, movement=movement)

    if unit is None:
        raise NotFound(
            f"Stock unit {serial!r} for product {command.product_id} not found",
            details={"product_id": command.product_id, "serial": serial},
        )

    if unit.status == "reserved" and unit.order_id == command.order_id:
        return LedgerOutcome(unit=unit, changed=False)

    raise ReservationConflict(
        f"Stock unit {serial!r} is {unit.status}"
        + (f" for order {unit.order_id}" if unit.order_id else ""),
        details={
            "product_id": command.product_id,
            "serial": serial,
            "status": unit.status,
            "order_id": unit.order_id,
        },
    )


def _release(command: ReleaseStock, actor: Actor) -> LedgerOutcome:
    serial = normalize_serial(command.serial)

    released = db.session.execute(
        update(StockUnit)
        .where(
            StockUnit.product_id == command.product_id,
            StockUnit.serial == serial,
            StockUnit.status == "reserved",
            StockUnit.order_id == command.order_id,
        )
        .values(
            status="available",
            order_id=None,
            version_id=StockUnit.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )

    unit = _load_unit(command.product_id, serial)
    if unit is None:
        raise NotFound(
            f"Stock unit {serial!r} for product {command.product_id} not found",
            details={"product_id": command.product_id, "serial": serial},
        )

    if released.rowcount != 1:
        return LedgerOutcome(unit=unit, changed=False)

    movement = _append_movement(
        "release", unit, actor, order_id=command.order_id, reason=command.reason,
    )
    return LedgerOutcome(unit=unit, changed=True, movement=movement)


def _write_off(command: WriteOffStock, actor: Actor) -> LedgerOutcome:
    serial = normalize_serial(command.serial)

    unit = _load_unit(command.product_id, serial)
    if unit is None:
        raise Conflict(
            f"Cannot write off {serial!r}: no stock unit for product {command.product_id}",
            details={"product_id": command.product_id, "serial": serial},
        )

    if unit.status == "sold":
        return LedgerOutcome(unit=unit, changed=False)

    # Forced regardless of prior state. The ORM flush checks version_id, so a
    # concurrent change raises StaleDataError and the caller's retry reruns.
    unit.status = "sold"
    unit.order_id = None
    db.session.flush()

    movement = _append_movement(
        "writeoff", unit, actor, order_id=command.order_id, reason=command.reason,
    )
    return LedgerOutcome(unit=unit, changed=True, movement=movement)


_HANDLERS = {
    ReserveStock: _reserve,
    ReleaseStock: _release,
    WriteOffStock: _write_off,
}


def apply(command: Command, actor: Actor) -> LedgerOutcome:
    """
    Apply a stock command inside the current transaction (no commit).

    Raises NotFound, ReservationConflict or Conflict as described in the
    module rules; nothing is written when it raises.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise ValidationError(f"Inventory ledger cannot apply {type(command).__name__}")
    return handler(command, actor)


def _apply_and_commit(command: Command, actor: Actor) -> StockUnit:
    def _op():
        outcome = apply(command, actor)
        db.session.commit()
        return outcome.unit

    return run_with_retry(_op)


# ================================================================================
# PUBLIC OPERATIONS
# ================================================================================

def arrive(product_id, serial, attrs: dict | None, actor: Actor) -> StockUnit:
    """
    Register a newly arrived serialized unit as available.

    Appends an "arrival" movement (reason = supplier or "Stock arrival")
    and a "create" audit entry.

    Raises:
        PermissionDenied: actor lacks MANAGE_STOCK
        ValidationError: malformed payload
        DuplicateSerial: (product_id, serial) already registered
    """
    permission_service.require_permission(actor, "MANAGE_STOCK")

    payload = dict(attrs or {})
    payload["product_id"] = product_id
    payload["serial"] = serial
    patch = validate_payload(model=StockUnit, payload=payload, policy=STOCK_UNIT_POLICY, partial=False)
    enforce_rules_stock_unit(patch)

    def _duplicate() -> DuplicateSerial:
        return DuplicateSerial(
            "Serial already exists for this product",
            details={"product_id": patch["product_id"], "serial": patch["serial"]},
        )

    def _op():
        if _load_unit(patch["product_id"], patch["serial"]) is not None:
            raise _duplicate()

        unit = StockUnit(status="available", created_by=actor.id, **patch)
        db.session.add(unit)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost an insert race against the unique constraint.
            raise _duplicate()

        _append_movement("arrival", unit, actor, reason=unit.supplier or "Stock arrival")
        append_audit_entry(
            entity="stock_unit",
            entity_id=unit.id,
            action="create",
            user_id=actor.id,
            snapshot=unit.to_dict(),
        )
        db.session.commit()
        return unit

    return run_with_retry(_op)


def reserve(product_id: int, serial: str, order_id: int, actor: Actor, *, reason: str | None = None) -> StockUnit:
    """Reserve one unit for an order and commit. See module rules 2 and 3."""
    permission_service.require_permission(actor, "MANAGE_STOCK")
    return _apply_and_commit(ReserveStock(product_id, serial, order_id, reason), actor)


def release(product_id: int, serial: str, order_id: int, actor: Actor, *, reason: str | None = None) -> StockUnit:
    permission_service.require_permission(actor, "MANAGE_STOCK")
    return _apply_and_commit(ReleaseStock(product_id, serial, order_id, reason), actor)


def write_off(product_id: int, serial: str, actor: Actor, *, order_id: int | None = None, reason: str | None = None) -> StockUnit:
    """Force a unit to sold and commit. See module rule 4."""
    permission_service.require_permission(actor, "MANAGE_STOCK")
    return _apply_and_commit(WriteOffStock(product_id, serial, order_id, reason), actor)


def delete_unit(unit_id: int, actor: Actor) -> None:
    """
    Delete an unsold, unreserved unit.

    Raises:
        NotFound: unknown id
        Conflict: unit is sold or reserved
    """
    permission_service.require_permission(actor, "MANAGE_STOCK")

    def _op():
        unit = db.session.get(StockUnit, unit_id)
        if unit is None:
            raise NotFound(f"Stock unit {unit_id} not found")

        if unit.status == "sold":
            raise Conflict("Cannot delete a sold stock unit")
        if unit.status == "reserved":
            raise Conflict(
                f"Cannot delete a stock unit reserved for order {unit.order_id}",
                details={"order_id": unit.order_id},
            )

        snapshot = unit.to_dict()
        db.session.delete(unit)
        append_audit_entry(
            entity="stock_unit",
            entity_id=unit_id,
            action="delete",
            user_id=actor.id,
            snapshot=snapshot,
        )
        db.session.commit()

    run_with_retry(_op)


def written_off_for(product_id: int, serial: str) -> int | None:
    """Order recorded on the latest writeoff movement of a unit, if any."""
    movement = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, serial=serial, type="writeoff")
        .order_by(StockMovement.id.desc())
        .first()
    )
    return movement.order_id if movement else None


def get_unit(unit_id: int) -> StockUnit:
    unit = db.session.get(StockUnit, unit_id)
    if unit is None:
        raise NotFound(f"Stock unit {unit_id} not found")
    return unit


def list_units(
    *,
    product_id: int | None = None,
    status: str | None = None,
    limit: int = 500,
) -> list[StockUnit]:
    q = db.session.query(StockUnit)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(StockUnit.id.desc()).limit(limit).all()


def list_movements(
    *,
    product_id: int | None = None,
    serial: str | None = None,
    order_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 500,
) -> list[StockMovement]:
    """Newest first, ordered by (occurred_at, id)."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    if serial:
        q = q.filter_by(serial=serial)
    if order_id is not None:
        q = q.filter_by(order_id=order_id)
    if movement_type:
        q = q.filter_by(type=movement_type)
    q = q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
    return q.limit(limit).all()
