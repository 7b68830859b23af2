# Overview: Typed mutation commands passed between the lifecycle engine, the ledger and the offline queue.

"""
Each command carries only the fields its mutation is allowed to touch, so a
payload can never overwrite unrelated columns of an order or stock unit.

Commands round-trip through JSON (to_payload / command_from_payload) because
the offline queue stores them verbatim on the courier device and the replay
sends them to the API later.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Optional, Union

from .errors import ValidationError
from .time_utils import parse_iso_datetime, to_utc_z


@dataclass(frozen=True)
class ReserveStock:
    product_id: int
    serial: str
    order_id: int
    reason: Optional[str] = None
    type: str = field(default="reserve_stock", init=False)


@dataclass(frozen=True)
class ReleaseStock:
    product_id: int
    serial: str
    order_id: int
    reason: Optional[str] = None
    type: str = field(default="release_stock", init=False)


@dataclass(frozen=True)
class WriteOffStock:
    product_id: int
    serial: str
    order_id: Optional[int] = None
    reason: Optional[str] = None
    type: str = field(default="write_off_stock", init=False)


@dataclass(frozen=True)
class AssignCourier:
    order_id: int
    courier_id: Optional[str]
    type: str = field(default="assign_courier", init=False)


@dataclass(frozen=True)
class ConfirmDelivery:
    """
    Courier-side delivery sub-status change.

    occurred_at is the moment the courier pressed the button on the device.
    The server stamps delivered_at from it, so replaying the same command
    later yields the same delivered_at.
    """
    order_id: int
    delivery_status: str
    recipient_name: Optional[str] = None
    proof_photo_url: Optional[str] = None
    proof_signature_url: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    occurred_at: Optional[datetime] = None
    type: str = field(default="confirm_delivery", init=False)

    def to_request_body(self) -> dict:
        body = {
            "delivery_status": self.delivery_status,
            "recipient_name": self.recipient_name,
            "proof_photo_url": self.proof_photo_url,
            "proof_signature_url": self.proof_signature_url,
            "lat": self.lat,
            "lng": self.lng,
            "occurred_at": to_utc_z(self.occurred_at),
        }
        return {k: v for k, v in body.items() if v is not None}

    @classmethod
    def from_request_body(cls, order_id: int, data: dict) -> "ConfirmDelivery":
        status = data.get("delivery_status")
        if not status:
            raise ValidationError("delivery_status required")
        try:
            occurred_at = parse_iso_datetime(data.get("occurred_at"))
        except ValueError:
            raise ValidationError("occurred_at must be an ISO-8601 datetime")
        return cls(
            order_id=order_id,
            delivery_status=status,
            recipient_name=_clean_text(data.get("recipient_name")),
            proof_photo_url=_clean_text(data.get("proof_photo_url")),
            proof_signature_url=_clean_text(data.get("proof_signature_url")),
            lat=_coerce_coordinate(data.get("lat"), "lat"),
            lng=_coerce_coordinate(data.get("lng"), "lng"),
            occurred_at=occurred_at,
        )


Command = Union[ReserveStock, ReleaseStock, WriteOffStock, AssignCourier, ConfirmDelivery]

COMMAND_TYPES = {
    "reserve_stock": ReserveStock,
    "release_stock": ReleaseStock,
    "write_off_stock": WriteOffStock,
    "assign_courier": AssignCourier,
    "confirm_delivery": ConfirmDelivery,
}


def to_payload(command: Command) -> dict:
    """JSON-safe dict including the "type" tag."""
    data = asdict(command)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = to_utc_z(value)
    return data


def command_from_payload(payload: dict) -> Command:
    """Inverse of to_payload. Unknown tags are a ValidationError."""
    tag = payload.get("type")
    cls = COMMAND_TYPES.get(tag)
    if cls is None:
        raise ValidationError(f"Unknown command type {tag!r}")

    kwargs = {}
    for f in fields(cls):
        if not f.init or f.name not in payload:
            continue
        kwargs[f.name] = payload[f.name]

    if "occurred_at" in kwargs and isinstance(kwargs["occurred_at"], str):
        try:
            kwargs["occurred_at"] = parse_iso_datetime(kwargs["occurred_at"])
        except ValueError:
            raise ValidationError(f"Malformed {tag} payload: occurred_at is not an ISO-8601 datetime")

    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ValidationError(f"Malformed {tag} payload: {exc}")


def _clean_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_coordinate(value, name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
