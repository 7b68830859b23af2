# Overview: Clock and ISO-8601 helpers; timestamps are stored as naive UTC.

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_today() -> date:
    """The server's local calendar date, used for courier delivery windows."""
    return date.today()


def tomorrow_of(day: date) -> date:
    return day + timedelta(days=1)


def parse_iso_datetime(value) -> Optional[datetime]:
    """
    "2026-03-14T15:30:00Z" / "+03:00" offsets -> naive UTC datetime.

    A value without offset is taken as UTC already. Blank -> None.
    Raises ValueError for anything else.
    """
    text = "" if value is None else str(value).strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_iso_date(value) -> Optional[date]:
    text = "" if value is None else str(value).strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])


def to_utc_z(moment: Optional[datetime]) -> Optional[str]:
    """Second precision, trailing "Z"; naive input is read as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.replace(microsecond=0).isoformat() + "Z"


def to_iso_date(day: Optional[date]) -> Optional[str]:
    return day.isoformat() if day else None
