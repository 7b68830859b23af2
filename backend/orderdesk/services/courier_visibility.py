# Overview: Pure predicate deciding which orders a courier may see and act on.

from __future__ import annotations

from datetime import date
from typing import Iterable

from ..actor import Actor
from ..time_utils import local_today, tomorrow_of


# "ready" is a legacy status value still present in older data. No
# transition produces it, but such orders remain deliverable.
DELIVERABLE_STATUSES = frozenset({"confirmed", "picking", "ready", "shipped", "completed"})


def is_visible_to_courier(order, actor: Actor, today: date | None = None) -> bool:
    """
    True iff the order is assigned to actor, due today or tomorrow, and in
    a deliverable status. Dates compare as calendar days only.
    """
    if order.courier_id is None or order.courier_id != actor.id:
        return False

    day = today or local_today()
    if order.delivery_date not in (day, tomorrow_of(day)):
        return False

    return order.status in DELIVERABLE_STATUSES


def visible_orders(orders: Iterable, actor: Actor, today: date | None = None) -> list:
    """Couriers get the filtered list; every other role gets all of it."""
    if not actor.is_courier:
        return list(orders)
    day = today or local_today()
    return [o for o in orders if is_visible_to_courier(o, actor, day)]
