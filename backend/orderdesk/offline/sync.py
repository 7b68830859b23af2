# Overview: Submit-or-defer for courier commands and in-order replay of the offline queue.

"""
Delivery is at-least-once: a crash between a successful replay and
mark_synced() sends the same command again on the next replay. Commands
sent from a device must therefore be idempotent on the server (see
services/delivery_service.py, rule 5).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..commands import Command
from ..errors import ConnectivityError, OrderDeskError
from .queue import OfflineActionQueue


logger = logging.getLogger(__name__)

DEFERRED_MESSAGE = "Saved, will sync when online"


@dataclass
class SubmitResult:
    deferred: bool
    action_id: Optional[int] = None
    response: Optional[dict] = None
    message: str = "Saved"
    replay: Optional["ReplayReport"] = None

    def to_dict(self) -> dict:
        return {
            "deferred": self.deferred,
            "action_id": self.action_id,
            "message": self.message,
        }


@dataclass
class ReplayFailure:
    action_id: int
    type: str
    code: str
    error: str


@dataclass
class ReplayReport:
    synced: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    remaining: int = 0
    offline: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.offline


def submit_or_enqueue(queue: OfflineActionQueue, dispatcher, command: Command) -> SubmitResult:
    """
    Send a command now, or store it when the API is unreachable.

    Actions already waiting in the queue are replayed first; while any of
    them cannot be sent the new command is queued behind them, so nothing
    overtakes an earlier action from the same device.

    Only ConnectivityError is absorbed. Every other error propagates so the
    caller can show the real cause.
    """
    replay = None
    if queue.count():
        replay = replay_pending(queue, dispatcher)
        if replay.offline:
            return _defer(queue, command, "earlier actions still pending", replay)

    try:
        response = dispatcher.dispatch(command)
    except ConnectivityError as exc:
        return _defer(queue, command, exc.message, replay)

    return SubmitResult(deferred=False, response=response, replay=replay)


def _defer(queue: OfflineActionQueue, command: Command, reason: str, replay) -> SubmitResult:
    action_id = queue.enqueue(command)
    logger.info("Deferred %s as pending action %s: %s", command.type, action_id, reason)
    return SubmitResult(deferred=True, action_id=action_id, message=DEFERRED_MESSAGE, replay=replay)


def replay_pending(queue: OfflineActionQueue, dispatcher) -> ReplayReport:
    """
    Replay pending actions in enqueue order.

    - success: removed from the queue
    - ConnectivityError: stop; this and later actions stay queued
    - any other error: recorded on the action, reported, left queued for a
      manual retry; replay moves on to the next action
    """
    report = ReplayReport()

    for action in queue.list_pending():
        try:
            dispatcher.dispatch(action.command)
        except ConnectivityError as exc:
            logger.info("Replay paused at action %s: %s", action.id, exc.message)
            report.offline = True
            break
        except OrderDeskError as exc:
            queue.record_failure(action.id, exc.message)
            logger.warning(
                "Replay of action %s (%s) failed: %s %s",
                action.id, action.type, exc.code, exc.message,
            )
            report.failed.append(
                ReplayFailure(action_id=action.id, type=action.type, code=exc.code, error=exc.message)
            )
            continue

        queue.mark_synced(action.id)
        report.synced.append(action.id)

    report.remaining = queue.count()
    if report.synced:
        logger.info("Replayed %d pending action(s), %d remaining", len(report.synced), report.remaining)
    return report
