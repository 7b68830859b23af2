from .dispatch import HttpDispatcher
from .queue import OfflineActionQueue, PendingAction
from .sync import DEFERRED_MESSAGE, ReplayFailure, ReplayReport, SubmitResult, replay_pending, submit_or_enqueue

__all__ = [
    'HttpDispatcher',
    'OfflineActionQueue', 'PendingAction',
    'DEFERRED_MESSAGE', 'ReplayFailure', 'ReplayReport', 'SubmitResult', 'replay_pending', 'submit_or_enqueue',
]
