"""
Rendezvous - Pair one waiting ask_user call with asynchronous inbound replies.

Usage:
    from rendezvous import ReplyCoordinator

    coordinator = ReplyCoordinator()
    reply = await coordinator.wait_for_reply(60)   # tool side
    coordinator.route("sure")                      # listener side
    coordinator.drain_messages()                   # unsolicited messages
"""

from rendezvous.coordinator import (
    DEFAULT_TIMEOUT_SECONDS,
    MAX_TIMEOUT_SECONDS,
    MIN_TIMEOUT_SECONDS,
    PendingWait,
    ReplyCoordinator,
    WaitOutcome,
    clamp_timeout,
)
from rendezvous.errors import (
    ConcurrentWaitConflict,
    RendezvousError,
    ReplyTimeout,
    TransportUnavailable,
    WaitCancelled,
)
from rendezvous.queue import MAX_QUEUE_SIZE, MESSAGE_TTL_SECONDS, MessageQueue, QueuedMessage

__all__ = [
    "ReplyCoordinator",
    "PendingWait",
    "WaitOutcome",
    "clamp_timeout",
    "MessageQueue",
    "QueuedMessage",
    "RendezvousError",
    "ReplyTimeout",
    "ConcurrentWaitConflict",
    "WaitCancelled",
    "TransportUnavailable",
    "DEFAULT_TIMEOUT_SECONDS",
    "MIN_TIMEOUT_SECONDS",
    "MAX_TIMEOUT_SECONDS",
    "MAX_QUEUE_SIZE",
    "MESSAGE_TTL_SECONDS",
]
