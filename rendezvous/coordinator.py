"""
Reply Coordinator - Match inbound messages to the one caller waiting for them.

The coordinator owns two pieces of state:
- A single PendingWait slot (the ask_user call currently blocked on a reply)
- The MessageQueue of inbound texts that arrived while nobody was waiting

Everything runs on one asyncio event loop. route(), drain_messages() and the
timer callback are synchronous and never yield, so each state transition
happens in one step without locks. wait_for_reply() is the only coroutine
and the only place a caller suspends.

Resolution of a wait is first-come-wins between three actors:
- route() delivering a reply
- the deadline timer
- cancel_wait() or cancellation of the waiting task

Whoever moves the wait out of UNRESOLVED clears the slot and disarms the
timer; everyone else becomes a no-op.

Usage:
    coordinator = ReplyCoordinator()

    # Tool side
    reply = await coordinator.wait_for_reply(timeout_seconds=120)

    # Listener side
    coordinator.route("yes, go ahead")
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

from rendezvous.errors import ConcurrentWaitConflict, ReplyTimeout, WaitCancelled
from rendezvous.queue import MessageQueue, QueuedMessage

logger = logging.getLogger(__name__)

MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 300
DEFAULT_TIMEOUT_SECONDS = 180


def clamp_timeout(timeout_seconds=None, default: float = DEFAULT_TIMEOUT_SECONDS) -> float:
    """Clamp a requested timeout to [MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS].

    None or anything that is not a number falls back to the default.
    """
    if timeout_seconds is None:
        timeout = float(default)
    else:
        try:
            timeout = float(timeout_seconds)
        except (TypeError, ValueError):
            timeout = float(default)
        if math.isnan(timeout):
            timeout = float(default)
    return min(max(timeout, MIN_TIMEOUT_SECONDS), MAX_TIMEOUT_SECONDS)


# =============================================================================
# Data Models
# =============================================================================

class WaitOutcome(str, Enum):
    UNRESOLVED = "unresolved"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
    SUPERSEDED = "superseded"


@dataclass
class PendingWait:
    """The single in-flight request for a reply."""

    id: str
    created_at: float       # unix seconds, for diagnostics
    deadline: float         # event loop clock
    timeout_seconds: float
    outcome: WaitOutcome = WaitOutcome.UNRESOLVED
    _future: asyncio.Future = field(default=None, repr=False)
    _timer: asyncio.TimerHandle = field(default=None, repr=False)

    @property
    def resolved(self) -> bool:
        return self.outcome is not WaitOutcome.UNRESOLVED

    def remaining(self) -> float:
        return max(0.0, self.deadline - self._future.get_loop().time())


# =============================================================================
# Coordinator
# =============================================================================

class ReplyCoordinator:
    """Routes inbound texts to the pending wait, or to the queue when idle."""

    def __init__(
        self,
        queue: MessageQueue = None,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        queue_late_replies: bool = False,
    ):
        """
        Args:
            queue: Storage for unsolicited messages (defaults to 50 entries, 1h TTL)
            default_timeout: Timeout used when the caller does not give one
            queue_late_replies: Queue replies that lose the race to the timer
                instead of discarding them
        """
        self.queue = queue if queue is not None else MessageQueue()
        self.default_timeout = clamp_timeout(default_timeout)
        self.queue_late_replies = queue_late_replies
        self._pending: PendingWait | None = None

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    @property
    def pending(self) -> PendingWait | None:
        return self._pending

    @property
    def is_waiting(self) -> bool:
        return self._pending is not None

    @property
    def pending_count(self) -> int:
        return len(self.queue)

    def status(self) -> dict:
        """Snapshot for health checks."""
        wait = self._pending
        return {
            "state": "waiting" if wait else "idle",
            "wait_id": wait.id if wait else None,
            "remaining_seconds": round(wait.remaining(), 1) if wait else None,
            "queued_messages": len(self.queue),
        }

    # -------------------------------------------------------------------------
    # Waiting
    # -------------------------------------------------------------------------

    async def wait_for_reply(self, timeout_seconds: float = None) -> str:
        """Block until a reply is routed to us or the timeout passes.

        Args:
            timeout_seconds: Requested timeout, clamped to [1, 300].
                Defaults to the coordinator's default_timeout.

        Returns:
            The reply text.

        Raises:
            ConcurrentWaitConflict: Another wait is already outstanding.
            ReplyTimeout: Nothing arrived before the deadline.
            WaitCancelled: cancel_wait() superseded this wait.
        """
        if self._pending is not None:
            raise ConcurrentWaitConflict(self._pending.id)

        timeout = clamp_timeout(timeout_seconds, self.default_timeout)
        loop = asyncio.get_running_loop()
        wait = PendingWait(
            id=uuid.uuid4().hex[:8],
            created_at=time.time(),
            deadline=loop.time() + timeout,
            timeout_seconds=timeout,
        )
        wait._future = loop.create_future()
        wait._timer = loop.call_later(timeout, self._expire, wait)
        self._pending = wait
        logger.info(f"Waiting up to {timeout:g}s for reply (wait {wait.id})")

        try:
            return await wait._future
        finally:
            # Only reached unresolved when the waiting task itself was cancelled
            if self._settle(wait, WaitOutcome.SUPERSEDED):
                logger.info(f"Wait {wait.id} abandoned by caller")

    def cancel_wait(self, reason: str = "cancelled") -> bool:
        """Resolve the pending wait as superseded. Returns True if one was cancelled."""
        wait = self._pending
        if wait is None or not self._settle(wait, WaitOutcome.SUPERSEDED):
            return False
        if not wait._future.done():
            wait._future.set_exception(WaitCancelled(wait.id, reason))
        logger.info(f"Wait {wait.id} cancelled: {reason}")
        return True

    def _expire(self, wait: PendingWait):
        """Timer callback. Bound to one wait, so a stale timer can't touch a later one."""
        if not self._settle(wait, WaitOutcome.EXPIRED):
            return
        if not wait._future.done():
            wait._future.set_exception(ReplyTimeout(wait.id, wait.timeout_seconds))
        logger.info(f"Wait {wait.id} timed out after {wait.timeout_seconds:g}s")

    def _settle(self, wait: PendingWait, outcome: WaitOutcome) -> bool:
        """Move a wait out of UNRESOLVED. False if another actor already did."""
        if wait.resolved:
            return False
        wait.outcome = outcome
        if self._pending is wait:
            self._pending = None
        if wait._timer is not None:
            wait._timer.cancel()
        return True

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def route(self, text: str):
        """Deliver an inbound text to the pending wait, or queue it.

        Never raises: a failure here must not break the inbound transport.
        """
        try:
            self._route(text)
        except Exception:
            logger.exception("Failed to route inbound message")

    def _route(self, text: str):
        wait = self._pending
        if wait is None:
            self.queue.push(text)
            logger.info(f"No pending request, queued message ({len(self.queue)} queued)")
            return

        if wait._future.done():
            # Caller was cancelled but has not been released yet
            self._settle(wait, WaitOutcome.SUPERSEDED)
            self._late_reply(wait, text)
            return

        if wait._future.get_loop().time() >= wait.deadline:
            # Deadline passed but the timer callback has not run yet: the timer wins
            self._expire(wait)
            self._late_reply(wait, text)
            return

        self._settle(wait, WaitOutcome.FULFILLED)
        wait._future.set_result(text)
        logger.info(f"Reply delivered to wait {wait.id}")

    def _late_reply(self, wait: PendingWait, text: str):
        if self.queue_late_replies:
            self.queue.push(text)
            logger.info(f"Reply arrived after wait {wait.id} ended, queued")
        else:
            logger.warning(f"Reply arrived after wait {wait.id} ended, discarded: {text[:50]!r}")

    def drain_messages(self) -> list[QueuedMessage]:
        """Return every unexpired queued message in arrival order and empty the queue."""
        messages = self.queue.drain_all()
        if messages:
            logger.info(f"Drained {len(messages)} queued message(s)")
        return messages
