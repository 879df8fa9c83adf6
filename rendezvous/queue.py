"""
Bounded Expiring Queue - Inbound messages nobody was waiting for.

Messages that arrive while no ask_user call is pending are parked here
until the caller drains them with get_messages.

Rules:
- Arrival order is preserved
- Capacity overflow drops the oldest entry, never the newest
- Entries older than the TTL are swept before every drain
- Reads are destructive: there is no peek, only a full drain
"""

import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

MAX_QUEUE_SIZE = 50
MESSAGE_TTL_SECONDS = 60 * 60


@dataclass(frozen=True)
class QueuedMessage:
    """An inbound text that had no waiting consumer."""

    text: str
    received_at: float  # unix seconds

    def age(self, now: float) -> float:
        return now - self.received_at

    @property
    def received_at_iso(self) -> str:
        return datetime.fromtimestamp(self.received_at, tz=timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return {"text": self.text, "received_at": self.received_at_iso}


class MessageQueue:
    """FIFO of QueuedMessage bounded by size and age.

    Usage:
        queue = MessageQueue()
        queue.push("hello")
        messages = queue.drain_all()  # [QueuedMessage(text="hello", ...)]
        queue.drain_all()             # []
    """

    def __init__(
        self,
        max_size: int = MAX_QUEUE_SIZE,
        ttl_seconds: float = MESSAGE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_size: Maximum number of entries kept (oldest evicted first)
            ttl_seconds: Entries older than this are discarded on drain
            clock: Wall-clock source, returns unix seconds
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: deque[QueuedMessage] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def push(self, text: str, received_at: float = None) -> QueuedMessage:
        """Append a message, evicting the oldest entry on overflow."""
        entry = QueuedMessage(
            text=text,
            received_at=self._clock() if received_at is None else received_at,
        )
        self._entries.append(entry)

        while len(self._entries) > self.max_size:
            dropped = self._entries.popleft()
            logger.warning(f"Message queue full ({self.max_size}), dropped oldest: {dropped.text[:50]!r}")

        return entry

    def sweep_expired(self, now: float = None) -> int:
        """Remove every entry older than the TTL. Returns how many were removed."""
        now = self._clock() if now is None else now
        before = len(self._entries)
        self._entries = deque(e for e in self._entries if e.age(now) <= self.ttl_seconds)
        removed = before - len(self._entries)
        if removed:
            logger.info(f"Discarded {removed} expired queued message(s)")
        return removed

    def drain_all(self, now: float = None) -> list[QueuedMessage]:
        """Sweep expired entries, then return and clear the rest in arrival order."""
        self.sweep_expired(now)
        entries = list(self._entries)
        self._entries.clear()
        return entries
