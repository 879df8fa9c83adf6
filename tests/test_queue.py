"""
Unit tests for rendezvous/queue.py

Tests cover:
- Push and arrival order
- Drop-oldest capacity eviction
- TTL sweeping
- Destructive drain
"""

import pytest

from rendezvous.queue import MAX_QUEUE_SIZE, MESSAGE_TTL_SECONDS, MessageQueue, QueuedMessage


# =============================================================================
# QueuedMessage Tests
# =============================================================================


class TestQueuedMessage:
    def test_age(self):
        msg = QueuedMessage(text="hi", received_at=100.0)
        assert msg.age(160.0) == 60.0

    def test_to_dict(self):
        msg = QueuedMessage(text="hi", received_at=0.0)
        assert msg.to_dict() == {"text": "hi", "received_at": "1970-01-01T00:00:00+00:00"}


# =============================================================================
# Push / Capacity Tests
# =============================================================================


class TestPush:
    def test_defaults(self):
        queue = MessageQueue()
        assert queue.max_size == MAX_QUEUE_SIZE == 50
        assert queue.ttl_seconds == MESSAGE_TTL_SECONDS == 3600
        assert len(queue) == 0

    def test_push_uses_clock(self, queue, clock):
        entry = queue.push("hello")
        assert entry.text == "hello"
        assert entry.received_at == clock.now
        assert len(queue) == 1

    def test_push_explicit_timestamp(self, queue):
        entry = queue.push("hello", received_at=42.0)
        assert entry.received_at == 42.0

    def test_fifty_one_pushes_keep_last_fifty(self, queue):
        for i in range(51):
            queue.push(f"msg {i}")

        assert len(queue) == 50
        texts = [m.text for m in queue.drain_all()]
        assert texts == [f"msg {i}" for i in range(1, 51)]

    def test_bound_holds_for_long_runs(self, queue):
        for i in range(500):
            queue.push(f"msg {i}")
            assert len(queue) <= 50

        texts = [m.text for m in queue.drain_all()]
        assert texts == [f"msg {i}" for i in range(450, 500)]

    def test_custom_size(self, clock):
        queue = MessageQueue(max_size=2, clock=clock)
        queue.push("a")
        queue.push("b")
        queue.push("c")
        assert [m.text for m in queue.drain_all()] == ["b", "c"]

    def test_invalid_settings(self):
        with pytest.raises(ValueError, match="max_size"):
            MessageQueue(max_size=0)
        with pytest.raises(ValueError, match="ttl_seconds"):
            MessageQueue(ttl_seconds=0)


# =============================================================================
# TTL Tests
# =============================================================================


class TestExpiry:
    def test_present_at_59_minutes(self, queue, clock):
        queue.push("still fresh")
        clock.advance(59 * 60)
        assert [m.text for m in queue.drain_all()] == ["still fresh"]

    def test_absent_at_61_minutes(self, queue, clock):
        queue.push("stale")
        clock.advance(61 * 60)
        assert queue.drain_all() == []

    def test_sweep_only_removes_expired(self, queue, clock):
        queue.push("old")
        clock.advance(30 * 60)
        queue.push("new")
        clock.advance(31 * 60)

        assert queue.sweep_expired() == 1
        assert [m.text for m in queue.drain_all()] == ["new"]

    def test_sweep_with_explicit_now(self, queue, clock):
        queue.push("x")
        assert queue.sweep_expired(now=clock.now + 3601) == 1
        assert len(queue) == 0


# =============================================================================
# Drain Tests
# =============================================================================


class TestDrain:
    def test_empty_drain(self, queue):
        assert queue.drain_all() == []

    def test_drain_preserves_order(self, queue, clock):
        for text in ["first", "second", "third"]:
            queue.push(text)
            clock.advance(1)
        assert [m.text for m in queue.drain_all()] == ["first", "second", "third"]

    def test_second_drain_is_empty(self, queue):
        queue.push("once")
        assert len(queue.drain_all()) == 1
        assert queue.drain_all() == []
        assert len(queue) == 0
