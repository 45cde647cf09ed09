"""Tests for cwl_sdk.buffer module."""

import random
import threading

import pytest

from cwl_sdk.buffer import MAX_BUFFER_LENGTH, MAX_BUFFER_SIZE, MAX_EVENT_SIZE, RecordBuffer
from cwl_sdk.records import LogRecord


@pytest.fixture
def buffer(frozen_clock):
    """A buffer whose periodic check never fires unless the clock moves."""
    buf = RecordBuffer(flush_interval_ms=1000, clock=frozen_clock)
    # Consume the first-record flag so tests start from a steady state
    buf.add(LogRecord(timestamp=0, message="warmup"))
    buf.clear()
    return buf


def _record(ts, size):
    return LogRecord(timestamp=ts, message="x" * size)


class TestAdd:
    """Tests for RecordBuffer.add."""

    def test_first_record_requests_flush(self, frozen_clock):
        buf = RecordBuffer(clock=frozen_clock)

        assert buf.add(LogRecord(timestamp=1, message="first")) is True
        assert buf.add(LogRecord(timestamp=2, message="second")) is False

    def test_periodic_flush_after_interval(self, buffer, frozen_clock):
        assert buffer.add(LogRecord(timestamp=1, message="a")) is False

        frozen_clock.advance(1001)
        assert buffer.add(LogRecord(timestamp=2, message="b")) is True

        # Timestamp is reset by the check
        assert buffer.add(LogRecord(timestamp=3, message="c")) is False

    def test_interval_is_strictly_greater(self, buffer, frozen_clock):
        frozen_clock.advance(1000)
        assert buffer.add(LogRecord(timestamp=1, message="a")) is False

    def test_mark_rotation_requests_flush(self, buffer):
        assert buffer.add(LogRecord(timestamp=1, message="a")) is False

        buffer.mark_rotation()
        assert buffer.add(LogRecord(timestamp=2, message="b")) is True
        assert buffer.add(LogRecord(timestamp=3, message="c")) is False

    def test_oversized_record_dropped(self, buffer):
        assert buffer.add(_record(1, MAX_EVENT_SIZE)) is False

        assert buffer.pending_count == 0
        assert buffer.deferred_count == 0
        assert buffer.dropped_count == 1
        assert buffer.snapshot() == []

    def test_largest_allowed_record_accepted(self, buffer):
        buffer.add(_record(1, MAX_EVENT_SIZE - 1))
        assert buffer.pending_count == 1

    def test_size_limit_defers_record(self, buffer):
        for i in range(5):
            buffer.add(_record(i, 200_000))
        assert buffer.size_bytes == 5 * 200_026

        assert buffer.add(_record(5, 200_000)) is True
        assert buffer.pending_count == 5
        assert buffer.deferred_count == 1
        assert buffer.size_bytes < MAX_BUFFER_SIZE

    def test_exact_size_limit_is_rejected(self, buffer):
        for i in range(4):
            buffer.add(_record(i, 262_000))
        remaining = MAX_BUFFER_SIZE - buffer.size_bytes

        assert buffer.add(_record(4, remaining - 26)) is True
        assert buffer.deferred_count == 1

        # First clear promotes the deferred record, second one discards it
        buffer.clear()
        buffer.clear()
        for i in range(4):
            buffer.add(_record(i, 262_000))
        buffer.add(_record(4, remaining - 27))
        assert buffer.pending_count == 5
        assert buffer.deferred_count == 0
        assert buffer.size_bytes == MAX_BUFFER_SIZE - 1

    def test_count_limit(self, buffer):
        results = [buffer.add(LogRecord(timestamp=i, message="m")) for i in range(MAX_BUFFER_LENGTH)]

        assert results[-1] is True
        assert not any(results[:-1])
        assert buffer.pending_count == MAX_BUFFER_LENGTH

        assert buffer.add(LogRecord(timestamp=0, message="overflow")) is True
        assert buffer.pending_count == MAX_BUFFER_LENGTH
        assert buffer.deferred_count == 1

    def test_new_arrivals_queue_behind_deferred(self, buffer):
        for i in range(5):
            buffer.add(_record(i, 200_000))
        buffer.add(_record(5, 200_000))

        # Fits on its own, but must not overtake the deferred record
        assert buffer.add(LogRecord(timestamp=6, message="small")) is True
        assert buffer.deferred_count == 2

        assert buffer.clear() == 2
        messages = [r.message for r in buffer.snapshot()]
        assert messages == ["x" * 200_000, "small"]

    def test_deferred_queue_is_bounded(self, frozen_clock):
        buf = RecordBuffer(max_deferred=2, clock=frozen_clock)
        for i in range(5):
            buf.add(_record(i, 200_000))

        for i in range(3):
            buf.add(_record(100 + i, 200_000))

        assert buf.deferred_count == 2
        assert buf.dropped_count == 1

        buf.clear()
        assert [r.timestamp for r in buf.snapshot()] == [101, 102]

    def test_size_invariant_holds_for_random_sequences(self, frozen_clock):
        rng = random.Random(1234)
        buf = RecordBuffer(clock=frozen_clock)

        for i in range(2000):
            size = rng.choice([10, 1000, 50_000, 150_000, 262_143, 262_144, 300_000])
            record = _record(rng.randint(0, 10_000), size)
            deferred_before = buf.deferred_count
            buf.add(record)
            if buf.deferred_count == deferred_before:
                assert buf.size_bytes < MAX_BUFFER_SIZE
            assert all(len(r.message) < MAX_EVENT_SIZE for r in buf.snapshot())
            if rng.random() < 0.05:
                buf.clear()


class TestSnapshot:
    """Tests for snapshot, clear and drain."""

    def test_sorted_by_timestamp_stable(self, buffer):
        for ts, msg in [(3, "a"), (1, "b"), (3, "c"), (2, "d")]:
            buffer.add(LogRecord(timestamp=ts, message=msg))

        assert [r.message for r in buffer.snapshot()] == ["b", "d", "a", "c"]

    def test_snapshot_non_decreasing(self, buffer):
        rng = random.Random(7)
        for _ in range(500):
            buffer.add(LogRecord(timestamp=rng.randint(0, 100), message="m"))

        stamps = [r.timestamp for r in buffer.snapshot()]
        assert stamps == sorted(stamps)

    def test_snapshot_does_not_clear(self, buffer):
        buffer.add(LogRecord(timestamp=1, message="a"))
        buffer.snapshot()
        assert buffer.pending_count == 1

    def test_clear_empties(self, buffer):
        buffer.add(LogRecord(timestamp=1, message="a"))

        assert buffer.clear() == 0
        assert len(buffer) == 0
        assert buffer.size_bytes == 0
        assert buffer.is_empty()

    def test_drain_returns_ordered_batch(self, buffer):
        buffer.add(LogRecord(timestamp=2, message="b"))
        buffer.add(LogRecord(timestamp=1, message="a"))

        batch = buffer.drain()

        assert [r.message for r in batch] == ["a", "b"]
        assert buffer.pending_count == 0

    def test_concurrent_adds_and_drains_lose_nothing(self, frozen_clock):
        buf = RecordBuffer(clock=frozen_clock)
        drained = []
        stop = threading.Event()

        def producer(n):
            for i in range(1000):
                buf.add(LogRecord(timestamp=i, message=f"{n}-{i}"))

        def consumer():
            while not stop.is_set():
                drained.extend(buf.drain())

        consumer_thread = threading.Thread(target=consumer)
        consumer_thread.start()
        producers = [threading.Thread(target=producer, args=(n,)) for n in range(4)]
        for t in producers:
            t.start()
        for t in producers:
            t.join()
        stop.set()
        consumer_thread.join()
        drained.extend(buf.drain())

        messages = [r.message for r in drained]
        assert len(messages) == 4000
        assert len(set(messages)) == 4000


class TestCapacity:
    """Tests for the at_capacity signal."""

    def test_full_buffer_is_at_capacity(self, buffer):
        for i in range(MAX_BUFFER_LENGTH - 1):
            buffer.add(LogRecord(timestamp=i, message="m"))
        assert not buffer.at_capacity

        buffer.add(LogRecord(timestamp=0, message="last"))
        assert buffer.at_capacity

    def test_deferral_is_at_capacity(self, buffer):
        for i in range(5):
            buffer.add(_record(i, 200_000))
        assert not buffer.at_capacity

        buffer.add(_record(5, 200_000))
        assert buffer.at_capacity

        buffer.clear()
        assert buffer.deferred_count == 0
        assert not buffer.at_capacity
