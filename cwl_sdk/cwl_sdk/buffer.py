"""
In-memory record buffer with CloudWatch PutLogEvents quota limits.

Records that would push a batch over its size or count quota are not
inserted straight away. They wait on a bounded FIFO deferred queue and are
promoted into the buffer, oldest first, every time the buffer is cleared.
While anything is deferred, new arrivals queue behind it so the arrival
order is kept.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from operator import attrgetter
from typing import Deque, List, Optional

from .clock import TransportClock, default_clock
from .records import EVENT_OVERHEAD_BYTES, LogRecord

logger = logging.getLogger(__name__)

# https://docs.aws.amazon.com/AmazonCloudWatch/latest/logs/cloudwatch_limits_cwl.html
MAX_EVENT_SIZE = 256 * 1024

# https://docs.aws.amazon.com/AmazonCloudWatchLogs/latest/APIReference/API_PutLogEvents.html
MAX_BUFFER_LENGTH = 10_000
MAX_BUFFER_SIZE = 1_048_576


class RecordBuffer:
    """Bounded buffer of LogRecord objects awaiting a flush.

    add() reports whether a flush is needed. A flush is needed when the
    record count hits MAX_BUFFER_LENGTH, when more than flush_interval_ms
    passed since the previous check, for the first record after start or
    rotation, and whenever a record had to be deferred.
    """

    def __init__(
        self,
        flush_interval_ms: int = 1000,
        max_deferred: int = MAX_BUFFER_LENGTH,
        clock: Optional[TransportClock] = None,
    ):
        self._clock = clock or default_clock
        self.flush_interval_ms = flush_interval_ms
        self.max_deferred = max_deferred

        self._records: List[LogRecord] = []
        self._deferred: Deque[LogRecord] = deque()
        self._size = 0
        self._dropped_count = 0
        self._awaiting_first = True
        self._last_flush = self._clock.millis()
        self.lock = threading.RLock()

    def add(self, record: LogRecord) -> bool:
        """
        Add a record to the buffer.

        Args:
            record: The record to buffer

        Returns:
            True if the buffer should be flushed soon
        """
        if len(record.message) >= MAX_EVENT_SIZE:
            logger.debug(f"Dropping oversized log event ({len(record.message)} chars)")
            with self.lock:
                self._dropped_count += 1
            return False

        with self.lock:
            if self._deferred or not self._fits(record):
                self._defer(record)
                return True

            self._append(record)
            full = len(self._records) >= MAX_BUFFER_LENGTH
            periodic = self._periodic_flush_due()
            first = self._take_first_flag()
            return full or periodic or first

    def snapshot(self) -> List[LogRecord]:
        """Return buffered records ordered by timestamp (stable for ties)."""
        with self.lock:
            return sorted(self._records, key=attrgetter("timestamp"))

    def clear(self) -> int:
        """
        Empty the buffer, then promote deferred records while they fit.

        Returns:
            Number of deferred records moved into the buffer
        """
        with self.lock:
            self._records.clear()
            self._size = 0
            return self._promote_deferred()

    def drain(self) -> List[LogRecord]:
        """Atomically take an ordered snapshot and clear the buffer."""
        with self.lock:
            batch = self.snapshot()
            self.clear()
            return batch

    def mark_rotation(self) -> None:
        """Make the next accepted record request a flush."""
        with self.lock:
            self._awaiting_first = True

    @property
    def pending_count(self) -> int:
        """Number of records waiting in the buffer itself."""
        with self.lock:
            return len(self._records)

    @property
    def deferred_count(self) -> int:
        """Number of records waiting for space in the buffer."""
        with self.lock:
            return len(self._deferred)

    @property
    def dropped_count(self) -> int:
        """Records dropped for being oversized or overflowing the deferred queue."""
        with self.lock:
            return self._dropped_count

    @property
    def size_bytes(self) -> int:
        """Aggregate batch size including the per-event overhead."""
        with self.lock:
            return self._size

    @property
    def at_capacity(self) -> bool:
        """True when the buffer holds MAX_BUFFER_LENGTH records or anything is deferred."""
        with self.lock:
            return bool(self._deferred) or len(self._records) >= MAX_BUFFER_LENGTH

    def is_empty(self) -> bool:
        with self.lock:
            return not self._records and not self._deferred

    def __len__(self) -> int:
        return self.pending_count

    # -- internals, called with the lock held ------------------------------

    def _fits(self, record: LogRecord) -> bool:
        if len(self._records) >= MAX_BUFFER_LENGTH:
            return False
        return self._size + record.size < MAX_BUFFER_SIZE

    def _append(self, record: LogRecord) -> None:
        self._records.append(record)
        self._size += record.size

    def _defer(self, record: LogRecord) -> None:
        if len(self._deferred) >= self.max_deferred:
            self._deferred.popleft()
            self._dropped_count += 1
            if self._dropped_count % 100 == 1:
                logger.warning(
                    f"Deferred queue full, dropped {self._dropped_count} log events"
                )
        self._deferred.append(record)

    def _promote_deferred(self) -> int:
        promoted = 0
        while self._deferred and self._fits(self._deferred[0]):
            self._append(self._deferred.popleft())
            promoted += 1
        return promoted

    def _periodic_flush_due(self) -> bool:
        now = self._clock.millis()
        elapsed = now - self._last_flush
        self._last_flush = now
        return elapsed > self.flush_interval_ms

    def _take_first_flag(self) -> bool:
        if self._awaiting_first:
            self._awaiting_first = False
            return True
        return False
