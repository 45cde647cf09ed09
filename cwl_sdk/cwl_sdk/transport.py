"""
CloudWatchTransport - buffered, non-blocking log shipping to CloudWatch Logs.

The ingestion path must never fail or block on shipping problems. Records
are buffered in memory and a background scheduler flushes them in
timestamp order to the active log stream.

Architecture:
    emit() → RecordBuffer → FlushScheduler → flush body →
        StreamManager (resolve/rotate) → CloudWatchLogsSink.put()

Components:
    RecordBuffer: quota-aware in-memory buffer (buffer.py)
    FlushScheduler: debounce/max-wait flush worker (scheduler.py)
    StreamManager: active stream name and rotation timer (streams.py)
    CloudWatchLogsSink: boto3 adapter (remote.py)
"""

import logging
import threading
from typing import Callable, List, Optional

from .buffer import RecordBuffer
from .clock import TransportClock, default_clock
from .config import TransportConfig
from .records import LogRecord, error_record
from .remote import CloudWatchLogsSink
from .scheduler import FlushScheduler
from .streams import StreamManager

logger = logging.getLogger(__name__)

INIT_ERROR_MESSAGE = "cwl_sdk initialization error"
FLUSH_ERROR_MESSAGE = "cwl_sdk flushing error"

# Upper bound on forced flushes at close; each one drains up to a full batch
_MAX_CLOSE_PASSES = 16


class CloudWatchTransport:
    """
    Ships log records to one CloudWatch Logs group.

    Usage:
        config = TransportConfig(log_group_name="app", log_stream_name="web")
        with CloudWatchTransport(config).start() as transport:
            transport.write("hello")

    Each instance owns its buffer, timers and client; nothing is shared
    between instances.
    """

    def __init__(
        self,
        config: TransportConfig,
        sink: Optional[CloudWatchLogsSink] = None,
        clock: Optional[TransportClock] = None,
    ):
        """
        Initialize the transport. Nothing touches the network until start().

        Args:
            config: Transport configuration
            sink: Remote sink; built from config when omitted
            clock: Clock for timestamps and stream names
        """
        self.config = config.validate()
        self._clock = clock or default_clock
        self._sink = sink or CloudWatchLogsSink(
            region=config.aws_region,
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
        )

        self._buffer = RecordBuffer(
            flush_interval_ms=config.flush_interval_ms,
            max_deferred=config.max_deferred,
            clock=self._clock,
        )
        self._scheduler = FlushScheduler(
            self._flush_body,
            debounce_ms=config.debounce_ms,
            max_wait_ms=config.max_wait_ms,
            on_executed=self._notify_flushed,
        )
        self._streams = StreamManager(
            self._sink,
            config.log_group_name,
            config.log_stream_name,
            rotation_interval_ms=config.rotation_interval_ms,
            flush=self._flush_before_rotation,
            on_rotated=lambda name: self._buffer.mark_rotation(),
            clock=self._clock,
        )

        self._listeners: List[Callable[[], None]] = []
        self._listeners_lock = threading.Lock()
        self._started = False
        self._closed = False

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> "CloudWatchTransport":
        """
        Create the log group and first stream, then start background work.

        Creation failures are recorded as error records in the buffer and
        do not abort startup.
        """
        if self._started:
            return self
        self._started = True

        group = self.config.log_group_name
        logger.info(f"Creating log group {group}")
        try:
            self._sink.create_group(group)
        except Exception as e:
            logger.error(f"Failed to create log group {group}: {e}")
            self._add_error(INIT_ERROR_MESSAGE, e)

        try:
            self._streams.start()
        except Exception as e:
            logger.error(f"Failed to create log stream in {group}: {e}")
            self._add_error(INIT_ERROR_MESSAGE, e)

        self._scheduler.start()
        return self

    def close(self) -> None:
        """
        Flush everything and release the client.

        Order matters: the rotation timer is stopped, then the scheduler,
        then buffered records are flushed synchronously, and only then is
        the client closed.
        """
        if self._closed:
            return
        self._closed = True

        self._streams.stop()
        self._scheduler.stop()

        passes = 0
        while True:
            self._scheduler.flush(force=True)
            passes += 1
            if self._buffer.is_empty():
                break
            if passes >= _MAX_CLOSE_PASSES:
                logger.warning(
                    f"Closing with {self._buffer.pending_count + self._buffer.deferred_count} "
                    "log events unsent"
                )
                break

        self._sink.close()

    def __enter__(self) -> "CloudWatchTransport":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # -- ingestion ----------------------------------------------------------

    def emit(self, record: LogRecord) -> None:
        """
        Buffer a record (non-blocking). Never raises for shipping problems.
        """
        if self._buffer.add(record):
            self._request_flush()

    def write(self, message: str, timestamp: Optional[int] = None) -> None:
        """Buffer a message, stamped with the current time if no timestamp is given."""
        if timestamp is None:
            timestamp = self._clock.millis()
        self.emit(LogRecord(timestamp=timestamp, message=message))

    def write_line(self, line: str) -> None:
        """Buffer one raw JSON-lines log line."""
        self.emit(LogRecord.from_line(line, clock=self._clock))

    def flush(self, force: bool = False) -> None:
        """
        Flush buffered records.

        Args:
            force: Flush now and wait for completion instead of scheduling
        """
        self._scheduler.flush(force=force)

    def add_flush_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback fired after every scheduled (non-forced) flush."""
        with self._listeners_lock:
            self._listeners.append(callback)

    def remove_flush_listener(self, callback: Callable[[], None]) -> None:
        with self._listeners_lock:
            self._listeners.remove(callback)

    # -- introspection ------------------------------------------------------

    @property
    def buffer(self) -> RecordBuffer:
        return self._buffer

    @property
    def scheduler(self) -> FlushScheduler:
        return self._scheduler

    @property
    def streams(self) -> StreamManager:
        return self._streams

    @property
    def pending_count(self) -> int:
        """Records waiting to be shipped, deferred ones included."""
        return self._buffer.pending_count + self._buffer.deferred_count

    # -- flush path ---------------------------------------------------------

    def _flush_body(self) -> None:
        """
        Ship the current buffer once. Runs under the scheduler's execution lock.

        The batch leaves the buffer before the remote call, so it is never
        sent twice and records arriving meanwhile are kept for the next flush.
        Deferred records promoted by the drain are shipped by an urgent
        follow-up execution.
        """
        promoting = self._buffer.deferred_count > 0
        batch = self._buffer.drain()
        try:
            stream = self._streams.resolve_active_name()
            self._sink.put(self.config.log_group_name, stream, batch)
        except Exception as e:
            logger.error(f"Flushing {len(batch)} log events failed: {e}")
            self._add_error(FLUSH_ERROR_MESSAGE, e)

        if self._buffer.pending_count and not self._closed:
            self._scheduler.trigger(urgent=promoting or self._buffer.at_capacity)

    def _flush_before_rotation(self) -> None:
        if not self._buffer.is_empty():
            self._scheduler.flush(force=True)

    def _request_flush(self) -> None:
        # A full buffer or a deferral must not wait out the debounce
        self._scheduler.trigger(urgent=self._buffer.at_capacity)

    def _add_error(self, message: str, error: BaseException) -> None:
        if self._buffer.add(error_record(message, error, clock=self._clock)) and self._started:
            self._request_flush()

    def _notify_flushed(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for callback in listeners:
            callback()


def init_transport(
    log_group_name: str,
    log_stream_name: str,
    rotation_interval_ms: Optional[int] = 10 * 60 * 1000,
    flush_interval_ms: int = 1000,
    aws_region: Optional[str] = None,
) -> CloudWatchTransport:
    """
    Build and start a transport.

    Convenience function for setting up log shipping in one call.

    Args:
        log_group_name: Destination log group
        log_stream_name: Base stream name
        rotation_interval_ms: Stream rotation period, 0/None for a static stream
        flush_interval_ms: Periodic flush interval
        aws_region: AWS region

    Returns:
        The started CloudWatchTransport
    """
    config = TransportConfig(
        log_group_name=log_group_name,
        log_stream_name=log_stream_name,
        rotation_interval_ms=rotation_interval_ms,
        flush_interval_ms=flush_interval_ms,
        aws_region=aws_region,
    )
    return CloudWatchTransport(config).start()
