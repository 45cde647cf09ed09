"""
StreamManager - owns the name of the log stream records are written to.

With rotation enabled the active name is "<base>-YYYY-MM-DD-HH-mm", taken
from local time when the stream is created, and a timer thread rotates to
a fresh name every rotation_interval_ms. With rotation disabled the base
name is used as is.

Name resolution and rotation share one lock, so a reader asking for the
name mid-rotation waits for the new name instead of seeing a half-updated
one. The flush that precedes a rotation runs outside that lock.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from .clock import TransportClock, default_clock

logger = logging.getLogger(__name__)

DEFAULT_ROTATION_INTERVAL_MS = 10 * 60 * 1000


class StreamManager:
    """
    Resolves and rotates the active log stream name.

    Attributes:
        group: Log group the streams live in
        base_name: Stream name prefix (rotation) or full name (static)
        rotation_interval_ms: Rotation period; falsy disables rotation
    """

    def __init__(
        self,
        sink,
        group: str,
        base_name: str,
        rotation_interval_ms: Optional[int] = DEFAULT_ROTATION_INTERVAL_MS,
        flush: Optional[Callable[[], None]] = None,
        on_rotated: Optional[Callable[[str], None]] = None,
        clock: Optional[TransportClock] = None,
    ):
        """
        Args:
            sink: Remote sink providing create_stream(group, name)
            group: Log group name
            base_name: Base stream name
            rotation_interval_ms: Rotation period in ms, 0/None for a static name
            flush: Flushes the buffer under the current name before rotating
            on_rotated: Called with the new name after each rotation
            clock: Clock used to build time-bucketed names
        """
        self._sink = sink
        self.group = group
        self.base_name = base_name
        self.rotation_interval_ms = rotation_interval_ms or 0
        self._flush = flush
        self._on_rotated = on_rotated
        self._clock = clock or default_clock

        self._lock = threading.Lock()
        self._active_name: Optional[str] = None
        self._rotation_epoch: Optional[datetime] = None
        self._stop_event = threading.Event()
        self._timer: Optional[threading.Thread] = None

    @property
    def rotation_enabled(self) -> bool:
        return self.rotation_interval_ms > 0

    @property
    def active_name(self) -> Optional[str]:
        """Currently cached name, or None if nothing has been resolved yet."""
        with self._lock:
            return self._active_name

    @property
    def rotation_epoch(self) -> Optional[datetime]:
        """Time the active name was computed from."""
        with self._lock:
            return self._rotation_epoch

    def next_name(self) -> str:
        """Build a time-bucketed stream name from the current local time."""
        stamp = self._clock.now().strftime("%Y-%m-%d-%H-%M")
        if not self.base_name:
            return stamp
        return f"{self.base_name}-{stamp}"

    def resolve_active_name(self) -> str:
        """
        Return the active stream name, creating the stream on first use.

        Raises:
            botocore.exceptions.ClientError: if the stream cannot be created
        """
        with self._lock:
            if self._active_name is None:
                self._activate(self.next_name() if self.rotation_enabled else self.base_name)
            return self._active_name

    def rotate(self) -> str:
        """
        Switch to a new time-bucketed stream.

        Records already buffered are flushed to the old stream first.

        Returns:
            The new active name
        """
        if self.active_name is not None and self._flush is not None:
            self._flush()

        with self._lock:
            # A failed creation leaves no active name, so the next resolve retries
            self._active_name = None
            name = self._activate(self.next_name())

        logger.info(f"Rotated log stream to {self.group}/{name}")
        if self._on_rotated is not None:
            self._on_rotated(name)
        return name

    def start(self) -> None:
        """Resolve the first stream and start the rotation timer if enabled."""
        self._stop_event.clear()
        try:
            self.resolve_active_name()
        finally:
            if self.rotation_enabled and self._timer is None:
                self._timer = threading.Thread(
                    target=self._rotation_loop,
                    daemon=True,
                    name="cwl-stream-rotation",
                )
                self._timer.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel the rotation timer."""
        self._stop_event.set()
        timer = self._timer
        self._timer = None
        if timer is not None and timer.is_alive() and timer is not threading.current_thread():
            timer.join(timeout=timeout)

    def _activate(self, name: str) -> str:
        # Called with the lock held
        self._sink.create_stream(self.group, name)
        self._active_name = name
        self._rotation_epoch = self._clock.now().replace(second=0, microsecond=0)
        return name

    def _rotation_loop(self) -> None:
        """
        Background thread that rotates the stream every interval.
        """
        interval_sec = self.rotation_interval_ms / 1000.0

        while not self._stop_event.wait(timeout=interval_sec):
            try:
                self.rotate()
            except Exception as e:
                logger.error(f"Log stream rotation failed: {e}")
