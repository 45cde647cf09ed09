"""
FlushScheduler - coalesces flush requests into bounded-latency executions.

Policy: debounce with max wait. A burst of trigger() calls produces one
execution once debounce_ms pass without a new trigger, but an execution is
forced once max_wait_ms have passed since the first trigger it serves, so
a continuous trigger train still flushes regularly.

States:
    IDLE      - nothing requested
    PENDING   - at least one trigger not yet served, timer running
    EXECUTING - the flush body is running on the worker thread

A trigger that arrives while EXECUTING is remembered and moves the
scheduler back to PENDING when the execution completes. An urgent trigger
skips the timer: it runs as soon as the worker is free, right after any
execution already in progress. Flush bodies never overlap: forced flushes
and worker executions share one lock.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class FlushState(Enum):
    """Scheduler states."""
    IDLE = "idle"
    PENDING = "pending"
    EXECUTING = "executing"


class FlushScheduler:
    """
    Runs a flush body on a background thread with debounce and max wait.

    Features:
        - Non-blocking trigger(), optionally urgent
        - One flush body at a time, forced or scheduled
        - Forced flush runs synchronously on the caller's thread
        - on_executed callback after each scheduled execution
    """

    def __init__(
        self,
        body: Callable[[], None],
        debounce_ms: int = 1000,
        max_wait_ms: int = 5000,
        on_executed: Optional[Callable[[], None]] = None,
        name: str = "cwl-flush",
    ):
        """
        Initialize the FlushScheduler.

        Args:
            body: The flush body to run
            debounce_ms: Quiet time required before a scheduled execution
            max_wait_ms: Upper bound on how long a trigger can wait
            on_executed: Called after every non-forced execution
            name: Worker thread name
        """
        if debounce_ms < 0 or max_wait_ms < 0:
            raise ValueError("debounce_ms and max_wait_ms must be >= 0")

        self._body = body
        self.debounce_ms = debounce_ms
        self.max_wait_ms = max(max_wait_ms, debounce_ms)
        self._on_executed = on_executed
        self._name = name

        self._cond = threading.Condition()
        self._execution_lock = threading.Lock()
        self._state = FlushState.IDLE
        self._first_trigger: Optional[float] = None
        self._last_trigger: Optional[float] = None
        self._urgent = False
        self._stopped = True
        self._thread: Optional[threading.Thread] = None
        self._execution_count = 0

    def start(self) -> None:
        """Start the worker thread. Calling start() twice is harmless."""
        with self._cond:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopped = False
            self._thread = threading.Thread(
                target=self._run,
                daemon=True,
                name=self._name,
            )
            self._thread.start()

    def stop(self, timeout: Optional[float] = 30.0) -> None:
        """
        Stop the worker thread.

        An execution already in progress completes first. Triggers not yet
        served stay unserved; callers follow up with flush(force=True).
        """
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def trigger(self, urgent: bool = False) -> None:
        """
        Request a flush (non-blocking, coalesced).

        Args:
            urgent: Skip the debounce and max-wait timer; the flush runs as
                soon as the worker is free
        """
        now = time.monotonic()
        with self._cond:
            self._last_trigger = now
            if self._first_trigger is None:
                self._first_trigger = now
            if urgent:
                self._urgent = True
            if self._state is FlushState.IDLE:
                self._state = FlushState.PENDING
            self._cond.notify_all()

    def flush(self, force: bool = False) -> None:
        """
        Request a flush.

        Args:
            force: Run the body now on this thread, skipping coalescing,
                and return when it has finished
        """
        if not force:
            self.trigger()
            return
        self._execute(forced=True)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no trigger is pending or executing. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state is FlushState.IDLE, timeout=timeout)

    @property
    def state(self) -> FlushState:
        with self._cond:
            return self._state

    @property
    def execution_count(self) -> int:
        """Number of flush bodies run so far, forced ones included."""
        with self._cond:
            return self._execution_count

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _deadline(self) -> float:
        # Called with the condition held and both trigger times set
        if self._urgent:
            return self._first_trigger
        debounce_at = self._last_trigger + self.debounce_ms / 1000.0
        max_wait_at = self._first_trigger + self.max_wait_ms / 1000.0
        return min(debounce_at, max_wait_at)

    def _run(self) -> None:
        """
        Worker loop: wait for PENDING, wait out the timer, execute.
        """
        while True:
            with self._cond:
                while not self._stopped and self._state is not FlushState.PENDING:
                    self._cond.wait()
                if self._stopped:
                    return

                remaining = self._deadline() - time.monotonic()
                if remaining > 0:
                    self._cond.wait(timeout=remaining)
                    continue

                self._state = FlushState.EXECUTING
                self._first_trigger = None
                self._last_trigger = None
                self._urgent = False

            self._execute(forced=False)

            with self._cond:
                if self._first_trigger is not None:
                    self._state = FlushState.PENDING
                else:
                    self._state = FlushState.IDLE
                self._cond.notify_all()

    def _execute(self, forced: bool) -> None:
        with self._execution_lock:
            try:
                self._body()
            except Exception:
                logger.exception("Flush body raised")
            finally:
                with self._cond:
                    self._execution_count += 1

        if not forced and self._on_executed is not None:
            try:
                self._on_executed()
            except Exception:
                logger.exception("Flush listener raised")
