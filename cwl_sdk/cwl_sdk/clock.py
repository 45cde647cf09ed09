"""
TransportClock - Wall clock with an optional frozen time.

Stream names are bucketed by local time and records are stamped in epoch
milliseconds. Both read the time through a TransportClock so tests can pin
the clock to a known instant.

Usage:
    from cwl_sdk.clock import TransportClock

    clock = TransportClock()
    clock.now()      # local naive datetime
    clock.millis()   # epoch milliseconds

    clock.freeze(datetime(2024, 5, 1, 13, 7, 30))
    assert clock.now().minute == 7
"""

import threading
import time
from datetime import datetime, timedelta
from typing import Optional


class TransportClock:
    """
    A clock that can be frozen to a fixed local time.

    When frozen, now() returns the frozen datetime and millis() the
    matching epoch milliseconds. Otherwise the real time is returned.
    """

    def __init__(self, frozen_time: Optional[datetime] = None):
        """
        Initialize the TransportClock.

        Args:
            frozen_time: If provided, the clock always returns this time
        """
        self._frozen_time: Optional[datetime] = frozen_time
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """
        Get the current local time.

        Returns:
            Current local time (frozen or real), naive
        """
        with self._lock:
            if self._frozen_time is not None:
                return self._frozen_time
        return datetime.now()

    def millis(self) -> int:
        """
        Get the current time as epoch milliseconds.

        Returns:
            Milliseconds since epoch
        """
        with self._lock:
            frozen = self._frozen_time
        if frozen is not None:
            # Naive datetimes are interpreted as local time by timestamp()
            return int(frozen.timestamp() * 1000)
        return int(time.time() * 1000)

    def freeze(self, dt: datetime) -> None:
        """
        Freeze the clock at a specific time.

        Args:
            dt: The time to freeze at
        """
        with self._lock:
            self._frozen_time = dt

    def advance(self, milliseconds: int) -> None:
        """Move a frozen clock forward. No-op when the clock is running."""
        with self._lock:
            if self._frozen_time is not None:
                self._frozen_time = self._frozen_time + timedelta(milliseconds=milliseconds)

    def unfreeze(self) -> None:
        """Unfreeze the clock to return real time."""
        with self._lock:
            self._frozen_time = None

    @property
    def is_frozen(self) -> bool:
        """Check if the clock is frozen."""
        with self._lock:
            return self._frozen_time is not None

    def __enter__(self) -> "TransportClock":
        return self

    def __exit__(self, *args) -> None:
        self.unfreeze()


# Shared default, used when a component is not handed its own clock
default_clock = TransportClock()
