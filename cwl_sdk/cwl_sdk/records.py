"""
LogRecord - the unit shipped to CloudWatch Logs.

A record is an epoch-millisecond timestamp plus an opaque message string.
The transport never interprets the message; line parsing only looks for a
"time" field to use as the timestamp.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .clock import TransportClock, default_clock

logger = logging.getLogger(__name__)

# Fixed per-event overhead CloudWatch adds when sizing a batch
EVENT_OVERHEAD_BYTES = 26


@dataclass(frozen=True)
class LogRecord:
    """An immutable log event: timestamp in epoch millis and message text."""

    timestamp: int
    message: str

    def to_event(self) -> Dict[str, Any]:
        """Render as a PutLogEvents InputLogEvent."""
        return {"timestamp": self.timestamp, "message": self.message}

    @property
    def size(self) -> int:
        """Billed size of the event: message length plus the 26-byte overhead."""
        return len(self.message) + EVENT_OVERHEAD_BYTES

    @classmethod
    def from_line(cls, line: str, clock: Optional[TransportClock] = None) -> "LogRecord":
        """
        Build a record from one line of JSON-lines log output.

        The whole line (minus the trailing newline) becomes the message.
        If the line is a JSON object with an integer "time" field, that is
        the timestamp; otherwise the current time is used. Lines that are
        not JSON are still shipped.

        Args:
            line: Raw log line
            clock: Clock used for the fallback timestamp

        Returns:
            The parsed LogRecord
        """
        clock = clock or default_clock
        message = line.rstrip("\r\n")

        timestamp = None
        try:
            value = json.loads(message)
        except ValueError:
            logger.debug("Log line is not JSON, using current time")
            value = None

        if isinstance(value, dict):
            raw_time = value.get("time")
            # bool is an int subclass, reject it explicitly
            if isinstance(raw_time, int) and not isinstance(raw_time, bool):
                timestamp = raw_time

        if timestamp is None:
            timestamp = clock.millis()
        return cls(timestamp=timestamp, message=message)


def error_record(
    message: str,
    error: BaseException,
    clock: Optional[TransportClock] = None,
) -> LogRecord:
    """
    Build a synthetic record describing a failure inside the transport.

    These are shipped like any other record so shipping problems show up
    in the destination stream.
    """
    clock = clock or default_clock
    payload = {"message": message, "error": str(error)}
    return LogRecord(timestamp=clock.millis(), message=json.dumps(payload))
