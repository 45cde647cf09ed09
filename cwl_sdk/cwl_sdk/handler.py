"""
logging.Handler that feeds records into a CloudWatchTransport.

Usage:
    transport = CloudWatchTransport(config).start()
    logging.getLogger().addHandler(CloudWatchHandler(transport, owns_transport=True))
"""

import logging

from .records import LogRecord
from .transport import CloudWatchTransport

# Loggers whose records must never be shipped, or a failing put would log
# about itself forever
_INTERNAL_LOGGERS = ("cwl_sdk", "botocore", "boto3", "urllib3")


def _is_internal(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix + ".") for prefix in _INTERNAL_LOGGERS)


class CloudWatchHandler(logging.Handler):
    """Formats log records and hands them to a transport."""

    def __init__(
        self,
        transport: CloudWatchTransport,
        level: int = logging.NOTSET,
        owns_transport: bool = False,
    ):
        super().__init__(level)
        self.transport = transport
        self.owns_transport = owns_transport

    def emit(self, record: logging.LogRecord) -> None:
        if _is_internal(record.name):
            return
        try:
            message = self.format(record)
            self.transport.emit(
                LogRecord(timestamp=int(record.created * 1000), message=message)
            )
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        self.transport.flush()

    def close(self) -> None:
        try:
            if self.owns_transport:
                self.transport.close()
        finally:
            super().close()
