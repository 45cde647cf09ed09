"""
cwl_sdk - buffered log shipping to Amazon CloudWatch Logs

This package provides:
- A non-blocking transport that batches log records under PutLogEvents quotas
- Debounced, bounded-latency flushing on a background thread
- Time-based log stream rotation
- A logging.Handler and a stdin shipper (cwl-ship) on top of the transport
"""

from cwl_sdk.buffer import MAX_BUFFER_LENGTH, MAX_BUFFER_SIZE, MAX_EVENT_SIZE, RecordBuffer
from cwl_sdk.clock import TransportClock
from cwl_sdk.config import ConfigError, TransportConfig, config_from_env, load_config
from cwl_sdk.handler import CloudWatchHandler
from cwl_sdk.records import LogRecord, error_record
from cwl_sdk.remote import CloudWatchLogsSink, is_already_exists, is_not_found
from cwl_sdk.scheduler import FlushScheduler, FlushState
from cwl_sdk.streams import StreamManager
from cwl_sdk.transport import CloudWatchTransport, init_transport

__version__ = "0.1.0"

__all__ = [
    # Records
    "LogRecord",
    "error_record",
    # Clock
    "TransportClock",
    # Buffer
    "RecordBuffer",
    "MAX_BUFFER_LENGTH",
    "MAX_BUFFER_SIZE",
    "MAX_EVENT_SIZE",
    # Scheduler
    "FlushScheduler",
    "FlushState",
    # Streams
    "StreamManager",
    # Remote
    "CloudWatchLogsSink",
    "is_already_exists",
    "is_not_found",
    # Config
    "TransportConfig",
    "ConfigError",
    "config_from_env",
    "load_config",
    # Transport
    "CloudWatchTransport",
    "init_transport",
    "CloudWatchHandler",
]
