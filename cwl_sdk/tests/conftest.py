"""Pytest fixtures for cwl_sdk tests."""

import os
import tempfile
import threading
import time
from datetime import datetime
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from cwl_sdk.clock import TransportClock
from cwl_sdk.config import TransportConfig


def client_error(code: str, operation: str = "PutLogEvents") -> ClientError:
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeSink:
    """
    In-memory stand-in for CloudWatchLogsSink.

    Records every call. Errors queued in group_errors / stream_errors /
    put_errors are raised by the next matching call.
    """

    def __init__(self):
        self.groups = []
        self.streams = []
        self.puts = []
        self.group_errors = []
        self.stream_errors = []
        self.put_errors = []
        self.closed = False
        self.put_delay = 0.0
        self._lock = threading.Lock()

    def create_group(self, name):
        with self._lock:
            self.groups.append(name)
            if self.group_errors:
                raise self.group_errors.pop(0)

    def create_stream(self, group, name):
        with self._lock:
            self.streams.append((group, name))
            if self.stream_errors:
                raise self.stream_errors.pop(0)

    def put(self, group, stream, records):
        if self.put_delay:
            time.sleep(self.put_delay)
        with self._lock:
            if self.put_errors:
                raise self.put_errors.pop(0)
            self.puts.append((group, stream, list(records)))
        return bool(records)

    def close(self):
        self.closed = True

    @property
    def shipped(self):
        """All records passed to put(), in call order."""
        with self._lock:
            return [record for _, _, batch in self.puts for record in batch]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def frozen_clock():
    """A clock frozen at 2024-05-01 13:07:30 local time."""
    return TransportClock(frozen_time=datetime(2024, 5, 1, 13, 7, 30))


@pytest.fixture
def fake_sink():
    return FakeSink()


@pytest.fixture
def make_client_error():
    return client_error


@pytest.fixture
def transport_config():
    """Fast-flushing config with rotation disabled."""
    return TransportConfig(
        log_group_name="test-group",
        log_stream_name="test-stream",
        rotation_interval_ms=0,
        flush_interval_ms=1000,
        debounce_ms=20,
        max_wait_ms=100,
    )


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def clean_env(monkeypatch, temp_dir):
    """Run from an empty directory with no CWL_* or AWS_* variables set."""
    for name in list(os.environ):
        if name.startswith(("CWL_", "AWS_")):
            monkeypatch.delenv(name)
    monkeypatch.chdir(temp_dir)
    return temp_dir
