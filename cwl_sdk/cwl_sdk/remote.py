"""
CloudWatchLogsSink - thin adapter over the boto3 CloudWatch Logs client.

Group and stream creation are idempotent. Batch puts are best-effort: a
missing stream is created and the put retried exactly once; every other
failure is logged and the batch is dropped.
"""

import logging
from typing import Any, Optional, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .records import LogRecord

logger = logging.getLogger(__name__)

ALREADY_EXISTS = "ResourceAlreadyExistsException"
NOT_FOUND = "ResourceNotFoundException"


def _error_code(err: BaseException) -> Optional[str]:
    if isinstance(err, ClientError):
        return err.response.get("Error", {}).get("Code")
    return None


def is_already_exists(err: BaseException) -> bool:
    """True if the error says the group or stream already exists."""
    return _error_code(err) == ALREADY_EXISTS


def is_not_found(err: BaseException) -> bool:
    """True if the error says the group or stream does not exist."""
    return _error_code(err) == NOT_FOUND


class CloudWatchLogsSink:
    """
    Writes batches of LogRecords to CloudWatch Logs.

    The boto3 client is created on first use. Region and credentials are
    handed to boto3 untouched; when they are absent boto3's default
    credential chain applies.
    """

    def __init__(
        self,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client: Any = None,
    ):
        """
        Initialize the sink.

        Args:
            region: AWS region name
            access_key_id: Explicit access key, used only with secret_access_key
            secret_access_key: Explicit secret key, used only with access_key_id
            client: Pre-built boto3 "logs" client (mainly for tests)
        """
        self.region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @property
    def client(self):
        """Lazy initialize the CloudWatch Logs client."""
        if self._client is None:
            kwargs = {}
            if self.region:
                kwargs["region_name"] = self.region
            if self._access_key_id and self._secret_access_key:
                kwargs["aws_access_key_id"] = self._access_key_id
                kwargs["aws_secret_access_key"] = self._secret_access_key
            self._client = boto3.client("logs", **kwargs)
        return self._client

    def create_group(self, name: str) -> None:
        """Create a log group; an existing group is fine."""
        try:
            self.client.create_log_group(logGroupName=name)
            logger.info(f"Created log group {name}")
        except ClientError as e:
            if is_already_exists(e):
                logger.debug(f"Log group {name} already exists")
                return
            raise

    def create_stream(self, group: str, name: str) -> None:
        """Create a log stream in a group; an existing stream is fine."""
        try:
            self.client.create_log_stream(logGroupName=group, logStreamName=name)
            logger.info(f"Created log stream {group}/{name}")
        except ClientError as e:
            if is_already_exists(e):
                logger.debug(f"Log stream {group}/{name} already exists")
                return
            raise

    def put(self, group: str, stream: str, records: Sequence[LogRecord]) -> bool:
        """
        Send one batch of timestamp-ordered records.

        Never raises for remote failures.

        Returns:
            True if the batch was accepted
        """
        if not records:
            return False

        try:
            self._put_events(group, stream, records)
            return True
        except ClientError as e:
            if not is_not_found(e):
                logger.error(f"Failed to put {len(records)} log events to {group}/{stream}: {e}")
                return False
            logger.warning(f"Log stream {group}/{stream} not found, recreating it")
        except BotoCoreError as e:
            logger.error(f"Failed to put {len(records)} log events to {group}/{stream}: {e}")
            return False

        # One retry after recreating the missing stream
        try:
            self.create_stream(group, stream)
            self._put_events(group, stream, records)
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(
                f"Retry failed, dropping {len(records)} log events for {group}/{stream}: {e}"
            )
            return False

    def close(self) -> None:
        """Release the underlying HTTP connections."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _put_events(self, group: str, stream: str, records: Sequence[LogRecord]) -> None:
        self.client.put_log_events(
            logGroupName=group,
            logStreamName=stream,
            logEvents=[record.to_event() for record in records],
        )
        logger.debug(f"Put {len(records)} log events to {group}/{stream}")
