"""
cwl-ship - ship JSON-lines logs from stdin to CloudWatch Logs.

Usage:
    # Pipe an application's JSON logs
    myapp | cwl-ship --group my-app --stream web

    # Use a config file (cwl.yaml) and override the region
    myapp | cwl-ship --config cwl.yaml --region eu-west-1

    # Static stream name, no rotation
    myapp | cwl-ship --group my-app --stream web --rotation-interval-ms 0
"""

import argparse
import logging
import os
import sys
from typing import List, Optional, TextIO

import yaml

from .config import ConfigError, TransportConfig, load_config
from .transport import CloudWatchTransport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cwl-ship",
        description="Ship JSON-lines logs from stdin to CloudWatch Logs",
    )
    parser.add_argument("--config", help="Path to cwl.yaml or a JSON config file")
    parser.add_argument("--group", help="Log group name")
    parser.add_argument("--stream", help="Base log stream name")
    parser.add_argument(
        "--rotation-interval-ms",
        type=int,
        help="Stream rotation period in ms (0 disables rotation)",
    )
    parser.add_argument("--flush-interval-ms", type=int, help="Periodic flush interval in ms")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument(
        "--echo",
        action="store_true",
        help="Copy every input line to stdout",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def resolve_config(args: argparse.Namespace) -> TransportConfig:
    """Merge config file / environment settings with command-line flags."""
    overrides = {
        "log_group_name": args.group,
        "log_stream_name": args.stream,
        "rotation_interval_ms": args.rotation_interval_ms,
        "flush_interval_ms": args.flush_interval_ms,
        "aws_region": args.region,
    }
    return load_config(args.config, overrides=overrides)


def ship(transport: CloudWatchTransport, stream: TextIO, echo: Optional[TextIO] = None) -> int:
    """Read lines until EOF and hand them to the transport. Returns the line count."""
    count = 0
    for line in stream:
        if echo is not None:
            echo.write(line)
        if not line.strip():
            continue
        transport.write_line(line)
        count += 1
    return count


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug or os.environ.get("CWL_DEBUG") else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = resolve_config(args)
    except (ConfigError, FileNotFoundError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_CONFIG_ERROR

    transport = CloudWatchTransport(config).start()
    try:
        count = ship(transport, sys.stdin, echo=sys.stdout if args.echo else None)
        logger.info(f"Read {count} log lines")
    except KeyboardInterrupt:
        logger.info("Interrupted, flushing buffered logs")
    except Exception as e:
        logger.error(f"Shipping aborted: {e}")
        return EXIT_FAILURE
    finally:
        transport.close()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
