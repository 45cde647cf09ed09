"""
Plain Python demo shipping application logs to CloudWatch Logs.

This example demonstrates:
1. Building a CloudWatchTransport from a TransportConfig
2. Attaching CloudWatchHandler to the standard logging module
3. Writing raw JSON lines straight to the transport

Run this script with AWS credentials in the environment:
    AWS_REGION=us-east-1 python examples/plain_python/demo.py
"""

import json
import logging
import time

from cwl_sdk import CloudWatchHandler, CloudWatchTransport, TransportConfig


def main():
    config = TransportConfig(
        log_group_name="cwl-sdk-demo",
        log_stream_name="plain-python",
        rotation_interval_ms=60_000,
    )
    transport = CloudWatchTransport(config).start()

    handler = CloudWatchHandler(transport, owns_transport=True)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    app_logger = logging.getLogger("demo")
    app_logger.setLevel(logging.INFO)
    app_logger.addHandler(handler)

    # Example 1: regular logging calls
    for i in range(5):
        app_logger.info("processed order %d", i)
        time.sleep(0.2)

    # Example 2: pre-formatted JSON lines keep their own timestamp
    transport.write_line(json.dumps({"time": int(time.time() * 1000), "msg": "raw json line"}))

    # Example 3: wait for a scheduled flush
    flushed = []
    transport.add_flush_listener(lambda: flushed.append(time.time()))
    app_logger.warning("last message before shutdown")
    time.sleep(2)
    print(f"Scheduled flushes observed: {len(flushed)}")

    # Closing the handler flushes everything and closes the transport
    handler.close()


if __name__ == "__main__":
    main()
