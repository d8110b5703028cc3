#!/usr/bin/env python3
"""
LMQ Exporter - Prometheus exporter for LMQ queue statistics.
Polls the LMQ /stats endpoint on scrape (at most once per refresh interval)
and serves the values over HTTP.
"""
import argparse
import signal
import sys
import threading
from typing import List, Optional

from prometheus_client import CollectorRegistry

from lmq_exporter import __version__
from lmq_exporter.collector.lmq_collector import LMQCollector
from lmq_exporter.common.correlation import set_component
from lmq_exporter.common.exceptions import ConfigurationError
from lmq_exporter.common.logging_config import set_level, setup_logging
from lmq_exporter.config.settings import (
    parse_duration,
    parse_listen_address,
    settings,
)
from lmq_exporter.web.server import ExporterServer

logger = setup_logging("lmq_exporter", level=settings.logging.level)

set_component("exporter")

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    """Command-line flags; defaults come from environment-backed settings."""
    parser = argparse.ArgumentParser(
        description="LMQ Exporter - expose LMQ queue statistics to Prometheus"
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=settings.web.listen_address,
        help=f"Address on which to expose metrics (default: {settings.web.listen_address})"
    )
    parser.add_argument(
        "--web.metrics-path",
        dest="metrics_path",
        default=settings.web.metrics_path,
        help=f"Path under which to expose metrics (default: {settings.web.metrics_path})"
    )
    parser.add_argument(
        "--collector.min-interval",
        dest="min_interval",
        default=settings.collector.min_interval,
        help=f"Minimum update interval (default: {settings.collector.min_interval})"
    )
    parser.add_argument(
        "--lmq.uri",
        dest="lmq_uri",
        default=settings.lmq.uri,
        help=f"LMQ stats URI (default: {settings.lmq.uri})"
    )
    parser.add_argument(
        "--lmq.timeout",
        dest="lmq_timeout",
        default=settings.lmq.timeout,
        help=f"Timeout for one LMQ stats request (default: {settings.lmq.timeout})"
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        type=str.upper,
        choices=_LOG_LEVELS,
        default=settings.logging.level.upper(),
        help=f"Log level (default: {settings.logging.level.upper()})"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"lmq_exporter {__version__}"
    )
    return parser


def create_collector(args: argparse.Namespace) -> LMQCollector:
    """Build the collector from parsed flags. Raises ConfigurationError."""
    return LMQCollector(
        uri=args.lmq_uri,
        interval=parse_duration(args.min_interval),
        timeout=parse_duration(args.lmq_timeout),
    )


def create_server(args: argparse.Namespace, collector: LMQCollector) -> ExporterServer:
    """Register the collector in a fresh registry and wrap it in a server."""
    host, port = parse_listen_address(args.listen_address)
    registry = CollectorRegistry()
    registry.register(collector)
    return ExporterServer(
        registry,
        host=host,
        port=port,
        metrics_path=args.metrics_path,
        collector=collector,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    set_level(args.log_level)

    try:
        collector = create_collector(args)
        server = create_server(args, collector)
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    logger.info(f"Starting lmq_exporter {__version__} for {args.lmq_uri}")
    try:
        server.start()
    except OSError as e:
        logger.critical(f"Failed to listen on {args.listen_address}: {e}")
        collector.close()
        return 1

    try:
        while not stop_event.wait(1.0):
            pass
    finally:
        server.stop()
        collector.close()

    logger.info("Exporter terminated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
