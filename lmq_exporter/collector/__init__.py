"""
Collector module - LMQ stats polling and Prometheus series mapping.
"""
from lmq_exporter.collector.lmq_collector import LMQCollector, SERIES
from lmq_exporter.collector.stats import LMQStats, QueueSeries, parse_snapshot

__all__ = [
    "LMQCollector",
    "SERIES",
    "LMQStats",
    "QueueSeries",
    "parse_snapshot",
]
