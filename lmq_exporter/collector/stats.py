"""
Models for the LMQ ``/stats`` document.

Upstream reports, per queue::

    {"Queues": {"<name>": {"Size": 3, "Memory": 2048,
                           "Stats": {"Push": {"Count": 10},
                                     "Pull": {"Count": 7},
                                     "Retention": {"Min": 0.1, "Max": 9.9,
                                                   "arithmetic_mean": 2.2,
                                                   "Median": 1.5}}}}}

Unknown fields are ignored and missing numeric fields default to zero.
Values of the wrong JSON type (a string or bool where a number belongs)
make the whole document malformed.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lmq_exporter.common.exceptions import MalformedStatsError


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, frozen=True, strict=True
    )


class CountStats(_UpstreamModel):
    count: int = Field(default=0, alias="Count")


class RetentionStats(_UpstreamModel):
    """Retention time summary in seconds, computed by upstream."""
    min: float = Field(default=0.0, alias="Min")
    max: float = Field(default=0.0, alias="Max")
    mean: float = Field(default=0.0, alias="arithmetic_mean")
    median: float = Field(default=0.0, alias="Median")


class QueueActivity(_UpstreamModel):
    push: CountStats = Field(default_factory=CountStats, alias="Push")
    pull: CountStats = Field(default_factory=CountStats, alias="Pull")
    retention: RetentionStats = Field(default_factory=RetentionStats, alias="Retention")


class QueueStats(_UpstreamModel):
    size: int = Field(default=0, alias="Size")
    memory: int = Field(default=0, alias="Memory")
    stats: QueueActivity = Field(default_factory=QueueActivity, alias="Stats")


class LMQStats(_UpstreamModel):
    """One snapshot of every queue known to upstream."""
    queues: Optional[Dict[str, QueueStats]] = Field(default=None, alias="Queues")


@dataclass(frozen=True)
class QueueSeries:
    """The eight exported values of one queue."""

    size: float = 0.0
    memory_bytes: float = 0.0
    push: float = 0.0
    pull: float = 0.0
    retention_min: float = 0.0
    retention_max: float = 0.0
    retention_mean: float = 0.0
    retention_median: float = 0.0

    @classmethod
    def from_stats(cls, q: QueueStats) -> "QueueSeries":
        retention = q.stats.retention
        return cls(
            size=float(q.size),
            memory_bytes=float(q.memory),
            push=float(q.stats.push.count),
            pull=float(q.stats.pull.count),
            retention_min=retention.min,
            retention_max=retention.max,
            retention_mean=retention.mean,
            retention_median=retention.median,
        )


def parse_snapshot(body: bytes) -> Dict[str, QueueSeries]:
    """
    Parse a raw ``/stats`` response body into per-queue series values.

    Raises:
        MalformedStatsError: body is not JSON or does not match the shape
    """
    try:
        snapshot = LMQStats.model_validate_json(body)
    except ValidationError as e:
        raise MalformedStatsError(
            f"Unexpected stats document ({e.error_count()} errors): {e}"
        ) from e

    return {
        name: QueueSeries.from_stats(q)
        for name, q in (snapshot.queues or {}).items()
    }
