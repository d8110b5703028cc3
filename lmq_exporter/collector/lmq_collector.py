"""
Prometheus collector for LMQ queue statistics.

Fetches the upstream ``/stats`` document lazily: a scrape only triggers an
upstream request once the previous successful snapshot is older than the
refresh interval. Failed refreshes keep serving the last good values.

Usage:
    from prometheus_client import CollectorRegistry

    collector = LMQCollector("http://localhost:9980/stats", interval=5.0)
    registry = CollectorRegistry()
    registry.register(collector)
"""
import math
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import requests
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from lmq_exporter import __version__
from lmq_exporter.collector.stats import QueueSeries, parse_snapshot
from lmq_exporter.common.exceptions import (
    ConfigurationError,
    MalformedStatsError,
    UpstreamTransportError,
)
from lmq_exporter.common.logging_config import get_logger
from lmq_exporter.config.settings import validate_uri

logger = get_logger(__name__)

NAMESPACE = "lmq"
SUBSYSTEM = "queue"
LABEL_NAMES = ["queue"]


class SeriesSpec(NamedTuple):
    """Static description of one exported metric family."""
    field: str
    name: str
    documentation: str
    kind: str

    @property
    def full_name(self) -> str:
        return f"{NAMESPACE}_{SUBSYSTEM}_{self.name}"


# ---------------------------------------------------------------------------
# Exported metric families
# ---------------------------------------------------------------------------

SERIES = (
    SeriesSpec("size", "size",
               "Number of messages currently in the queue.", "gauge"),
    SeriesSpec("memory_bytes", "memory_bytes",
               "Used memory in bytes.", "gauge"),
    SeriesSpec("push", "push",
               "Number of messages pushed to the queue.", "counter"),
    SeriesSpec("pull", "pull",
               "Number of messages pulled from the queue.", "counter"),
    SeriesSpec("retention_min", "retention_min",
               "The minimum retention time in seconds.", "gauge"),
    SeriesSpec("retention_max", "retention_max",
               "The maximum retention time in seconds.", "gauge"),
    SeriesSpec("retention_mean", "retention_mean",
               "Mean time of retention times in seconds.", "gauge"),
    SeriesSpec("retention_median", "retention_median",
               "A median of retention times in seconds.", "gauge"),
)


def _new_family(spec: SeriesSpec):
    if spec.kind == "counter":
        return CounterMetricFamily(spec.full_name, spec.documentation, labels=LABEL_NAMES)
    return GaugeMetricFamily(spec.full_name, spec.documentation, labels=LABEL_NAMES)


def _utc_iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")


class LMQCollector:
    """
    Custom ``prometheus_client`` collector backed by a lazily refreshed cache.

    The freshness check, upstream fetch and cache update run under the
    refresh lock, so concurrent scrapes arriving at expiry cause a single
    upstream request. Published state sits behind a separate short-lived
    lock: emission and the readiness accessors copy it without waiting on
    an in-flight fetch.

    Args:
        uri: upstream stats URL (http or https)
        interval: minimum seconds between successful upstream fetches
        timeout: per-request timeout in seconds for the upstream GET
        session: optional ``requests.Session`` (injected in tests)
        clock: monotonic time source used for expiry (injected in tests)
    """

    def __init__(
        self,
        uri: str,
        interval: float = 5.0,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not math.isfinite(interval) or not math.isfinite(timeout):
            raise ConfigurationError(
                f"Refresh interval and timeout must be finite: {interval}, {timeout}"
            )
        if interval < 0:
            raise ConfigurationError(f"Refresh interval must not be negative: {interval}")
        if timeout <= 0:
            raise ConfigurationError(f"Upstream timeout must be positive: {timeout}")

        self.uri = validate_uri(uri)
        self.interval = float(interval)
        self.timeout = float(timeout)

        self._clock = clock
        self._session = session or requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "User-Agent": f"lmq-exporter/{__version__}",
        })

        # Held across check-fetch-update; only one scrape refreshes at a time
        self._refresh_lock = threading.Lock()
        # Short-lived; guards the published state below
        self._state_lock = threading.Lock()
        self._valid_until = 0.0
        self._series: Dict[str, QueueSeries] = {}

        # Refresh bookkeeping (wall-clock, for /ready)
        self._last_success: Optional[float] = None
        self._last_failure: Optional[float] = None
        self._last_error: Optional[str] = None
        self._consecutive_failures = 0

        logger.info(
            f"LMQCollector initialized: uri={self.uri}, "
            f"interval={self.interval}s, timeout={self.timeout}s"
        )

    # -- prometheus_client collector protocol ------------------------------

    def describe(self) -> List:
        """Return the eight metric families without samples."""
        return [_new_family(spec) for spec in SERIES]

    def collect(self) -> List:
        """Refresh the cache if expired, then emit every known queue."""
        with self._refresh_lock:
            if self._clock() >= self.valid_until:
                self._refresh()
        series = self.series()

        families = []
        for spec in SERIES:
            family = _new_family(spec)
            for queue in sorted(series):
                family.add_metric([queue], getattr(series[queue], spec.field))
            families.append(family)
        return families

    # -- Refresh ------------------------------------------------------------

    def _fetch(self) -> bytes:
        """GET the upstream stats document and return the raw body."""
        try:
            response = self._session.get(self.uri, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        except requests.RequestException as e:
            raise UpstreamTransportError(f"GET {self.uri} failed: {e}") from e

    def _refresh(self) -> None:
        """
        Fetch and apply one upstream snapshot. Caller must hold the refresh
        lock. On failure the previous values and expiry stay in place.
        """
        try:
            snapshot = parse_snapshot(self._fetch())
        except (UpstreamTransportError, MalformedStatsError) as e:
            self._record_failure(str(e))
            logger.warning(
                f"Failed to update metrics: {e}",
                extra={"upstream": self.uri},
            )
            return
        except Exception as e:
            self._record_failure(f"{type(e).__name__}: {e}")
            logger.exception("Unexpected error while updating metrics")
            return

        with self._state_lock:
            self._valid_until = self._clock() + self.interval
            # Queues absent from this snapshot keep their last values
            self._series.update(snapshot)
            known = len(self._series)

            self._last_success = time.time()
            self._last_error = None
            self._consecutive_failures = 0

        logger.debug(
            f"Metrics updated: {len(snapshot)} queues in snapshot, {known} known"
        )

    def _record_failure(self, error: str) -> None:
        with self._state_lock:
            self._last_failure = time.time()
            self._last_error = error
            self._consecutive_failures += 1

    # -- Introspection ------------------------------------------------------
    # Readers take only the state lock and never wait on an upstream fetch.

    @property
    def valid_until(self) -> float:
        with self._state_lock:
            return self._valid_until

    def series(self) -> Dict[str, QueueSeries]:
        """Point-in-time copy of the cached values, keyed by queue name."""
        with self._state_lock:
            return dict(self._series)

    def is_ready(self) -> bool:
        """True once a refresh has succeeded and the latest attempt did too."""
        with self._state_lock:
            return self._last_success is not None and self._consecutive_failures == 0

    def refresh_status(self) -> Dict[str, Any]:
        """Refresh statistics for the readiness endpoint."""
        with self._state_lock:
            return {
                "upstream": self.uri,
                "last_success": _utc_iso(self._last_success),
                "last_failure": _utc_iso(self._last_failure),
                "last_error": self._last_error,
                "consecutive_failures": self._consecutive_failures,
                "queues": len(self._series),
            }

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
