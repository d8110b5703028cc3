"""
JSON line logging for the exporter.

Every logger obtained through ``get_logger`` writes one JSON object per line
to stdout and carries the scrape ID of the request it runs under. Levels of
all such loggers can be changed at once with ``set_level`` after the
command-line flags are parsed.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from lmq_exporter.common.correlation import ScrapeFilter

# Record attributes copied into the JSON object when set and non-empty.
# scrape_id/component come from ScrapeFilter, upstream from ``extra=``.
CONTEXT_FIELDS = ("scrape_id", "component", "upstream")


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, timezone.utc).isoformat()
    return stamp.replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry)


def _has_scrape_filter(logger: logging.Logger) -> bool:
    return any(isinstance(f, ScrapeFilter) for f in logger.filters)


def setup_logging(name: str, level: str = "INFO") -> logging.Logger:
    """
    (Re)configure logger *name* with a single stdout JSON handler.

    Args:
        name: Logger name (usually __name__)
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        The configured logger; it does not propagate to the root logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.handlers = [handler]

    if not _has_scrape_filter(logger):
        logger.addFilter(ScrapeFilter())
    logger.propagate = False

    return logger


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Return logger *name*, configuring it on first use.

    An explicit *level* always reconfigures; otherwise an already configured
    logger is returned unchanged.
    """
    logger = logging.getLogger(name)
    if level or not logger.handlers:
        return setup_logging(name, level or "INFO")

    if not _has_scrape_filter(logger):
        logger.addFilter(ScrapeFilter())
    return logger


def set_level(level: str) -> None:
    """
    Apply *level* to every logger configured by this module.

    Module-level loggers are created at import time with the INFO default;
    the entry point calls this once the command-line level is known.
    """
    numeric = getattr(logging, level.upper())
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger, logging.Logger) and _has_scrape_filter(logger):
            logger.setLevel(numeric)
