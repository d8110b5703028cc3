"""
Scrape ID management for request-scoped logging.
Every HTTP request served by the exporter gets an ID so that the log lines
of one scrape (including a failed upstream refresh) can be grouped.
"""
import uuid
import logging
from typing import Optional
from contextvars import ContextVar

# Context variable for the current scrape ID (thread-safe per request)
_scrape_id_var: ContextVar[Optional[str]] = ContextVar(
    'scrape_id', default=None
)

# Context variable for component name
_component_var: ContextVar[Optional[str]] = ContextVar(
    'component', default=None
)


def generate_scrape_id() -> str:
    """Generate a short unique scrape ID (first 12 hex chars of a UUID4)."""
    return uuid.uuid4().hex[:12]


def set_scrape_id(scrape_id: Optional[str]) -> None:
    _scrape_id_var.set(scrape_id)


def get_scrape_id() -> Optional[str]:
    return _scrape_id_var.get()


def set_component(component: str) -> None:
    """
    Set the component name for the current context.

    Args:
        component: Component name (e.g., "exporter", "collector")
    """
    _component_var.set(component)


def get_component() -> Optional[str]:
    return _component_var.get()


class ScrapeFilter(logging.Filter):
    """
    Logging filter that injects scrape_id and component into log records.
    Reads from ContextVar so log statements inside a request handler carry
    the scrape ID without explicit passing.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.scrape_id = get_scrape_id() or ""
        record.component = get_component() or ""
        return True


class ScrapeContext:
    """
    Context manager binding a scrape ID for the duration of one request.
    Restores the previous ID on exit.

    Usage:
        with ScrapeContext() as ctx:
            logger.info("serving scrape")   # carries ctx.scrape_id
    """

    def __init__(self, scrape_id: Optional[str] = None):
        self.scrape_id = scrape_id or generate_scrape_id()
        self._previous_id: Optional[str] = None

    def __enter__(self) -> 'ScrapeContext':
        self._previous_id = get_scrape_id()
        set_scrape_id(self.scrape_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        set_scrape_id(self._previous_id)
