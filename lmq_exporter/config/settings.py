"""
Configuration management using Pydantic Settings.
Loads configuration from environment variables with validation.
Command-line flags in exporter.py take their defaults from here.
"""
import math
import re
from pathlib import Path
from typing import Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import Field

from lmq_exporter.common.exceptions import ConfigurationError

# Load .env file into os.environ so all nested BaseSettings pick up values
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)


class WebSettings(BaseSettings):
    """HTTP exposition configuration"""
    listen_address: str = Field(default=":9001")
    metrics_path: str = Field(default="/metrics")

    class Config:
        env_prefix = "WEB_"


class CollectorSettings(BaseSettings):
    """Refresh policy for the stats collector"""
    min_interval: str = Field(default="5s")

    class Config:
        env_prefix = "COLLECTOR_"


class LMQSettings(BaseSettings):
    """Upstream LMQ stats endpoint"""
    uri: str = Field(default="http://localhost:9980/stats")
    timeout: str = Field(default="5s")

    class Config:
        env_prefix = "LMQ_"


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO")

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Main settings aggregating all configuration sections"""
    web: WebSettings = Field(default_factory=WebSettings)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    lmq: LMQSettings = Field(default_factory=LMQSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        extra = "ignore"


# ---------------------------------------------------------------------------
# Value parsers shared by settings and command-line flags
# ---------------------------------------------------------------------------

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """
    Parse a duration into seconds.

    Accepts Go-style durations ("500ms", "5s", "1m30s") or a bare number of
    seconds ("2.5").

    Raises:
        ConfigurationError: if the value cannot be parsed
    """
    text = str(value).strip()
    if not text:
        raise ConfigurationError("Empty duration")

    try:
        seconds = float(text)
    except ValueError:
        seconds = _parse_units(text, value)

    # float() also accepts "inf" and "nan"
    if not math.isfinite(seconds):
        raise ConfigurationError(f"Duration must be finite: {value!r}")
    return seconds


def _parse_units(text: str, value: str) -> float:
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    return total


def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address of the form "[host]:port" into (host, port).

    An empty host (":9001") binds all interfaces. IPv6 hosts may be
    bracketed ("[::1]:9001").
    """
    host, sep, port_str = address.rpartition(":")
    if not sep:
        raise ConfigurationError(f"Listen address missing port: {address!r}")

    host = host.strip("[]")
    try:
        port = int(port_str)
    except ValueError:
        raise ConfigurationError(f"Invalid port in listen address: {address!r}")

    if not 0 <= port <= 65535:
        raise ConfigurationError(f"Port out of range in listen address: {address!r}")
    return host, port


def validate_uri(uri: str) -> str:
    """Return *uri* unchanged if it is an absolute http(s) URL."""
    parsed = urlparse(uri)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Invalid LMQ URI: {uri!r}")
    return uri


# Singleton instance - import this in other modules
settings = Settings()
