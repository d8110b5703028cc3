"""
Custom exceptions for the LMQ exporter.
Hierarchical exception structure separating recoverable upstream failures
from fatal startup errors.
"""


class BaseExporterException(Exception):
    """Base exception for the LMQ exporter"""
    pass


class UpstreamTransportError(BaseExporterException):
    """Upstream stats endpoint unreachable, timed out, or returned non-2xx"""
    pass


class MalformedStatsError(BaseExporterException):
    """Upstream response body is not valid or not shape-conformant JSON"""
    pass


class ConfigurationError(BaseExporterException):
    """Error in configuration loading or validation"""
    pass
