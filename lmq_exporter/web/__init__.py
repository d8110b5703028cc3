"""
Web module - HTTP exposition of the metrics registry and health endpoints.
"""
from lmq_exporter.web.server import ExporterServer, ExporterHTTPHandler

__all__ = ["ExporterServer", "ExporterHTTPHandler"]
