"""
LMQ exporter - republishes LMQ queue statistics as Prometheus metrics.
"""

__version__ = "1.0.0"
