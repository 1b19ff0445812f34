"""
Lidkaart Monitoring Module

Prometheus metrics for the offline cache policy engine.
"""

from .cache_metrics import CacheMetricsCollector

__all__ = ["CacheMetricsCollector"]
