"""
Offline Cache Metrics

Prometheus counters describing how the policy engine handled requests.
Each collector owns its registry so several engines can coexist.
"""

from typing import Dict

from prometheus_client import Counter, CollectorRegistry, generate_latest


class CacheMetricsCollector:
    """Prometheus metrics for strategy outcomes and cache maintenance."""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()

        self.prom_requests_total = Counter(
            "lidkaart_cache_requests_total",
            "Intercepted requests by strategy and outcome",
            ["strategy", "outcome"],
            registry=self.registry,
        )
        self.prom_offline_fallbacks_total = Counter(
            "lidkaart_offline_fallbacks_total",
            "Verification requests answered without network",
            ["source"],
            registry=self.registry,
        )
        self.prom_background_failures_total = Counter(
            "lidkaart_background_task_failures_total",
            "Background cache writes that failed",
            ["task"],
            registry=self.registry,
        )
        self.prom_invalidated_entries_total = Counter(
            "lidkaart_invalidated_entries_total",
            "Cache entries removed by sync signals or namespace purges",
            ["reason"],
            registry=self.registry,
        )

    def record_request(self, strategy: str, outcome: str) -> None:
        self.prom_requests_total.labels(strategy=strategy, outcome=outcome).inc()

    def record_offline_fallback(self, source: str) -> None:
        self.prom_offline_fallbacks_total.labels(source=source).inc()

    def record_background_failure(self, task: str) -> None:
        self.prom_background_failures_total.labels(task=task).inc()

    def record_invalidation(self, reason: str, count: int) -> None:
        if count > 0:
            self.prom_invalidated_entries_total.labels(reason=reason).inc(count)

    def sample(self, name: str, labels: Dict[str, str]) -> float:
        """Current value of a sample, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value or 0.0

    def export(self) -> bytes:
        """Prometheus text exposition of all collected metrics."""
        return generate_latest(self.registry)
