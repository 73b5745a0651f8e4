"""
Shared metrics configuration for the feature gating engine.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, CollectorRegistry


class GatingMetrics:
    """Prometheus metrics for constraint evaluation and result caching."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the evaluation metrics."""
        self._metrics["feature_evaluations_total"] = Counter(
            "feature_evaluations_total",
            "Total feature constraint evaluations",
            ["status"],
            registry=self.registry
        )

        self._metrics["feature_evaluation_cache_total"] = Counter(
            "feature_evaluation_cache_total",
            "Evaluation result cache activity",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["feature_cache_invalidations_total"] = Counter(
            "feature_cache_invalidations_total",
            "Total evaluation cache invalidations",
            ["reason"],
            registry=self.registry
        )

        self._metrics["feature_evaluation_duration_seconds"] = Histogram(
            "feature_evaluation_duration_seconds",
            "Feature constraint evaluation duration in seconds",
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_evaluation(self, status: str, duration: float):
        """Record one uncached evaluation."""
        self._metrics["feature_evaluations_total"].labels(status=status).inc()
        self._metrics["feature_evaluation_duration_seconds"].observe(duration)

    def record_cache(self, outcome: str):
        """Record a cache hit, miss, store or skip."""
        self._metrics["feature_evaluation_cache_total"].labels(outcome=outcome).inc()

    def record_invalidation(self, reason: str):
        """Record a cache invalidation."""
        self._metrics["feature_cache_invalidations_total"].labels(reason=reason).inc()


def get_metrics(registry: Optional[CollectorRegistry] = None) -> GatingMetrics:
    """Get a metrics instance bound to a registry."""
    return GatingMetrics(registry)
