"""In-process metrics."""

from src.observability.metrics import MetricsCollector, percentile_stats

__all__ = ["MetricsCollector", "percentile_stats"]
