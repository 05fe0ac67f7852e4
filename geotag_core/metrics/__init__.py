"""
Metrics Module: Diagnostics, counters, histograms.

Every dropped sample or degraded path is counted with a reason code:
- Counters: samples_in, candidates_replaced, sessions_resolved, etc.
- Drop reasons: zero_coordinates, session_closed, stale_fix, etc.
- Histograms: geoid_offset_m, sample_accuracy_m

Usage:
    from geotag_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('samples_in')
    metrics.increment_drop('zero_coordinates')
    metrics.record_histogram('geoid_offset_m', 34.5)
"""

from .counters import MetricsCollector

# Global singleton for easy access
_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Reset global metrics (for testing)."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['MetricsCollector', 'get_metrics', 'reset_metrics']
