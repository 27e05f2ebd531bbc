"""
Prometheus metrics for the medical-records backend.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _setup_metrics(self):

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.exceptions_total = Counter(
            'medrec_exceptions_total',
            'Unhandled exceptions',
            ['exception_type', 'location']
        )

        self.domain_errors_total = Counter(
            'medrec_domain_errors_total',
            'Classified domain errors returned to API clients',
            ['code']
        )

        # ===================================================================
        # Visit Metrics
        # ===================================================================
        self.visit_operations_total = Counter(
            'medrec_visit_operations_total',
            'Visit lifecycle operations',
            ['operation', 'result']
        )

        self.visit_slot_conflicts_total = Counter(
            'medrec_visit_slot_conflicts_total',
            'Rejected double bookings',
            ['source']  # precheck | constraint
        )

        self.visit_transition_total = Counter(
            'medrec_visit_transition_total',
            'Visit status transitions',
            ['from_status', 'to_status', 'result']
        )

        # ===================================================================
        # Report Metrics
        # ===================================================================
        self.report_duration_seconds = Histogram(
            'medrec_report_duration_seconds',
            'Aggregate report duration',
            ['report'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
        )

    def track_duration(self, histogram_metric, **labels):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.report_duration_seconds, report='most_frequent_diagnoses')
            def most_frequent_diagnoses(self):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    metric = histogram_metric.labels(**labels) if labels else histogram_metric
                    metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
