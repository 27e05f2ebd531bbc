"""
Observability for the medical-records backend.

Structured logging with PII redaction, Prometheus metrics, request
correlation and health checks.
"""
from .metrics import metrics
from .events import log_domain_event
from .logging import get_sanitized_logger

__all__ = ['metrics', 'log_domain_event', 'get_sanitized_logger']
