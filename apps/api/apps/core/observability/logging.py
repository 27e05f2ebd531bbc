"""
Structured logging with PII protection.

Patient identifiers (EGN), names and free-text clinical notes never reach
log output in clear text.
"""
import json
import logging
from datetime import datetime, timezone

from .correlation import get_request_id, get_user_id, get_user_roles


SENSITIVE_FIELDS = {
    'password',
    'token',
    'access',
    'refresh',
    'secret',
    'egn',
    'patient_name',
    'doctor_name',
    'email',
    'notes',
    'description',
    'dosage',
}

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName',
}


class CorrelationFilter(logging.Filter):
    """Injects request_id / user_id / user_roles into every record."""

    def filter(self, record):
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        record.user_roles = ','.join(get_user_roles()) or '-'
        return True


class SanitizedJSONFormatter(logging.Formatter):
    """JSON formatter that redacts sensitive fields passed through `extra`."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'user_id': getattr(record, 'user_id', '-'),
            'user_roles': getattr(record, 'user_roles', '-'),
        }

        for key, value in record.__dict__.items():
            if key in log_data or key.startswith('_') or key in _STANDARD_ATTRS:
                continue
            if key.lower() in SENSITIVE_FIELDS:
                log_data[key] = '[REDACTED]'
            else:
                log_data[key] = sanitize_value(value)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_sanitized_logger(name):
    """
    Logger with the correlation filter attached.

    Usage:
        logger = get_sanitized_logger(__name__)
        logger.info('Visit scheduled', extra={'event': 'visit_scheduled', 'visit_id': str(visit.id)})
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())
    return logger


def sanitize_value(value):
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, (list, tuple)):
        return [sanitize_value(v) for v in value]
    return value


def sanitize_dict(data):
    """Copy of `data` with sensitive keys replaced by [REDACTED]."""
    if not isinstance(data, dict):
        return data
    return {
        key: '[REDACTED]' if str(key).lower() in SENSITIVE_FIELDS else sanitize_value(value)
        for key, value in data.items()
    }
