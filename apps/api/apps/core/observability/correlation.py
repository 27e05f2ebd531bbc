"""
Request correlation middleware.

Generates/propagates X-Request-ID and exposes it to log records through
thread-local storage.
"""
import logging
import time
import uuid
from threading import local

from django.utils.deprecation import MiddlewareMixin

_request_context = local()

logger = logging.getLogger(__name__)


def get_request_id():
    return getattr(_request_context, 'request_id', None)


def get_user_id():
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    return getattr(_request_context, 'user_roles', [])


def bind_user(user):
    """
    Attach the authenticated caller to the current context.

    JWT authentication runs inside DRF, after middleware, so views call
    this once request.user is known.
    """
    if user is None or not user.is_authenticated:
        return
    _request_context.user_id = str(user.subject_id)
    _request_context.user_roles = list(
        user.user_roles.values_list('role__name', flat=True)
    )


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    - Generates or propagates X-Request-ID
    - Stores it in thread-local for the CorrelationFilter
    - Echoes it in the response and logs request duration
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'

    def process_request(self, request):
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())

        request.request_id = request_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        _request_context.user_id = None
        _request_context.user_roles = []

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000
            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration_ms, 2),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        duration_ms = 0
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(duration_ms, 2),
            }
        )


def clear_request_context():
    for attr in ['request_id', 'user_id', 'user_roles']:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
