"""
Health check and metrics endpoints.

/healthz  - process is up
/readyz   - database reachable
/metrics  - Prometheus exposition
"""
import logging

from django.conf import settings
from django.db import connection
from django.http import HttpResponse, JsonResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)


class HealthzView(View):
    """Returns 200 OK if the application is running. Does not check dependencies."""

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }
        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """Returns 200 OK if the database answers, 503 otherwise."""

    def get(self, request):
        checks = {
            'database': self._check_database(),
        }
        all_healthy = all(checks.values())
        response_data = {
            'status': 'ready' if all_healthy else 'not_ready',
            'checks': checks,
        }
        return JsonResponse(response_data, status=200 if all_healthy else 503)

    def _check_database(self):
        try:
            with connection.cursor() as cursor:
                cursor.execute('SELECT 1')
                return True
        except Exception as e:
            logger.error(
                'Database health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'database',
                    'error': str(e)
                }
            )
            return False


class MetricsView(View):

    def get(self, request):
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
