"""
Error taxonomy for the medical-records core and the DRF exception handler
that maps it to HTTP responses.

Services raise these exceptions; views never catch them. The handler
turns them into {"error": <code>, "detail": <message>} bodies so that API
consumers can distinguish conflicts and missing entities from generic
failures.
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.core.observability import metrics

logger = logging.getLogger(__name__)


class MedicalRecordsError(Exception):
    """Base class for every classified failure of the core."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'error'

    def __init__(self, message=None, **context):
        self.message = message or self.__class__.__doc__.strip()
        self.context = context
        super().__init__(self.message)


class EntityNotFound(MedicalRecordsError):
    """Entity not found."""
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'

    @classmethod
    def for_id(cls, entity_name, entity_id):
        return cls(f'{entity_name} not found with ID: {entity_id}', entity=entity_name, entity_id=str(entity_id))


class SlotConflict(MedicalRecordsError):
    """Visit time is already booked."""
    status_code = status.HTTP_409_CONFLICT
    code = 'slot_conflict'


class InvalidTransition(MedicalRecordsError):
    """Visit status transition is not allowed."""
    status_code = status.HTTP_409_CONFLICT
    code = 'invalid_transition'


class Forbidden(MedicalRecordsError):
    """Caller is not allowed to perform this action."""
    status_code = status.HTTP_403_FORBIDDEN
    code = 'forbidden'


class DuplicateKey(MedicalRecordsError):
    """Unique value already exists."""
    status_code = status.HTTP_409_CONFLICT
    code = 'duplicate_key'


class EntityInUse(MedicalRecordsError):
    """Entity is still referenced and cannot be deleted."""
    status_code = status.HTTP_409_CONFLICT
    code = 'entity_in_use'


class ValidationError(MedicalRecordsError):
    """Invalid request parameters."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'validation_error'


class InvalidSortField(ValidationError):
    """Unknown sort field."""
    code = 'invalid_sort_field'


def medical_records_exception_handler(exc, context):
    """
    DRF exception handler.

    - MedicalRecordsError -> its status code and error code
    - Django ValidationError (model.clean) -> 400
    - DRF exceptions -> DRF default handling
    - anything else -> logged, generic 500 without internals
    """
    if isinstance(exc, MedicalRecordsError):
        metrics.domain_errors_total.labels(code=exc.code).inc()
        return Response(
            {'error': exc.code, 'detail': exc.message},
            status=exc.status_code
        )

    if isinstance(exc, DjangoValidationError):
        detail = exc.message_dict if hasattr(exc, 'error_dict') else exc.messages
        return Response(
            {'error': ValidationError.code, 'detail': detail},
            status=status.HTTP_400_BAD_REQUEST
        )

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get('view')
    metrics.exceptions_total.labels(
        exception_type=exc.__class__.__name__,
        location=view.__class__.__name__ if view else 'unknown',
    ).inc()
    logger.error(
        f'Unhandled exception: {exc.__class__.__name__}',
        exc_info=exc,
        extra={
            'event': 'unhandled_exception',
            'exception_type': exc.__class__.__name__,
            'view': view.__class__.__name__ if view else None,
        }
    )
    return Response(
        {'error': 'internal_error', 'detail': 'An unexpected error occurred'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
