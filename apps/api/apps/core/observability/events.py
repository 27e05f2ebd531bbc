"""
Domain event logging for visit lifecycle and registry operations.
"""
from typing import Any, Dict, Optional

from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields: Any
):
    """
    Log a domain event with structured data.

    Args:
        event_name: e.g. 'visit_scheduled', 'visit_cancelled'
        entity_type: e.g. 'Visit', 'Patient'
        entity_id: ID of the primary entity
        entity_ids: related entity IDs (doctor_id, patient_id, ...)
        result: success | conflict | rejected | failure
        **extra_fields: additional context, sanitized before logging

    Example:
        log_domain_event(
            'visit_scheduled',
            entity_type='Visit',
            entity_id=str(visit.id),
            entity_ids={'doctor_id': str(visit.doctor_id)},
            visit_date=str(visit.visit_date),
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }
    if entity_type:
        event_data['entity_type'] = entity_type
    if entity_id:
        event_data['entity_id'] = entity_id
    if entity_ids:
        event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['conflict', 'rejected', 'forbidden']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_visit_transition(visit, from_status, to_status, result='success', **extra):
    log_domain_event(
        'visit_transition',
        entity_type='Visit',
        entity_id=str(visit.id),
        entity_ids={
            'doctor_id': str(visit.doctor_id),
            'patient_id': str(visit.patient_id),
        },
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_slot_conflict(doctor_id, visit_date, visit_time, source):
    log_domain_event(
        'visit_slot_conflict',
        entity_type='Visit',
        entity_ids={'doctor_id': str(doctor_id)},
        result='conflict',
        visit_date=str(visit_date),
        visit_time=str(visit_time),
        source=source,
    )
