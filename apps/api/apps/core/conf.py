"""
Domain configuration read from Django settings (with defaults).
"""
from datetime import time

from django.conf import settings


def max_page_size():
    return getattr(settings, 'MEDREC_MAX_PAGE_SIZE', 100)


def default_page_size():
    return getattr(settings, 'MEDREC_DEFAULT_PAGE_SIZE', 10)


def visit_start_time():
    return getattr(settings, 'MEDREC_VISIT_START_TIME', time(9, 0))


def visit_end_time():
    return getattr(settings, 'MEDREC_VISIT_END_TIME', time(17, 0))


def visit_slot_minutes():
    return getattr(settings, 'MEDREC_VISIT_SLOT_MINUTES', 30)


def default_sick_leave_days():
    return getattr(settings, 'MEDREC_DEFAULT_SICK_LEAVE_DAYS', 5)


def insurance_validity_months():
    return getattr(settings, 'MEDREC_INSURANCE_VALIDITY_MONTHS', 6)


def require_valid_insurance():
    return getattr(settings, 'MEDREC_REQUIRE_VALID_INSURANCE', False)
