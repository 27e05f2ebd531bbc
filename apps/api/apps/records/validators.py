"""
Field validators: EGN (Bulgarian national identifier), doctor ID numbers
and visit times.
"""
import datetime
import re

from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator

from apps.core import conf

EGN_WEIGHTS = (2, 4, 8, 5, 10, 9, 7, 3, 6)
EGN_PATTERN = re.compile(r'[0-9]{10}')

unique_id_number_validator = RegexValidator(
    regex=r'^[A-Za-z0-9]{5,20}$',
    message='Unique ID number must be 5-20 alphanumeric characters',
)


def egn_birth_date(egn):
    """Birth date encoded in digits 1-6, or None when the encoded date is impossible."""
    year = int(egn[0:2])
    month = int(egn[2:4])
    day = int(egn[4:6])

    if 1 <= month <= 12:
        year += 1900
    elif 21 <= month <= 32:
        year += 1800
        month -= 20
    elif 41 <= month <= 52:
        year += 2000
        month -= 40
    else:
        return None

    try:
        return datetime.date(year, month, day)
    except ValueError:
        return None


def egn_checksum(egn):
    total = sum(int(digit) * weight for digit, weight in zip(egn[:9], EGN_WEIGHTS))
    remainder = total % 11
    return 0 if remainder == 10 else remainder


def is_valid_egn(egn):
    if not isinstance(egn, str) or not EGN_PATTERN.fullmatch(egn):
        return False
    if egn_birth_date(egn) is None:
        return False
    return egn_checksum(egn) == int(egn[9])


def validate_egn(value):
    if not is_valid_egn(value):
        raise ValidationError('Invalid EGN', code='invalid_egn')


def is_valid_visit_time(value):
    """Inside working hours (inclusive) and on a slot boundary."""
    if value is None:
        return False
    if value < conf.visit_start_time() or value > conf.visit_end_time():
        return False
    minutes = value.hour * 60 + value.minute
    return value.second == 0 and value.microsecond == 0 and minutes % conf.visit_slot_minutes() == 0


def validate_visit_time(value):
    if not is_valid_visit_time(value):
        start = conf.visit_start_time().strftime('%H:%M')
        end = conf.visit_end_time().strftime('%H:%M')
        raise ValidationError(
            f'Visit time must be between {start} and {end} '
            f'in {conf.visit_slot_minutes()}-minute slots',
            code='invalid_visit_time',
        )
