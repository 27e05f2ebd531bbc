"""
Aggregate report engine.

Read-only, idempotent aggregations over live rows. Cancelled visits are
left out unless the engine is built with include_cancelled=True; the same
policy applies to every report, including the sick-leave reports (a sick
leave counts through the visit it belongs to).
"""
import datetime
import logging
from dataclasses import dataclass
from uuid import UUID

from django.db.models import Count, Q
from django.db.models.functions import ExtractMonth, ExtractYear

from apps.core.exceptions import ValidationError
from apps.core.filters import apply_filter, build_query
from apps.core.observability import metrics
from apps.core.pagination import Page, PageRequest, paginate
from apps.records.listing import VISIT_LISTING
from apps.records.models import Diagnosis, Doctor, SickLeave, Visit, VisitStatusChoices
from apps.records.services import resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosisCount:
    diagnosis_id: UUID
    diagnosis_name: str
    visit_count: int


@dataclass(frozen=True)
class DoctorVisitCount:
    doctor_id: UUID
    doctor_name: str
    visit_count: int


@dataclass(frozen=True)
class DoctorPatientCount:
    doctor_id: UUID
    doctor_name: str
    patient_count: int


@dataclass(frozen=True)
class DoctorSickLeaveCount:
    doctor_id: UUID
    doctor_name: str
    sick_leave_count: int


@dataclass(frozen=True)
class SickLeaveMonthCount:
    year: int
    month: int
    sick_leave_count: int


ACTIVE_STATUSES = [VisitStatusChoices.SCHEDULED, VisitStatusChoices.COMPLETED]


class ReportEngine:

    def __init__(self, include_cancelled=False):
        self.include_cancelled = include_cancelled

    def _visit_filter(self, prefix=''):
        """Q over visits reached through `prefix` (e.g. 'visits__')."""
        condition = Q(**{f'{prefix}is_deleted': False})
        if not self.include_cancelled:
            condition &= Q(**{f'{prefix}status__in': ACTIVE_STATUSES})
        return condition

    def _visits(self):
        queryset = Visit.objects.all()
        if not self.include_cancelled:
            queryset = queryset.filter(status__in=ACTIVE_STATUSES)
        return queryset

    def _live_sick_leaves(self):
        return SickLeave.objects.filter(
            self._visit_filter('visit__'),
            visit__doctor__is_deleted=False,
        )

    @metrics.track_duration(metrics.report_duration_seconds, report='most_frequent_diagnoses')
    def most_frequent_diagnoses(self):
        """Diagnoses with at least one visit, by visit count desc then name asc."""
        rows = (
            Diagnosis.objects
            .annotate(visit_count=Count('visits', filter=self._visit_filter('visits__')))
            .filter(visit_count__gt=0)
            .order_by('-visit_count', 'name')
        )
        return [DiagnosisCount(row.id, row.name, row.visit_count) for row in rows]

    @metrics.track_duration(metrics.report_duration_seconds, report='visit_count_by_doctor')
    def visit_count_by_doctor(self):
        """Every live doctor, zero-visit doctors included."""
        rows = (
            Doctor.objects
            .annotate(visit_count=Count('visits', filter=self._visit_filter('visits__')))
            .order_by('-visit_count', 'name')
        )
        return [DoctorVisitCount(row.id, row.name, row.visit_count) for row in rows]

    @metrics.track_duration(metrics.report_duration_seconds, report='patient_count_by_gp')
    def patient_count_by_general_practitioner(self):
        """Every live GP, zero-patient GPs included."""
        rows = (
            Doctor.objects
            .filter(is_general_practitioner=True)
            .annotate(patient_count=Count('gp_patients', filter=Q(gp_patients__is_deleted=False)))
            .order_by('-patient_count', 'name')
        )
        return [DoctorPatientCount(row.id, row.name, row.patient_count) for row in rows]

    @metrics.track_duration(metrics.report_duration_seconds, report='doctors_with_most_sick_leaves')
    def doctors_with_most_sick_leaves(self):
        rows = (
            self._live_sick_leaves()
            .values('visit__doctor_id', 'visit__doctor__name')
            .annotate(sick_leave_count=Count('id'))
            .order_by('-sick_leave_count', 'visit__doctor__name')
        )
        return [
            DoctorSickLeaveCount(row['visit__doctor_id'], row['visit__doctor__name'], row['sick_leave_count'])
            for row in rows
        ]

    @metrics.track_duration(metrics.report_duration_seconds, report='most_frequent_sick_leave_month')
    def most_frequent_sick_leave_month(self):
        """
        (year, month) buckets of sick-leave start dates tied for the maximum
        count. Empty list when no sick leave exists.
        """
        rows = list(
            self._live_sick_leaves()
            .annotate(year=ExtractYear('start_date'), month=ExtractMonth('start_date'))
            .values('year', 'month')
            .annotate(sick_leave_count=Count('id'))
            .order_by('-sick_leave_count', 'year', 'month')
        )
        if not rows:
            return []
        top = rows[0]['sick_leave_count']
        return [
            SickLeaveMonthCount(row['year'], row['month'], row['sick_leave_count'])
            for row in rows
            if row['sick_leave_count'] == top
        ]

    def visits_by_date_range(self, start_date, end_date, page_request: PageRequest = None) -> Page:
        """Visits with start_date <= visit_date <= end_date, sorted by date then time by default."""
        page_request = page_request or PageRequest.of()
        return self._page(self.date_range_queryset(start_date, end_date, page_request=page_request), page_request)

    def visits_by_doctor_and_date_range(self, doctor_id, start_date, end_date, page_request: PageRequest = None) -> Page:
        page_request = page_request or PageRequest.of()
        doctor = self.require_doctor(doctor_id)
        queryset = self.date_range_queryset(start_date, end_date, doctor=doctor, page_request=page_request)
        return self._page(queryset, page_request)

    def require_doctor(self, doctor_id):
        """Live doctor for a required doctor_id parameter."""
        if doctor_id in (None, ''):
            raise ValidationError('Query parameter "doctor_id" is required')
        return resolve(Doctor, doctor_id)

    def date_range_queryset(self, start_date, end_date, doctor=None, page_request: PageRequest = None):
        """Filtered and ordered visits in the inclusive date range, not yet paginated."""
        if start_date is None or end_date is None:
            raise ValidationError('Start date and end date are required')
        if start_date > end_date:
            raise ValidationError('Start date must not be after end date')

        queryset = self._visits()
        if doctor is not None:
            queryset = queryset.filter(doctor=doctor)

        queryset = queryset.filter(visit_date__range=(start_date, end_date)).select_related(
            'patient', 'doctor', 'diagnosis'
        )
        return apply_filter(queryset, build_query(VISIT_LISTING.spec, page_request or PageRequest.of()))

    def _page(self, queryset, page_request):
        with metrics.report_duration_seconds.labels(report='visits_by_date_range').time():
            return paginate(queryset, page_request)


def parse_date_param(value, name):
    if value in (None, ''):
        raise ValidationError(f'Query parameter "{name}" is required')
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f'Query parameter "{name}" must be a date (YYYY-MM-DD)')
