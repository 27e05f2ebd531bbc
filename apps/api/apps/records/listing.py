"""
Listing registry: one entry per entity type, used by every list endpoint
and by list_any().

Each entry names the default search fields for the filter token, the
sortable fields and the role scoping applied before filtering:
- unapproved doctors are visible to admins only
- callers that are only patients see their own visits/sick leaves/treatments
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from apps.authz.identity import IdentityContext
from apps.core.deferred import completed_future
from apps.core.exceptions import ValidationError
from apps.core.filters import ListingSpec, apply_query, build_query
from apps.core.pagination import Page, PageRequest
from apps.records import serializers
from apps.records.models import (
    Diagnosis,
    Doctor,
    Patient,
    SickLeave,
    Specialty,
    Treatment,
    Visit,
)


def _is_patient_only(identity):
    return not (identity.is_admin or identity.is_doctor)


def _scope_doctors(queryset, identity):
    if identity.is_admin:
        return queryset
    return queryset.filter(is_approved=True)


def _scope_by_patient(path):
    def scope(queryset, identity):
        if _is_patient_only(identity):
            return queryset.filter(**{f'{path}subject_id': identity.subject_id})
        return queryset
    return scope


@dataclass(frozen=True)
class Listing:
    model: type
    spec: ListingSpec
    serializer_class: type
    select_related: Tuple[str, ...] = ()
    prefetch_related: Tuple[str, ...] = ()
    scope: Optional[Callable] = None

    def queryset(self, identity, include_deleted=False):
        manager = self.model.all_objects if (include_deleted and identity.is_admin) else self.model.objects
        queryset = manager.all()
        if self.select_related:
            queryset = queryset.select_related(*self.select_related)
        if self.prefetch_related:
            queryset = queryset.prefetch_related(*self.prefetch_related)
        if self.scope is not None:
            queryset = self.scope(queryset, identity)
        return queryset


DIAGNOSIS_LISTING = Listing(
    model=Diagnosis,
    spec=ListingSpec(
        search_fields=('name',),
        sort_fields={'name': ('name',), 'created_at': ('created_at',)},
        default_sort='name',
    ),
    serializer_class=serializers.DiagnosisSerializer,
)

SPECIALTY_LISTING = Listing(
    model=Specialty,
    spec=ListingSpec(
        search_fields=('name',),
        sort_fields={'name': ('name',), 'created_at': ('created_at',)},
        default_sort='name',
    ),
    serializer_class=serializers.SpecialtySerializer,
)

DOCTOR_LISTING = Listing(
    model=Doctor,
    spec=ListingSpec(
        search_fields=('unique_id_number',),
        sort_fields={
            'name': ('name',),
            'unique_id_number': ('unique_id_number',),
            'is_general_practitioner': ('is_general_practitioner',),
            'created_at': ('created_at',),
        },
        default_sort='name',
    ),
    serializer_class=serializers.DoctorSerializer,
    prefetch_related=('specialties',),
    scope=_scope_doctors,
)

PATIENT_LISTING = Listing(
    model=Patient,
    spec=ListingSpec(
        search_fields=('egn',),
        sort_fields={
            'name': ('name',),
            'egn': ('egn',),
            'last_insurance_payment_date': ('last_insurance_payment_date',),
            'created_at': ('created_at',),
        },
        default_sort='name',
    ),
    serializer_class=serializers.PatientSerializer,
    select_related=('general_practitioner',),
    scope=_scope_by_patient(''),
)

VISIT_LISTING = Listing(
    model=Visit,
    spec=ListingSpec(
        search_fields=('patient__egn', 'doctor__unique_id_number'),
        sort_fields={
            'visit_date': ('visit_date', 'visit_time'),
            'visit_time': ('visit_time',),
            'status': ('status',),
            'created_at': ('created_at',),
        },
        default_sort='visit_date',
    ),
    serializer_class=serializers.VisitSerializer,
    select_related=('patient', 'doctor', 'diagnosis'),
    scope=_scope_by_patient('patient__'),
)

SICK_LEAVE_LISTING = Listing(
    model=SickLeave,
    spec=ListingSpec(
        search_fields=('visit__patient__egn',),
        sort_fields={
            'start_date': ('start_date',),
            'duration_days': ('duration_days',),
            'created_at': ('created_at',),
        },
        default_sort='start_date',
    ),
    serializer_class=serializers.SickLeaveSerializer,
    select_related=('visit', 'visit__doctor', 'visit__patient'),
    scope=_scope_by_patient('visit__patient__'),
)

TREATMENT_LISTING = Listing(
    model=Treatment,
    spec=ListingSpec(
        search_fields=('description',),
        sort_fields={'created_at': ('created_at',)},
        default_sort='created_at',
    ),
    serializer_class=serializers.TreatmentSerializer,
    select_related=('visit',),
    prefetch_related=('medicines',),
    scope=_scope_by_patient('visit__patient__'),
)

LISTINGS = {
    'diagnosis': DIAGNOSIS_LISTING,
    'specialty': SPECIALTY_LISTING,
    'doctor': DOCTOR_LISTING,
    'patient': PATIENT_LISTING,
    'visit': VISIT_LISTING,
    'sick_leave': SICK_LEAVE_LISTING,
    'treatment': TREATMENT_LISTING,
}


def get_listing(entity_type):
    try:
        return LISTINGS[entity_type]
    except KeyError:
        raise ValidationError(f'Unknown entity type "{entity_type}"')


def list_entities(entity_type, page_request: PageRequest, identity=None, include_deleted=False) -> Page:
    """Page of model instances."""
    listing = get_listing(entity_type)
    identity = identity or IdentityContext.system()
    queryset = listing.queryset(identity, include_deleted)
    return apply_query(queryset, build_query(listing.spec, page_request))


def list_any(entity_type, page_request: PageRequest, identity=None, include_deleted=False) -> Page:
    """
    Generic listing: filter, sort and paginate any entity type, returning
    serialized views in the page envelope.

    identity=None lists as the system (admin) identity.
    """
    listing = get_listing(entity_type)
    page = list_entities(entity_type, page_request, identity, include_deleted)
    return page.map(lambda instance: listing.serializer_class(instance).data)


def list_any_deferred(entity_type, page_request: PageRequest, identity=None, include_deleted=False):
    """list_any() wrapped in an already completed Future."""
    return completed_future(list_any, entity_type, page_request, identity, include_deleted)
