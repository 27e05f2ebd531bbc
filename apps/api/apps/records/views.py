"""
Medical records API views.

Every list endpoint honours the listing contract
    ?page=0&size=10&order_by=name&ascending=true&filter=...
and returns the page envelope
    {content, total_elements, total_pages, page_index, page_size}.
Admins may add ?include_deleted=true.
"""
from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.identity import identity_for
from apps.authz.models import RoleChoices
from apps.authz.permissions import RolePermission
from apps.core.exceptions import EntityNotFound
from apps.core.filters import apply_filter, build_query
from apps.core.pagination import PageEnvelopePagination
from apps.core.views import CorrelatedViewMixin, PageRequestMixin
from apps.records import serializers
from apps.records.dashboard import dashboard_for
from apps.records.listing import get_listing
from apps.records.registry import RecordRegistry
from apps.records.reports import ReportEngine, parse_date_param
from apps.records.services import VisitLifecycleManager, register_patient

ADMIN = RoleChoices.ADMIN
DOCTOR = RoleChoices.DOCTOR
PATIENT = RoleChoices.PATIENT

UUID_REGEX = r'[0-9a-fA-F-]{36}'


class RecordViewSet(CorrelatedViewMixin, PageRequestMixin, viewsets.ModelViewSet):
    """
    Base CRUD viewset for a registry entity.

    - list: listing registry filter/sort and role scoping, page envelope
      through PageEnvelopePagination
    - retrieve/update/destroy: live rows only (admins: include_deleted)
    - destroy: soft delete through RecordRegistry
    """
    permission_classes = [RolePermission]
    pagination_class = PageEnvelopePagination
    entity_type = None
    read_roles = {ADMIN, DOCTOR}
    write_roles = {ADMIN}
    lookup_value_regex = UUID_REGEX
    http_method_names = ['get', 'post', 'put', 'patch', 'delete', 'head', 'options']

    @property
    def listing(self):
        return get_listing(self.entity_type)

    def get_identity(self):
        return identity_for(self.request)

    def get_serializer_class(self):
        return self.listing.serializer_class

    def get_queryset(self):
        return self.listing.queryset(self.get_identity(), self.get_include_deleted())

    def get_object(self):
        pk = self.kwargs[self.lookup_field]
        instance = self.get_queryset().filter(pk=pk).first()
        if instance is None:
            raise EntityNotFound.for_id(self.listing.model.__name__, pk)
        self.check_object_permissions(self.request, instance)
        return instance

    def filter_queryset(self, queryset):
        return apply_filter(queryset, build_query(self.listing.spec, self.get_page_request()))

    def perform_create(self, serializer):
        RecordRegistry(self.get_identity()).save(serializer)

    def perform_update(self, serializer):
        RecordRegistry(self.get_identity()).save(serializer)

    def perform_destroy(self, instance):
        RecordRegistry(self.get_identity()).delete(instance)


class SpecialtyViewSet(RecordViewSet):
    entity_type = 'specialty'


class DiagnosisViewSet(RecordViewSet):
    entity_type = 'diagnosis'


class DoctorViewSet(RecordViewSet):
    """
    Doctors are readable by every role; unapproved doctors are listed to
    admins only. POST /doctors/{id}/approve/ approves a doctor (admin).
    """
    entity_type = 'doctor'
    read_roles = {ADMIN, DOCTOR, PATIENT}
    action_roles = {'approve': {ADMIN}}

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        doctor = self.get_object()
        if not doctor.is_approved:
            doctor.is_approved = True
            doctor.save(update_fields=['is_approved', 'updated_at'])
        return Response(self.get_serializer(doctor).data)


class PatientViewSet(RecordViewSet):
    entity_type = 'patient'
    write_roles = {ADMIN, DOCTOR}
    action_roles = {'destroy': {ADMIN}}


class SickLeaveViewSet(RecordViewSet):
    entity_type = 'sick_leave'
    write_roles = {ADMIN, DOCTOR}


class TreatmentViewSet(RecordViewSet):
    entity_type = 'treatment'
    write_roles = {ADMIN, DOCTOR}


class VisitViewSet(RecordViewSet):
    """
    Visits go through VisitLifecycleManager.

    - POST   /visits/                 staff create
    - PATCH  /visits/{id}/            partial update
    - DELETE /visits/{id}/            soft delete (admin)
    - POST   /visits/schedule/        patient self-scheduling
    - POST   /visits/{id}/cancel/     owning patient cancels
    - POST   /visits/{id}/document/   doctor records the encounter
    - DELETE /visits/{id}/purge/      hard delete (admin)
    """
    entity_type = 'visit'
    read_roles = {ADMIN, DOCTOR, PATIENT}
    write_roles = {ADMIN, DOCTOR}
    action_roles = {
        'destroy': {ADMIN},
        'purge': {ADMIN},
        'schedule': {PATIENT},
        'cancel': {PATIENT},
        'document': {ADMIN, DOCTOR},
    }

    _INPUT_SERIALIZERS = {
        'create': serializers.VisitCreateSerializer,
        'update': serializers.VisitUpdateSerializer,
        'partial_update': serializers.VisitUpdateSerializer,
        'schedule': serializers.VisitScheduleSerializer,
        'document': serializers.VisitDocumentSerializer,
    }

    def get_serializer_class(self):
        return self._INPUT_SERIALIZERS.get(self.action, serializers.VisitSerializer)

    def get_manager(self):
        return VisitLifecycleManager(self.get_identity())

    def _render(self, visit, status_code=status.HTTP_200_OK):
        return Response(serializers.VisitSerializer(visit).data, status=status_code)

    def _input(self, partial=False):
        serializer = self.get_serializer(data=self.request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        return serializer.to_dto()

    def retrieve(self, request, pk=None):
        visit = self.get_manager().get_by_id(pk, include_deleted=self.get_include_deleted())
        return self._render(visit)

    @extend_schema(request=serializers.VisitCreateSerializer, responses=serializers.VisitSerializer)
    def create(self, request):
        visit = self.get_manager().create(self._input())
        return self._render(visit, status.HTTP_201_CREATED)

    @extend_schema(request=serializers.VisitUpdateSerializer, responses=serializers.VisitSerializer)
    def update(self, request, pk=None, partial=False):
        visit = self.get_manager().update(pk, self._input(partial=True))
        return self._render(visit)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        self.get_manager().delete(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=serializers.VisitScheduleSerializer, responses=serializers.VisitSerializer)
    @action(detail=False, methods=['post'])
    def schedule(self, request):
        dto = self._input()
        visit = self.get_manager().schedule_for_patient(self.get_identity().subject_id, dto)
        return self._render(visit, status.HTTP_201_CREATED)

    @extend_schema(request=None, responses=serializers.VisitSerializer)
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        visit = self.get_manager().cancel(pk, self.get_identity().subject_id)
        return self._render(visit)

    @extend_schema(request=serializers.VisitDocumentSerializer, responses=serializers.VisitSerializer)
    @action(detail=True, methods=['post'])
    def document(self, request, pk=None):
        visit = self.get_manager().document(pk, self._input())
        return self._render(visit)

    @action(detail=True, methods=['delete'])
    def purge(self, request, pk=None):
        self.get_manager().purge(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Reports
# ============================================================================

class ReportViewSet(CorrelatedViewMixin, PageRequestMixin, viewsets.GenericViewSet):
    """
    GET /api/v1/reports/<name>/?include_cancelled=false

    Cancelled visits are excluded unless include_cancelled=true.
    """
    permission_classes = [RolePermission]
    pagination_class = PageEnvelopePagination
    read_roles = {ADMIN, DOCTOR}

    def get_engine(self):
        return ReportEngine(include_cancelled=self.get_flag('include_cancelled'))

    @extend_schema(responses=serializers.DiagnosisCountSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='most-frequent-diagnoses')
    def most_frequent_diagnoses(self, request):
        rows = self.get_engine().most_frequent_diagnoses()
        return Response(serializers.DiagnosisCountSerializer(rows, many=True).data)

    @extend_schema(responses=serializers.DoctorVisitCountSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='visit-count-by-doctor')
    def visit_count_by_doctor(self, request):
        rows = self.get_engine().visit_count_by_doctor()
        return Response(serializers.DoctorVisitCountSerializer(rows, many=True).data)

    @extend_schema(responses=serializers.DoctorPatientCountSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='patient-count-by-gp')
    def patient_count_by_general_practitioner(self, request):
        rows = self.get_engine().patient_count_by_general_practitioner()
        return Response(serializers.DoctorPatientCountSerializer(rows, many=True).data)

    @extend_schema(responses=serializers.DoctorSickLeaveCountSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='doctors-with-most-sick-leaves')
    def doctors_with_most_sick_leaves(self, request):
        rows = self.get_engine().doctors_with_most_sick_leaves()
        return Response(serializers.DoctorSickLeaveCountSerializer(rows, many=True).data)

    @extend_schema(responses=serializers.SickLeaveMonthCountSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='most-frequent-sick-leave-month')
    def most_frequent_sick_leave_month(self, request):
        rows = self.get_engine().most_frequent_sick_leave_month()
        return Response(serializers.SickLeaveMonthCountSerializer(rows, many=True).data)

    def _visit_page(self, queryset):
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(serializers.VisitSerializer(page, many=True).data)

    @extend_schema(responses=serializers.VisitSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='visits-by-date-range')
    def visits_by_date_range(self, request):
        params = request.query_params
        queryset = self.get_engine().date_range_queryset(
            parse_date_param(params.get('start_date'), 'start_date'),
            parse_date_param(params.get('end_date'), 'end_date'),
            page_request=self.get_page_request(),
        )
        return self._visit_page(queryset)

    @extend_schema(responses=serializers.VisitSerializer(many=True))
    @action(detail=False, methods=['get'], url_path='visits-by-doctor-and-date-range')
    def visits_by_doctor_and_date_range(self, request):
        params = request.query_params
        engine = self.get_engine()
        queryset = engine.date_range_queryset(
            parse_date_param(params.get('start_date'), 'start_date'),
            parse_date_param(params.get('end_date'), 'end_date'),
            doctor=engine.require_doctor(params.get('doctor_id')),
            page_request=self.get_page_request(),
        )
        return self._visit_page(queryset)


# ============================================================================
# Current user
# ============================================================================

class DashboardView(CorrelatedViewMixin, APIView):
    """GET /api/v1/me/dashboard/ - admin, doctor or patient dashboard (see `kind`)."""
    permission_classes = [IsAuthenticated]
    serializer_classes = {
        'admin': serializers.AdminDashboardSerializer,
        'doctor': serializers.DoctorDashboardSerializer,
        'patient': serializers.PatientDashboardSerializer,
    }

    def get(self, request):
        dashboard = dashboard_for(identity_for(request))
        serializer_class = self.serializer_classes[dashboard.kind]
        return Response(serializer_class(dashboard).data)


class PatientRegistrationView(CorrelatedViewMixin, APIView):
    """POST /api/v1/me/patient/ - a patient user creates its own profile."""
    permission_classes = [IsAuthenticated]

    @extend_schema(request=serializers.PatientRegistrationSerializer, responses=serializers.PatientSerializer)
    def post(self, request):
        serializer = serializers.PatientRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        patient = register_patient(identity_for(request), **serializer.validated_data)
        return Response(serializers.PatientSerializer(patient).data, status=status.HTTP_201_CREATED)
