"""
Global test fixtures for pytest.

Provides reusable fixtures for API and service testing:
- Users and authenticated API clients by role
- Identity contexts for calling services directly
- Model instances (Doctor, Patient, Diagnosis, Visit)
"""
import datetime

import pytest
from rest_framework.test import APIClient

from apps.authz.identity import IdentityContext
from apps.authz.models import RoleChoices, User, assign_role
from apps.records.models import Diagnosis, Doctor, Patient, Specialty, Visit, VisitStatusChoices
from tests.factories import EGN_1, EGN_2, PAST_DATE, tomorrow


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def make_user(db):
    """Factory: make_user('x@test.com', RoleChoices.DOCTOR)."""
    def _make(email, *roles, subject_id=None):
        extra = {'subject_id': subject_id} if subject_id else {}
        user = User.objects.create_user(email=email, password='testpass123', is_active=True, **extra)
        for role in roles:
            assign_role(user, role)
        return user
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@test.com', RoleChoices.ADMIN, subject_id='admin-1')


@pytest.fixture
def doctor_user(make_user):
    return make_user('doctor@test.com', RoleChoices.DOCTOR, subject_id='doctor-1')


@pytest.fixture
def patient_user(make_user):
    return make_user('patient@test.com', RoleChoices.PATIENT, subject_id='patient-1')


@pytest.fixture
def other_patient_user(make_user):
    return make_user('patient2@test.com', RoleChoices.PATIENT, subject_id='patient-2')


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_client(admin_user):
    """Admin has full access to all resources."""
    return _client_for(admin_user)


@pytest.fixture
def doctor_client(doctor_user, gp):
    """Doctor bound to the `gp` profile."""
    return _client_for(doctor_user)


@pytest.fixture
def patient_client(patient_user, patient):
    """Patient bound to the `patient` profile."""
    return _client_for(patient_user)


@pytest.fixture
def other_patient_client(other_patient_user, other_patient):
    return _client_for(other_patient_user)


# ============================================================================
# Identities
# ============================================================================

@pytest.fixture
def admin_identity():
    return IdentityContext(subject_id='admin-1', roles=frozenset({RoleChoices.ADMIN.value}))


@pytest.fixture
def doctor_identity():
    return IdentityContext(subject_id='doctor-1', roles=frozenset({RoleChoices.DOCTOR.value}))


@pytest.fixture
def patient_identity():
    return IdentityContext(subject_id='patient-1', roles=frozenset({RoleChoices.PATIENT.value}))


@pytest.fixture
def other_patient_identity():
    return IdentityContext(subject_id='patient-2', roles=frozenset({RoleChoices.PATIENT.value}))


# ============================================================================
# Records
# ============================================================================

@pytest.fixture
def gp(db):
    """General practitioner D1, acting as subject 'doctor-1'."""
    return Doctor.objects.create(
        name='Dr. Ivan Petrov',
        unique_id_number='DOC10001',
        is_general_practitioner=True,
        subject_id='doctor-1',
    )


@pytest.fixture
def specialist(db):
    return Doctor.objects.create(
        name='Dr. Maria Georgieva',
        unique_id_number='DOC10002',
        is_general_practitioner=False,
    )


@pytest.fixture
def patient(gp):
    """Patient P1 with GP D1, acting as subject 'patient-1'."""
    return Patient.objects.create(
        name='Georgi Dimitrov',
        egn=EGN_1,
        general_practitioner=gp,
        subject_id='patient-1',
    )


@pytest.fixture
def other_patient(gp):
    return Patient.objects.create(
        name='Elena Stoyanova',
        egn=EGN_2,
        general_practitioner=gp,
        subject_id='patient-2',
    )


@pytest.fixture
def flu(db):
    return Diagnosis.objects.create(name='Flu')


@pytest.fixture
def cold(db):
    return Diagnosis.objects.create(name='Cold')


@pytest.fixture
def cardiology(db):
    return Specialty.objects.create(name='Cardiology')


@pytest.fixture
def make_visit(db):
    """Factory that writes visits directly, bypassing the lifecycle rules."""
    def _make(doctor, patient, visit_date=PAST_DATE, visit_time=datetime.time(10, 0),
              status=VisitStatusChoices.COMPLETED, diagnosis=None):
        return Visit.objects.create(
            doctor=doctor,
            patient=patient,
            diagnosis=diagnosis,
            visit_date=visit_date,
            visit_time=visit_time,
            status=status,
        )
    return _make


@pytest.fixture
def scheduled_visit(make_visit, gp, patient):
    return make_visit(gp, patient, visit_date=tomorrow(), visit_time=datetime.time(9, 0),
                      status=VisitStatusChoices.SCHEDULED)
