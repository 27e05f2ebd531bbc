"""
Role-conditional dashboard.

dashboard_for() returns one variant of a tagged union; callers switch on
`kind` rather than inspecting the payload.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from django.utils import timezone

from apps.core.exceptions import EntityNotFound, Forbidden
from apps.records.models import (
    Diagnosis,
    Doctor,
    Patient,
    SickLeave,
    Specialty,
    Treatment,
    Visit,
    VisitStatusChoices,
)


@dataclass(frozen=True)
class DoctorDashboard:
    doctor: Doctor
    upcoming_visits: List[Visit] = field(default_factory=list)
    kind: str = 'doctor'


@dataclass(frozen=True)
class PatientDashboard:
    patient: Patient
    general_practitioner: Optional[Doctor] = None
    visits: List[Visit] = field(default_factory=list)
    kind: str = 'patient'


@dataclass(frozen=True)
class AdminDashboard:
    counts: Dict[str, int] = field(default_factory=dict)
    kind: str = 'admin'


Dashboard = Union[AdminDashboard, DoctorDashboard, PatientDashboard]


def dashboard_for(identity) -> Dashboard:
    """ADMIN wins over DOCTOR, DOCTOR over PATIENT."""
    if identity.is_admin:
        return AdminDashboard(counts={
            'doctors': Doctor.objects.count(),
            'patients': Patient.objects.count(),
            'visits': Visit.objects.count(),
            'diagnoses': Diagnosis.objects.count(),
            'specialties': Specialty.objects.count(),
            'sick_leaves': SickLeave.objects.count(),
            'treatments': Treatment.objects.count(),
        })

    if identity.is_doctor:
        doctor = Doctor.objects.filter(subject_id=identity.subject_id).first()
        if doctor is None:
            raise EntityNotFound('No doctor profile for the current user')
        upcoming = (
            Visit.objects
            .filter(
                doctor=doctor,
                status=VisitStatusChoices.SCHEDULED,
                visit_date__gte=timezone.localdate(),
            )
            .select_related('patient', 'doctor', 'diagnosis')
            .order_by('visit_date', 'visit_time')
        )
        return DoctorDashboard(doctor=doctor, upcoming_visits=list(upcoming))

    if identity.is_patient:
        patient = (
            Patient.objects
            .select_related('general_practitioner')
            .filter(subject_id=identity.subject_id)
            .first()
        )
        if patient is None:
            raise EntityNotFound('No patient profile for the current user')
        visits = (
            Visit.objects
            .filter(patient=patient)
            .select_related('patient', 'doctor', 'diagnosis')
            .order_by('-visit_date', '-visit_time')
        )
        return PatientDashboard(
            patient=patient,
            general_practitioner=patient.general_practitioner,
            visits=list(visits),
        )

    raise Forbidden('No dashboard for the current roles')
