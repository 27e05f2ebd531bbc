"""
Medical records models: specialty, doctor, patient, diagnosis, visit,
sick_leave, treatment, medicine.

Every model soft-deletes (see apps.core.models.SoftDeleteModel). Uniqueness
rules are partial constraints scoped to live rows so that a soft-deleted
record never blocks re-use of its EGN, ID number or name.
"""
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from apps.core.models import SoftDeleteModel
from apps.records.validators import (
    unique_id_number_validator,
    validate_egn,
    validate_visit_time,
)


# ============================================================================
# Enums
# ============================================================================

class VisitStatusChoices(models.TextChoices):
    """
    SCHEDULED -> COMPLETED
    SCHEDULED -> CANCELLED
    COMPLETED and CANCELLED are terminal.
    """
    SCHEDULED = 'SCHEDULED', 'Scheduled'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


# ============================================================================
# Registry
# ============================================================================

class Specialty(SoftDeleteModel):
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'specialty'
        verbose_name = 'Specialty'
        verbose_name_plural = 'Specialties'
        constraints = [
            models.UniqueConstraint(
                fields=['name'],
                condition=Q(is_deleted=False),
                name='uniq_specialty_name_alive',
            ),
        ]

    def __str__(self):
        return self.name


class Doctor(SoftDeleteModel):
    """
    Doctor profile.

    - unique_id_number: license/ID number, unique among live doctors
    - is_general_practitioner: may be chosen as a patient's GP
    - is_approved: unapproved doctors are visible to admins only
    - subject_id: identity of the user acting as this doctor
    """
    name = models.CharField(max_length=255)
    unique_id_number = models.CharField(max_length=20, validators=[unique_id_number_validator])
    is_general_practitioner = models.BooleanField(default=False)
    is_approved = models.BooleanField(default=True)
    image_url = models.URLField(max_length=500, blank=True, null=True)
    subject_id = models.CharField(max_length=64, blank=True, null=True)
    specialties = models.ManyToManyField(Specialty, related_name='doctors', blank=True)

    class Meta:
        db_table = 'doctor'
        verbose_name = 'Doctor'
        verbose_name_plural = 'Doctors'
        constraints = [
            models.UniqueConstraint(
                fields=['unique_id_number'],
                condition=Q(is_deleted=False),
                name='uniq_doctor_id_number_alive',
            ),
            models.UniqueConstraint(
                fields=['subject_id'],
                condition=Q(is_deleted=False) & Q(subject_id__isnull=False),
                name='uniq_doctor_subject_alive',
            ),
        ]
        indexes = [
            models.Index(fields=['is_general_practitioner'], name='idx_doctor_gp'),
        ]

    def __str__(self):
        return f"{self.name} ({self.unique_id_number})"


class Patient(SoftDeleteModel):
    """
    Patient profile.

    - egn: validated national identifier, unique among live patients
    - general_practitioner: Doctor flagged as GP (nullable)
    - subject_id: identity of the user the patient self-registered as
    """
    name = models.CharField(max_length=255)
    egn = models.CharField(max_length=10, validators=[validate_egn])
    general_practitioner = models.ForeignKey(
        Doctor,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='gp_patients',
        limit_choices_to={'is_general_practitioner': True},
    )
    last_insurance_payment_date = models.DateField(blank=True, null=True)
    subject_id = models.CharField(max_length=64, blank=True, null=True)

    class Meta:
        db_table = 'patient'
        verbose_name = 'Patient'
        verbose_name_plural = 'Patients'
        constraints = [
            models.UniqueConstraint(
                fields=['egn'],
                condition=Q(is_deleted=False),
                name='uniq_patient_egn_alive',
            ),
            models.UniqueConstraint(
                fields=['subject_id'],
                condition=Q(is_deleted=False) & Q(subject_id__isnull=False),
                name='uniq_patient_subject_alive',
            ),
        ]

    def __str__(self):
        return self.name


class Diagnosis(SoftDeleteModel):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'diagnosis'
        verbose_name = 'Diagnosis'
        verbose_name_plural = 'Diagnoses'
        constraints = [
            models.UniqueConstraint(
                fields=['name'],
                condition=Q(is_deleted=False),
                name='uniq_diagnosis_name_alive',
            ),
        ]

    def __str__(self):
        return self.name


# ============================================================================
# Visits
# ============================================================================

class Visit(SoftDeleteModel):
    """
    A booking or record of an encounter between a patient and a doctor.

    INVARIANT: (doctor, visit_date, visit_time) is unique among live,
    non-cancelled visits. The partial constraint below backs the
    application-level conflict check.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='visits')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='visits')
    diagnosis = models.ForeignKey(
        Diagnosis,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='visits',
    )
    visit_date = models.DateField()
    visit_time = models.TimeField(validators=[validate_visit_time])
    status = models.CharField(
        max_length=20,
        choices=VisitStatusChoices.choices,
        default=VisitStatusChoices.SCHEDULED,
    )
    notes = models.TextField(blank=True, default='')

    _ALLOWED_TRANSITIONS = {
        VisitStatusChoices.SCHEDULED: {VisitStatusChoices.COMPLETED, VisitStatusChoices.CANCELLED},
        VisitStatusChoices.COMPLETED: set(),
        VisitStatusChoices.CANCELLED: set(),
    }

    class Meta:
        db_table = 'visit'
        verbose_name = 'Visit'
        verbose_name_plural = 'Visits'
        ordering = ['visit_date', 'visit_time']
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'visit_date', 'visit_time'],
                condition=Q(is_deleted=False) & ~Q(status='CANCELLED'),
                name='uniq_visit_doctor_slot_active',
            ),
        ]
        indexes = [
            models.Index(fields=['visit_date'], name='idx_visit_date'),
            models.Index(fields=['doctor', 'visit_date'], name='idx_visit_doctor_date'),
            models.Index(fields=['status'], name='idx_visit_status'),
        ]

    def __str__(self):
        return f"Visit {self.visit_date} {self.visit_time} ({self.get_status_display()})"

    def can_transition_to(self, new_status):
        return new_status in self._ALLOWED_TRANSITIONS.get(self.status, set())

    @property
    def sick_leave_issued(self):
        """Derived: a live SickLeave exists for this visit."""
        return SickLeave.objects.filter(visit_id=self.pk).exists()


class SickLeave(SoftDeleteModel):
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name='sick_leaves')
    start_date = models.DateField()
    duration_days = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    class Meta:
        db_table = 'sick_leave'
        verbose_name = 'Sick Leave'
        verbose_name_plural = 'Sick Leaves'
        constraints = [
            models.UniqueConstraint(
                fields=['visit'],
                condition=Q(is_deleted=False),
                name='uniq_sick_leave_visit_alive',
            ),
        ]
        indexes = [
            models.Index(fields=['start_date'], name='idx_sick_leave_start'),
        ]

    def __str__(self):
        return f"Sick leave from {self.start_date} ({self.duration_days} days)"


class Treatment(SoftDeleteModel):
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name='treatments')
    description = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'treatment'
        verbose_name = 'Treatment'
        verbose_name_plural = 'Treatments'
        constraints = [
            models.UniqueConstraint(
                fields=['visit'],
                condition=Q(is_deleted=False),
                name='uniq_treatment_visit_alive',
            ),
        ]

    def __str__(self):
        return f"Treatment for visit {self.visit_id}"


class Medicine(SoftDeleteModel):
    treatment = models.ForeignKey(Treatment, on_delete=models.CASCADE, related_name='medicines')
    name = models.CharField(max_length=255)
    dosage = models.CharField(max_length=50)
    frequency = models.CharField(max_length=50)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'medicine'
        verbose_name = 'Medicine'
        verbose_name_plural = 'Medicines'
        ordering = ['position', 'created_at']

    def __str__(self):
        return self.name
