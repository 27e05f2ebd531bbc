"""
Visit scheduling services.

VisitConflictValidator
    One live, non-cancelled visit per (doctor, date, time).

VisitLifecycleManager
    create / schedule_for_patient / update / cancel / document / delete /
    purge / get_by_id, with the status machine
        SCHEDULED -> COMPLETED
        SCHEDULED -> CANCELLED

Every write runs inside transaction.atomic() and locks the doctor row
(select_for_update) before the conflict check. The partial unique
constraint on Visit is the final guard: an IntegrityError raised while
saving a visit is re-checked and surfaced as SlotConflict.
"""
import datetime
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core import conf
from apps.core.exceptions import (
    DuplicateKey,
    EntityNotFound,
    Forbidden,
    InvalidTransition,
    SlotConflict,
    ValidationError,
)
from apps.core.observability import log_domain_event, metrics
from apps.core.observability.events import log_slot_conflict, log_visit_transition
from apps.records.models import (
    Diagnosis,
    Doctor,
    Medicine,
    Patient,
    SickLeave,
    Treatment,
    Visit,
    VisitStatusChoices,
)
from apps.records.validators import is_valid_visit_time

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for a field absent from a partial update."""

    def __repr__(self):
        return 'UNSET'

    def __bool__(self):
        return False


UNSET = _Unset()


# ============================================================================
# Input DTOs
# ============================================================================

@dataclass
class VisitCreate:
    patient_id: object
    doctor_id: object
    visit_date: datetime.date
    visit_time: datetime.time
    diagnosis_id: object = None
    status: Optional[str] = None
    notes: str = ''
    sick_leave_issued: bool = False


@dataclass
class VisitSchedule:
    doctor_id: object
    visit_date: datetime.date
    visit_time: datetime.time
    notes: str = ''


@dataclass
class VisitUpdate:
    """Only fields that are not UNSET are applied. diagnosis_id=None clears the diagnosis."""
    patient_id: object = UNSET
    doctor_id: object = UNSET
    diagnosis_id: object = UNSET
    visit_date: object = UNSET
    visit_time: object = UNSET
    status: object = UNSET
    notes: object = UNSET

    def present(self):
        return {
            name: value for name, value in self.__dict__.items()
            if value is not UNSET
        }


@dataclass
class SickLeaveInput:
    start_date: Optional[datetime.date] = None
    duration_days: Optional[int] = None


@dataclass
class MedicineInput:
    name: str
    dosage: str
    frequency: str


@dataclass
class TreatmentInput:
    description: str = ''
    medicines: List[MedicineInput] = field(default_factory=list)


@dataclass
class VisitDocumentation:
    diagnosis_id: object = UNSET
    notes: object = UNSET
    sick_leave: Optional[SickLeaveInput] = None
    treatment: Optional[TreatmentInput] = None


# ============================================================================
# Helpers
# ============================================================================

def resolve(model, entity_id, for_update=False):
    """Live entity by id or EntityNotFound."""
    if entity_id is None:
        raise EntityNotFound(f'{model.__name__} ID is required')
    queryset = model.objects.select_for_update() if for_update else model.objects
    try:
        return queryset.get(pk=entity_id)
    except (model.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise EntityNotFound.for_id(model.__name__, entity_id)


def has_valid_insurance(patient, today=None):
    """Insurance paid within the last MEDREC_INSURANCE_VALIDITY_MONTHS months."""
    if patient.last_insurance_payment_date is None:
        return False
    today = today or timezone.localdate()
    months = conf.insurance_validity_months()
    year, month = divmod(today.year * 12 + today.month - 1 - months, 12)
    cutoff_day = min(today.day, 28)
    cutoff = datetime.date(year, month + 1, cutoff_day)
    return patient.last_insurance_payment_date >= cutoff


# ============================================================================
# Conflict Validator
# ============================================================================

class VisitConflictValidator:
    """
    Rejects a visit write that would double-book a doctor.

    Past dates are not checked here: staff may backfill history, only
    patient self-scheduling forbids the past.
    """

    ACTIVE_STATUSES = (VisitStatusChoices.SCHEDULED, VisitStatusChoices.COMPLETED)

    def exists_conflict(self, doctor_id, visit_date, visit_time, exclude_visit_id=None):
        queryset = Visit.objects.filter(
            doctor_id=doctor_id,
            visit_date=visit_date,
            visit_time=visit_time,
            status__in=self.ACTIVE_STATUSES,
        )
        if exclude_visit_id is not None:
            queryset = queryset.exclude(pk=exclude_visit_id)
        return queryset.exists()

    def validate(self, doctor_id, visit_date, visit_time, exclude_visit_id=None, source='precheck'):
        if self.exists_conflict(doctor_id, visit_date, visit_time, exclude_visit_id):
            metrics.visit_slot_conflicts_total.labels(source=source).inc()
            log_slot_conflict(doctor_id, visit_date, visit_time, source)
            raise SlotConflict(
                f"Visit time {visit_time:%H:%M} on {visit_date.isoformat()} is already booked for this doctor"
            )


# ============================================================================
# Lifecycle Manager
# ============================================================================

class VisitLifecycleManager:
    """
    Visit writes and reads on behalf of one caller.

    Role rules:
    - ADMIN: everything
    - DOCTOR: create/update/document only visits of the doctor bound to
      the caller's subject id
    - PATIENT: schedule for self, cancel own SCHEDULED visits, read own visits
    """

    def __init__(self, identity, validator=None):
        self.identity = identity
        self.validator = validator or VisitConflictValidator()

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _require_staff(self):
        if not (self.identity.is_admin or self.identity.is_doctor):
            raise Forbidden('Only staff can manage visits')

    def _require_admin(self):
        if not self.identity.is_admin:
            raise Forbidden('Only administrators can remove visits')

    def _check_doctor_ownership(self, doctor):
        if self.identity.is_admin:
            return
        if self.identity.is_doctor and doctor.subject_id and doctor.subject_id == self.identity.subject_id:
            return
        raise Forbidden('Cannot create or update visits for another doctor')

    def _check_visit_time(self, visit_time):
        if not is_valid_visit_time(visit_time):
            start = conf.visit_start_time().strftime('%H:%M')
            end = conf.visit_end_time().strftime('%H:%M')
            raise ValidationError(
                f'Visit time must be between {start} and {end} '
                f'in {conf.visit_slot_minutes()}-minute slots'
            )

    def _check_insurance(self, patient):
        if conf.require_valid_insurance() and not has_valid_insurance(patient):
            raise ValidationError(
                f'Patient insurance is not valid (must be paid within last '
                f'{conf.insurance_validity_months()} months)'
            )

    def _default_status(self, visit_date, visit_time):
        starts_at = datetime.datetime.combine(visit_date, visit_time)
        now = timezone.localtime().replace(tzinfo=None)
        return VisitStatusChoices.SCHEDULED if starts_at > now else VisitStatusChoices.COMPLETED

    def _save_visit(self, visit, **save_kwargs):
        """Save; a constraint violation on the slot becomes SlotConflict."""
        try:
            with transaction.atomic():
                visit.save(**save_kwargs)
        except IntegrityError:
            if visit.status != VisitStatusChoices.CANCELLED:
                self.validator.validate(
                    visit.doctor_id, visit.visit_date, visit.visit_time,
                    exclude_visit_id=visit.pk if visit.pk else None,
                    source='constraint',
                )
            raise DuplicateKey('Visit violates a uniqueness rule')
        return visit

    def _record(self, operation, result):
        metrics.visit_operations_total.labels(operation=operation, result=result).inc()

    def _create_sick_leave(self, visit, start_date=None, duration_days=None):
        if SickLeave.objects.filter(visit=visit).exists():
            raise DuplicateKey('Visit already has a sick leave')
        return SickLeave.objects.create(
            visit=visit,
            start_date=start_date or visit.visit_date,
            duration_days=duration_days or conf.default_sick_leave_days(),
        )

    def _create_treatment(self, visit, treatment_input):
        if Treatment.objects.filter(visit=visit).exists():
            raise DuplicateKey('Visit already has a treatment')
        treatment = Treatment.objects.create(visit=visit, description=treatment_input.description)
        for position, medicine in enumerate(treatment_input.medicines):
            Medicine.objects.create(
                treatment=treatment,
                name=medicine.name,
                dosage=medicine.dosage,
                frequency=medicine.frequency,
                position=position,
            )
        return treatment

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, dto: VisitCreate) -> Visit:
        """Staff-created visit. Status defaults to SCHEDULED for the future, COMPLETED otherwise."""
        self._require_staff()
        if dto.diagnosis_id is None:
            raise ValidationError('Diagnosis is required')
        if dto.status == VisitStatusChoices.CANCELLED:
            raise ValidationError('A visit cannot be created as cancelled')
        self._check_visit_time(dto.visit_time)

        with transaction.atomic():
            doctor = resolve(Doctor, dto.doctor_id, for_update=True)
            self._check_doctor_ownership(doctor)
            patient = resolve(Patient, dto.patient_id)
            diagnosis = resolve(Diagnosis, dto.diagnosis_id)
            self._check_insurance(patient)

            self.validator.validate(doctor.pk, dto.visit_date, dto.visit_time)

            visit = Visit(
                patient=patient,
                doctor=doctor,
                diagnosis=diagnosis,
                visit_date=dto.visit_date,
                visit_time=dto.visit_time,
                status=dto.status or self._default_status(dto.visit_date, dto.visit_time),
                notes=dto.notes or '',
            )
            self._save_visit(visit)

            if dto.sick_leave_issued:
                self._create_sick_leave(visit)

        self._record('create', 'success')
        log_domain_event(
            'visit_created',
            entity_type='Visit',
            entity_id=str(visit.id),
            entity_ids={'doctor_id': str(doctor.id), 'patient_id': str(patient.id)},
            status=visit.status,
            visit_date=str(visit.visit_date),
        )
        return visit

    def schedule_for_patient(self, patient_subject_id, dto: VisitSchedule) -> Visit:
        """Patient self-scheduling: always SCHEDULED, never in the past, no diagnosis yet."""
        patient = Patient.objects.filter(subject_id=patient_subject_id).first()
        if patient is None:
            raise EntityNotFound('No patient profile for the current user')

        if dto.visit_date < timezone.localdate():
            raise ValidationError('Visits cannot be scheduled in the past')
        self._check_visit_time(dto.visit_time)
        self._check_insurance(patient)

        with transaction.atomic():
            doctor = resolve(Doctor, dto.doctor_id, for_update=True)
            if not doctor.is_approved:
                raise EntityNotFound.for_id('Doctor', dto.doctor_id)

            self.validator.validate(doctor.pk, dto.visit_date, dto.visit_time)

            visit = Visit(
                patient=patient,
                doctor=doctor,
                diagnosis=None,
                visit_date=dto.visit_date,
                visit_time=dto.visit_time,
                status=VisitStatusChoices.SCHEDULED,
                notes=dto.notes or '',
            )
            self._save_visit(visit)

        self._record('schedule', 'success')
        log_domain_event(
            'visit_scheduled',
            entity_type='Visit',
            entity_id=str(visit.id),
            entity_ids={'doctor_id': str(doctor.id), 'patient_id': str(patient.id)},
            visit_date=str(visit.visit_date),
        )
        return visit

    def update(self, visit_id, dto: VisitUpdate) -> Visit:
        """Partial update. The conflict check re-runs only when doctor, date or time change."""
        self._require_staff()
        changes = dto.present()

        with transaction.atomic():
            visit = resolve(Visit, visit_id, for_update=True)
            self._check_doctor_ownership(visit.doctor)

            slot_changed = False
            if 'doctor_id' in changes and str(changes['doctor_id']) != str(visit.doctor_id):
                doctor = resolve(Doctor, changes['doctor_id'], for_update=True)
                self._check_doctor_ownership(doctor)
                visit.doctor = doctor
                slot_changed = True
            if 'patient_id' in changes:
                visit.patient = resolve(Patient, changes['patient_id'])
            if 'diagnosis_id' in changes:
                diagnosis_id = changes['diagnosis_id']
                visit.diagnosis = resolve(Diagnosis, diagnosis_id) if diagnosis_id is not None else None
            if 'visit_date' in changes and changes['visit_date'] != visit.visit_date:
                visit.visit_date = changes['visit_date']
                slot_changed = True
            if 'visit_time' in changes and changes['visit_time'] != visit.visit_time:
                self._check_visit_time(changes['visit_time'])
                visit.visit_time = changes['visit_time']
                slot_changed = True
            if 'notes' in changes:
                visit.notes = changes['notes'] or ''

            from_status = visit.status
            new_status = changes.get('status', from_status)
            if new_status != from_status:
                if not visit.can_transition_to(new_status):
                    log_visit_transition(visit, from_status, new_status, result='rejected')
                    metrics.visit_transition_total.labels(
                        from_status=from_status, to_status=new_status, result='rejected'
                    ).inc()
                    raise InvalidTransition(f'Cannot change visit status from {from_status} to {new_status}')
                visit.status = new_status

            if slot_changed and visit.status != VisitStatusChoices.CANCELLED:
                self.validator.validate(
                    visit.doctor_id, visit.visit_date, visit.visit_time, exclude_visit_id=visit.pk
                )

            self._save_visit(visit)

        if new_status != from_status:
            metrics.visit_transition_total.labels(
                from_status=from_status, to_status=new_status, result='success'
            ).inc()
            log_visit_transition(visit, from_status, new_status)
        self._record('update', 'success')
        log_domain_event(
            'visit_updated',
            entity_type='Visit',
            entity_id=str(visit.id),
            changed_fields=sorted(changes),
        )
        return visit

    def cancel(self, visit_id, caller_patient_subject_id) -> Visit:
        """Owning patient cancels a SCHEDULED visit."""
        with transaction.atomic():
            visit = resolve(Visit, visit_id, for_update=True)
            if not caller_patient_subject_id or visit.patient.subject_id != caller_patient_subject_id:
                self._record('cancel', 'forbidden')
                raise Forbidden('Only the patient who owns the visit can cancel it')

            from_status = visit.status
            if not visit.can_transition_to(VisitStatusChoices.CANCELLED):
                self._record('cancel', 'rejected')
                log_visit_transition(visit, from_status, VisitStatusChoices.CANCELLED, result='rejected')
                raise InvalidTransition(f'Only scheduled visits can be cancelled (current status: {from_status})')

            visit.status = VisitStatusChoices.CANCELLED
            visit.save(update_fields=['status', 'updated_at'])

        self._record('cancel', 'success')
        metrics.visit_transition_total.labels(
            from_status=from_status, to_status=VisitStatusChoices.CANCELLED, result='success'
        ).inc()
        log_visit_transition(visit, from_status, VisitStatusChoices.CANCELLED)
        return visit

    def document(self, visit_id, dto: VisitDocumentation) -> Visit:
        """
        Record the encounter: diagnosis, notes, optional sick leave and
        treatment. SCHEDULED visits become COMPLETED.
        """
        self._require_staff()

        with transaction.atomic():
            visit = resolve(Visit, visit_id, for_update=True)
            self._check_doctor_ownership(visit.doctor)

            from_status = visit.status
            if from_status == VisitStatusChoices.CANCELLED:
                raise InvalidTransition('Cancelled visits cannot be documented')

            if dto.diagnosis_id is not UNSET:
                visit.diagnosis = resolve(Diagnosis, dto.diagnosis_id) if dto.diagnosis_id is not None else None
            if visit.diagnosis_id is None:
                raise ValidationError('A diagnosis is required to complete a visit')
            if dto.notes is not UNSET:
                visit.notes = dto.notes or ''

            visit.status = VisitStatusChoices.COMPLETED
            self._save_visit(visit)

            if dto.sick_leave is not None:
                self._create_sick_leave(visit, dto.sick_leave.start_date, dto.sick_leave.duration_days)
            if dto.treatment is not None:
                self._create_treatment(visit, dto.treatment)

        self._record('document', 'success')
        if from_status != visit.status:
            metrics.visit_transition_total.labels(
                from_status=from_status, to_status=visit.status, result='success'
            ).inc()
            log_visit_transition(visit, from_status, visit.status)
        log_domain_event(
            'visit_documented',
            entity_type='Visit',
            entity_id=str(visit.id),
            sick_leave=dto.sick_leave is not None,
            treatment=dto.treatment is not None,
        )
        return visit

    def delete(self, visit_id):
        """Soft delete the visit together with its sick leave, treatment and medicines."""
        self._require_admin()
        with transaction.atomic():
            visit = resolve(Visit, visit_id, for_update=True)
            Medicine.objects.filter(treatment__visit=visit).soft_delete()
            Treatment.objects.filter(visit=visit).soft_delete()
            SickLeave.objects.filter(visit=visit).soft_delete()
            visit.soft_delete()

        self._record('delete', 'success')
        log_domain_event('visit_deleted', entity_type='Visit', entity_id=str(visit.id))

    def purge(self, visit_id):
        """Physically remove a visit (live or soft-deleted) and all its dependents."""
        self._require_admin()
        with transaction.atomic():
            try:
                visit = Visit.all_objects.get(pk=visit_id)
            except (Visit.DoesNotExist, DjangoValidationError, ValueError):
                raise EntityNotFound.for_id('Visit', visit_id)
            Medicine.all_objects.filter(treatment__visit=visit).delete()
            Treatment.all_objects.filter(visit=visit).delete()
            SickLeave.all_objects.filter(visit=visit).delete()
            visit.delete()

        self._record('purge', 'success')
        log_domain_event('visit_purged', entity_type='Visit', entity_id=str(visit_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, visit_id, include_deleted=False) -> Visit:
        """
        include_deleted is honoured for admins only. Patients may read their
        own visits only.
        """
        manager = Visit.all_objects if (include_deleted and self.identity.is_admin) else Visit.objects
        try:
            visit = manager.select_related('patient', 'doctor', 'diagnosis').get(pk=visit_id)
        except (Visit.DoesNotExist, DjangoValidationError, ValueError):
            raise EntityNotFound.for_id('Visit', visit_id)

        if not (self.identity.is_admin or self.identity.is_doctor):
            if visit.patient.subject_id != self.identity.subject_id:
                raise Forbidden('Patients can only view their own visits')
        return visit


# ============================================================================
# Patient self-registration
# ============================================================================

def register_patient(identity, name, egn, general_practitioner_id=None, last_insurance_payment_date=None):
    """A PATIENT caller without a profile creates one bound to its subject id."""
    if not identity.is_patient:
        raise Forbidden('Only patients can register a patient profile')
    if Patient.objects.filter(subject_id=identity.subject_id).exists():
        raise DuplicateKey('A patient profile already exists for this user')
    if Patient.objects.filter(egn=egn).exists():
        raise DuplicateKey('A patient with this EGN already exists')

    general_practitioner = None
    if general_practitioner_id is not None:
        general_practitioner = resolve(Doctor, general_practitioner_id)
        if not general_practitioner.is_general_practitioner:
            raise ValidationError('Selected doctor is not a general practitioner')

    try:
        with transaction.atomic():
            patient = Patient.objects.create(
                name=name,
                egn=egn,
                general_practitioner=general_practitioner,
                last_insurance_payment_date=last_insurance_payment_date,
                subject_id=identity.subject_id,
            )
    except IntegrityError:
        raise DuplicateKey('A patient with this EGN or identity already exists')

    log_domain_event('patient_registered', entity_type='Patient', entity_id=str(patient.id))
    return patient
