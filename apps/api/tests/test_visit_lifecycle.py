"""
Tests for VisitLifecycleManager: create, schedule, update, cancel,
document, delete, purge and get_by_id, including role rules.
"""
import datetime

import pytest

from apps.authz.identity import IdentityContext
from apps.core.exceptions import (
    DuplicateKey,
    EntityNotFound,
    Forbidden,
    InvalidTransition,
    ValidationError,
)
from apps.records.models import (
    Doctor,
    Medicine,
    Patient,
    SickLeave,
    Treatment,
    Visit,
    VisitStatusChoices,
)
from apps.records.services import (
    MedicineInput,
    SickLeaveInput,
    TreatmentInput,
    VisitCreate,
    VisitDocumentation,
    VisitLifecycleManager,
    VisitSchedule,
    VisitUpdate,
    has_valid_insurance,
)
from tests.factories import PAST_DATE, tomorrow

NINE = datetime.time(9, 0)
TEN = datetime.time(10, 0)


def create_dto(doctor, patient, diagnosis, visit_date=PAST_DATE, visit_time=TEN, **kwargs):
    return VisitCreate(
        patient_id=patient.pk,
        doctor_id=doctor.pk,
        diagnosis_id=diagnosis.pk if diagnosis else None,
        visit_date=visit_date,
        visit_time=visit_time,
        **kwargs
    )


# ============================================================================
# Create
# ============================================================================

@pytest.mark.django_db
class TestCreate:

    def test_past_visit_is_completed(self, gp, patient, flu, admin_identity):
        visit = VisitLifecycleManager(admin_identity).create(create_dto(gp, patient, flu))
        assert visit.status == VisitStatusChoices.COMPLETED
        assert visit.diagnosis == flu

    def test_future_visit_is_scheduled(self, gp, patient, flu, admin_identity):
        visit = VisitLifecycleManager(admin_identity).create(
            create_dto(gp, patient, flu, visit_date=tomorrow())
        )
        assert visit.status == VisitStatusChoices.SCHEDULED

    def test_explicit_status_wins(self, gp, patient, flu, admin_identity):
        visit = VisitLifecycleManager(admin_identity).create(
            create_dto(gp, patient, flu, visit_date=tomorrow(), status=VisitStatusChoices.COMPLETED)
        )
        assert visit.status == VisitStatusChoices.COMPLETED

    def test_cannot_create_cancelled(self, gp, patient, flu, admin_identity):
        with pytest.raises(ValidationError):
            VisitLifecycleManager(admin_identity).create(
                create_dto(gp, patient, flu, status=VisitStatusChoices.CANCELLED)
            )

    def test_diagnosis_required(self, gp, patient, admin_identity):
        with pytest.raises(ValidationError):
            VisitLifecycleManager(admin_identity).create(create_dto(gp, patient, None))

    @pytest.mark.parametrize('visit_time', [datetime.time(8, 0), datetime.time(10, 15), datetime.time(17, 30)])
    def test_time_outside_slots_rejected(self, gp, patient, flu, admin_identity, visit_time):
        with pytest.raises(ValidationError):
            VisitLifecycleManager(admin_identity).create(create_dto(gp, patient, flu, visit_time=visit_time))

    def test_unknown_patient(self, gp, flu, admin_identity):
        dto = VisitCreate(
            patient_id='00000000-0000-0000-0000-000000000000',
            doctor_id=gp.pk,
            diagnosis_id=flu.pk,
            visit_date=PAST_DATE,
            visit_time=TEN,
        )
        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(admin_identity).create(dto)

    def test_deleted_doctor_not_found(self, gp, patient, flu, admin_identity):
        gp.soft_delete()
        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(admin_identity).create(create_dto(gp, patient, flu))

    def test_sick_leave_issued_creates_sick_leave(self, gp, patient, flu, admin_identity):
        visit = VisitLifecycleManager(admin_identity).create(
            create_dto(gp, patient, flu, sick_leave_issued=True)
        )
        sick_leave = SickLeave.objects.get(visit=visit)
        assert sick_leave.start_date == PAST_DATE
        assert sick_leave.duration_days == 5
        assert visit.sick_leave_issued

    def test_doctor_creates_for_self(self, gp, patient, flu, doctor_identity):
        visit = VisitLifecycleManager(doctor_identity).create(create_dto(gp, patient, flu))
        assert visit.doctor == gp

    def test_doctor_cannot_create_for_other_doctor(self, specialist, patient, flu, doctor_identity):
        with pytest.raises(Forbidden):
            VisitLifecycleManager(doctor_identity).create(create_dto(specialist, patient, flu))

    def test_patient_cannot_create(self, gp, patient, flu, patient_identity):
        with pytest.raises(Forbidden):
            VisitLifecycleManager(patient_identity).create(create_dto(gp, patient, flu))

    def test_insurance_enforced_when_enabled(self, settings, gp, patient, flu, admin_identity):
        settings.MEDREC_REQUIRE_VALID_INSURANCE = True
        with pytest.raises(ValidationError):
            VisitLifecycleManager(admin_identity).create(create_dto(gp, patient, flu))

        Patient.objects.filter(pk=patient.pk).update(last_insurance_payment_date=datetime.date.today())
        visit = VisitLifecycleManager(admin_identity).create(create_dto(gp, patient, flu))
        assert visit.pk is not None


class TestInsurance:

    @pytest.mark.parametrize('paid,expected', [
        (datetime.date(2024, 1, 15), True),
        (datetime.date(2024, 1, 14), False),
        (None, False),
    ])
    def test_six_month_window(self, paid, expected):
        patient = Patient(name='X', egn='7501020018', last_insurance_payment_date=paid)
        assert has_valid_insurance(patient, today=datetime.date(2024, 7, 15)) is expected


# ============================================================================
# Schedule / cancel
# ============================================================================

@pytest.mark.django_db
class TestScheduleAndCancel:

    def _schedule(self, identity, doctor, visit_date=None, visit_time=NINE):
        return VisitLifecycleManager(identity).schedule_for_patient(
            identity.subject_id,
            VisitSchedule(doctor_id=doctor.pk, visit_date=visit_date or tomorrow(), visit_time=visit_time),
        )

    def test_patient_schedules_and_other_patient_cannot_cancel(
        self, gp, patient, other_patient, patient_identity, other_patient_identity
    ):
        visit = self._schedule(patient_identity, gp)
        assert visit.status == VisitStatusChoices.SCHEDULED
        assert visit.patient == patient
        assert visit.diagnosis is None

        with pytest.raises(Forbidden):
            VisitLifecycleManager(other_patient_identity).cancel(visit.pk, other_patient_identity.subject_id)

        visit.refresh_from_db()
        assert visit.status == VisitStatusChoices.SCHEDULED

    def test_owner_cancels(self, gp, patient, patient_identity):
        visit = self._schedule(patient_identity, gp)
        cancelled = VisitLifecycleManager(patient_identity).cancel(visit.pk, 'patient-1')
        assert cancelled.status == VisitStatusChoices.CANCELLED

    def test_cancel_twice_is_rejected_without_changes(self, gp, patient, patient_identity):
        visit = self._schedule(patient_identity, gp)
        manager = VisitLifecycleManager(patient_identity)
        manager.cancel(visit.pk, 'patient-1')
        before = Visit.objects.get(pk=visit.pk)

        with pytest.raises(InvalidTransition):
            manager.cancel(visit.pk, 'patient-1')

        after = Visit.objects.get(pk=visit.pk)
        assert after.status == VisitStatusChoices.CANCELLED
        assert after.updated_at == before.updated_at

    def test_completed_visit_cannot_be_cancelled(self, gp, patient, make_visit, patient_identity):
        visit = make_visit(gp, patient, status=VisitStatusChoices.COMPLETED)
        with pytest.raises(InvalidTransition):
            VisitLifecycleManager(patient_identity).cancel(visit.pk, 'patient-1')

    def test_forbidden_checked_before_transition(self, gp, patient, make_visit, other_patient_identity):
        visit = make_visit(gp, patient, status=VisitStatusChoices.COMPLETED)
        with pytest.raises(Forbidden):
            VisitLifecycleManager(other_patient_identity).cancel(visit.pk, 'patient-2')

    def test_cannot_schedule_in_the_past(self, gp, patient, patient_identity):
        with pytest.raises(ValidationError):
            self._schedule(patient_identity, gp, visit_date=PAST_DATE)

    def test_cannot_schedule_with_unapproved_doctor(self, patient, patient_identity):
        doctor = Doctor.objects.create(name='Dr. New', unique_id_number='NEW00001', is_approved=False)
        with pytest.raises(EntityNotFound):
            self._schedule(patient_identity, doctor)

    def test_requires_patient_profile(self, gp):
        identity = IdentityContext(subject_id='nobody', roles=frozenset({'patient'}))
        with pytest.raises(EntityNotFound):
            self._schedule(identity, gp)

    def test_cancelled_slot_can_be_scheduled_again(self, gp, patient, other_patient,
                                                   patient_identity, other_patient_identity):
        visit = self._schedule(patient_identity, gp)
        VisitLifecycleManager(patient_identity).cancel(visit.pk, 'patient-1')

        again = self._schedule(other_patient_identity, gp)
        assert again.status == VisitStatusChoices.SCHEDULED


# ============================================================================
# Update
# ============================================================================

@pytest.mark.django_db
class TestUpdate:

    def test_scheduled_to_completed(self, scheduled_visit, admin_identity):
        visit = VisitLifecycleManager(admin_identity).update(
            scheduled_visit.pk, VisitUpdate(status=VisitStatusChoices.COMPLETED)
        )
        assert visit.status == VisitStatusChoices.COMPLETED

    @pytest.mark.parametrize('from_status,to_status', [
        (VisitStatusChoices.COMPLETED, VisitStatusChoices.SCHEDULED),
        (VisitStatusChoices.CANCELLED, VisitStatusChoices.SCHEDULED),
        (VisitStatusChoices.CANCELLED, VisitStatusChoices.COMPLETED),
        (VisitStatusChoices.COMPLETED, VisitStatusChoices.CANCELLED),
    ])
    def test_terminal_states(self, gp, patient, make_visit, admin_identity, from_status, to_status):
        visit = make_visit(gp, patient, status=from_status)
        with pytest.raises(InvalidTransition):
            VisitLifecycleManager(admin_identity).update(visit.pk, VisitUpdate(status=to_status))
        visit.refresh_from_db()
        assert visit.status == from_status

    def test_absent_fields_untouched(self, gp, patient, flu, make_visit, admin_identity):
        visit = make_visit(gp, patient, diagnosis=flu)
        updated = VisitLifecycleManager(admin_identity).update(visit.pk, VisitUpdate(notes='checked'))
        assert updated.diagnosis == flu
        assert updated.visit_time == TEN

    def test_null_diagnosis_clears(self, gp, patient, flu, make_visit, admin_identity):
        visit = make_visit(gp, patient, diagnosis=flu)
        updated = VisitLifecycleManager(admin_identity).update(visit.pk, VisitUpdate(diagnosis_id=None))
        assert updated.diagnosis is None

    def test_move_to_another_doctor(self, gp, specialist, patient, make_visit, admin_identity):
        visit = make_visit(gp, patient)
        updated = VisitLifecycleManager(admin_identity).update(visit.pk, VisitUpdate(doctor_id=specialist.pk))
        assert updated.doctor == specialist

    def test_doctor_cannot_update_foreign_visit(self, specialist, patient, make_visit, doctor_identity):
        visit = make_visit(specialist, patient)
        with pytest.raises(Forbidden):
            VisitLifecycleManager(doctor_identity).update(visit.pk, VisitUpdate(notes='x'))

    def test_unknown_visit(self, admin_identity, db):
        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(admin_identity).update('not-a-uuid', VisitUpdate(notes='x'))


# ============================================================================
# Document
# ============================================================================

@pytest.mark.django_db
class TestDocument:

    def test_documents_scheduled_visit(self, scheduled_visit, flu, doctor_identity):
        dto = VisitDocumentation(
            diagnosis_id=flu.pk,
            notes='Rest and fluids',
            sick_leave=SickLeaveInput(duration_days=3),
            treatment=TreatmentInput(
                description='Symptomatic',
                medicines=[
                    MedicineInput(name='Paracetamol', dosage='500mg', frequency='3x daily'),
                    MedicineInput(name='Vitamin C', dosage='1g', frequency='daily'),
                ],
            ),
        )
        visit = VisitLifecycleManager(doctor_identity).document(scheduled_visit.pk, dto)

        assert visit.status == VisitStatusChoices.COMPLETED
        assert visit.diagnosis == flu
        assert visit.sick_leave_issued
        sick_leave = SickLeave.objects.get(visit=visit)
        assert sick_leave.start_date == scheduled_visit.visit_date
        assert sick_leave.duration_days == 3
        treatment = Treatment.objects.get(visit=visit)
        assert [m.name for m in treatment.medicines.all()] == ['Paracetamol', 'Vitamin C']

    def test_diagnosis_required(self, scheduled_visit, doctor_identity):
        with pytest.raises(ValidationError):
            VisitLifecycleManager(doctor_identity).document(scheduled_visit.pk, VisitDocumentation())

    def test_cancelled_visit_cannot_be_documented(self, gp, patient, flu, make_visit, doctor_identity):
        visit = make_visit(gp, patient, status=VisitStatusChoices.CANCELLED)
        with pytest.raises(InvalidTransition):
            VisitLifecycleManager(doctor_identity).document(visit.pk, VisitDocumentation(diagnosis_id=flu.pk))

    def test_second_sick_leave_rejected(self, gp, patient, flu, make_visit, doctor_identity):
        visit = make_visit(gp, patient, diagnosis=flu)
        manager = VisitLifecycleManager(doctor_identity)
        manager.document(visit.pk, VisitDocumentation(sick_leave=SickLeaveInput()))
        with pytest.raises(DuplicateKey):
            manager.document(visit.pk, VisitDocumentation(sick_leave=SickLeaveInput()))
        assert SickLeave.objects.filter(visit=visit).count() == 1

    def test_patient_cannot_document(self, scheduled_visit, flu, patient_identity):
        with pytest.raises(Forbidden):
            VisitLifecycleManager(patient_identity).document(
                scheduled_visit.pk, VisitDocumentation(diagnosis_id=flu.pk)
            )


# ============================================================================
# Delete / purge / read
# ============================================================================

@pytest.mark.django_db
class TestDeleteAndRead:

    @pytest.fixture
    def documented_visit(self, gp, patient, flu, make_visit, admin_identity):
        visit = make_visit(gp, patient, diagnosis=flu)
        VisitLifecycleManager(admin_identity).document(
            visit.pk,
            VisitDocumentation(
                sick_leave=SickLeaveInput(),
                treatment=TreatmentInput(medicines=[MedicineInput(name='Ibuprofen', dosage='200mg', frequency='2x')]),
            ),
        )
        return visit

    def test_delete_cascades_softly(self, documented_visit, admin_identity):
        VisitLifecycleManager(admin_identity).delete(documented_visit.pk)

        assert not Visit.objects.filter(pk=documented_visit.pk).exists()
        assert Visit.all_objects.get(pk=documented_visit.pk).is_deleted
        assert not SickLeave.objects.filter(visit_id=documented_visit.pk).exists()
        assert not Treatment.objects.filter(visit_id=documented_visit.pk).exists()
        assert not Medicine.objects.filter(treatment__visit_id=documented_visit.pk).exists()
        assert Medicine.all_objects.filter(treatment__visit_id=documented_visit.pk).count() == 1

    def test_only_admin_deletes(self, documented_visit, doctor_identity):
        with pytest.raises(Forbidden):
            VisitLifecycleManager(doctor_identity).delete(documented_visit.pk)

    def test_get_by_id_include_deleted_for_admin(self, documented_visit, admin_identity, doctor_identity):
        VisitLifecycleManager(admin_identity).delete(documented_visit.pk)

        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(admin_identity).get_by_id(documented_visit.pk)
        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(doctor_identity).get_by_id(documented_visit.pk, include_deleted=True)

        visit = VisitLifecycleManager(admin_identity).get_by_id(documented_visit.pk, include_deleted=True)
        assert visit.is_deleted

    def test_purge_removes_rows(self, documented_visit, admin_identity):
        VisitLifecycleManager(admin_identity).delete(documented_visit.pk)
        VisitLifecycleManager(admin_identity).purge(documented_visit.pk)

        assert not Visit.all_objects.filter(pk=documented_visit.pk).exists()
        assert not SickLeave.all_objects.filter(visit_id=documented_visit.pk).exists()
        assert not Treatment.all_objects.filter(visit_id=documented_visit.pk).exists()

    def test_purge_unknown(self, admin_identity, db):
        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(admin_identity).purge('00000000-0000-0000-0000-000000000000')

    def test_patient_reads_own_visit_only(self, scheduled_visit, patient_identity, other_patient_identity):
        assert VisitLifecycleManager(patient_identity).get_by_id(scheduled_visit.pk) == scheduled_visit
        with pytest.raises(Forbidden):
            VisitLifecycleManager(other_patient_identity).get_by_id(scheduled_visit.pk)

    def test_get_by_id_invalid_id(self, admin_identity, db):
        with pytest.raises(EntityNotFound):
            VisitLifecycleManager(admin_identity).get_by_id('garbage')
