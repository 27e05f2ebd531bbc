"""
Serializers for the medical records API.

Fields backed by partial unique constraints are declared explicitly so
DRF does not attach its own unique validators: duplicates are reported by
RecordRegistry as DuplicateKey (409) instead of a field error.
"""
from rest_framework import serializers

from apps.records.models import (
    Diagnosis,
    Doctor,
    Medicine,
    Patient,
    SickLeave,
    Specialty,
    Treatment,
    Visit,
    VisitStatusChoices,
)
from apps.records.services import (
    UNSET,
    MedicineInput,
    SickLeaveInput,
    TreatmentInput,
    VisitCreate,
    VisitDocumentation,
    VisitSchedule,
    VisitUpdate,
    has_valid_insurance,
)
from apps.records.validators import unique_id_number_validator, validate_egn


# ============================================================================
# Registry
# ============================================================================

class SpecialtySerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=100)

    class Meta:
        model = Specialty
        fields = ['id', 'name', 'description', 'is_deleted', 'created_at', 'updated_at']
        read_only_fields = ['id', 'is_deleted', 'created_at', 'updated_at']
        validators = []


class DiagnosisSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=255)

    class Meta:
        model = Diagnosis
        fields = ['id', 'name', 'description', 'is_deleted', 'created_at', 'updated_at']
        read_only_fields = ['id', 'is_deleted', 'created_at', 'updated_at']
        validators = []


class DoctorSerializer(serializers.ModelSerializer):
    unique_id_number = serializers.CharField(max_length=20, validators=[unique_id_number_validator])
    subject_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    specialties = serializers.PrimaryKeyRelatedField(
        many=True,
        queryset=Specialty.objects.all(),
        required=False,
    )
    specialty_names = serializers.SerializerMethodField()

    class Meta:
        model = Doctor
        fields = [
            'id',
            'name',
            'unique_id_number',
            'is_general_practitioner',
            'is_approved',
            'image_url',
            'subject_id',
            'specialties',
            'specialty_names',
            'is_deleted',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'is_deleted', 'created_at', 'updated_at']
        validators = []

    def get_specialty_names(self, obj):
        return sorted(specialty.name for specialty in obj.specialties.all())

    def validate_subject_id(self, value):
        return value or None


class PatientSerializer(serializers.ModelSerializer):
    egn = serializers.CharField(max_length=10, validators=[validate_egn])
    subject_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    general_practitioner = serializers.PrimaryKeyRelatedField(
        queryset=Doctor.objects.all(),
        required=False,
        allow_null=True,
    )
    general_practitioner_name = serializers.SerializerMethodField()
    has_valid_insurance = serializers.SerializerMethodField()

    class Meta:
        model = Patient
        fields = [
            'id',
            'name',
            'egn',
            'general_practitioner',
            'general_practitioner_name',
            'last_insurance_payment_date',
            'has_valid_insurance',
            'subject_id',
            'is_deleted',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'is_deleted', 'created_at', 'updated_at']
        validators = []

    def get_general_practitioner_name(self, obj):
        return obj.general_practitioner.name if obj.general_practitioner_id else None

    def get_has_valid_insurance(self, obj):
        return has_valid_insurance(obj)

    def validate_general_practitioner(self, value):
        if value is not None and not value.is_general_practitioner:
            raise serializers.ValidationError('Selected doctor is not a general practitioner')
        return value

    def validate_subject_id(self, value):
        return value or None


# ============================================================================
# Visit records
# ============================================================================

class MedicineSerializer(serializers.ModelSerializer):
    class Meta:
        model = Medicine
        fields = ['id', 'name', 'dosage', 'frequency']
        read_only_fields = ['id']


class SickLeaveSerializer(serializers.ModelSerializer):
    visit = serializers.PrimaryKeyRelatedField(queryset=Visit.objects.all())
    duration_days = serializers.IntegerField(min_value=1)
    doctor_id = serializers.UUIDField(source='visit.doctor_id', read_only=True)
    patient_id = serializers.UUIDField(source='visit.patient_id', read_only=True)

    class Meta:
        model = SickLeave
        fields = [
            'id',
            'visit',
            'start_date',
            'duration_days',
            'doctor_id',
            'patient_id',
            'is_deleted',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'is_deleted', 'created_at', 'updated_at']
        validators = []


class TreatmentSerializer(serializers.ModelSerializer):
    visit = serializers.PrimaryKeyRelatedField(queryset=Visit.objects.all())
    medicines = MedicineSerializer(many=True, required=False)

    class Meta:
        model = Treatment
        fields = ['id', 'visit', 'description', 'medicines', 'is_deleted', 'created_at', 'updated_at']
        read_only_fields = ['id', 'is_deleted', 'created_at', 'updated_at']
        validators = []

    def create(self, validated_data):
        medicines = validated_data.pop('medicines', [])
        treatment = Treatment.objects.create(**validated_data)
        self._create_medicines(treatment, medicines)
        return treatment

    def update(self, instance, validated_data):
        medicines = validated_data.pop('medicines', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()
        if medicines is not None:
            instance.medicines.all().soft_delete()
            self._create_medicines(instance, medicines)
        return instance

    def _create_medicines(self, treatment, medicines):
        for position, medicine in enumerate(medicines):
            Medicine.objects.create(treatment=treatment, position=position, **medicine)


class VisitSerializer(serializers.ModelSerializer):
    """Read shape of a visit."""
    patient_name = serializers.CharField(source='patient.name', read_only=True)
    doctor_name = serializers.CharField(source='doctor.name', read_only=True)
    diagnosis_name = serializers.SerializerMethodField()
    sick_leave_issued = serializers.BooleanField(read_only=True)
    sick_leave = serializers.SerializerMethodField()
    treatment = serializers.SerializerMethodField()

    class Meta:
        model = Visit
        fields = [
            'id',
            'patient',
            'patient_name',
            'doctor',
            'doctor_name',
            'diagnosis',
            'diagnosis_name',
            'visit_date',
            'visit_time',
            'status',
            'notes',
            'sick_leave_issued',
            'sick_leave',
            'treatment',
            'is_deleted',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_diagnosis_name(self, obj):
        return obj.diagnosis.name if obj.diagnosis_id else None

    def get_sick_leave(self, obj):
        sick_leave = SickLeave.objects.filter(visit_id=obj.pk).first()
        if sick_leave is None:
            return None
        return {
            'id': str(sick_leave.id),
            'start_date': sick_leave.start_date.isoformat(),
            'duration_days': sick_leave.duration_days,
        }

    def get_treatment(self, obj):
        treatment = Treatment.objects.filter(visit_id=obj.pk).first()
        if treatment is None:
            return None
        return {
            'id': str(treatment.id),
            'description': treatment.description,
            'medicines': MedicineSerializer(treatment.medicines.all(), many=True).data,
        }


class VisitCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    doctor_id = serializers.UUIDField()
    diagnosis_id = serializers.UUIDField()
    visit_date = serializers.DateField()
    visit_time = serializers.TimeField()
    status = serializers.ChoiceField(
        choices=[VisitStatusChoices.SCHEDULED, VisitStatusChoices.COMPLETED],
        required=False,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    sick_leave_issued = serializers.BooleanField(required=False, default=False)

    def to_dto(self):
        return VisitCreate(**self.validated_data)


class VisitUpdateSerializer(serializers.Serializer):
    """Every field optional; absent fields are left untouched, diagnosis_id=null clears."""
    patient_id = serializers.UUIDField(required=False)
    doctor_id = serializers.UUIDField(required=False)
    diagnosis_id = serializers.UUIDField(required=False, allow_null=True)
    visit_date = serializers.DateField(required=False)
    visit_time = serializers.TimeField(required=False)
    status = serializers.ChoiceField(choices=VisitStatusChoices.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def to_dto(self):
        return VisitUpdate(**self.validated_data)


class VisitScheduleSerializer(serializers.Serializer):
    doctor_id = serializers.UUIDField()
    visit_date = serializers.DateField()
    visit_time = serializers.TimeField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def to_dto(self):
        return VisitSchedule(**self.validated_data)


class SickLeaveInputSerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False, allow_null=True)
    duration_days = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class MedicineInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    dosage = serializers.CharField(max_length=50)
    frequency = serializers.CharField(max_length=50)


class TreatmentInputSerializer(serializers.Serializer):
    description = serializers.CharField(required=False, allow_blank=True, default='')
    medicines = MedicineInputSerializer(many=True, required=False, default=list)


class VisitDocumentSerializer(serializers.Serializer):
    diagnosis_id = serializers.UUIDField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    sick_leave = SickLeaveInputSerializer(required=False, allow_null=True)
    treatment = TreatmentInputSerializer(required=False, allow_null=True)

    def to_dto(self):
        data = self.validated_data
        sick_leave = data.get('sick_leave')
        treatment = data.get('treatment')
        return VisitDocumentation(
            diagnosis_id=data.get('diagnosis_id', UNSET),
            notes=data.get('notes', UNSET),
            sick_leave=SickLeaveInput(**sick_leave) if sick_leave is not None else None,
            treatment=TreatmentInput(
                description=treatment.get('description', ''),
                medicines=[MedicineInput(**m) for m in treatment.get('medicines', [])],
            ) if treatment is not None else None,
        )


# ============================================================================
# Identity-bound views
# ============================================================================

class PatientRegistrationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    egn = serializers.CharField(max_length=10, validators=[validate_egn])
    general_practitioner_id = serializers.UUIDField(required=False, allow_null=True)
    last_insurance_payment_date = serializers.DateField(required=False, allow_null=True)


class DoctorDashboardSerializer(serializers.Serializer):
    kind = serializers.CharField()
    doctor = DoctorSerializer()
    upcoming_visits = VisitSerializer(many=True)


class PatientDashboardSerializer(serializers.Serializer):
    kind = serializers.CharField()
    patient = PatientSerializer()
    general_practitioner = DoctorSerializer(allow_null=True)
    visits = VisitSerializer(many=True)


class AdminDashboardSerializer(serializers.Serializer):
    kind = serializers.CharField()
    counts = serializers.DictField(child=serializers.IntegerField())


# ============================================================================
# Reports
# ============================================================================

class DiagnosisCountSerializer(serializers.Serializer):
    diagnosis_id = serializers.UUIDField()
    diagnosis_name = serializers.CharField()
    visit_count = serializers.IntegerField()


class DoctorVisitCountSerializer(serializers.Serializer):
    doctor_id = serializers.UUIDField()
    doctor_name = serializers.CharField()
    visit_count = serializers.IntegerField()


class DoctorPatientCountSerializer(serializers.Serializer):
    doctor_id = serializers.UUIDField()
    doctor_name = serializers.CharField()
    patient_count = serializers.IntegerField()


class DoctorSickLeaveCountSerializer(serializers.Serializer):
    doctor_id = serializers.UUIDField()
    doctor_name = serializers.CharField()
    sick_leave_count = serializers.IntegerField()


class SickLeaveMonthCountSerializer(serializers.Serializer):
    year = serializers.IntegerField()
    month = serializers.IntegerField()
    sick_leave_count = serializers.IntegerField()
