from django.contrib import admin

from .models import Diagnosis, Doctor, Medicine, Patient, SickLeave, Specialty, Treatment, Visit


class SoftDeleteAdmin(admin.ModelAdmin):
    """Admin lists include soft-deleted rows."""
    readonly_fields = ['id', 'created_at', 'updated_at', 'deleted_at']
    list_filter = ['is_deleted']

    def get_queryset(self, request):
        return self.model.all_objects.all()


@admin.register(Specialty)
class SpecialtyAdmin(SoftDeleteAdmin):
    list_display = ['name', 'is_deleted', 'created_at']
    search_fields = ['name']


@admin.register(Doctor)
class DoctorAdmin(SoftDeleteAdmin):
    list_display = ['name', 'unique_id_number', 'is_general_practitioner', 'is_approved', 'is_deleted']
    list_filter = ['is_general_practitioner', 'is_approved', 'is_deleted']
    search_fields = ['name', 'unique_id_number']
    filter_horizontal = ['specialties']


@admin.register(Patient)
class PatientAdmin(SoftDeleteAdmin):
    list_display = ['name', 'general_practitioner', 'last_insurance_payment_date', 'is_deleted']
    search_fields = ['name', 'egn']
    raw_id_fields = ['general_practitioner']


@admin.register(Diagnosis)
class DiagnosisAdmin(SoftDeleteAdmin):
    list_display = ['name', 'is_deleted', 'created_at']
    search_fields = ['name']


@admin.register(Visit)
class VisitAdmin(SoftDeleteAdmin):
    list_display = ['visit_date', 'visit_time', 'doctor', 'patient', 'status', 'is_deleted']
    list_filter = ['status', 'is_deleted']
    search_fields = ['patient__egn', 'doctor__unique_id_number']
    raw_id_fields = ['patient', 'doctor', 'diagnosis']
    date_hierarchy = 'visit_date'


class MedicineInline(admin.TabularInline):
    model = Medicine
    extra = 0
    fields = ['name', 'dosage', 'frequency', 'position', 'is_deleted']


@admin.register(Treatment)
class TreatmentAdmin(SoftDeleteAdmin):
    list_display = ['visit', 'is_deleted', 'created_at']
    raw_id_fields = ['visit']
    inlines = [MedicineInline]


@admin.register(SickLeave)
class SickLeaveAdmin(SoftDeleteAdmin):
    list_display = ['visit', 'start_date', 'duration_days', 'is_deleted']
    raw_id_fields = ['visit']
