"""
Writes for the registry entities (specialty, doctor, patient, diagnosis,
sick leave, treatment) behind the CRUD endpoints.

- unique values checked among live rows -> DuplicateKey
- constraint violations on save -> DuplicateKey
- delete = soft delete, refused with EntityInUse while live rows still
  reference the entity
"""
import logging

from django.db import IntegrityError, transaction

from apps.core.exceptions import DuplicateKey, EntityInUse
from apps.core.observability import log_domain_event
from apps.records.models import (
    Diagnosis,
    Doctor,
    Medicine,
    Patient,
    SickLeave,
    Specialty,
    Treatment,
    Visit,
)

logger = logging.getLogger(__name__)

# model -> fields unique among live rows
UNIQUE_FIELDS = {
    Specialty: ('name',),
    Diagnosis: ('name',),
    Doctor: ('unique_id_number', 'subject_id'),
    Patient: ('egn', 'subject_id'),
    SickLeave: ('visit',),
    Treatment: ('visit',),
}


class RecordRegistry:

    def __init__(self, identity):
        self.identity = identity

    def check_unique(self, model, values, instance=None):
        for field_name in UNIQUE_FIELDS.get(model, ()):
            value = values.get(field_name)
            if value in (None, ''):
                continue
            queryset = model.objects.filter(**{field_name: value})
            if instance is not None:
                queryset = queryset.exclude(pk=instance.pk)
            if queryset.exists():
                label = field_name.replace('_', ' ')
                raise DuplicateKey(f'{model._meta.verbose_name} with this {label} already exists')

    def save(self, serializer):
        """Run serializer.save() with duplicate detection."""
        model = serializer.Meta.model
        instance = serializer.instance
        self.check_unique(model, serializer.validated_data, instance)
        try:
            with transaction.atomic():
                saved = serializer.save()
        except IntegrityError:
            raise DuplicateKey(f'{model._meta.verbose_name} violates a uniqueness rule')

        log_domain_event(
            f'{model._meta.model_name}_{"updated" if instance is not None else "created"}',
            entity_type=model.__name__,
            entity_id=str(saved.pk),
        )
        return saved

    def delete(self, instance):
        model = type(instance)
        with transaction.atomic():
            self._check_in_use(instance)
            if isinstance(instance, Treatment):
                Medicine.objects.filter(treatment=instance).soft_delete()
            instance.soft_delete()

        log_domain_event(
            f'{model._meta.model_name}_deleted',
            entity_type=model.__name__,
            entity_id=str(instance.pk),
        )

    def _check_in_use(self, instance):
        if isinstance(instance, Specialty):
            if Doctor.objects.filter(specialties=instance).exists():
                raise EntityInUse(f'Specialty "{instance.name}" is still assigned to doctors')
        elif isinstance(instance, Diagnosis):
            if Visit.objects.filter(diagnosis=instance).exists():
                raise EntityInUse(f'Diagnosis "{instance.name}" is still referenced by visits')
