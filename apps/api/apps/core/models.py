"""
Core models: soft-delete base shared by every medical-records entity.

Soft delete is a store-level default predicate: the default manager
(`objects`) never returns rows with is_deleted=True, `all_objects` is the
administrative "include deleted" path.
"""
import uuid
from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """QuerySet with bulk soft delete."""

    def soft_delete(self):
        return self.update(is_deleted=True, deleted_at=timezone.now())

    def alive(self):
        return self.filter(is_deleted=False)

    def dead(self):
        return self.filter(is_deleted=True)


class SoftDeleteManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """Default manager: excludes soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)


class AllObjectsManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """Manager including soft-deleted rows (admin/audit access)."""
    pass


class SoftDeleteModel(models.Model):
    """
    Abstract base for all domain entities.

    Fields:
    - id: UUID PK
    - is_deleted, deleted_at: soft delete
    - created_at, updated_at
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SoftDeleteManager()
    all_objects = AllObjectsManager()

    class Meta:
        abstract = True

    def soft_delete(self):
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])
