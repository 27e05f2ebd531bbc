"""Core app configuration."""
from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Shared infrastructure: soft delete, listing contract, errors, observability."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'Core'
