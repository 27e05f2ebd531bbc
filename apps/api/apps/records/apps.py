"""Records app configuration."""
from django.apps import AppConfig


class RecordsConfig(AppConfig):
    """Doctors, patients, visits and the clinical records attached to them."""
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.records'
    verbose_name = 'Medical Records'
