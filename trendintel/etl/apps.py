"""Django app configuration for the ETL engine."""

from django.apps import AppConfig


class EtlConfig(AppConfig):
    """Configuration for the etl app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "trendintel.etl"
    label = "etl"
    verbose_name = "Trend Intelligence ETL"
