"""
Django app configuration for trendintel core.
"""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "trendintel.core"
    verbose_name = "Trend Intelligence Core"
