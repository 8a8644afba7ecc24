# labops_core/apps.py

from django.apps import AppConfig


class LabopsCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "labops_core"
    verbose_name = "Lab operations"
