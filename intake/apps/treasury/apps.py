from django.apps import AppConfig


class TreasuryConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "intake.apps.treasury"
    verbose_name = "Treasury"
