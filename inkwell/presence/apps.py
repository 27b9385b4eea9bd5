from django.apps import AppConfig


class PresenceAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "presence"
    verbose_name = "Presence"
