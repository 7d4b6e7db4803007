from django.apps import AppConfig


class AitasksConfig(AppConfig):
    name = "aitasks"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        # Persist progress checkpoints on the task row for the status API.
        from . import receivers  # noqa: F401
