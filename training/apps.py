from django.apps import AppConfig
from django.conf import settings


class TrainingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "training"
    verbose_name = "Classifier training"

    def ready(self):
        """Hook the change watcher onto knowledge-entry saves."""
        from . import watcher

        if getattr(settings, "TRAINING_WATCHER_ENABLED", True):
            watcher.connect_signals()
