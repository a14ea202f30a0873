from __future__ import annotations

from typing import Any

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from training.errors import TaskStoreError
from training.maintenance import prune_finished_tasks


class Command(BaseCommand):
    help = (
        "Delete completed and failed TrainingTask instances older than --days. "
        "Pending and processing tasks are never deleted."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Retention window in days (default: TRAINING_TASK_RETENTION_DAYS).",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        days = options["days"]
        if days is None:
            days = getattr(settings, "TRAINING_TASK_RETENTION_DAYS", None)
        if days is None:
            raise CommandError(
                "Task retention is disabled; pass --days or set TRAINING_TASK_RETENTION_DAYS."
            )
        if days < 0:
            raise CommandError("--days must not be negative.")

        try:
            deleted = prune_finished_tasks(days)
        except TaskStoreError as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} finished training task(s)."))
