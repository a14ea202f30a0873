from __future__ import annotations

from typing import Any

from django.core.management.base import BaseCommand, CommandError

from training.errors import TaskStoreError
from training.maintenance import sweep_stale_tasks


class Command(BaseCommand):
    help = (
        "Mark TrainingTask instances stuck in 'processing' for longer than "
        "--max-age-seconds as failed. Use --requeue to enqueue a fresh task "
        "for each one."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--max-age-seconds",
            type=float,
            default=None,
            help="Age of started_at after which a processing task is stale "
            "(default: TRAINING_STALE_AFTER_SECONDS).",
        )
        parser.add_argument(
            "--requeue",
            action="store_true",
            help="Enqueue a new pending task for every task marked failed.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        max_age = options["max_age_seconds"]
        if max_age is not None and max_age < 0:
            raise CommandError("--max-age-seconds must not be negative.")

        try:
            report = sweep_stale_tasks(max_age, requeue=options["requeue"])
        except TaskStoreError as exc:
            raise CommandError(str(exc)) from exc

        if not report.failed:
            self.stdout.write("No stale training tasks found.")
            return

        self.stdout.write(
            self.style.WARNING(f"Marked {len(report.failed)} stale training task(s) as failed.")
        )
        if report.requeued:
            self.stdout.write(
                self.style.SUCCESS(f"Requeued {len(report.requeued)} training task(s).")
            )
