from __future__ import annotations

import logging
from typing import Any

from django.core.management.base import BaseCommand, CommandError
from django.db import close_old_connections

from training.scheduler import TrainingScheduler, scheduled_tick, trigger_training

logger = logging.getLogger(__name__)


def _tick() -> None:
    scheduled_tick()
    # Long-running loop; drop connections the database may have timed out.
    close_old_connections()


class Command(BaseCommand):
    help = (
        "Process pending TrainingTask instances. "
        "By default this command runs the queue processor once and exits. "
        "Use --loop to keep running it on the scheduler interval."
    )

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--loop",
            action="store_true",
            help="Run the queue processor every --interval seconds instead of "
            "exiting after a single run.",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between runs when --loop is enabled "
            "(default: TRAINING_SCHEDULE_INTERVAL_SECONDS).",
        )
        parser.add_argument(
            "--max-ticks",
            type=int,
            default=None,
            help="Stop the loop after this many runs.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        if not options["loop"]:
            outcome = trigger_training()
            if not outcome["success"]:
                raise CommandError(f"Training run failed: {outcome['error']}")
            self.stdout.write(self.style.SUCCESS(outcome["message"]))
            return

        interval = options["interval"]
        if interval is not None and interval <= 0:
            raise CommandError("--interval must be positive.")

        scheduler = TrainingScheduler(interval=interval, tick=_tick)
        self.stdout.write(
            self.style.WARNING(
                f"Entering training loop (interval={scheduler.interval}s). "
                "Press Ctrl+C to stop."
            )
        )

        try:
            ticks = scheduler.run(max_ticks=options["max_ticks"])
        except KeyboardInterrupt:
            scheduler.stop()
            self.stdout.write(self.style.WARNING("Stopping run_training_queue loop."))
            return

        self.stdout.write(f"Training loop finished after {ticks} run(s).")
