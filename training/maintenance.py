"""
Housekeeping for the task table: abandoned-task recovery and retention.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .errors import TaskStoreError
from .models import TERMINAL_STATUSES, TrainingTask
from .store import enqueue_task, transition

logger = logging.getLogger(__name__)

STALE_TASK_ERROR = "stale processing task"


@dataclass
class SweepReport:
    failed: List[str] = field(default_factory=list)
    requeued: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def sweep_stale_tasks(
    max_age_seconds: Optional[float] = None,
    *,
    requeue: bool = False,
    now: Optional[datetime] = None,
) -> SweepReport:
    """Fail PROCESSING tasks whose ``started_at`` is older than ``max_age_seconds``.

    Each task is moved with the same conditional update the processor uses,
    so a worker that is still alive and finishes first keeps its result.
    With ``requeue`` a fresh PENDING task is enqueued for every task that
    was failed here.
    """
    if max_age_seconds is None:
        max_age_seconds = getattr(settings, "TRAINING_STALE_AFTER_SECONDS", 3600)
    now = now or timezone.now()
    cutoff = now - timedelta(seconds=float(max_age_seconds))

    try:
        candidates = list(
            TrainingTask.objects.filter(
                status=TrainingTask.Status.PROCESSING, started_at__lt=cutoff
            ).order_by("started_at", "id")
        )
    except DatabaseError as exc:
        raise TaskStoreError(f"Could not query stale tasks: {exc}") from exc

    report = SweepReport()
    for task in candidates:
        task_id = str(task.pk)
        moved = transition(
            task_id,
            TrainingTask.Status.PROCESSING,
            TrainingTask.Status.FAILED,
            failed_at=now,
            error=STALE_TASK_ERROR,
        )
        if not moved:
            report.skipped.append(task_id)
            continue

        report.failed.append(task_id)
        logger.warning(
            "Marked stale TrainingTask %s as failed (started %s).", task_id, task.started_at
        )
        if requeue:
            new_task = enqueue_task(task.subject_id, manual=task.manual)
            report.requeued.append(str(new_task.pk))

    return report


def prune_finished_tasks(older_than_days: int, now: Optional[datetime] = None) -> int:
    """Delete COMPLETED/FAILED tasks enqueued more than ``older_than_days`` ago."""
    if older_than_days < 0:
        raise ValueError("older_than_days must not be negative.")
    now = now or timezone.now()
    cutoff = now - timedelta(days=older_than_days)
    try:
        deleted, _ = TrainingTask.objects.filter(
            status__in=list(TERMINAL_STATUSES), enqueued_at__lt=cutoff
        ).delete()
    except DatabaseError as exc:
        raise TaskStoreError(f"Could not prune training tasks: {exc}") from exc
    logger.info("Pruned %d finished training task(s) older than %d day(s).", deleted, older_than_days)
    return deleted
