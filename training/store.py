"""
Persistence helpers for :class:`~training.models.TrainingTask`.

All status changes go through :func:`transition`, a single conditional
``UPDATE ... WHERE id = %s AND status = %s``. Whichever runner gets the
row count of one owns the transition; everyone else sees ``False`` and
backs off. No row locks or read-then-write sequences are involved, so two
overlapping scheduler runs can never both claim the same task.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import UUID

from django.db import DatabaseError, transaction
from django.db.models import Count

from .errors import TaskStoreError
from .models import ALLOWED_TRANSITIONS, TrainingTask

logger = logging.getLogger(__name__)

# Fields the processor may write alongside a status change.
_TRANSITION_FIELDS = {"started_at", "completed_at", "failed_at", "error", "result"}


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except DatabaseError as exc:
        logger.error("Task store unavailable while %s: %s", action, exc)
        raise TaskStoreError(f"Task store unavailable while {action}: {exc}") from exc


def enqueue_task(
    subject_id: Optional[str | UUID], *, manual: bool = False
) -> TrainingTask:
    """Insert a new PENDING task for ``subject_id``.

    No deduplication is done: every call produces a new row, even if the
    subject already has pending work.
    """
    with _store_errors("enqueueing a training task"):
        # Savepoint: a failed insert must not poison a caller's transaction.
        with transaction.atomic():
            task = TrainingTask.objects.create(
                subject_id=subject_id,
                manual=manual,
                status=TrainingTask.Status.PENDING,
            )
    logger.info(
        "Enqueued TrainingTask %s (subject=%s, manual=%s).",
        task.pk,
        subject_id,
        manual,
    )
    return task


def oldest_pending_task() -> Optional[TrainingTask]:
    """Return the PENDING task with the earliest ``enqueued_at``, if any."""
    with _store_errors("querying pending tasks"):
        return (
            TrainingTask.objects.filter(status=TrainingTask.Status.PENDING)
            .order_by("enqueued_at", "id")
            .first()
        )


def get_task(task_id: str | UUID) -> Optional[TrainingTask]:
    with _store_errors("loading a training task"):
        return TrainingTask.objects.filter(pk=task_id).first()


def transition(
    task_id: str | UUID,
    expected: str,
    new: str,
    **fields: Any,
) -> bool:
    """Move a task from ``expected`` to ``new`` if it is still ``expected``.

    Returns ``True`` when this call performed the transition and ``False``
    when the stored status no longer matched (another runner won, or the
    task was finalized by the stale sweep).

    Raises ``ValueError`` for transitions outside the state machine; those
    are programming errors, not races.
    """
    allowed = ALLOWED_TRANSITIONS.get(expected, frozenset())
    if new not in allowed:
        raise ValueError(f"Illegal training task transition {expected!r} -> {new!r}.")

    unknown = set(fields) - _TRANSITION_FIELDS
    if unknown:
        raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

    with _store_errors(f"moving task {task_id} to {new}"):
        updated = TrainingTask.objects.filter(pk=task_id, status=expected).update(
            status=new, **fields
        )

    if updated != 1:
        logger.info(
            "Transition %s -> %s rejected for TrainingTask %s (status changed).",
            expected,
            new,
            task_id,
        )
        return False
    return True


def update_task_fields(task_id: str | UUID, **fields: Any) -> bool:
    """Write non-status fields on a task. Returns ``True`` if the row exists."""
    if "status" in fields:
        raise ValueError("Use transition() to change a training task's status.")
    if not fields:
        return False
    with _store_errors(f"updating task {task_id}"):
        updated = TrainingTask.objects.filter(pk=task_id).update(**fields)
    return updated == 1


def status_counts() -> dict[str, int]:
    """Number of tasks per status, with zero for statuses not present."""
    counts = {value: 0 for value in TrainingTask.Status.values}
    with _store_errors("counting tasks"):
        rows = TrainingTask.objects.values("status").annotate(n=Count("id")).order_by()
        for row in rows:
            counts[row["status"]] = row["n"]
    return counts
