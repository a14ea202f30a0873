"""
Queue processor: claims and runs at most one training task per call.

Responsibilities per invocation:

* Pick the oldest PENDING task and claim it with a conditional
  PENDING -> PROCESSING update. Losing the claim is a normal outcome.
* Load the entire knowledge base and count images that actually resolve.
* Refuse to train on an empty or too-small corpus.
* Invoke the configured training job synchronously.
* Finalize the task (COMPLETED with result metadata, or FAILED with the
  error message) through a conditional update from PROCESSING, and publish
  successful results to the model registry.

Nothing raised inside a run escapes :func:`process_queue`; callers only
ever see a :class:`QueueRunResult`. A worker that dies between the claim
and the finalization leaves its task in PROCESSING, which is what
``sweep_stale_training_tasks`` cleans up.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings
from django.utils import timezone

from .blobs import BlobReader, get_blob_reader
from .errors import InsufficientTrainingData, TaskStoreError, TrainingPipelineError
from .ml_core.job import Corpus, TrainingJob, TrainingOutcome, get_training_job, load_corpus
from .models import TrainingTask
from .registry import set_latest_model
from .store import oldest_pending_task, transition

logger = logging.getLogger(__name__)

Status = TrainingTask.Status


@dataclass(frozen=True)
class QueueRunResult:
    """What a single :func:`process_queue` call did.

    ``outcome`` is one of ``idle``, ``claim_rejected``, ``completed``,
    ``failed`` or ``aborted`` (the task store was unreachable).
    """

    outcome: str
    task_id: Optional[str] = None
    detail: str = ""

    def describe(self) -> str:
        if self.task_id is None:
            return self.outcome if not self.detail else f"{self.outcome}: {self.detail}"
        text = f"task {self.task_id} {self.outcome}"
        return f"{text} ({self.detail})" if self.detail else text


def _json_safe(obj: Any) -> Any:
    """
    Recursively convert a structure into something strict JSON accepts.

    - Non-finite numbers (NaN, +/-inf) become None.
    - numpy scalars become plain ints/floats.
    - Tuples become lists, dict keys are stringified.
    """
    if obj is None or isinstance(obj, (str, bool)):
        return obj

    if isinstance(obj, numbers.Integral):
        return int(obj)

    if isinstance(obj, numbers.Real):
        val = float(obj)
        return val if math.isfinite(val) else None

    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [_json_safe(v) for v in obj]

    return str(obj)


def _build_result(corpus: Corpus, outcome: TrainingOutcome) -> Dict[str, Any]:
    return _json_safe(
        {
            "total_images": corpus.total_images,
            "total_entries": corpus.total_entries,
            "final_loss": outcome.final_loss,
            "final_accuracy": outcome.final_accuracy,
            "artifact_locator": outcome.artifact_locator,
        }
    )


def _build_registry_metadata(
    task_id: str, result: Dict[str, Any], outcome: TrainingOutcome, trained_at
) -> Dict[str, Any]:
    return _json_safe(
        {
            **result,
            "labels": list(outcome.labels),
            "images_used": outcome.images_used,
            "trained_at": trained_at.isoformat(),
            "task_id": task_id,
        }
    )


def _fail(task_id: str, message: str) -> QueueRunResult:
    """Conditionally finalize a claimed task as FAILED."""
    try:
        moved = transition(
            task_id,
            Status.PROCESSING,
            Status.FAILED,
            failed_at=timezone.now(),
            error=message,
        )
    except TaskStoreError as exc:
        logger.error("Could not record failure of TrainingTask %s: %s", task_id, exc)
        return QueueRunResult("aborted", task_id, str(exc))

    if not moved:
        logger.warning(
            "TrainingTask %s was finalized elsewhere; dropping failure %r.",
            task_id,
            message,
        )
        return QueueRunResult("claim_rejected", task_id, "task no longer processing")
    return QueueRunResult("failed", task_id, message)


def process_queue(
    *,
    job: Optional[TrainingJob] = None,
    blob_reader: Optional[BlobReader] = None,
    min_images: Optional[int] = None,
) -> QueueRunResult:
    """Run one step of the training queue. Never raises."""
    if min_images is None:
        min_images = getattr(settings, "TRAINING_MIN_IMAGES", 10)

    # 1) Oldest pending task.
    try:
        task = oldest_pending_task()
    except TaskStoreError as exc:
        return QueueRunResult("aborted", None, str(exc))

    if task is None:
        logger.info("No pending training tasks.")
        return QueueRunResult("idle")

    task_id = str(task.pk)

    # 2) Claim.
    try:
        claimed = transition(
            task_id, Status.PENDING, Status.PROCESSING, started_at=timezone.now()
        )
    except TaskStoreError as exc:
        return QueueRunResult("aborted", task_id, str(exc))

    if not claimed:
        logger.info("TrainingTask %s was claimed by another runner.", task_id)
        return QueueRunResult("claim_rejected", task_id)

    logger.info(
        "Claimed TrainingTask %s (subject=%s, manual=%s).",
        task_id,
        task.subject_id,
        task.manual,
    )

    try:
        if blob_reader is None:
            blob_reader = get_blob_reader()

        # 3) Full corpus.
        corpus = load_corpus(blob_reader)

        # 4) Minimum-data gate; the job is not invoked below it.
        if corpus.total_entries == 0 or corpus.total_images < min_images:
            raise InsufficientTrainingData(
                found_images=corpus.total_images,
                required_images=min_images,
                total_entries=corpus.total_entries,
            )

        # 5) Train.
        if job is None:
            job = get_training_job(blob_reader)
        logger.info(
            "Training TrainingTask %s on %d entries / %d images.",
            task_id,
            corpus.total_entries,
            corpus.total_images,
        )
        outcome = job.train(corpus.samples)

        # The job is pluggable; a malformed outcome fails the task here.
        finished_at = timezone.now()
        result = _build_result(corpus, outcome)
        registry_metadata = _build_registry_metadata(task_id, result, outcome, finished_at)

    except InsufficientTrainingData as exc:
        logger.warning("TrainingTask %s: %s", task_id, exc.describe())
        return _fail(task_id, str(exc))
    except TrainingPipelineError as exc:
        logger.error("TrainingTask %s failed: %s", task_id, exc)
        return _fail(task_id, str(exc))
    except Exception as exc:
        logger.exception("TrainingTask %s failed unexpectedly.", task_id)
        return _fail(task_id, str(exc) or exc.__class__.__name__)

    # 6) Finalize, then publish.
    try:
        completed = transition(
            task_id,
            Status.PROCESSING,
            Status.COMPLETED,
            completed_at=finished_at,
            result=result,
        )
    except TaskStoreError as exc:
        logger.error("Could not record completion of TrainingTask %s: %s", task_id, exc)
        return QueueRunResult("aborted", task_id, str(exc))

    if not completed:
        logger.warning(
            "TrainingTask %s was finalized elsewhere; model registry left unchanged.",
            task_id,
        )
        return QueueRunResult("claim_rejected", task_id, "task no longer processing")

    try:
        set_latest_model(registry_metadata)
    except TrainingPipelineError as exc:
        logger.error(
            "TrainingTask %s completed but the model registry was not updated: %s",
            task_id,
            exc,
        )

    logger.info(
        "TrainingTask %s completed: loss=%s accuracy=%s artifact=%s",
        task_id,
        result["final_loss"],
        result["final_accuracy"],
        result["artifact_locator"],
    )
    return QueueRunResult("completed", task_id, result["artifact_locator"])
