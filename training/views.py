from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from django.conf import settings
from django.db import DatabaseError
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated

from knowledge.models import KnowledgeEntry

from .blobs import get_blob_reader
from .errors import TaskStoreError
from .filters import TrainingTaskFilter
from .ml_core.job import image_references
from .models import TrainingTask
from .registry import get_latest_model
from .scheduler import trigger_training
from .store import enqueue_task, get_task, status_counts
from .throttling import TriggerRateThrottle

logger = logging.getLogger(__name__)

# Upper bound on the number of tasks returned by the list endpoint.
MAX_TASKS_LISTED = 100

# Number of stored image files echoed back by the overview endpoint.
STORAGE_FILES_LISTED = 20


def _user_is_admin(user) -> bool:
    """
    Treat staff/superusers and users in the "Admin"/"admin" group as admins.
    """
    return bool(
        getattr(user, "is_superuser", False)
        or getattr(user, "is_staff", False)
        or user.groups.filter(name__in=["Admin", "admin"]).exists()
    )


def _serialize_task(task: TrainingTask) -> Dict[str, Any]:
    def _iso(value):
        return value.isoformat() if value else None

    return {
        "task_id": str(task.id),
        "status": task.status,
        "subject_id": str(task.subject_id) if task.subject_id else None,
        "manual": task.manual,
        "enqueued_at": _iso(task.enqueued_at),
        "started_at": _iso(task.started_at),
        "completed_at": _iso(task.completed_at),
        "failed_at": _iso(task.failed_at),
        "error": task.error,
        "result": task.result,
    }


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([TriggerRateThrottle])
def training_trigger(request):
    """Run one step of the training queue synchronously.

    Returns the ``{"success": ..., "message"/"error": ...}`` payload of
    :func:`training.scheduler.trigger_training`, with HTTP 200 when the run
    took place and 503 when the task store was unavailable.
    """
    if not _user_is_admin(request.user):
        return JsonResponse(
            {"detail": "Only admin users can trigger training."},
            status=403,
        )

    outcome = trigger_training()
    return JsonResponse(outcome, status=200 if outcome["success"] else 503)


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def training_tasks(request):
    """List recent training tasks (GET) or enqueue a manual task (POST).

    GET accepts ``status``, ``manual``, ``subject``, ``enqueued_after`` and
    ``enqueued_before`` filters and returns at most ``MAX_TASKS_LISTED``
    tasks, newest first.

    POST body (optional)::

        {"subject_id": "<uuid of KnowledgeEntry>"}

    Without a subject the task is recorded as a manual trigger.
    """
    if request.method == "POST":
        return _enqueue_manual_task(request)

    task_filter = TrainingTaskFilter(
        request.GET, queryset=TrainingTask.objects.order_by("-enqueued_at", "-id")
    )
    if not task_filter.is_valid():
        return JsonResponse({"errors": task_filter.errors.get_json_data()}, status=400)

    try:
        tasks = [_serialize_task(t) for t in task_filter.qs[:MAX_TASKS_LISTED]]
    except DatabaseError:
        logger.exception("Could not list training tasks.")
        return JsonResponse({"detail": "Task store unavailable."}, status=503)

    return JsonResponse({"count": len(tasks), "tasks": tasks}, status=200)


def _enqueue_manual_task(request):
    if not _user_is_admin(request.user):
        return JsonResponse(
            {"detail": "Only admin users can enqueue training tasks."},
            status=403,
        )

    payload = request.data if isinstance(request.data, dict) else {}
    subject_id = payload.get("subject_id")

    if subject_id:
        try:
            subject_id = uuid.UUID(str(subject_id))
        except ValueError:
            return JsonResponse(
                {"errors": {"subject_id": "Must be a valid UUID."}}, status=400
            )
        subject = get_object_or_404(KnowledgeEntry, pk=subject_id)
        subject_id = subject.pk

    try:
        task = enqueue_task(subject_id or None, manual=True)
    except TaskStoreError as exc:
        return JsonResponse({"success": False, "error": str(exc)}, status=503)

    return JsonResponse(
        {"success": True, "task_id": str(task.id), "task": _serialize_task(task)},
        status=201,
    )


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def training_task_detail(request, task_id):
    try:
        task = get_task(task_id)
    except TaskStoreError as exc:
        return JsonResponse({"detail": str(exc)}, status=503)

    if task is None:
        return JsonResponse({"detail": "Training task not found."}, status=404)

    return JsonResponse(_serialize_task(task), status=200)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def latest_model(request):
    """Metadata of the most recent successful training run."""
    try:
        record = get_latest_model()
    except TaskStoreError as exc:
        return JsonResponse({"detail": str(exc)}, status=503)

    if record is None:
        return JsonResponse({"detail": "No model has been trained yet."}, status=404)

    return JsonResponse(
        {
            "key": record.key,
            "version": record.version,
            "updated_at": record.updated_at.isoformat(),
            "metadata": record.metadata,
        },
        status=200,
    )


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def training_overview(request):
    """Snapshot of the corpus and the queue, for operators."""
    if not _user_is_admin(request.user):
        return JsonResponse(
            {"detail": "Only admin users can view the training overview."},
            status=403,
        )

    reader = get_blob_reader()
    try:
        entries = []
        for entry in KnowledgeEntry.objects.order_by("created_at", "id"):
            refs = image_references(entry)
            entries.append(
                {
                    "id": str(entry.id),
                    "name": entry.name,
                    "image_count": len(refs),
                    "resolvable_images": sum(1 for ref in refs if reader.exists(ref)),
                    "created_at": entry.created_at.isoformat(),
                }
            )
        queue = status_counts()
        record = get_latest_model()
    except (DatabaseError, TaskStoreError):
        logger.exception("Could not build training overview.")
        return JsonResponse({"detail": "Task store unavailable."}, status=503)

    try:
        storage_files = reader.list_files()
    except OSError:
        logger.exception("Could not list stored training images.")
        storage_files = []

    return JsonResponse(
        {
            "entries": entries,
            "total_entries": len(entries),
            "total_image_references": sum(e["image_count"] for e in entries),
            "total_resolvable_images": sum(e["resolvable_images"] for e in entries),
            "storage_files": storage_files[:STORAGE_FILES_LISTED],
            "total_storage_files": len(storage_files),
            "min_images": getattr(settings, "TRAINING_MIN_IMAGES", 10),
            "queue": queue,
            "latest_model_version": record.version if record else None,
        },
        status=200,
    )
