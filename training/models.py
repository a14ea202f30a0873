import uuid

from django.db import models
from django.utils import timezone

from knowledge.models import KnowledgeEntry


class TrainingTask(models.Model):
    """One queued request to retrain the disease classifier.

    Tasks are created by the change watcher (or an operator) and mutated
    only by the queue processor. Status only ever moves forward along
    :data:`ALLOWED_TRANSITIONS`; terminal tasks are never touched again.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PROCESSING = "processing", "Processing"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Entries are owned elsewhere; deleting one must not remove queue history.
    subject = models.ForeignKey(
        KnowledgeEntry,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="training_tasks",
    )
    manual = models.BooleanField(default=False)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    enqueued_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(null=True, blank=True)
    result = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["-enqueued_at"]
        indexes = [
            models.Index(fields=["status", "enqueued_at"], name="training_task_queue_idx"),
            models.Index(fields=["subject"], name="training_task_subject_idx"),
        ]

    def __str__(self) -> str:
        return f"Training task {self.id} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TrainingTask.Status.COMPLETED, TrainingTask.Status.FAILED}
)

ALLOWED_TRANSITIONS = {
    TrainingTask.Status.PENDING: frozenset({TrainingTask.Status.PROCESSING}),
    TrainingTask.Status.PROCESSING: frozenset(
        {TrainingTask.Status.COMPLETED, TrainingTask.Status.FAILED}
    ),
}


class ModelRegistryRecord(models.Model):
    """Metadata of the most recent successful training run.

    A single row keyed by :data:`training.registry.LATEST_MODEL_KEY`.
    ``version`` increases by one on every write and is the compare-and-swap
    guard for concurrent completions.
    """

    key = models.CharField(max_length=64, unique=True)
    version = models.PositiveIntegerField(default=1)
    metadata = models.JSONField(blank=True, default=dict)
    updated_at = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:
        return f"{self.key} v{self.version}"
