"""
Contract between the queue processor and the training job.

The processor never looks inside a job. It hands over the full corpus as a
list of :class:`TrainingSample` (label + image reference), and expects a
:class:`TrainingOutcome` back or an exception describing the first fatal
cause. Any class with a ``train(samples)`` method and a
``__init__(blob_reader=...)`` signature can be plugged in through
``settings.TRAINING_JOB_CLASS``.

Every run is a full retrain: the corpus is all knowledge entries at the
time of the run, materialized in memory. That bounds feasible corpus size
to what one worker can hold; there is no streaming.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Tuple

from django.conf import settings
from django.db import DatabaseError
from django.utils.module_loading import import_string

from knowledge.models import KnowledgeEntry

from ..blobs import BlobReader
from ..errors import TaskStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainingSample:
    """One image reference labelled with its knowledge entry's name."""

    label: str
    path: str
    entry_id: Optional[str] = None


@dataclass(frozen=True)
class TrainingOutcome:
    artifact_locator: str
    final_loss: float
    final_accuracy: float
    labels: Tuple[str, ...] = ()
    images_used: int = 0


@dataclass
class Corpus:
    """All knowledge entries plus the image references that resolved."""

    total_entries: int
    total_images: int
    samples: List[TrainingSample] = field(default_factory=list)
    missing_images: int = 0

    @property
    def labels(self) -> List[str]:
        return list(dict.fromkeys(sample.label for sample in self.samples))


class TrainingJob(Protocol):
    def train(self, samples: Sequence[TrainingSample]) -> TrainingOutcome:
        ...


def image_references(entry: KnowledgeEntry) -> List[str]:
    images = entry.images
    if not isinstance(images, (list, tuple)):
        return []
    return [str(ref) for ref in images if ref]


def load_corpus(blob_reader: BlobReader) -> Corpus:
    """Enumerate every knowledge entry and keep the images that exist.

    Only references the blob reader reports as present are counted; the
    count is what the minimum-images check and the task result use.
    """
    try:
        entries = list(KnowledgeEntry.objects.order_by("created_at", "id"))
    except DatabaseError as exc:
        raise TaskStoreError(f"Could not load knowledge entries: {exc}") from exc

    samples: List[TrainingSample] = []
    missing = 0
    for entry in entries:
        for ref in image_references(entry):
            if blob_reader.exists(ref):
                samples.append(
                    TrainingSample(label=entry.label, path=ref, entry_id=str(entry.pk))
                )
            else:
                missing += 1
                logger.info("Image not found for entry %s: %s", entry.pk, ref)

    logger.info(
        "Loaded corpus: %d entries, %d resolvable images, %d missing.",
        len(entries),
        len(samples),
        missing,
    )
    return Corpus(
        total_entries=len(entries),
        total_images=len(samples),
        samples=samples,
        missing_images=missing,
    )


def get_training_job(blob_reader: BlobReader) -> TrainingJob:
    """Instantiate the job class named by ``settings.TRAINING_JOB_CLASS``."""
    dotted_path = getattr(
        settings,
        "TRAINING_JOB_CLASS",
        "training.ml_core.trainer.SklearnImageClassifierJob",
    )
    job_class = import_string(dotted_path)
    return job_class(blob_reader=blob_reader)
