"""Exception taxonomy for the training pipeline.

Everything raised on purpose inside the queue processor derives from
:class:`TrainingPipelineError`, so callers can tell pipeline failures apart
from programming errors while still catching both at the run boundary.
"""

from __future__ import annotations

from typing import Optional

INSUFFICIENT_TRAINING_DATA = "insufficient training data"


class TrainingPipelineError(Exception):
    """Base class for training pipeline failures."""


class InsufficientTrainingData(TrainingPipelineError):
    """The corpus is empty or has fewer usable images than required.

    The message is always :data:`INSUFFICIENT_TRAINING_DATA` so repeated runs
    against the same corpus record the same error; the counts are kept as
    attributes for logging.
    """

    def __init__(
        self,
        *,
        found_images: Optional[int] = None,
        required_images: Optional[int] = None,
        total_entries: Optional[int] = None,
    ) -> None:
        super().__init__(INSUFFICIENT_TRAINING_DATA)
        self.found_images = found_images
        self.required_images = required_images
        self.total_entries = total_entries

    def describe(self) -> str:
        return (
            f"{INSUFFICIENT_TRAINING_DATA} (entries={self.total_entries}, "
            f"images={self.found_images}, required={self.required_images})"
        )


class ImageResolutionError(TrainingPipelineError):
    """A single image reference could not be read or decoded."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not resolve image {path!r}: {reason}")
        self.path = path
        self.reason = reason


class TrainingComputeError(TrainingPipelineError):
    """The training job failed while fitting or persisting the model."""


class TaskStoreError(TrainingPipelineError):
    """The task store could not be read or written."""


class RegistryUpdateConflict(TrainingPipelineError):
    """The model registry record kept changing underneath a write."""
