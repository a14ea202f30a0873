"""
Default training job: a small scikit-learn image classifier.

The job follows the contract in :mod:`training.ml_core.job`:

    SklearnImageClassifierJob(blob_reader).train(samples) -> TrainingOutcome

Steps:

* Resolve every sample's bytes through the blob reader. Missing or
  undecodable images are logged and skipped.
* Decode with Pillow, resize to ``image_size``, scale to [0, 1], flatten.
* Hold out ``validation_split`` of the images (stratified when possible).
* Fit an ``MLPClassifier`` and report its final training loss and the
  accuracy on the held-out split.
* Pickle the fitted model together with its label list into Django
  storage and return the stored name as the artifact locator.
"""

from __future__ import annotations

import io
import logging
import pickle
import warnings
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import Storage, default_storage
from django.utils import timezone
from PIL import Image, UnidentifiedImageError
from sklearn.exceptions import ConvergenceWarning
from sklearn.metrics import accuracy_score
from sklearn.model_selection import train_test_split
from sklearn.neural_network import MLPClassifier

from ..blobs import BlobReader, get_blob_reader
from ..errors import (
    ImageResolutionError,
    InsufficientTrainingData,
    TrainingComputeError,
)
from .config import load_trainer_params
from .job import TrainingOutcome, TrainingSample

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def decode_image(data: bytes, image_size: Tuple[int, int], path: str = "") -> np.ndarray:
    """Decode image bytes into a flat float32 vector in [0, 1]."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = img.convert("RGB").resize(image_size)
            arr = np.asarray(img, dtype=np.float32) / 255.0
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageResolutionError(path, str(exc)) from exc
    return arr.reshape(-1)


def _train_validation_split(
    X: np.ndarray, y: np.ndarray, validation_split: float, random_state: int
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Split off a validation set, stratified when every class can afford it.

    With fewer than 10 images there is nothing sensible to hold out, so
    (X, X, y, y) is returned and accuracy is measured on the training data.
    """
    if len(X) < 10 or not 0.0 < validation_split < 1.0:
        return X, X, y, y

    class_counts = Counter(y.tolist())
    n_val = int(np.ceil(len(X) * validation_split))
    can_stratify = min(class_counts.values()) >= 2 and n_val >= len(class_counts)

    X_train, X_val, y_train, y_val = train_test_split(
        X,
        y,
        test_size=validation_split,
        random_state=random_state,
        stratify=y if can_stratify else None,
    )
    return X_train, X_val, y_train, y_val


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


class SklearnImageClassifierJob:
    """Full-corpus retrain of a multilayer perceptron image classifier."""

    def __init__(
        self,
        blob_reader: Optional[BlobReader] = None,
        *,
        storage: Optional[Storage] = None,
        params: Optional[Dict[str, Any]] = None,
        min_images: Optional[int] = None,
        artifact_prefix: Optional[str] = None,
    ) -> None:
        self.blob_reader = blob_reader if blob_reader is not None else get_blob_reader()
        self.storage = storage if storage is not None else default_storage
        self.params = load_trainer_params(params)
        self.min_images = (
            min_images
            if min_images is not None
            else getattr(settings, "TRAINING_MIN_IMAGES", 10)
        )
        self.artifact_prefix = (
            artifact_prefix
            if artifact_prefix is not None
            else getattr(settings, "TRAINING_ARTIFACT_PREFIX", "models/rice_disease_model")
        )

    def _resolve_samples(
        self, samples: Sequence[TrainingSample]
    ) -> Tuple[List[np.ndarray], List[str]]:
        image_size = self.params["image_size"]
        vectors: List[np.ndarray] = []
        labels: List[str] = []

        for sample in samples:
            data = self.blob_reader.read(sample.path)
            if data is None:
                logger.warning("Skipping missing image %s (%s).", sample.path, sample.label)
                continue
            try:
                vectors.append(decode_image(data, image_size, sample.path))
            except ImageResolutionError as exc:
                logger.warning("Skipping image: %s", exc)
                continue
            labels.append(sample.label)

        return vectors, labels

    def _persist(self, model: MLPClassifier, labels: List[str]) -> str:
        trained_at = timezone.now()
        payload = {
            "model": model,
            "labels": labels,
            "image_size": self.params["image_size"],
            "trained_at": trained_at.isoformat(),
        }
        name = f"{self.artifact_prefix.rstrip('/')}/{trained_at:%Y%m%d_%H%M%S}.pkl"
        try:
            return self.storage.save(name, ContentFile(pickle.dumps(payload)))
        except (OSError, pickle.PicklingError) as exc:
            raise TrainingComputeError(f"Failed to persist model artifact: {exc}") from exc

    def train(self, samples: Sequence[TrainingSample]) -> TrainingOutcome:
        logger.info("Starting model training on %d image references.", len(samples))

        vectors, labels = self._resolve_samples(samples)
        if not vectors or len(vectors) < self.min_images:
            # Images can disappear between the processor's count and now.
            raise InsufficientTrainingData(
                found_images=len(vectors), required_images=self.min_images
            )

        label_names = list(dict.fromkeys(labels))
        if len(label_names) < 2:
            raise TrainingComputeError(
                f"At least two labelled entries are required to train a classifier; "
                f"found {len(label_names)}."
            )

        try:
            X = np.stack(vectors)
        except (ValueError, MemoryError) as exc:
            raise TrainingComputeError(f"Could not assemble training matrix: {exc}") from exc
        y = np.asarray(labels)

        X_train, X_val, y_train, y_val = _train_validation_split(
            X, y, self.params["validation_split"], self.params["random_state"]
        )

        model = MLPClassifier(
            hidden_layer_sizes=self.params["hidden_layer_sizes"],
            learning_rate_init=self.params["learning_rate_init"],
            batch_size=min(int(self.params["batch_size"]), len(X_train)),
            max_iter=int(self.params["max_iter"]),
            random_state=self.params["random_state"],
        )

        logger.info(
            "Fitting classifier: %d train / %d validation images, %d classes.",
            len(X_train),
            len(X_val),
            len(label_names),
        )
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=ConvergenceWarning)
                model.fit(X_train, y_train)
        except (ValueError, MemoryError) as exc:
            raise TrainingComputeError(f"Model fitting failed: {exc}") from exc

        final_loss = float(model.loss_)
        final_accuracy = float(accuracy_score(y_val, model.predict(X_val)))
        logger.info("Training finished: loss=%.4f accuracy=%.4f", final_loss, final_accuracy)

        artifact_locator = self._persist(model, label_names)
        logger.info("Saved model artifact to %s", artifact_locator)

        return TrainingOutcome(
            artifact_locator=artifact_locator,
            final_loss=final_loss,
            final_accuracy=final_accuracy,
            labels=tuple(label_names),
            images_used=len(vectors),
        )
