"""
Singleton record describing the latest successfully trained model.

Writers never overwrite blindly: each write reads the current ``version``
and updates only if it is still the same, retrying on conflict. Concurrent
completions therefore serialize into a strict version sequence and the last
successful writer wins.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import DatabaseError
from django.utils import timezone

from .errors import RegistryUpdateConflict, TaskStoreError
from .models import ModelRegistryRecord

logger = logging.getLogger(__name__)

LATEST_MODEL_KEY = "rice_disease_latest"


def get_latest_model() -> Optional[ModelRegistryRecord]:
    try:
        return ModelRegistryRecord.objects.filter(key=LATEST_MODEL_KEY).first()
    except DatabaseError as exc:
        raise TaskStoreError(f"Model registry unavailable: {exc}") from exc


def set_latest_model(
    metadata: Dict[str, Any], *, max_attempts: int = 5
) -> ModelRegistryRecord:
    """Replace the registry metadata, bumping its version by one."""
    try:
        for attempt in range(1, max_attempts + 1):
            record, created = ModelRegistryRecord.objects.get_or_create(
                key=LATEST_MODEL_KEY,
                defaults={"version": 1, "metadata": metadata},
            )
            if created:
                logger.info("Created model registry record %s (v1).", LATEST_MODEL_KEY)
                return record

            updated = ModelRegistryRecord.objects.filter(
                pk=record.pk, version=record.version
            ).update(
                version=record.version + 1,
                metadata=metadata,
                updated_at=timezone.now(),
            )
            if updated == 1:
                record.refresh_from_db()
                logger.info(
                    "Updated model registry record %s to v%d.",
                    LATEST_MODEL_KEY,
                    record.version,
                )
                return record

            logger.info(
                "Model registry version moved past v%d; retrying (attempt %d/%d).",
                record.version,
                attempt,
                max_attempts,
            )
    except DatabaseError as exc:
        raise TaskStoreError(f"Model registry unavailable: {exc}") from exc

    raise RegistryUpdateConflict(
        f"Could not update {LATEST_MODEL_KEY} after {max_attempts} attempts."
    )
