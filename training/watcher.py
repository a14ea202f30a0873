"""
Change watcher: turns knowledge-entry mutations into training tasks.

* Create -> always enqueue a PENDING task for the new entry.
* Update -> enqueue only when the ordered image list changed.

The decision lives in :func:`handle_entry_mutation`, which takes plain
before/after snapshots so it can be driven by anything that can describe a
mutation. In this project the Django ``pre_save``/``post_save`` signals on
:class:`~knowledge.models.KnowledgeEntry` feed it.

Every successful enqueue is announced on :data:`task_enqueued`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from django.db.models.signals import post_save, pre_save
from django.dispatch import Signal

from knowledge.models import KnowledgeEntry

from .errors import TaskStoreError
from .models import TrainingTask
from .store import enqueue_task

logger = logging.getLogger(__name__)

# Sent with ``task`` and ``reason`` ("created" / "images_changed").
task_enqueued = Signal()

_PRE_SAVE_UID = "training.watcher.capture_previous_state"
_POST_SAVE_UID = "training.watcher.enqueue_on_save"

EntryState = Dict[str, Any]


def _image_list(state: Optional[Mapping[str, Any]]) -> List[Any]:
    if not state:
        return []
    images = state.get("images")
    if images is None:
        return []
    return list(images)


def images_changed(previous: Optional[Mapping[str, Any]], current: Mapping[str, Any]) -> bool:
    """Structural comparison of the ordered image lists; ``None`` counts as empty."""
    return _image_list(previous) != _image_list(current)


def entry_state(instance: KnowledgeEntry) -> EntryState:
    return {
        "name": instance.name,
        "description": instance.description,
        "images": instance.images,
    }


def handle_entry_mutation(
    entry_id: Any,
    previous: Optional[Mapping[str, Any]],
    current: Mapping[str, Any],
) -> Optional[TrainingTask]:
    """Enqueue a task for a create or an image-changing update.

    ``previous`` is ``None`` for a create. Returns the new task, or ``None``
    when nothing was enqueued. A failing task store is logged and swallowed
    here so that entry saves are never rolled back by the training pipeline.
    """
    if previous is None:
        reason = "created"
    elif images_changed(previous, current):
        reason = "images_changed"
    else:
        logger.debug("Entry %s updated without image changes; no task.", entry_id)
        return None

    try:
        task = enqueue_task(entry_id)
    except TaskStoreError:
        logger.exception("Could not enqueue training task for entry %s.", entry_id)
        return None

    logger.info("Entry %s %s; queued training task %s.", entry_id, reason, task.pk)
    task_enqueued.send(sender=TrainingTask, task=task, reason=reason)
    return task


# ---------------------------------------------------------------------------
# Django signal receivers
# ---------------------------------------------------------------------------


def capture_previous_state(sender, instance: KnowledgeEntry, raw: bool = False, **kwargs) -> None:
    """Stash the stored state of an existing entry before it is overwritten."""
    if raw or instance._state.adding or instance.pk is None:
        instance._training_previous_state = None
        return
    instance._training_previous_state = (
        KnowledgeEntry.objects.filter(pk=instance.pk)
        .values("name", "description", "images")
        .first()
    )


def enqueue_on_save(
    sender, instance: KnowledgeEntry, created: bool, raw: bool = False, **kwargs
) -> None:
    if raw:
        return
    # An update with no captured state (row vanished mid-save) counts as a create.
    previous = None if created else getattr(instance, "_training_previous_state", None)
    handle_entry_mutation(instance.pk, previous, entry_state(instance))
    instance._training_previous_state = None


def connect_signals() -> None:
    pre_save.connect(capture_previous_state, sender=KnowledgeEntry, dispatch_uid=_PRE_SAVE_UID)
    post_save.connect(enqueue_on_save, sender=KnowledgeEntry, dispatch_uid=_POST_SAVE_UID)


def disconnect_signals() -> None:
    pre_save.disconnect(sender=KnowledgeEntry, dispatch_uid=_PRE_SAVE_UID)
    post_save.disconnect(sender=KnowledgeEntry, dispatch_uid=_POST_SAVE_UID)
