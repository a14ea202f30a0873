"""
Blob-read interface used to resolve knowledge-entry image references.

A reader answers "does this image exist" and "give me its bytes". Missing
objects are reported as ``False`` / ``None``; a missing image is a normal,
per-image condition and never an exception.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from django.conf import settings
from django.core.exceptions import SuspiciousFileOperation
from django.core.files.storage import Storage, default_storage

logger = logging.getLogger(__name__)


class BlobReader(Protocol):
    def exists(self, path: str) -> bool:
        ...

    def read(self, path: str) -> Optional[bytes]:
        ...


def normalise_image_path(path: str, prefix: Optional[str] = None) -> str:
    """Place a bare image reference underneath the configured image prefix.

    References that already start with the prefix are returned unchanged,
    so both ``"blast/leaf.jpg"`` and ``"rice_disease/blast/leaf.jpg"``
    point at the same object.
    """
    if prefix is None:
        prefix = getattr(settings, "TRAINING_IMAGE_PREFIX", "")
    path = str(path).strip().lstrip("/")
    if not prefix or path.startswith(prefix):
        return path
    return f"{prefix}{path}"


class StorageBlobReader:
    """Read image bytes from a Django storage backend."""

    def __init__(
        self,
        storage: Optional[Storage] = None,
        *,
        prefix: Optional[str] = None,
    ) -> None:
        self.storage = storage if storage is not None else default_storage
        self.prefix = prefix

    def _resolve(self, path: str) -> str:
        return normalise_image_path(path, self.prefix)

    def exists(self, path: str) -> bool:
        if not path:
            return False
        full_path = self._resolve(path)
        try:
            return bool(self.storage.exists(full_path))
        except (OSError, ValueError, SuspiciousFileOperation) as exc:
            # Suspicious or unreadable paths count as missing images.
            logger.warning("Could not check image %s: %s", full_path, exc)
            return False

    def read(self, path: str) -> Optional[bytes]:
        if not path:
            return None
        full_path = self._resolve(path)
        try:
            with self.storage.open(full_path, "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            logger.info("Image not found: %s", full_path)
            return None
        except (OSError, ValueError, SuspiciousFileOperation) as exc:
            logger.warning("Could not read image %s: %s", full_path, exc)
            return None

    def list_files(self) -> List[str]:
        """Every stored file under the image prefix, sorted, with full paths.

        A prefix that does not exist yet lists as empty.
        """
        prefix = self.prefix
        if prefix is None:
            prefix = getattr(settings, "TRAINING_IMAGE_PREFIX", "")
        files: List[str] = []
        pending = [prefix.rstrip("/")]
        while pending:
            current = pending.pop()
            try:
                dirs, names = self.storage.listdir(current)
            except FileNotFoundError:
                continue
            except NotImplementedError:
                logger.warning("Storage backend cannot list %r.", current or "/")
                return []
            base = f"{current}/" if current else ""
            files.extend(f"{base}{name}" for name in names)
            pending.extend(f"{base}{name}" for name in dirs)
        return sorted(files)


def get_blob_reader() -> StorageBlobReader:
    return StorageBlobReader()
