"""Object storage abstraction — resolves a file key to raw bytes.

The pipeline never retries a fetch; a backend that wants retries does
them itself.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from doc_vectorizer.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Backend-agnostic object storage interface."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the bytes stored under *key*.

        Raises
        ------
        StorageError
            The key does not exist or cannot be read.
        """
        ...


class LocalFileStore(ObjectStore):
    """Serve keys as paths relative to a root directory."""

    def __init__(self, root: str | Path = ".") -> None:
        self.root = Path(root).resolve()

    def get(self, key: str) -> bytes:
        path = (self.root / key).resolve()
        if self.root not in path.parents and path != self.root:
            raise StorageError(f"key escapes storage root: {key}")
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"cannot read {key}: {exc}") from exc
        logger.debug("Read %d bytes from %s", len(data), path)
        return data
