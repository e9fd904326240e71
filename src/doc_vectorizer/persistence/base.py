"""Abstract base class for vector persistence backends.

The sink is the only writer of durable vector records.  The pipeline
calls :meth:`VectorSink.upsert` once per completed task with every
embedded chunk of that task, never once per chunk.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

MetadataValue = str | int | float | bool


class VectorRecord(BaseModel):
    """One embedded chunk ready for storage.

    Attributes
    ----------
    id:
        Stable record id, ``"<file_key>:<chunk_index>"``, so re-ingesting
        a file overwrites instead of duplicating.
    embedding:
        The vector.
    content:
        Chunk text, stored alongside for retrieval without a second lookup.
    metadata:
        Flat, scalar-only attributes (positions, heading, task ids …).
    """

    id: str
    embedding: list[float]
    content: str
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class VectorSink(ABC):
    """Backend-agnostic vector persistence interface."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, file_key: str, records: list[VectorRecord]) -> int:
        """Insert or replace *records* for *file_key*; returns the count written."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def delete_file(self, file_key: str) -> None:
        """Delete every record of *file_key*.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")


def record_id(file_key: str, chunk_index: int) -> str:
    return f"{file_key}:{chunk_index}"
