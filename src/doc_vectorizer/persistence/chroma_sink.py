"""Chroma implementation of the vector-sink abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from doc_vectorizer.config import Settings
from doc_vectorizer.persistence.base import VectorRecord, VectorSink

logger = logging.getLogger(__name__)


class ChromaVectorSink(VectorSink):
    """Chroma-backed vector sink.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host / port:
        Chroma server address; ignored when *client* is given.
    client:
        A pre-built chromadb client (e.g. ``chromadb.EphemeralClient()``
        for local runs).
    upsert_batch_size:
        Max records per upsert call.
    """

    def __init__(
        self,
        collection_name: str = "doc_vectors",
        *,
        host: str = "localhost",
        port: int = 8000,
        client: Any | None = None,
        upsert_batch_size: int = 500,
    ) -> None:
        self.collection_name = collection_name
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(collection_name)
        self.upsert_batch_size = upsert_batch_size

    @classmethod
    def from_settings(cls, settings: Settings) -> ChromaVectorSink:
        return cls(settings.chroma_collection, host=settings.chroma_host, port=settings.chroma_port)

    # -- VectorSink overrides -------------------------------------------------

    def upsert(self, file_key: str, records: list[VectorRecord]) -> int:
        if not records:
            return 0
        for start in range(0, len(records), self.upsert_batch_size):
            batch = records[start : start + self.upsert_batch_size]
            self._collection.upsert(
                ids=[r.id for r in batch],
                embeddings=[r.embedding for r in batch],
                documents=[r.content for r in batch],
                metadatas=[{**r.metadata, "file_key": file_key} for r in batch],
            )
        logger.info("Upserted %d vectors for %s into %s", len(records), file_key, self.collection_name)
        return len(records)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    def delete_file(self, file_key: str) -> None:
        self._collection.delete(where={"file_key": file_key})
