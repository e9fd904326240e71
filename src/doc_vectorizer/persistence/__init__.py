"""
Persistence — where finished embeddings go.

- :class:`VectorSink` — abstract backend.
- :class:`VectorRecord` — one stored chunk.
- :class:`ChromaVectorSink` — default Chroma backend (lazy import).
"""

from doc_vectorizer.persistence.base import VectorRecord, VectorSink, record_id

__all__ = ["ChromaVectorSink", "VectorRecord", "VectorSink", "record_id"]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorSink to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorSink":
        from doc_vectorizer.persistence.chroma_sink import ChromaVectorSink

        return ChromaVectorSink
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
