"""
Embedding — provider contract, adapters and the chunked batch processor.

Public surface
--------------
- :class:`EmbeddingProvider` — abstract backend (subclass for new providers).
- :class:`ChunkedEmbeddingProcessor` — batched, retrying embedding of chunks.
- :class:`CachedEmbeddingProvider` — LRU cache decorator for any provider.
- :class:`LangChainEmbeddingProvider` / :func:`build_embedding_provider` —
  LangChain-backed default provider.
"""

from doc_vectorizer.embedding.base import EmbeddingProvider
from doc_vectorizer.embedding.cache import CachedEmbeddingProvider
from doc_vectorizer.embedding.processor import ChunkedEmbeddingProcessor

__all__ = [
    "CachedEmbeddingProvider",
    "ChunkedEmbeddingProcessor",
    "EmbeddingProvider",
    "LangChainEmbeddingProvider",
    "build_embedding_provider",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import the LangChain adapter to avoid pulling in langchain at import time."""
    if name in ("LangChainEmbeddingProvider", "build_embedding_provider"):
        from doc_vectorizer.embedding import langchain_provider

        return getattr(langchain_provider, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
