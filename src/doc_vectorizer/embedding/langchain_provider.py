"""Embedding provider backed by any LangChain ``Embeddings`` implementation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from doc_vectorizer.config import Settings
from doc_vectorizer.embedding.base import EmbeddingProvider
from doc_vectorizer.errors import (
    EmbeddingAuthenticationError,
    EmbeddingError,
    EmptyInputError,
    InputTooLargeError,
    TransientEmbeddingError,
)

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

_AUTH_MARKERS = ("authentication", "permissiondenied", "unauthorized", "forbidden", "invalidapikey")
_TOO_LARGE_MARKERS = ("context length", "too long", "maximum context", "too many tokens")


def classify_error(exc: Exception) -> EmbeddingError:
    """Map a client library exception onto the pipeline's error taxonomy."""
    if isinstance(exc, EmbeddingError):
        return exc
    name = type(exc).__name__.lower()
    message = str(exc).lower()
    if any(m in name for m in _AUTH_MARKERS) or "api key" in message:
        return EmbeddingAuthenticationError(str(exc))
    if any(m in message for m in _TOO_LARGE_MARKERS):
        return InputTooLargeError(str(exc))
    return TransientEmbeddingError(f"{type(exc).__name__}: {exc}")


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapt a LangChain ``Embeddings`` object to :class:`EmbeddingProvider`.

    Parameters
    ----------
    embeddings:
        Any ``langchain_core.embeddings.Embeddings`` (HuggingFace,
        OpenAI, Cohere …).  Its async methods are used; the LangChain
        defaults run the sync implementation in an executor.
    max_input_chars:
        Longest accepted text; longer input raises
        :class:`InputTooLargeError` without calling the backend.
    """

    supports_batch = True

    def __init__(self, embeddings: Embeddings, *, max_input_chars: int = 32_000) -> None:
        self._embeddings = embeddings
        self.max_input_chars = max_input_chars

    @property
    def name(self) -> str:
        return f"LangChain[{type(self._embeddings).__name__}]"

    async def generate_embedding(self, text: str) -> list[float]:
        self._validate(text)
        try:
            return list(await self._embeddings.aembed_query(text))
        except Exception as exc:
            raise classify_error(exc) from exc

    async def get_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        for text in texts:
            self._validate(text)
        try:
            vectors = await self._embeddings.aembed_documents(texts)
        except Exception as exc:
            raise classify_error(exc) from exc
        return [list(v) for v in vectors]

    def _validate(self, text: str) -> None:
        if not text or not text.strip():
            raise EmptyInputError("cannot embed empty text")
        if len(text) > self.max_input_chars:
            raise InputTooLargeError(
                f"text of {len(text)} chars exceeds the {self.max_input_chars} char limit"
            )


def get_embedding_function(settings: Settings) -> Embeddings:
    """Return the configured sentence-transformer embedding function."""
    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(model_name=settings.embedding_model)


def build_embedding_provider(
    settings: Settings,
    embeddings: Embeddings | None = None,
) -> EmbeddingProvider:
    """Create the provider described by *settings*.

    *embeddings* overrides the HuggingFace default; the embedding cache
    is applied on top when ``settings.embedding_cache_enabled``.
    """
    from doc_vectorizer.embedding.cache import CachedEmbeddingProvider

    provider: EmbeddingProvider = LangChainEmbeddingProvider(
        embeddings if embeddings is not None else get_embedding_function(settings),
        max_input_chars=settings.max_input_chars,
    )
    if settings.embedding_cache_enabled:
        provider = CachedEmbeddingProvider(provider, max_entries=settings.embedding_cache_size)
    logger.info("Embedding provider ready: %s (model=%s)", provider.name, settings.embedding_model)
    return provider
