"""Abstract base class for embedding providers.

A new provider (OpenAI, Cohere, a local model …) only needs to subclass
:class:`EmbeddingProvider` and implement :meth:`generate_embedding`.
Providers that embed several texts in one call set ``supports_batch``
and override :meth:`get_batch_embeddings`.

Providers signal failures with the exceptions in
:mod:`doc_vectorizer.errors` so the chunk processor can tell transient
errors from permanent ones.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """Backend-agnostic embedding interface."""

    #: Whether :meth:`get_batch_embeddings` is implemented.
    supports_batch: bool = False

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises
        ------
        EmptyInputError
            *text* is blank.
        InputTooLargeError
            *text* exceeds the provider's input limit.
        TransientEmbeddingError
            Rate limit, timeout or network failure; worth retrying.
        EmbeddingAuthenticationError
            Credentials or configuration rejected; not worth retrying.
        """
        ...

    # -- optional overrides ---------------------------------------------------

    async def get_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one call, preserving order.  Optional."""
        raise NotImplementedError(f"{type(self).__name__} does not support batch embeddings")

    @property
    def name(self) -> str:
        return type(self).__name__
