"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable, Iterable

import pytest

from doc_vectorizer.chunking.models import ChunkMetadata, ChunkType, TextChunk
from doc_vectorizer.config import Settings
from doc_vectorizer.embedding.base import EmbeddingProvider
from doc_vectorizer.errors import EmbeddingError, TransientEmbeddingError
from doc_vectorizer.tasks.queue import InMemoryQueue


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake embedding provider ─────────────────────────────────────────────


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic in-memory provider with scriptable failures.

    Parameters
    ----------
    fail_texts:
        Texts whose embedding call raises *error_cls*.
    fail_times:
        How many times each failing text fails before succeeding;
        ``None`` fails forever.
    batch:
        Advertise batch support.
    delay:
        Seconds slept inside every call.
    """

    def __init__(
        self,
        *,
        dim: int = 4,
        fail_texts: Iterable[str] = (),
        fail_times: int | None = None,
        error_cls: type[EmbeddingError] = TransientEmbeddingError,
        batch: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.dim = dim
        self.fail_texts = set(fail_texts)
        self.fail_times = fail_times
        self.error_cls = error_cls
        self.supports_batch = batch
        self.delay = delay
        self.calls: list[str] = []
        self.batch_calls: list[list[str]] = []
        self.failures: Counter[str] = Counter()

    def vector(self, text: str) -> list[float]:
        seed = sum(ord(ch) for ch in text)
        return [float((seed * (i + 1)) % 101) for i in range(self.dim)]

    def _should_fail(self, text: str) -> bool:
        if text not in self.fail_texts:
            return False
        self.failures[text] += 1
        return self.fail_times is None or self.failures[text] <= self.fail_times

    async def generate_embedding(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._should_fail(text):
            raise self.error_cls(f"cannot embed {text!r}")
        return self.vector(text)

    async def get_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        if self.delay:
            await asyncio.sleep(self.delay)
        if any(t in self.fail_texts for t in texts):
            raise TransientEmbeddingError("batch rejected")
        return [self.vector(t) for t in texts]


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def settings() -> Settings:
    """Settings with every delay switched off and no .env lookup."""
    return Settings(
        _env_file=None,
        batch_delay=0.0,
        retry_base_delay=0.0,
        poll_interval=0.01,
        embedding_cache_enabled=False,
    )


@pytest.fixture()
def queue() -> InMemoryQueue:
    return InMemoryQueue()


@pytest.fixture()
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def make_provider() -> Callable[..., FakeEmbeddingProvider]:
    return FakeEmbeddingProvider


@pytest.fixture()
def make_chunks() -> Callable[..., list[TextChunk]]:
    """Factory for ``n`` consecutive chunks named ``<prefix>-000`` …"""

    def _make(n: int, prefix: str = "chunk") -> list[TextChunk]:
        chunks = []
        pos = 0
        for i in range(n):
            content = f"{prefix}-{i:03d}"
            chunks.append(
                TextChunk(
                    index=i,
                    content=content,
                    token_count=3,
                    start_position=pos,
                    end_position=pos + len(content),
                    metadata=ChunkMetadata(type=ChunkType.TEXT),
                )
            )
            pos += len(content)
        return chunks

    return _make
