"""In-process embedding cache keyed by content hash."""

from __future__ import annotations

import hashlib
from collections import OrderedDict

from doc_vectorizer.embedding.base import EmbeddingProvider


class CachedEmbeddingProvider(EmbeddingProvider):
    """Wrap a provider with an LRU cache of ``sha256(text) -> vector``.

    Identical chunks (boilerplate, repeated headers, re-ingested files)
    are embedded once.  Batch calls only send the texts that miss.
    """

    def __init__(self, inner: EmbeddingProvider, *, max_entries: int = 2048) -> None:
        self.inner = inner
        self.max_entries = max_entries
        self._cache: OrderedDict[str, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @property
    def supports_batch(self) -> bool:  # type: ignore[override]
        return self.inner.supports_batch

    @property
    def name(self) -> str:
        return f"Cached[{self.inner.name}]"

    async def generate_embedding(self, text: str) -> list[float]:
        key = _key(text)
        cached = self._get(key)
        if cached is not None:
            return cached
        vector = await self.inner.generate_embedding(text)
        self._put(key, vector)
        return list(vector)

    async def get_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        keys = [_key(t) for t in texts]
        results: list[list[float] | None] = [self._get(k) for k in keys]
        missing = [i for i, r in enumerate(results) if r is None]
        if missing:
            vectors = await self.inner.get_batch_embeddings([texts[i] for i in missing])
            if len(vectors) != len(missing):
                raise ValueError(f"provider returned {len(vectors)} vectors for {len(missing)} texts")
            for i, vector in zip(missing, vectors):
                self._put(keys[i], vector)
                results[i] = list(vector)
        return [r for r in results if r is not None]

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def _get(self, key: str) -> list[float] | None:
        vector = self._cache.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._cache.move_to_end(key)
        self.hits += 1
        return list(vector)

    def _put(self, key: str, vector: list[float]) -> None:
        self._cache[key] = list(vector)
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)


def _key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
