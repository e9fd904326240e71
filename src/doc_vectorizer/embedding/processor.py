"""
Chunked Embedding Processor  —  batches, per-chunk fallback, retries
════════════════════════════════════════════════════════════════════

Flow for one task:
  1. Split chunks into batches of ``batch_size``.
  2. Before each batch: check the cancellation token and the time budget.
     Over budget → stop (soft cutoff, not an error).
  3. Batch-capable provider → one call per batch; a failed batch falls
     back to one call per chunk.  Otherwise always one call per chunk.
  4. A failing chunk is recorded and never aborts the batch.
  5. Retry pass: every retryable failure is re-attempted on its own with
     exponential back-off, up to ``max_retries`` times.

Ordering: ``embeddings`` follows batch order, but consumers must key on
``chunk_index``, never on list position.
"""

from __future__ import annotations

import asyncio
import logging
import time

from doc_vectorizer.cancellation import CancellationToken
from doc_vectorizer.chunking.models import TextChunk
from doc_vectorizer.config import Settings
from doc_vectorizer.embedding.base import EmbeddingProvider
from doc_vectorizer.errors import TaskCancelledError, is_retryable
from doc_vectorizer.events import ProgressListener
from doc_vectorizer.tasks.models import (
    ChunkedProcessingResult,
    ChunkEmbedding,
    ChunkError,
    ProcessingStats,
    TaskOptions,
)

logger = logging.getLogger(__name__)

# Share of a task timeout spent before the soft cutoff, leaving time to
# finish the current batch and return partial results.
SOFT_BUDGET_RATIO = 0.85


class ChunkedEmbeddingProcessor:
    """Embed a list of chunks through an :class:`EmbeddingProvider`.

    Parameters
    ----------
    provider:
        The embedding backend.
    batch_size:
        Chunks per provider batch.
    max_retries:
        Retry attempts per failed chunk after the first failure.
    max_processing_time:
        Soft time budget in seconds; ``None`` disables the cutoff.
    batch_delay:
        Pause between batches, in seconds, to spread load on
        rate-limited providers.
    retry_base_delay:
        Back-off before the first retry; doubles on each further attempt.
    cancellation_token:
        Checked before every batch and every retry.
    progress:
        Notified after every batch.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = 10,
        max_retries: int = 3,
        max_processing_time: float | None = None,
        batch_delay: float = 0.0,
        retry_base_delay: float = 0.5,
        cancellation_token: CancellationToken | None = None,
        progress: ProgressListener | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.provider = provider
        self.batch_size = batch_size
        self.max_retries = max(0, max_retries)
        self.max_processing_time = max_processing_time
        self.batch_delay = batch_delay
        self.retry_base_delay = retry_base_delay
        self.cancellation_token = cancellation_token
        self.progress = progress

    @classmethod
    def for_task(
        cls,
        provider: EmbeddingProvider,
        options: TaskOptions,
        settings: Settings | None = None,
        **kwargs,
    ) -> ChunkedEmbeddingProcessor:
        """Build a processor configured from a task's options."""
        settings = settings or Settings()
        kwargs.setdefault("batch_delay", settings.batch_delay)
        kwargs.setdefault("retry_base_delay", settings.retry_base_delay)
        return cls(
            provider,
            batch_size=options.batch_size,
            max_retries=options.max_retries,
            max_processing_time=options.timeout * SOFT_BUDGET_RATIO,
            **kwargs,
        )

    # -- public API -----------------------------------------------------------

    async def process_chunks(self, chunks: list[TextChunk]) -> ChunkedProcessingResult:
        """Embed *chunks*; see the module docstring for the exact flow.

        Raises
        ------
        TaskCancelledError
            The cancellation token was tripped at a batch boundary.
        """
        t0 = time.monotonic()
        total = len(chunks)
        embeddings: list[ChunkEmbedding] = []
        errors: dict[int, ChunkError] = {}
        by_index = {c.index: c for c in chunks}
        stopped_early = False
        attempted = 0

        batches = [chunks[i : i + self.batch_size] for i in range(0, total, self.batch_size)]
        logger.debug(
            "Processing %d chunks in %d batches via %s", total, len(batches), self.provider.name
        )

        for batch_no, batch in enumerate(batches):
            self._check_cancelled()
            if self._over_budget(t0):
                logger.warning(
                    "Time budget of %.1fs reached after %d/%d chunks; stopping early",
                    self.max_processing_time, attempted, total,
                )
                stopped_early = True
                break
            if batch_no > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

            done, failed = await self._process_batch(batch)
            embeddings.extend(done)
            for err in failed:
                errors[err.chunk_index] = err
            attempted += len(batch)
            if self.progress is not None:
                self.progress.on_progress(attempted, total)

        if not stopped_early:
            stopped_early = await self._retry_failed(errors, embeddings, by_index, t0)

        elapsed = time.monotonic() - t0
        processed = len(embeddings)
        failed_count = len(errors)
        result = ChunkedProcessingResult(
            embeddings=embeddings,
            errors=sorted(errors.values(), key=lambda e: e.chunk_index),
            stats=ProcessingStats(
                total_chunks=total,
                processed_chunks=processed,
                failed_chunks=failed_count,
                total_tokens=sum(e.token_count for e in embeddings),
                processing_time=elapsed,
                avg_time_per_chunk=elapsed / max(1, processed),
            ),
            is_complete=failed_count == 0 and not stopped_early,
            stopped_early=stopped_early,
        )
        logger.info(
            "Embedded %d/%d chunks (%d failed%s) in %.2fs",
            processed, total, failed_count, ", stopped early" if stopped_early else "", elapsed,
        )
        return result

    # -- internals ------------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.cancellation_token is not None:
            self.cancellation_token.raise_if_cancelled()

    def _over_budget(self, t0: float) -> bool:
        return self.max_processing_time is not None and time.monotonic() - t0 >= self.max_processing_time

    async def _process_batch(
        self, batch: list[TextChunk]
    ) -> tuple[list[ChunkEmbedding], list[ChunkError]]:
        if self.provider.supports_batch:
            try:
                vectors = await self.provider.get_batch_embeddings([c.content for c in batch])
                if len(vectors) != len(batch):
                    raise ValueError(f"provider returned {len(vectors)} vectors for {len(batch)} texts")
            except TaskCancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "Batch of %d chunks failed (%s); falling back to per-chunk calls", len(batch), exc
                )
            else:
                return [
                    ChunkEmbedding(chunk_index=c.index, embedding=list(v), token_count=c.token_count)
                    for c, v in zip(batch, vectors)
                ], []

        done: list[ChunkEmbedding] = []
        failed: list[ChunkError] = []
        for chunk in batch:
            try:
                done.append(await self._embed_one(chunk))
            except TaskCancelledError:
                raise
            except Exception as exc:
                logger.warning("Chunk %d failed: %s", chunk.index, exc)
                failed.append(
                    ChunkError(chunk_index=chunk.index, error=str(exc) or type(exc).__name__,
                               retry_count=0, retryable=is_retryable(exc))
                )
        return done, failed

    async def _embed_one(self, chunk: TextChunk) -> ChunkEmbedding:
        vector = await self.provider.generate_embedding(chunk.content)
        return ChunkEmbedding(chunk_index=chunk.index, embedding=list(vector), token_count=chunk.token_count)

    async def _retry_failed(
        self,
        errors: dict[int, ChunkError],
        embeddings: list[ChunkEmbedding],
        by_index: dict[int, TextChunk],
        t0: float,
    ) -> bool:
        """Retry every retryable failure in place; returns ``True`` on soft cutoff."""
        for index in sorted(errors):
            err = errors[index]
            while err.retryable and err.retry_count < self.max_retries:
                self._check_cancelled()
                if self._over_budget(t0):
                    return True
                delay = self.retry_base_delay * (2 ** err.retry_count)
                if delay > 0:
                    await asyncio.sleep(delay)
                try:
                    embedding = await self._embed_one(by_index[index])
                except TaskCancelledError:
                    raise
                except Exception as exc:
                    err = err.model_copy(
                        update={
                            "retry_count": err.retry_count + 1,
                            "error": str(exc) or type(exc).__name__,
                            "retryable": is_retryable(exc),
                        }
                    )
                    errors[index] = err
                    logger.debug("Retry %d for chunk %d failed: %s", err.retry_count, index, exc)
                else:
                    embeddings.append(embedding)
                    del errors[index]
                    logger.debug("Chunk %d succeeded on retry %d", index, err.retry_count + 1)
                    break
        return False
