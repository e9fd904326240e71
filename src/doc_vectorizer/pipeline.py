"""End-to-end wiring: storage → chunker → scheduler → processor → sink.

Everything the pipeline needs is passed in through a
:class:`PipelineContext`; nothing is read from module-level state.

Usage::

    context = PipelineContext(
        settings=Settings(),
        provider=build_embedding_provider(settings),
        sink=ChromaVectorSink.from_settings(settings),
        store=LocalFileStore("docs/"),
    )
    pipeline = VectorizationPipeline(context)
    result = pipeline.ingest("guide.md")
    await pipeline.run_until_idle()
    pipeline.scheduler.get_task_status(result.main_task_id)
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field

from doc_vectorizer.chunking.chunker import TextChunker
from doc_vectorizer.config import Settings
from doc_vectorizer.embedding.base import EmbeddingProvider
from doc_vectorizer.events import CompositeObserver, ProcessorObserver
from doc_vectorizer.persistence.base import MetadataValue, VectorRecord, VectorSink, record_id
from doc_vectorizer.processing.background import BackgroundProcessor
from doc_vectorizer.storage import ObjectStore
from doc_vectorizer.tasks.models import (
    ProcessingResult,
    ProcessingTask,
    ScheduleOptions,
    ScheduleResult,
    TaskStatus,
)
from doc_vectorizer.tasks.queue import InMemoryQueue, QueueProvider
from doc_vectorizer.tasks.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Explicitly constructed collaborators for one pipeline instance.

    Attributes
    ----------
    settings:
        Configuration for every component.
    provider:
        Embedding backend.
    queue:
        Task queue; defaults to a fresh :class:`InMemoryQueue`.
    sink:
        Vector persistence; ``None`` keeps results in memory only.
    store:
        Object storage used by :meth:`VectorizationPipeline.ingest`.
    observers:
        Extra lifecycle observers notified after persistence.
    """

    settings: Settings
    provider: EmbeddingProvider
    queue: QueueProvider = field(default_factory=InMemoryQueue)
    sink: VectorSink | None = None
    store: ObjectStore | None = None
    observers: list[ProcessorObserver] = field(default_factory=list)


def build_records(task: ProcessingTask, result: ProcessingResult) -> list[VectorRecord]:
    """Join a task's chunks with the embeddings in *result*, keyed by chunk index."""
    chunks = {c.index: c for c in task.chunks}
    file_key = task.metadata.source or task.file_name
    records: list[VectorRecord] = []
    for emb in sorted(result.embeddings, key=lambda e: e.chunk_index):
        chunk = chunks.get(emb.chunk_index)
        if chunk is None:
            continue
        meta: dict[str, MetadataValue | None] = {
            "task_id": task.metadata.parent_task_id or task.id,
            "file_name": task.file_name,
            "chunk_index": chunk.index,
            "start_position": chunk.start_position,
            "end_position": chunk.end_position,
            "token_count": emb.token_count,
            "chunk_type": chunk.metadata.type.value,
            "heading": chunk.metadata.heading,
            "level": chunk.metadata.level,
            "declaration": chunk.metadata.declaration,
            "part_number": task.metadata.part_number,
            "user_id": task.metadata.user_id,
            **chunk.metadata.extra,
        }
        records.append(
            VectorRecord(
                id=record_id(file_key, chunk.index),
                embedding=emb.embedding,
                content=chunk.content,
                metadata={k: v for k, v in meta.items() if v is not None},
            )
        )
    return records


class PersistingObserver(ProcessorObserver):
    """Writes each task's embeddings to the sink before it is marked ``completed``.

    A sink error propagates, so the processor fails the task instead of
    completing it with nothing stored.
    """

    def __init__(self, sink: VectorSink) -> None:
        self.sink = sink
        self.persisted: set[str] = set()

    def on_task_result(self, task: ProcessingTask, result: ProcessingResult) -> None:
        if task.id in self.persisted:
            return
        records = build_records(task, result)
        file_key = task.metadata.source or task.file_name
        self.sink.upsert(file_key, records)
        self.persisted.add(task.id)


class VectorizationPipeline:
    """Facade over chunker, scheduler and background processor."""

    def __init__(self, context: PipelineContext) -> None:
        self.context = context
        settings = context.settings
        self.chunker = TextChunker.from_settings(settings)
        self.scheduler = TaskScheduler.from_settings(context.queue, settings)

        observers: list[ProcessorObserver] = []
        if context.sink is not None:
            observers.append(PersistingObserver(context.sink))
        observers.extend(context.observers)
        self.processor = BackgroundProcessor.from_settings(
            context.queue,
            context.provider,
            settings,
            observer=CompositeObserver(*observers),
        )

    # -- ingestion ------------------------------------------------------------

    def ingest_text(
        self,
        file_key: str,
        text: str,
        file_type: str | None = None,
        options: ScheduleOptions | None = None,
        *,
        file_size: int | None = None,
    ) -> ScheduleResult:
        """Chunk *text* and schedule it under *file_key*."""
        if file_size is None:
            file_size = len(text.encode("utf-8"))
        chunks = self.chunker.chunk_text(text, file_type or file_key, file_size)
        if file_type is None:
            file_type = mimetypes.guess_type(file_key)[0] or "text/plain"
        options = (options or ScheduleOptions()).model_copy()
        if options.source is None:
            options.source = file_key
        return self.scheduler.schedule_task(file_key, file_type, file_size, chunks, options)

    def ingest(
        self,
        file_key: str,
        file_type: str | None = None,
        options: ScheduleOptions | None = None,
    ) -> ScheduleResult:
        """Fetch *file_key* from the object store, then :meth:`ingest_text` it."""
        if self.context.store is None:
            raise RuntimeError("PipelineContext.store is required for ingest()")
        raw = self.context.store.get(file_key)
        text = raw.decode("utf-8", errors="replace")
        return self.ingest_text(
            file_key,
            text,
            file_type,
            options,
            file_size=len(raw),
        )

    # -- task management ------------------------------------------------------

    def cancel(self, task_id: str) -> bool:
        """Cancel a task, tripping tokens of any of its executions in flight."""
        task = self.context.queue.get_task(task_id)
        if task is None:
            return False
        cancelled = False
        for sub_id in task.metadata.sub_task_ids:
            cancelled |= self.processor.cancel_task(sub_id)
        if not task.metadata.is_parent_task:
            cancelled |= self.processor.cancel_task(task_id)
        return self.scheduler.cancel_task(task_id) or cancelled

    async def run_until_idle(self, *, max_ticks: int | None = None) -> None:
        """Poll until no task is pending or processing (local / batch mode)."""
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            launched = await self.processor.poll_once()
            ticks += 1
            if not launched and not self.processor.active_task_ids and not self._has_pending():
                return
            await self.processor.wait_for_active()
        logger.warning("run_until_idle gave up after %d ticks", ticks)

    def _has_pending(self) -> bool:
        return any(t.is_runnable for t in self.context.queue.get_tasks_by_status(TaskStatus.PENDING))
