"""Background processor — a polling loop running queued tasks concurrently.

One control loop polls the queue every ``poll_interval`` seconds and
launches up to ``max_concurrent_tasks`` task executions as asyncio tasks.
Each execution is raced against its timeout; the outcome is written back
to the queue and reported to the observer.

Usage::

    processor = BackgroundProcessor(queue, provider, max_concurrent_tasks=3)
    await processor.start()
    ...
    await processor.stop()
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from pydantic import BaseModel

from doc_vectorizer.cancellation import CancellationToken
from doc_vectorizer.config import Settings
from doc_vectorizer.embedding.base import EmbeddingProvider
from doc_vectorizer.embedding.processor import ChunkedEmbeddingProcessor
from doc_vectorizer.errors import (
    EmbeddingError,
    InvalidStatusTransition,
    TaskCancelledError,
    TaskNotFoundError,
)
from doc_vectorizer.events import ProcessorObserver, ProgressListener
from doc_vectorizer.tasks.models import (
    ChunkedProcessingResult,
    ProcessingResult,
    ProcessingTask,
    TaskStatus,
)
from doc_vectorizer.tasks.queue import QueueProvider

logger = logging.getLogger(__name__)


class ProcessorStats(BaseModel):
    """Running counters.  Times are in seconds."""

    completed_tasks: int = 0
    failed_tasks: int = 0
    cancelled_tasks: int = 0
    total_processing_time: float = 0.0
    average_processing_time: float = 0.0
    active_tasks: int = 0


@dataclass
class _ActiveTask:
    task: ProcessingTask
    token: CancellationToken
    handle: asyncio.Task | None = None


class _TaskProgress(ProgressListener):
    """Forwards batch progress to the queue and the observer."""

    def __init__(self, processor: BackgroundProcessor, task: ProcessingTask) -> None:
        self._processor = processor
        self._task = task

    def on_progress(self, processed: int, total: int) -> None:
        # 100 is reserved for the completed status
        percent = min(99, int(processed * 100 / total)) if total else 99
        updated = self._processor._write_status(self._task.id, TaskStatus.PROCESSING, progress=percent)
        if updated is not None:
            self._processor.observer.on_task_progress(updated, percent)


class BackgroundProcessor:
    """Pull tasks from a queue and embed them with bounded concurrency.

    Parameters
    ----------
    queue:
        Source of tasks and sink of status writes.
    provider:
        Embedding backend shared by all task executions.
    max_concurrent_tasks:
        Upper bound on executions in flight.
    poll_interval:
        Seconds between polling ticks.
    settings:
        Supplies batch delay and retry back-off for the chunk processor.
    observer:
        Receives lifecycle events; defaults to a no-op observer.
    """

    def __init__(
        self,
        queue: QueueProvider,
        provider: EmbeddingProvider,
        *,
        max_concurrent_tasks: int = 3,
        poll_interval: float = 1.0,
        settings: Settings | None = None,
        observer: ProcessorObserver | None = None,
    ) -> None:
        if max_concurrent_tasks <= 0:
            raise ValueError(f"max_concurrent_tasks must be positive, got {max_concurrent_tasks}")
        self.queue = queue
        self.provider = provider
        self.max_concurrent_tasks = max_concurrent_tasks
        self.poll_interval = poll_interval
        self.settings = settings or Settings()
        self.observer = observer or ProcessorObserver()

        self._active: dict[str, _ActiveTask] = {}
        self._loop_task: asyncio.Task | None = None
        self._running = False
        self._stats = ProcessorStats()

    @classmethod
    def from_settings(
        cls,
        queue: QueueProvider,
        provider: EmbeddingProvider,
        settings: Settings,
        *,
        observer: ProcessorObserver | None = None,
    ) -> BackgroundProcessor:
        return cls(
            queue,
            provider,
            max_concurrent_tasks=settings.max_concurrent_tasks,
            poll_interval=settings.poll_interval,
            settings=settings,
            observer=observer,
        )

    # -- lifecycle ------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_task_ids(self) -> list[str]:
        return list(self._active)

    async def start(self) -> None:
        """Start the polling loop; a no-op when already running."""
        if self._running:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop(), name="background-processor")
        logger.info(
            "Background processor started (max_concurrent=%d, poll_interval=%.2fs)",
            self.max_concurrent_tasks, self.poll_interval,
        )

    async def stop(self, *, wait: bool = True) -> None:
        """Stop polling and cancel every active task.

        Active tasks are marked ``cancelled`` immediately; with *wait*
        the call returns once their executions have unwound.
        """
        self._running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        handles = [a.handle for a in self._active.values() if a.handle is not None]
        for task_id in list(self._active):
            self._cancel_active(task_id, "processor stopped")
        if wait and handles:
            await asyncio.gather(*handles, return_exceptions=True)
        logger.info("Background processor stopped")

    async def poll_once(self) -> int:
        """Run one polling tick; returns the number of tasks launched."""
        available = self.max_concurrent_tasks - len(self._active)
        launched = 0
        while launched < available:
            task = self.queue.dequeue()
            if task is None:
                break
            token = CancellationToken(task.id)
            active = _ActiveTask(task=task, token=token)
            self._active[task.id] = active
            active.handle = asyncio.create_task(self._execute(task, token), name=f"task-{task.id}")
            launched += 1
        if launched:
            logger.debug("Launched %d tasks (%d active)", launched, len(self._active))
        return launched

    async def wait_for_active(self) -> None:
        """Wait until every execution launched so far has finished."""
        handles = [a.handle for a in self._active.values() if a.handle is not None]
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)

    def cancel_task(self, task_id: str) -> bool:
        """Cancel an active or pending task; returns ``False`` if nothing changed."""
        if task_id in self._active:
            self._cancel_active(task_id, "cancelled by request")
            return True
        task = self.queue.get_task(task_id)
        if task is None or task.status is not TaskStatus.PENDING:
            return False
        return self._write_status(task_id, TaskStatus.CANCELLED) is not None

    def get_stats(self) -> ProcessorStats:
        return self._stats.model_copy(update={"active_tasks": len(self._active)})

    # -- internals ------------------------------------------------------------

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Polling tick failed")
            await asyncio.sleep(self.poll_interval)

    def _cancel_active(self, task_id: str, reason: str) -> None:
        active = self._active.get(task_id)
        if active is None:
            return
        active.token.cancel(reason)
        self._write_status(task_id, TaskStatus.CANCELLED, error=reason)
        logger.info("Cancelling task %s: %s", task_id, reason)

    async def _execute(self, task: ProcessingTask, token: CancellationToken) -> None:
        t0 = time.monotonic()
        timeout = task.options.timeout
        try:
            token.raise_if_cancelled()
            running = self._write_status(task.id, TaskStatus.PROCESSING, progress=0)
            if running is None:
                return
            self.observer.on_task_started(running)
            logger.info("Task %s started (%s, %d chunks)", task.id, task.file_name, len(task.chunks))

            processor = ChunkedEmbeddingProcessor.for_task(
                self.provider,
                task.options,
                self.settings,
                cancellation_token=token,
                progress=_TaskProgress(self, running),
            )
            chunked = await asyncio.wait_for(processor.process_chunks(task.chunks), timeout=timeout)
            token.raise_if_cancelled()
            self._complete(running, chunked, token, t0)
        except TaskCancelledError:
            self._record(TaskStatus.CANCELLED, time.monotonic() - t0)
            cancelled = self._write_status(task.id, TaskStatus.CANCELLED)
            logger.info("Task %s cancelled", task.id)
            self.observer.on_task_cancelled(cancelled or task)
        except asyncio.TimeoutError as exc:
            self._fail(task, exc, f"Task timed out after {timeout:.1f}s", time.monotonic() - t0)
        except asyncio.CancelledError:
            self._write_status(task.id, TaskStatus.CANCELLED, error="execution interrupted")
            self._record(TaskStatus.CANCELLED, time.monotonic() - t0)
            raise
        except Exception as exc:
            logger.exception("Task %s failed", task.id)
            self._fail(task, exc, str(exc) or type(exc).__name__, time.monotonic() - t0)
        finally:
            self._active.pop(task.id, None)

    def _complete(
        self,
        task: ProcessingTask,
        chunked: ChunkedProcessingResult,
        token: CancellationToken,
        t0: float,
    ) -> None:
        """Hand the result to ``on_task_result``, then write ``completed``.

        The task stays ``processing`` until the hook returns, so a hook
        failure propagates to the caller and fails the task instead.
        """
        stats = chunked.stats
        if stats.total_chunks and not stats.processed_chunks and chunked.errors:
            first = chunked.errors[0].error
            raise EmbeddingError(f"all {stats.failed_chunks} chunks failed to embed (first error: {first})")

        summary = f"{stats.failed_chunks} chunks failed to embed" if stats.failed_chunks else None
        result = ProcessingResult.from_chunked(task.id, TaskStatus.COMPLETED, chunked)
        self.observer.on_task_result(task, result)
        token.raise_if_cancelled()

        done = self._write_status(task.id, TaskStatus.COMPLETED, progress=100, error=summary)
        if done is None or done.status is not TaskStatus.COMPLETED:
            return
        elapsed = time.monotonic() - t0
        self._record(TaskStatus.COMPLETED, elapsed)
        logger.info(
            "Task %s completed in %.2fs (%d/%d chunks%s)",
            task.id, elapsed, stats.processed_chunks, stats.total_chunks,
            "" if chunked.is_complete else ", partial",
        )
        try:
            self.observer.on_task_completed(done, result)
        except Exception:
            # the task is already terminal; a late observer error cannot fail it
            logger.exception("Observer failed after task %s completed", task.id)

    def _fail(self, task: ProcessingTask, exc: BaseException, message: str, elapsed: float) -> None:
        failed = self._write_status(task.id, TaskStatus.FAILED, error=message)
        if failed is None:
            logger.warning("Task %s already finished; dropping failure: %s", task.id, message)
            return
        self._record(TaskStatus.FAILED, elapsed)
        logger.error("Task %s failed: %s", task.id, message)
        self.observer.on_task_failed(failed, exc)

    def _write_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        progress: int | None = None,
        error: str | None = None,
    ) -> ProcessingTask | None:
        """Status write that tolerates tasks cancelled or removed meanwhile."""
        try:
            return self.queue.update_task_status(task_id, status, progress=progress, error=error)
        except InvalidStatusTransition as exc:
            logger.warning("Ignoring stale status write: %s", exc)
            return None
        except TaskNotFoundError:
            logger.warning("Task %s was removed while running", task_id)
            return None

    def _record(self, status: TaskStatus, elapsed: float) -> None:
        s = self._stats
        if status is TaskStatus.COMPLETED:
            s.completed_tasks += 1
        elif status is TaskStatus.FAILED:
            s.failed_tasks += 1
        else:
            s.cancelled_tasks += 1
        s.total_processing_time += elapsed
        finished = s.completed_tasks + s.failed_tasks + s.cancelled_tasks
        s.average_processing_time = s.total_processing_time / finished
