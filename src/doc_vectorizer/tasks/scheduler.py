"""Task scheduler — turns chunked documents into time-bounded queued tasks.

A serverless invocation has a hard wall-clock limit.  The scheduler
estimates how long a document's chunks take to embed and, when the
estimate exceeds the budget, splits the work into sub-tasks that each
fit.  The original task survives as a non-runnable parent record whose
status is aggregated from its children.

Usage::

    scheduler = TaskScheduler(queue, execution_budget=23.0)
    result = scheduler.schedule_task("report.md", "text/markdown", size, chunks)
    scheduler.get_task_status(result.main_task_id)
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from doc_vectorizer.chunking.models import TextChunk
from doc_vectorizer.config import Settings
from doc_vectorizer.errors import TaskNotFoundError
from doc_vectorizer.tasks.models import (
    ProcessingTask,
    QueueStats,
    ScheduleOptions,
    ScheduleResult,
    SubTaskStatus,
    TaskMetadata,
    TaskOptions,
    TaskPriority,
    TaskStatus,
    TaskStatusReport,
)
from doc_vectorizer.tasks.queue import QueueProvider

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Create, split, track and manage processing tasks.

    Parameters
    ----------
    queue:
        Backend holding every task, parent records included.
    execution_budget:
        Seconds a single task may take (hard limit minus safety margin).
    per_chunk_cost:
        Estimated seconds per chunk.
    batch_overhead:
        Estimated fixed seconds per provider batch.
    default_batch_size / default_max_retries:
        Task options used when the caller does not set them.
    """

    def __init__(
        self,
        queue: QueueProvider,
        *,
        execution_budget: float = 23.0,
        per_chunk_cost: float = 0.8,
        batch_overhead: float = 0.5,
        default_batch_size: int = 10,
        default_max_retries: int = 3,
    ) -> None:
        if execution_budget <= 0:
            raise ValueError(f"execution_budget must be positive, got {execution_budget}")
        self.queue = queue
        self.execution_budget = execution_budget
        self.per_chunk_cost = per_chunk_cost
        self.batch_overhead = batch_overhead
        self.default_batch_size = default_batch_size
        self.default_max_retries = default_max_retries

    @classmethod
    def from_settings(cls, queue: QueueProvider, settings: Settings) -> TaskScheduler:
        return cls(
            queue,
            execution_budget=settings.execution_budget,
            per_chunk_cost=settings.per_chunk_cost,
            batch_overhead=settings.batch_overhead,
            default_batch_size=settings.batch_size,
            default_max_retries=settings.max_retries,
        )

    # -- estimation -----------------------------------------------------------

    def estimate_processing_time(self, chunk_count: int, batch_size: int) -> float:
        """Seconds needed to embed *chunk_count* chunks in batches of *batch_size*."""
        if chunk_count <= 0:
            return 0.0
        batches = math.ceil(chunk_count / max(1, batch_size))
        return chunk_count * self.per_chunk_cost + batches * self.batch_overhead

    def max_chunks_per_task(self, batch_size: int) -> int:
        """Largest chunk count whose estimate fits the budget (at least 1)."""
        # upper bound ignoring batch overhead, then walk down
        count = max(1, int(self.execution_budget // self.per_chunk_cost) if self.per_chunk_cost > 0 else 1)
        while count > 1 and self.estimate_processing_time(count, batch_size) > self.execution_budget:
            count -= 1
        return count

    # -- scheduling -----------------------------------------------------------

    def schedule_task(
        self,
        file_name: str,
        file_type: str,
        file_size: int,
        chunks: list[TextChunk],
        options: ScheduleOptions | None = None,
    ) -> ScheduleResult:
        """Queue *chunks* for embedding, splitting when over budget."""
        options = options or ScheduleOptions()
        task = ProcessingTask(
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            chunks=list(chunks),
            priority=options.priority,
            options=TaskOptions(
                batch_size=options.batch_size or self.default_batch_size,
                max_retries=(
                    options.max_retries if options.max_retries is not None else self.default_max_retries
                ),
                timeout=options.timeout or self.execution_budget,
            ),
            metadata=TaskMetadata(user_id=options.user_id, source=options.source),
        )
        estimate = self.estimate_processing_time(len(task.chunks), task.options.batch_size)

        if options.auto_split and estimate > self.execution_budget and len(task.chunks) > 1:
            sub_tasks = self.split_task(task)
            parent = task.model_copy(
                update={
                    "chunks": [],
                    "metadata": task.metadata.model_copy(
                        update={
                            "is_parent_task": True,
                            "sub_task_ids": [t.id for t in sub_tasks],
                            "total_parts": len(sub_tasks),
                        }
                    ),
                }
            )
            self.queue.enqueue(parent)
            for sub in sub_tasks:
                self.queue.enqueue(sub)
            logger.info(
                "Split task %s (%s, %d chunks, est. %.1fs > %.1fs budget) into %d sub-tasks",
                task.id, file_name, len(chunks), estimate, self.execution_budget, len(sub_tasks),
            )
            return ScheduleResult(
                main_task_id=parent.id,
                sub_task_ids=[t.id for t in sub_tasks],
                was_split=True,
                estimated_time=estimate,
                status=TaskStatus.PENDING,
            )

        self.queue.enqueue(task)
        logger.info(
            "Scheduled task %s (%s, %d chunks, est. %.1fs)", task.id, file_name, len(chunks), estimate
        )
        return ScheduleResult(main_task_id=task.id, estimated_time=estimate, status=task.status)

    def split_task(self, task: ProcessingTask) -> list[ProcessingTask]:
        """Partition *task*'s chunks into consecutive sub-tasks that fit the budget.

        The concatenation of the sub-tasks' chunk lists equals
        ``task.chunks``.  The parent is neither modified nor enqueued.
        """
        group_size = self.max_chunks_per_task(task.options.batch_size)
        groups = [task.chunks[i : i + group_size] for i in range(0, len(task.chunks), group_size)]
        total = len(groups)
        return [
            ProcessingTask(
                file_name=task.file_name,
                file_type=task.file_type,
                file_size=task.file_size,
                chunks=group,
                priority=task.priority,
                options=task.options.model_copy(),
                metadata=TaskMetadata(
                    user_id=task.metadata.user_id,
                    source=task.metadata.source,
                    parent_task_id=task.id,
                    part_number=part,
                    total_parts=total,
                ),
            )
            for part, group in enumerate(groups, start=1)
        ]

    # -- management -----------------------------------------------------------

    def cancel_task(self, task_id: str) -> bool:
        """Cancel *task_id* and, for a parent, its unfinished sub-tasks.

        Returns ``False`` when the task does not exist or nothing could
        be cancelled.
        """
        task = self.queue.get_task(task_id)
        if task is None:
            return False

        cancelled = False
        for sub_id in task.metadata.sub_task_ids:
            cancelled |= self._cancel_one(sub_id)
        cancelled |= self._cancel_one(task_id)
        return cancelled

    def get_task_status(self, task_id: str) -> TaskStatusReport | None:
        """Status of *task_id*; parents report the aggregate of their children."""
        task = self.queue.get_task(task_id)
        if task is None:
            return None
        if not task.metadata.is_parent_task:
            return TaskStatusReport(
                task_id=task.id, status=task.status, progress=task.progress, error=task.error
            )

        subs = [s for s in (self.queue.get_task(i) for i in task.metadata.sub_task_ids) if s is not None]
        sub_views = [
            SubTaskStatus(
                task_id=s.id,
                status=s.status,
                progress=s.progress,
                part_number=s.metadata.part_number,
                error=s.error,
            )
            for s in subs
        ]
        if task.status is TaskStatus.CANCELLED and not subs:
            status = TaskStatus.CANCELLED
        else:
            status = aggregate_status([s.status for s in subs])
        progress = round(sum(s.progress for s in subs) / len(subs)) if subs else task.progress
        errors = [f"part {s.metadata.part_number}: {s.error}" for s in subs if s.error]
        return TaskStatusReport(
            task_id=task.id,
            status=status,
            progress=progress,
            is_parent_task=True,
            sub_tasks=sub_views,
            error="; ".join(errors) or None,
        )

    def set_task_priority(self, task_id: str, priority: TaskPriority) -> bool:
        """Set *priority* on *task_id* and a parent's sub-tasks.

        Only pending tasks are reordered; running and finished tasks keep
        their state.
        """
        task = self.queue.get_task(task_id)
        if task is None:
            return False
        for sub_id in task.metadata.sub_task_ids:
            try:
                self.queue.set_priority(sub_id, priority)
            except TaskNotFoundError:
                logger.debug("Sub-task %s of %s is gone", sub_id, task_id)
        self.queue.set_priority(task_id, priority)
        logger.info("Task %s priority set to %s", task_id, priority.name)
        return True

    def retry_task(self, task_id: str) -> bool:
        """Reset a failed task (or a parent's failed sub-tasks) to pending."""
        task = self.queue.get_task(task_id)
        if task is None:
            return False
        if task.metadata.is_parent_task:
            retried = [self._retry_one(sub_id) for sub_id in task.metadata.sub_task_ids]
            return any(retried)
        return self._retry_one(task_id)

    def cleanup_old_tasks(self, max_age_hours: float = 24) -> int:
        """Remove terminal tasks finished more than *max_age_hours* ago.

        Parent records go once none of their sub-tasks remain.  Returns
        the number of removed records.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(hours=max_age_hours)
        removed = 0
        tasks = self.queue.get_all_tasks()
        for task in tasks:
            if task.metadata.is_parent_task:
                continue
            finished = task.completed_at or task.created_at
            if task.status.is_terminal and finished < cutoff:
                removed += int(self.queue.remove_task(task.id))

        for task in tasks:
            if not task.metadata.is_parent_task:
                continue
            orphaned = all(self.queue.get_task(i) is None for i in task.metadata.sub_task_ids)
            if orphaned and (task.completed_at or task.created_at) < cutoff:
                removed += int(self.queue.remove_task(task.id))

        if removed:
            logger.info("Cleaned up %d tasks older than %sh", removed, max_age_hours)
        return removed

    def get_queue_stats(self) -> QueueStats:
        """Count runnable tasks by status (parent records excluded)."""
        counts = {status: 0 for status in TaskStatus}
        tasks = [t for t in self.queue.get_all_tasks() if not t.metadata.is_parent_task]
        for task in tasks:
            counts[task.status] += 1
        return QueueStats(
            total=len(tasks),
            pending=counts[TaskStatus.PENDING],
            processing=counts[TaskStatus.PROCESSING],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
            cancelled=counts[TaskStatus.CANCELLED],
        )

    # -- internals ------------------------------------------------------------

    def _cancel_one(self, task_id: str) -> bool:
        task = self.queue.get_task(task_id)
        if task is None or task.status.is_terminal:
            return False
        self.queue.update_task_status(task_id, TaskStatus.CANCELLED)
        logger.info("Cancelled task %s", task_id)
        return True

    def _retry_one(self, task_id: str) -> bool:
        task = self.queue.get_task(task_id)
        if task is None or task.status is not TaskStatus.FAILED:
            return False
        updated = self.queue.update_task_status(task_id, TaskStatus.PENDING, progress=0)
        self.queue.enqueue(updated)
        logger.info("Task %s reset to pending for retry", task_id)
        return True


def aggregate_status(statuses: list[TaskStatus]) -> TaskStatus:
    """Fold sub-task statuses into one logical status."""
    if not statuses:
        return TaskStatus.PENDING
    if all(s is TaskStatus.COMPLETED for s in statuses):
        return TaskStatus.COMPLETED
    if any(s is TaskStatus.FAILED for s in statuses):
        return TaskStatus.FAILED
    if any(s is TaskStatus.PROCESSING for s in statuses):
        return TaskStatus.PROCESSING
    if all(s is TaskStatus.CANCELLED for s in statuses):
        return TaskStatus.CANCELLED
    return TaskStatus.PENDING
