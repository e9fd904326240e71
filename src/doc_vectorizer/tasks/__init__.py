"""
Tasks — the unit of work, the queue that holds it and the scheduler.

Public surface
--------------
- :class:`ProcessingTask`, :class:`TaskStatus`, :class:`TaskPriority` — task model.
- :class:`QueueProvider` — abstract queue; :class:`InMemoryQueue` — volatile default.
- :class:`TaskScheduler` — schedule, split, cancel, retry and report on tasks.
- :class:`ProcessingResult`, :class:`ChunkedProcessingResult` — embedding output.
"""

from doc_vectorizer.tasks.models import (
    ChunkedProcessingResult,
    ChunkEmbedding,
    ChunkError,
    ProcessingResult,
    ProcessingStats,
    ProcessingTask,
    QueueStats,
    ScheduleOptions,
    ScheduleResult,
    TaskMetadata,
    TaskOptions,
    TaskPriority,
    TaskStatus,
    TaskStatusReport,
)
from doc_vectorizer.tasks.queue import InMemoryQueue, QueueProvider
from doc_vectorizer.tasks.scheduler import TaskScheduler, aggregate_status

__all__ = [
    "ChunkEmbedding",
    "ChunkError",
    "ChunkedProcessingResult",
    "InMemoryQueue",
    "ProcessingResult",
    "ProcessingStats",
    "ProcessingTask",
    "QueueProvider",
    "QueueStats",
    "ScheduleOptions",
    "ScheduleResult",
    "TaskMetadata",
    "TaskOptions",
    "TaskPriority",
    "TaskScheduler",
    "TaskStatus",
    "TaskStatusReport",
    "aggregate_status",
]
