"""Task, queue and result models for the vectorization pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from doc_vectorizer.chunking.models import TextChunk


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    return f"task_{uuid4().hex[:16]}"


class TaskStatus(str, Enum):
    """Lifecycle state of a :class:`ProcessingTask`."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)

    def can_transition_to(self, new: TaskStatus) -> bool:
        """Whether a status write from ``self`` to *new* is legal.

        Writing the current status again is always allowed (progress
        updates).  ``failed -> pending`` is the retry path.
        """
        return new is self or new in _TRANSITIONS[self]


_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING, TaskStatus.CANCELLED, TaskStatus.FAILED}),
    TaskStatus.PROCESSING: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED, TaskStatus.PENDING}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING}),
    TaskStatus.CANCELLED: frozenset(),
}


class TaskPriority(IntEnum):
    """Higher values are dequeued first."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    URGENT = 3


class TaskOptions(BaseModel):
    """Per-task knobs for the embedding step.

    ``timeout`` is in seconds and bounds a single execution of the task.
    """

    batch_size: int = Field(default=10, gt=0)
    max_retries: int = Field(default=3, ge=0)
    timeout: float = Field(default=23.0, gt=0)


class TaskMetadata(BaseModel):
    """Ownership and parent/child bookkeeping for a task."""

    user_id: str | None = None
    source: str | None = None
    is_parent_task: bool = False
    sub_task_ids: list[str] = Field(default_factory=list)
    parent_task_id: str | None = None
    part_number: int | None = None
    total_parts: int | None = None
    extra: dict[str, str] = Field(default_factory=dict)


class ProcessingTask(BaseModel):
    """The unit of schedulable work: chunks of one document (or part of one)."""

    id: str = Field(default_factory=new_task_id)
    file_name: str
    file_type: str = "text/plain"
    file_size: int = 0
    chunks: list[TextChunk] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.NORMAL
    created_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    progress: int = Field(default=0, ge=0, le=100)
    error: str | None = None
    options: TaskOptions = Field(default_factory=TaskOptions)
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)

    @property
    def is_runnable(self) -> bool:
        """Only pending, non-parent tasks may be dequeued."""
        return self.status is TaskStatus.PENDING and not self.metadata.is_parent_task


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ChunkEmbedding(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_index: int
    embedding: list[float]
    token_count: int = 0


class ChunkError(BaseModel):
    """A chunk that could not be embedded.

    ``retry_count`` is the number of retry attempts made after the
    initial failure.
    """

    model_config = ConfigDict(frozen=True)

    chunk_index: int
    error: str
    retry_count: int = 0
    retryable: bool = True


class ProcessingStats(BaseModel):
    """Counters for one execution.  Times are in seconds."""

    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    processed_chunks: int = 0
    failed_chunks: int = 0
    total_tokens: int = 0
    processing_time: float = 0.0
    avg_time_per_chunk: float = 0.0


class ChunkedProcessingResult(BaseModel):
    """Output of :class:`~doc_vectorizer.embedding.processor.ChunkedEmbeddingProcessor`.

    ``stopped_early`` is set when the time budget ran out before every
    batch was attempted; those chunks appear in neither ``embeddings``
    nor ``errors``.
    """

    model_config = ConfigDict(frozen=True)

    embeddings: list[ChunkEmbedding] = Field(default_factory=list)
    stats: ProcessingStats = Field(default_factory=ProcessingStats)
    errors: list[ChunkError] = Field(default_factory=list)
    is_complete: bool = True
    stopped_early: bool = False


class ProcessingResult(ChunkedProcessingResult):
    """A :class:`ChunkedProcessingResult` bound to the task that produced it."""

    task_id: str
    status: TaskStatus

    @classmethod
    def from_chunked(
        cls,
        task_id: str,
        status: TaskStatus,
        result: ChunkedProcessingResult,
    ) -> ProcessingResult:
        return cls(task_id=task_id, status=status, **result.model_dump())


# ---------------------------------------------------------------------------
# Scheduler-facing views
# ---------------------------------------------------------------------------


class ScheduleOptions(BaseModel):
    """Caller options for :meth:`TaskScheduler.schedule_task`.

    Unset fields fall back to the scheduler's defaults.
    """

    priority: TaskPriority = TaskPriority.NORMAL
    batch_size: int | None = Field(default=None, gt=0)
    max_retries: int | None = Field(default=None, ge=0)
    timeout: float | None = Field(default=None, gt=0)
    user_id: str | None = None
    source: str | None = None
    auto_split: bool = True


class ScheduleResult(BaseModel):
    main_task_id: str
    sub_task_ids: list[str] = Field(default_factory=list)
    was_split: bool = False
    estimated_time: float = 0.0
    status: TaskStatus = TaskStatus.PENDING


class SubTaskStatus(BaseModel):
    task_id: str
    status: TaskStatus
    progress: int = 0
    part_number: int | None = None
    error: str | None = None


class TaskStatusReport(BaseModel):
    """Aggregated view of a task and, for parents, its sub-tasks."""

    task_id: str
    status: TaskStatus
    progress: int = 0
    is_parent_task: bool = False
    sub_tasks: list[SubTaskStatus] = Field(default_factory=list)
    error: str | None = None


class QueueStats(BaseModel):
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
