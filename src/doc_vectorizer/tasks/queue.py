"""Task queue abstraction and the in-memory reference backend.

Adding a durable backend (Redis, SQL, SQS …) only requires subclassing
:class:`QueueProvider`.  The scheduler and background processor never
touch queue internals.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from doc_vectorizer.errors import InvalidStatusTransition, TaskNotFoundError
from doc_vectorizer.tasks.models import ProcessingTask, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)


class QueueProvider(ABC):
    """Backend-agnostic task queue interface.

    ``dequeue`` must be atomic: when several workers poll the same queue
    a task may be handed to only one of them.  It claims the task by
    moving it to ``processing`` before returning it, so the claimed task
    is never runnable again while the caller owns it.
    """

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def enqueue(self, task: ProcessingTask) -> None:
        """Store *task*, replacing any task with the same id.

        Runnable tasks (pending, not a parent record) become eligible for
        :meth:`dequeue`; others are stored only.
        """
        ...

    @abstractmethod
    def dequeue(self) -> ProcessingTask | None:
        """Claim the highest-priority runnable task, or return ``None``.

        The returned task is already ``processing`` with ``started_at`` set.
        """
        ...

    @abstractmethod
    def set_priority(self, task_id: str, priority: TaskPriority) -> ProcessingTask:
        """Change the priority of *task_id* in place.

        A pending task moves to its new position in the queue; tasks in
        any other status keep their state and are not re-queued.

        Raises
        ------
        TaskNotFoundError
            No such task.
        """
        ...

    @abstractmethod
    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        progress: int | None = None,
        error: str | None = None,
    ) -> ProcessingTask:
        """Write a status (and optionally progress / error) for *task_id*.

        Raises
        ------
        TaskNotFoundError
            No such task.
        InvalidStatusTransition
            The write would leave a terminal state.
        """
        ...

    @abstractmethod
    def get_task(self, task_id: str) -> ProcessingTask | None:
        ...

    @abstractmethod
    def get_all_tasks(self) -> list[ProcessingTask]:
        ...

    @abstractmethod
    def remove_task(self, task_id: str) -> bool:
        """Drop *task_id* entirely; returns ``False`` if it did not exist."""
        ...

    # -- optional overrides ---------------------------------------------------

    def get_tasks_by_status(self, status: TaskStatus) -> list[ProcessingTask]:
        return [t for t in self.get_all_tasks() if t.status is status]

    def __len__(self) -> int:
        return len(self.get_all_tasks())


class InMemoryQueue(QueueProvider):
    """Volatile queue: a dict of tasks plus a priority-ordered id list.

    Higher priority is dequeued first; equal priorities keep insertion
    order.  Reads return deep copies so callers can only change a task
    through :meth:`update_task_status` and :meth:`set_priority`.  All operations hold one lock.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, ProcessingTask] = {}
        self._order: list[str] = []
        self._lock = threading.Lock()

    def enqueue(self, task: ProcessingTask) -> None:
        with self._lock:
            self._tasks[task.id] = task.model_copy(deep=True)
            if task.id in self._order:
                self._order.remove(task.id)
            if task.is_runnable:
                self._insert_ordered(task)
        logger.debug("Enqueued task %s (priority=%s, status=%s)", task.id, task.priority.name, task.status.value)

    def dequeue(self) -> ProcessingTask | None:
        with self._lock:
            while self._order:
                task_id = self._order.pop(0)
                task = self._tasks.get(task_id)
                if task is not None and task.is_runnable:
                    task.status = TaskStatus.PROCESSING
                    task.started_at = datetime.now(timezone.utc)
                    return task.model_copy(deep=True)
        return None

    def set_priority(self, task_id: str, priority: TaskPriority) -> ProcessingTask:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            task.priority = priority
            if task_id in self._order:
                self._order.remove(task_id)
                self._insert_ordered(task)
            return task.model_copy(deep=True)

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        progress: int | None = None,
        error: str | None = None,
    ) -> ProcessingTask:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if not task.status.can_transition_to(status):
                raise InvalidStatusTransition(task_id, task.status.value, status.value)

            now = datetime.now(timezone.utc)
            if status is TaskStatus.PROCESSING and task.status is not TaskStatus.PROCESSING:
                task.started_at = now
            if status.is_terminal and not task.status.is_terminal:
                task.completed_at = now
            if status is TaskStatus.PENDING:
                task.started_at = None
                task.completed_at = None

            task.status = status
            if progress is not None:
                task.progress = max(0, min(100, progress))
            if error is not None or status is TaskStatus.PENDING:
                task.error = error
            if status is not TaskStatus.PENDING and task_id in self._order:
                self._order.remove(task_id)
            return task.model_copy(deep=True)

    def get_task(self, task_id: str) -> ProcessingTask | None:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task is not None else None

    def get_all_tasks(self) -> list[ProcessingTask]:
        with self._lock:
            return [t.model_copy(deep=True) for t in self._tasks.values()]

    def remove_task(self, task_id: str) -> bool:
        with self._lock:
            if task_id in self._order:
                self._order.remove(task_id)
            return self._tasks.pop(task_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    @property
    def pending_count(self) -> int:
        """Tasks currently waiting to be dequeued."""
        with self._lock:
            return len(self._order)

    # -- internals ------------------------------------------------------------

    def _insert_ordered(self, task: ProcessingTask) -> None:
        for pos, queued_id in enumerate(self._order):
            if self._tasks[queued_id].priority < task.priority:
                self._order.insert(pos, task.id)
                return
        self._order.append(task.id)
