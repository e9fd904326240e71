"""Unit tests for the in-memory task queue."""

from __future__ import annotations

import threading

import pytest

from doc_vectorizer.errors import InvalidStatusTransition, TaskNotFoundError
from doc_vectorizer.tasks import InMemoryQueue, ProcessingTask, TaskMetadata, TaskPriority, TaskStatus


def _task(name: str = "doc.txt", priority: TaskPriority = TaskPriority.NORMAL, **kwargs) -> ProcessingTask:
    return ProcessingTask(file_name=name, priority=priority, **kwargs)


# ── Ordering ────────────────────────────────────────────────────────────


class TestOrdering:
    def test_empty_queue_dequeues_none(self, queue: InMemoryQueue) -> None:
        assert queue.dequeue() is None

    def test_fifo_within_priority(self, queue: InMemoryQueue) -> None:
        tasks = [_task(f"doc{i}.txt") for i in range(3)]
        for t in tasks:
            queue.enqueue(t)
        assert [queue.dequeue().id for _ in tasks] == [t.id for t in tasks]

    def test_higher_priority_first(self, queue: InMemoryQueue) -> None:
        low = _task("low", TaskPriority.LOW)
        normal = _task("normal")
        urgent = _task("urgent", TaskPriority.URGENT)
        for t in (low, normal, urgent):
            queue.enqueue(t)
        assert [queue.dequeue().file_name for _ in range(3)] == ["urgent", "normal", "low"]

    def test_parent_records_are_never_dequeued(self, queue: InMemoryQueue) -> None:
        parent = _task(metadata=TaskMetadata(is_parent_task=True))
        queue.enqueue(parent)
        assert queue.dequeue() is None
        assert queue.get_task(parent.id) is not None

    def test_reenqueue_replaces(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        queue.enqueue(task.model_copy(update={"priority": TaskPriority.HIGH}))
        assert len(queue) == 1
        assert queue.pending_count == 1
        assert queue.dequeue().priority is TaskPriority.HIGH

    def test_dequeue_is_atomic_across_threads(self, queue: InMemoryQueue) -> None:
        for i in range(200):
            queue.enqueue(_task(f"doc{i}"))
        seen: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            while (task := queue.dequeue()) is not None:
                with lock:
                    seen.append(task.id)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(seen) == 200
        assert len(set(seen)) == 200


# ── Claiming and priority ───────────────────────────────────────────────


class TestClaiming:
    def test_dequeue_claims_the_task(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        claimed = queue.dequeue()
        assert claimed.status is TaskStatus.PROCESSING
        assert claimed.started_at is not None
        assert queue.get_task(task.id).status is TaskStatus.PROCESSING

    def test_set_priority_does_not_requeue_a_claimed_task(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        queue.dequeue()
        queue.update_task_status(task.id, TaskStatus.PROCESSING, progress=40)

        updated = queue.set_priority(task.id, TaskPriority.URGENT)
        assert updated.priority is TaskPriority.URGENT
        assert updated.progress == 40
        assert queue.pending_count == 0
        assert queue.dequeue() is None

    def test_set_priority_reorders_pending(self, queue: InMemoryQueue) -> None:
        first, second = _task("first"), _task("second")
        queue.enqueue(first)
        queue.enqueue(second)
        queue.set_priority(second.id, TaskPriority.HIGH)
        assert [queue.dequeue().file_name for _ in range(2)] == ["second", "first"]

    def test_set_priority_unknown_task(self, queue: InMemoryQueue) -> None:
        with pytest.raises(TaskNotFoundError):
            queue.set_priority("task_missing", TaskPriority.LOW)


# ── Status writes ───────────────────────────────────────────────────────


class TestStatusUpdates:
    def test_processing_sets_started_at(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        updated = queue.update_task_status(task.id, TaskStatus.PROCESSING, progress=10)
        assert updated.status is TaskStatus.PROCESSING
        assert updated.started_at is not None
        assert updated.progress == 10

    def test_terminal_sets_completed_at(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        queue.update_task_status(task.id, TaskStatus.PROCESSING)
        done = queue.update_task_status(task.id, TaskStatus.COMPLETED, progress=100)
        assert done.completed_at is not None
        assert done.completed_at >= done.started_at

    def test_progress_is_clamped(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        assert queue.update_task_status(task.id, TaskStatus.PENDING, progress=250).progress == 100

    def test_terminal_status_cannot_be_left(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        queue.update_task_status(task.id, TaskStatus.CANCELLED)
        with pytest.raises(InvalidStatusTransition):
            queue.update_task_status(task.id, TaskStatus.PROCESSING)

    def test_pending_cannot_jump_to_completed(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        with pytest.raises(InvalidStatusTransition):
            queue.update_task_status(task.id, TaskStatus.COMPLETED)

    def test_failed_can_return_to_pending(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        queue.update_task_status(task.id, TaskStatus.FAILED, error="boom")
        retried = queue.update_task_status(task.id, TaskStatus.PENDING)
        assert retried.error is None
        assert retried.completed_at is None

    def test_cancelled_pending_task_is_not_dequeued(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        queue.update_task_status(task.id, TaskStatus.CANCELLED)
        assert queue.dequeue() is None

    def test_unknown_task(self, queue: InMemoryQueue) -> None:
        with pytest.raises(TaskNotFoundError):
            queue.update_task_status("task_missing", TaskStatus.PROCESSING)


# ── Reads ───────────────────────────────────────────────────────────────


class TestReads:
    def test_reads_are_copies(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        copy = queue.get_task(task.id)
        copy.status = TaskStatus.COMPLETED
        assert queue.get_task(task.id).status is TaskStatus.PENDING

    def test_get_tasks_by_status(self, queue: InMemoryQueue) -> None:
        a, b = _task("a"), _task("b")
        queue.enqueue(a)
        queue.enqueue(b)
        queue.update_task_status(b.id, TaskStatus.PROCESSING)
        assert [t.id for t in queue.get_tasks_by_status(TaskStatus.PENDING)] == [a.id]

    def test_remove_task(self, queue: InMemoryQueue) -> None:
        task = _task()
        queue.enqueue(task)
        assert queue.remove_task(task.id) is True
        assert queue.remove_task(task.id) is False
        assert queue.get_task(task.id) is None
        assert queue.dequeue() is None
