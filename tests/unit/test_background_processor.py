"""Unit tests for the background processor."""

from __future__ import annotations

import asyncio

import pytest

from doc_vectorizer.events import ProcessorObserver
from doc_vectorizer.processing import BackgroundProcessor
from doc_vectorizer.tasks import ProcessingTask, TaskOptions, TaskPriority, TaskScheduler, TaskStatus


class RecordingObserver(ProcessorObserver):
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.results: dict = {}
        self.progress: list[int] = []

    def on_task_started(self, task) -> None:
        self.events.append(("started", task.id))

    def on_task_progress(self, task, progress) -> None:
        self.progress.append(progress)

    def on_task_completed(self, task, result) -> None:
        self.events.append(("completed", task.id))
        self.results[task.id] = result

    def on_task_failed(self, task, error) -> None:
        self.events.append(("failed", task.id))

    def on_task_cancelled(self, task) -> None:
        self.events.append(("cancelled", task.id))


@pytest.fixture()
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture()
def add_task(queue, make_chunks):
    def _add(n: int = 3, **options) -> ProcessingTask:
        task = ProcessingTask(file_name="doc.txt", chunks=make_chunks(n), options=TaskOptions(**options))
        queue.enqueue(task)
        return task

    return _add


def _processor(queue, provider, settings, observer=None, **kwargs) -> BackgroundProcessor:
    return BackgroundProcessor(queue, provider, settings=settings, observer=observer, **kwargs)


async def _wait_for_status(queue, task_id: str, status: TaskStatus, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while queue.get_task(task_id).status is not status:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


# ── Execution ───────────────────────────────────────────────────────────


class TestExecution:
    @pytest.mark.asyncio
    async def test_completes_pending_tasks(self, queue, provider, settings, observer, add_task) -> None:
        tasks = [add_task(), add_task()]
        processor = _processor(queue, provider, settings, observer)

        assert await processor.poll_once() == 2
        await processor.wait_for_active()

        for task in tasks:
            stored = queue.get_task(task.id)
            assert stored.status is TaskStatus.COMPLETED
            assert stored.progress == 100
            assert stored.error is None
            assert stored.started_at is not None
            assert ("completed", task.id) in observer.events
            assert observer.results[task.id].is_complete
        assert processor.get_stats().completed_tasks == 2
        assert processor.active_task_ids == []

    @pytest.mark.asyncio
    async def test_progress_stays_below_100_until_completion(
        self, queue, provider, settings, observer, add_task
    ) -> None:
        add_task(25, batch_size=10)
        processor = _processor(queue, provider, settings, observer)
        await processor.poll_once()
        await processor.wait_for_active()
        assert observer.progress == [40, 80, 99]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, queue, make_provider, settings, add_task) -> None:
        for _ in range(5):
            add_task(2)
        processor = _processor(queue, make_provider(delay=0.01), settings, max_concurrent_tasks=2)

        assert await processor.poll_once() == 2
        assert len(processor.active_task_ids) == 2
        assert await processor.poll_once() == 0
        await processor.wait_for_active()
        assert await processor.poll_once() == 2
        await processor.wait_for_active()
        assert await processor.poll_once() == 1
        await processor.wait_for_active()
        assert processor.get_stats().completed_tasks == 5

    @pytest.mark.asyncio
    async def test_partial_failure_completes_with_summary(
        self, queue, make_provider, make_chunks, settings, observer
    ) -> None:
        chunks = make_chunks(4)
        task = ProcessingTask(file_name="doc.txt", chunks=chunks, options=TaskOptions(max_retries=0))
        queue.enqueue(task)
        provider = make_provider(fail_texts=[chunks[2].content])
        processor = _processor(queue, provider, settings, observer)

        await processor.poll_once()
        await processor.wait_for_active()

        stored = queue.get_task(task.id)
        assert stored.status is TaskStatus.COMPLETED
        assert stored.error == "1 chunks failed to embed"
        result = observer.results[task.id]
        assert result.is_complete is False
        assert [e.chunk_index for e in result.errors] == [2]

    @pytest.mark.asyncio
    async def test_all_chunks_failing_fails_task(
        self, queue, make_provider, make_chunks, settings, observer
    ) -> None:
        chunks = make_chunks(3)
        task = ProcessingTask(file_name="doc.txt", chunks=chunks, options=TaskOptions(max_retries=0))
        queue.enqueue(task)
        provider = make_provider(fail_texts=[c.content for c in chunks])
        processor = _processor(queue, provider, settings, observer)

        await processor.poll_once()
        await processor.wait_for_active()

        stored = queue.get_task(task.id)
        assert stored.status is TaskStatus.FAILED
        assert "all 3 chunks failed" in stored.error
        assert ("failed", task.id) in observer.events
        assert processor.get_stats().failed_tasks == 1

    @pytest.mark.asyncio
    async def test_timeout_fails_task(self, queue, make_provider, settings, observer, add_task) -> None:
        task = add_task(2, timeout=0.05)
        processor = _processor(queue, make_provider(delay=0.5), settings, observer)

        await processor.poll_once()
        await processor.wait_for_active()

        stored = queue.get_task(task.id)
        assert stored.status is TaskStatus.FAILED
        assert stored.error.startswith("Task timed out after")
        assert ("failed", task.id) in observer.events

    @pytest.mark.asyncio
    async def test_reprioritised_running_task_is_not_launched_again(
        self, queue, make_provider, settings, add_task
    ) -> None:
        task = add_task(2)
        provider = make_provider(delay=0.02)
        processor = _processor(queue, provider, settings)
        scheduler = TaskScheduler.from_settings(queue, settings)

        assert await processor.poll_once() == 1
        assert scheduler.set_task_priority(task.id, TaskPriority.HIGH) is True
        assert await processor.poll_once() == 0
        assert processor.active_task_ids == [task.id]
        await processor.wait_for_active()

        assert sorted(provider.calls) == ["chunk-000", "chunk-001"]
        assert queue.get_task(task.id).status is TaskStatus.COMPLETED
        assert processor.get_stats().completed_tasks == 1


# ── Result hooks ────────────────────────────────────────────────────────


class TestResultHooks:
    @pytest.mark.asyncio
    async def test_result_hook_runs_before_completed_write(self, queue, provider, settings, add_task) -> None:
        seen: list[TaskStatus] = []

        class StatusAtResult(ProcessorObserver):
            def on_task_result(self, task, result) -> None:
                seen.append(queue.get_task(task.id).status)

        task = add_task()
        processor = _processor(queue, provider, settings, StatusAtResult())
        await processor.poll_once()
        await processor.wait_for_active()

        assert seen == [TaskStatus.PROCESSING]
        assert queue.get_task(task.id).status is TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failing_result_hook_fails_task_once(self, queue, provider, settings, add_task) -> None:
        class RejectingObserver(RecordingObserver):
            def on_task_result(self, task, result) -> None:
                raise ConnectionError("store down")

        observer = RejectingObserver()
        task = add_task()
        processor = _processor(queue, provider, settings, observer)
        await processor.poll_once()
        await processor.wait_for_active()

        stored = queue.get_task(task.id)
        assert stored.status is TaskStatus.FAILED
        assert stored.error == "store down"
        assert observer.events == [("started", task.id), ("failed", task.id)]
        stats = processor.get_stats()
        assert (stats.completed_tasks, stats.failed_tasks) == (0, 1)

    @pytest.mark.asyncio
    async def test_completed_observer_error_keeps_task_completed(
        self, queue, provider, settings, add_task
    ) -> None:
        class LateFailure(RecordingObserver):
            def on_task_completed(self, task, result) -> None:
                super().on_task_completed(task, result)
                raise RuntimeError("dashboard offline")

        observer = LateFailure()
        task = add_task()
        processor = _processor(queue, provider, settings, observer)
        await processor.poll_once()
        await processor.wait_for_active()

        assert queue.get_task(task.id).status is TaskStatus.COMPLETED
        assert ("failed", task.id) not in observer.events
        stats = processor.get_stats()
        assert (stats.completed_tasks, stats.failed_tasks) == (1, 0)


# ── Cancellation and lifecycle ──────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_active_task(self, queue, make_provider, settings, observer, add_task) -> None:
        task = add_task(10, batch_size=1)
        processor = _processor(queue, make_provider(delay=0.02), settings, observer)

        await processor.poll_once()
        await _wait_for_status(queue, task.id, TaskStatus.PROCESSING)
        assert processor.cancel_task(task.id) is True
        assert queue.get_task(task.id).status is TaskStatus.CANCELLED

        await processor.wait_for_active()
        assert queue.get_task(task.id).status is TaskStatus.CANCELLED
        assert ("cancelled", task.id) in observer.events
        assert ("completed", task.id) not in observer.events
        assert processor.get_stats().cancelled_tasks == 1

    @pytest.mark.asyncio
    async def test_cancel_pending_task(self, queue, provider, settings, add_task) -> None:
        task = add_task()
        processor = _processor(queue, provider, settings)
        assert processor.cancel_task(task.id) is True
        assert queue.get_task(task.id).status is TaskStatus.CANCELLED
        assert await processor.poll_once() == 0

    def test_cancel_unknown_task(self, queue, provider, settings) -> None:
        assert _processor(queue, provider, settings).cancel_task("task_missing") is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self, queue, provider, settings, add_task) -> None:
        task = add_task()
        processor = _processor(queue, provider, settings)

        await processor.start()
        assert processor.is_running
        await _wait_for_status(queue, task.id, TaskStatus.COMPLETED)
        await processor.stop()
        assert not processor.is_running

    @pytest.mark.asyncio
    async def test_stop_cancels_active_tasks(self, queue, make_provider, settings, add_task) -> None:
        task = add_task(2)
        processor = _processor(queue, make_provider(delay=0.1), settings)

        await processor.start()
        await _wait_for_status(queue, task.id, TaskStatus.PROCESSING)
        await processor.stop(wait=True)

        assert queue.get_task(task.id).status is TaskStatus.CANCELLED
        assert processor.active_task_ids == []


def test_rejects_non_positive_concurrency(queue, provider, settings) -> None:
    with pytest.raises(ValueError):
        BackgroundProcessor(queue, provider, max_concurrent_tasks=0, settings=settings)


def test_from_settings(queue, provider, settings) -> None:
    processor = BackgroundProcessor.from_settings(queue, provider, settings)
    assert processor.max_concurrent_tasks == settings.max_concurrent_tasks
    assert processor.poll_interval == settings.poll_interval
