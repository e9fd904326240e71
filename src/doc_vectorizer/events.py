"""Observer interfaces for progress and task lifecycle events.

Subclass and override only the hooks you need; every hook defaults to a
no-op.  Hooks are called from the event loop running the processor and
must not block.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doc_vectorizer.tasks.models import ProcessingResult, ProcessingTask


class ProgressListener:
    """Receives batch-level progress from the chunk processor."""

    def on_progress(self, processed: int, total: int) -> None:
        """Called after every batch with the number of chunks attempted so far."""


class ProcessorObserver:
    """Receives task lifecycle events from the background processor.

    Each task produces exactly one of ``on_task_completed``,
    ``on_task_failed`` or ``on_task_cancelled`` per execution.
    ``on_task_result`` runs before the terminal write; an exception
    raised there fails the task instead of completing it.
    """

    def on_task_started(self, task: ProcessingTask) -> None:
        """The task was marked ``processing``."""

    def on_task_progress(self, task: ProcessingTask, progress: int) -> None:
        """The task's progress percentage changed."""

    def on_task_result(self, task: ProcessingTask, result: ProcessingResult) -> None:
        """The task produced *result* and is still ``processing``."""

    def on_task_completed(self, task: ProcessingTask, result: ProcessingResult) -> None:
        """The task finished; *result* may still be partial (``is_complete=False``)."""

    def on_task_failed(self, task: ProcessingTask, error: BaseException) -> None:
        """The task was marked ``failed``."""

    def on_task_cancelled(self, task: ProcessingTask) -> None:
        """The task was marked ``cancelled``."""


class CompositeObserver(ProcessorObserver):
    """Fan one event out to several observers, in order."""

    def __init__(self, *observers: ProcessorObserver) -> None:
        self.observers = list(observers)

    def on_task_started(self, task: ProcessingTask) -> None:
        for obs in self.observers:
            obs.on_task_started(task)

    def on_task_progress(self, task: ProcessingTask, progress: int) -> None:
        for obs in self.observers:
            obs.on_task_progress(task, progress)

    def on_task_result(self, task: ProcessingTask, result: ProcessingResult) -> None:
        for obs in self.observers:
            obs.on_task_result(task, result)

    def on_task_completed(self, task: ProcessingTask, result: ProcessingResult) -> None:
        for obs in self.observers:
            obs.on_task_completed(task, result)

    def on_task_failed(self, task: ProcessingTask, error: BaseException) -> None:
        for obs in self.observers:
            obs.on_task_failed(task, error)

    def on_task_cancelled(self, task: ProcessingTask) -> None:
        for obs in self.observers:
            obs.on_task_cancelled(task)
