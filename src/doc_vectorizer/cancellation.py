"""Cooperative cancellation."""

from __future__ import annotations

import threading

from doc_vectorizer.errors import TaskCancelledError


class CancellationToken:
    """A one-way flag checked at well-defined points of a task.

    Tripping the token does not interrupt anything by itself; code that
    receives a token calls :meth:`raise_if_cancelled` before each unit
    of work.
    """

    def __init__(self, task_id: str | None = None) -> None:
        self.task_id = task_id
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskCancelledError(self.task_id)

    def __repr__(self) -> str:
        return f"CancellationToken(task_id={self.task_id!r}, cancelled={self.cancelled})"
