"""Exception hierarchy shared by every layer of the pipeline."""

from __future__ import annotations


class VectorizerError(Exception):
    """Base class for all errors raised by ``doc_vectorizer``."""


# -- embedding provider -------------------------------------------------------


class EmbeddingError(VectorizerError):
    """An embedding provider call failed.

    ``retryable`` tells the chunk processor whether a later attempt can
    succeed.  Unknown provider failures are treated as transient.
    """

    retryable: bool = True


class EmptyInputError(EmbeddingError):
    """The text to embed was empty or whitespace-only."""

    retryable = False


class InputTooLargeError(EmbeddingError):
    """The text exceeds what the provider accepts in one call."""

    retryable = False


class TransientEmbeddingError(EmbeddingError):
    """Rate limit, timeout or network failure."""

    retryable = True


class EmbeddingAuthenticationError(EmbeddingError):
    """The provider rejected our credentials or configuration."""

    retryable = False


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is worth another attempt."""
    if isinstance(exc, EmbeddingError):
        return exc.retryable
    return not isinstance(exc, (TaskCancelledError, ValueError, TypeError))


# -- tasks --------------------------------------------------------------------


class TaskCancelledError(VectorizerError):
    """Raised inside a task once its cancellation token has been tripped."""

    def __init__(self, task_id: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} was cancelled" if task_id else "Task was cancelled")


class TaskNotFoundError(VectorizerError, KeyError):
    """No task with the given id exists in the queue."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")

    def __str__(self) -> str:
        return self.args[0]


class InvalidStatusTransition(VectorizerError):
    """A status write would leave a terminal state or skip a step."""

    def __init__(self, task_id: str, current: str, requested: str) -> None:
        self.task_id = task_id
        self.current = current
        self.requested = requested
        super().__init__(f"Task {task_id}: cannot move from {current!r} to {requested!r}")


# -- collaborators ------------------------------------------------------------


class StorageError(VectorizerError):
    """The object store could not resolve a key."""
