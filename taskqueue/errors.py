"""Errors raised by task queues."""


class QueueError(Exception):
    """Base class for queue errors."""

    default_message = "queue error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class QueueClosedError(QueueError):
    """Raised when operating on a closed queue."""

    default_message = "queue is closed"


class TaskNotFoundError(QueueError):
    """Raised when a task id is unknown to the queue."""

    default_message = "task not found"


class QueueFullError(QueueError):
    """Raised when the queue is at capacity."""

    default_message = "queue is full"


class InvalidTaskError(QueueError):
    """Raised when an invalid task is supplied."""

    default_message = "invalid task"