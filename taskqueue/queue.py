"""Task queue interface and an in-memory, thread-safe implementation."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass

from taskqueue.errors import QueueClosedError, TaskNotFoundError
from taskqueue.models import Task


class Queue(ABC):
    """Contract for task queue implementations."""

    @abstractmethod
    def enqueue(self, task: Task, timeout: float | None = None) -> None:
        """Add a task to the queue."""

    @abstractmethod
    def dequeue(self) -> Task | None:
        """Remove and return a task, or None if none is available."""

    @abstractmethod
    def size(self) -> int:
        """Number of tasks waiting in the queue."""

    @abstractmethod
    def close(self) -> None:
        """Shut the queue down."""

    @abstractmethod
    def get_task(self, task_id: str) -> Task:
        """Look a task up by id without removing it."""

    @abstractmethod
    def update_task(self, task: Task) -> None:
        """Replace the stored record of an existing task."""


@dataclass(eq=False)
class _PendingSend:
    task: Task
    taken: bool = False


class MemoryQueue(Queue):
    """In-memory queue with a bounded buffer and priority lanes.

    Tasks with a positive priority are kept in per-priority lanes, which are
    served highest first before the buffer. Such tasks are also placed in the
    buffer when it has room. Normal tasks wait for room in the buffer.
    """

    def __init__(self, buffer_size: int) -> None:
        if buffer_size < 0:
            raise ValueError("buffer size must not be negative")
        self._capacity = buffer_size
        self._buffer: deque[Task] = deque()
        self._senders: deque[_PendingSend] = deque()
        self._store: dict[str, Task] = {}
        self._priorities: dict[int, deque[Task]] = {}
        self._closed = False
        self._cond = threading.Condition()

    def enqueue(self, task: Task, timeout: float | None = None) -> None:
        """Add a task; normal tasks block until there is room.

        Raises QueueClosedError if the queue is or becomes closed, and
        TimeoutError if no room appears within ``timeout`` seconds.
        """
        with self._cond:
            if self._closed:
                raise QueueClosedError()
            self._store[task.id] = task

            if task.priority > 0:
                self._priorities.setdefault(task.priority, deque()).append(task)
                if len(self._buffer) < self._capacity:
                    self._buffer.append(task)
                return

            if len(self._buffer) < self._capacity and not self._senders:
                self._buffer.append(task)
                return

            pending = _PendingSend(task)
            self._senders.append(pending)
            deadline = None if timeout is None else time.monotonic() + timeout
            while not pending.taken:
                if self._closed:
                    self._senders.remove(pending)
                    raise QueueClosedError()
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    self._senders.remove(pending)
                    raise TimeoutError("timed out waiting for room in the queue")
                self._cond.wait(remaining)

    def dequeue(self) -> Task | None:
        """Return the next task without blocking, or None if there is none.

        Raises QueueClosedError once the queue is closed and drained.
        """
        with self._cond:
            task = self._pop_priority()
            if task is not None:
                return task
            if self._buffer:
                task = self._buffer.popleft()
                if self._senders and not self._closed:
                    pending = self._senders.popleft()
                    pending.taken = True
                    self._buffer.append(pending.task)
                    self._cond.notify_all()
                return task
            if self._closed:
                raise QueueClosedError()
            if self._senders:
                pending = self._senders.popleft()
                pending.taken = True
                self._cond.notify_all()
                return pending.task
            return None

    def _pop_priority(self) -> Task | None:
        if not self._priorities:
            return None
        highest = max(self._priorities)
        lane = self._priorities[highest]
        task = lane.popleft()
        if not lane:
            del self._priorities[highest]
        return task

    def size(self) -> int:
        with self._cond:
            return len(self._buffer) + sum(len(lane) for lane in self._priorities.values())

    def get_task(self, task_id: str) -> Task:
        with self._cond:
            try:
                return self._store[task_id]
            except KeyError:
                raise TaskNotFoundError() from None

    def update_task(self, task: Task) -> None:
        with self._cond:
            if self._closed:
                raise QueueClosedError()
            if task.id not in self._store:
                raise TaskNotFoundError()
            self._store[task.id] = task

    def close(self) -> None:
        with self._cond:
            if not self._closed:
                self._closed = True
                self._cond.notify_all()