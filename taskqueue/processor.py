"""Task processors and the status records reported by a worker pool."""

from __future__ import annotations

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from taskqueue.models import Task, TaskResult, TaskType

log = logging.getLogger(__name__)


@dataclass
class WorkerStatus:
    """Status of a single worker."""

    id: str
    running: bool

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form."""
        return {"id": self.id, "running": self.running}


@dataclass
class WorkerPoolStatus:
    """Status of a worker pool and its workers."""

    running: bool
    worker_count: int
    queue_size: int
    workers: list[WorkerStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form."""
        return {
            "running": self.running,
            "worker_count": self.worker_count,
            "queue_size": self.queue_size,
            "workers": [worker.to_dict() for worker in self.workers],
        }


class TaskProcessor(ABC):
    """Something that carries out a task and reports the outcome."""

    @abstractmethod
    def process_task(self, task: Task, cancel: threading.Event | None = None) -> TaskResult:
        """Process ``task``; stop early once ``cancel`` is set."""


def _format_duration(milliseconds: int) -> str:
    """Render a whole number of milliseconds like ``3.5s``, ``250ms`` or ``1m2s``."""
    if milliseconds == 0:
        return "0s"
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    hours, rest = divmod(milliseconds, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    text = (f"{seconds}.{millis:03d}".rstrip("0") if millis else str(seconds)) + "s"
    if hours:
        return f"{hours}h{minutes}m{text}"
    if minutes:
        return f"{minutes}m{text}"
    return text


def _number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


class DefaultTaskProcessor(TaskProcessor):
    """Simulates work for the built-in task types, with random delays and failures.

    ``rng`` supplies the randomness (``randrange`` and ``random``);
    ``time_scale`` multiplies every simulated delay.
    """

    def __init__(self, rng: random.Random | None = None, time_scale: float = 1.0) -> None:
        if time_scale < 0:
            raise ValueError("time scale must not be negative")
        self._rng = rng if rng is not None else random.Random()
        self._time_scale = time_scale
        self._handlers: dict[str, Callable[[Task, threading.Event], TaskResult]] = {
            TaskType.EMAIL: self._email,
            TaskType.IMAGE_RESIZE: self._image_resize,
            TaskType.DATA_PROCESS: self._data_process,
            TaskType.WEBHOOK: self._webhook,
        }

    def process_task(self, task: Task, cancel: threading.Event | None = None) -> TaskResult:
        """Dispatch on the task type; unknown types fail immediately."""
        handler = self._handlers.get(task.type)
        if handler is None:
            return TaskResult(task_id=task.id, success=False, error=f"unknown task type: {task.type}")
        return handler(task, cancel if cancel is not None else threading.Event())

    def _wait(self, cancel: threading.Event, milliseconds: int) -> bool:
        """Sleep for the simulated time; False if cancelled first."""
        return not cancel.wait(milliseconds / 1000 * self._time_scale)

    def _email(self, task: Task, cancel: threading.Event) -> TaskResult:
        payload = task.payload or {}
        recipient = payload.get("recipient")
        if not isinstance(recipient, str):
            return TaskResult(task_id=task.id, success=False, error="missing recipient in email task")
        subject = _string(payload.get("subject"))
        log.info("Sending email to %s with subject: %s", recipient, subject)

        delay = 1000 + self._rng.randrange(2000)
        if not self._wait(cancel, delay):
            return TaskResult(task_id=task.id, success=False, error="email task cancelled")
        if self._rng.random() < 0.05:
            return TaskResult(task_id=task.id, success=False, error="SMTP server connection failed")
        log.info("Email sent successfully to %s", recipient)
        return TaskResult(
            task_id=task.id,
            success=True,
            result={"message_id": f"msg_{int(time.time())}", "status": "sent"},
        )

    def _image_resize(self, task: Task, cancel: threading.Event) -> TaskResult:
        payload = task.payload or {}
        image_url = payload.get("image_url")
        if not isinstance(image_url, str):
            return TaskResult(task_id=task.id, success=False, error="missing image_url in resize task")
        width = _number(payload.get("width"))
        height = _number(payload.get("height"))
        log.info("Resizing image %s to %gx%g", image_url, width, height)

        delay = 2000 + self._rng.randrange(3000)
        if not self._wait(cancel, delay):
            return TaskResult(task_id=task.id, success=False, error="image resize task cancelled")
        if self._rng.random() < 0.10:
            return TaskResult(
                task_id=task.id, success=False, error="image processing failed: unsupported format"
            )
        log.info("Image resized successfully: %s", image_url)
        return TaskResult(
            task_id=task.id,
            success=True,
            result={
                "output_url": f"{image_url}_resized_{int(width)}x{int(height)}",
                "file_size": self._rng.randrange(1000000) + 50000,
            },
        )

    def _data_process(self, task: Task, cancel: threading.Event) -> TaskResult:
        payload = task.payload or {}
        data_source = payload.get("data_source")
        if not isinstance(data_source, str):
            return TaskResult(
                task_id=task.id, success=False, error="missing data_source in data processing task"
            )
        operation = _string(payload.get("operation"))
        log.info("Processing data from %s with operation: %s", data_source, operation)

        delay = 3000 + self._rng.randrange(5000)
        if not self._wait(cancel, delay):
            return TaskResult(task_id=task.id, success=False, error="data processing task cancelled")
        if self._rng.random() < 0.08:
            return TaskResult(
                task_id=task.id, success=False, error="data processing failed: invalid data format"
            )
        log.info("Data processing completed for: %s", data_source)
        return TaskResult(
            task_id=task.id,
            success=True,
            result={
                "records_processed": self._rng.randrange(10000) + 1000,
                "output_file": f"/tmp/processed_{int(time.time())}.csv",
                "processing_time": _format_duration(delay),
            },
        )

    def _webhook(self, task: Task, cancel: threading.Event) -> TaskResult:
        payload = task.payload or {}
        url = payload.get("url")
        if not isinstance(url, str):
            return TaskResult(task_id=task.id, success=False, error="missing url in webhook task")
        method = _string(payload.get("method")) or "POST"
        log.info("Calling webhook %s with method %s", url, method)

        delay = 1000 + self._rng.randrange(3000)
        if not self._wait(cancel, delay):
            return TaskResult(task_id=task.id, success=False, error="webhook task cancelled")
        if self._rng.random() < 0.12:
            return TaskResult(
                task_id=task.id, success=False, error="webhook call failed: connection timeout"
            )
        status_code = 500 if self._rng.random() < 0.05 else 200
        log.info("Webhook call completed: %s (status: %d)", url, status_code)
        return TaskResult(
            task_id=task.id,
            success=True,
            result={
                "status_code": status_code,
                "response_time": delay,
                "response_body": '{"status": "success", "message": "webhook processed"}',
            },
        )