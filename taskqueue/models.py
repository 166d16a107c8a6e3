"""Task and task-result records, their JSON form and identifier helpers."""

from __future__ import annotations

import json
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    """Lifecycle state of a task."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class TaskType(str, Enum):
    """Kinds of work the default processor understands."""

    EMAIL = "email"
    IMAGE_RESIZE = "image_resize"
    DATA_PROCESS = "data_process"
    WEBHOOK = "webhook"

    def __str__(self) -> str:
        return self.value


_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_FRACTION = re.compile(r"\.(\d+)")


def generate_task_id() -> str:
    """Return a unique task identifier: ``task_<nanoseconds>_<8 hex digits>``."""
    return f"task_{time.time_ns()}_{secrets.token_hex(4)}"


def generate_worker_id() -> str:
    """Return a unique worker identifier: ``worker_<16 hex digits>``."""
    return f"worker_{secrets.token_hex(8)}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _text(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _coerce(enum_type: type[Enum], value: str) -> Any:
    try:
        return enum_type(value)
    except ValueError:
        return value


def _format_time(moment: datetime) -> str:
    text = moment.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_time(text: str) -> datetime:
    normalised = text.strip()
    if normalised.endswith(("Z", "z")):
        normalised = normalised[:-1] + "+00:00"
    normalised = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalised, count=1)
    try:
        return datetime.fromisoformat(normalised)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {text!r}") from exc


@dataclass
class Task:
    """A unit of work to be processed. Higher priority numbers run first."""

    type: str
    payload: dict[str, Any] | None = None
    id: str = field(default_factory=generate_task_id)
    status: str = TaskStatus.PENDING
    priority: int = 0
    max_retries: int = 3
    retry_count: int = 0
    created_at: datetime = field(default_factory=_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str = ""
    worker_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form; empty optional fields are left out."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": _text(self.type),
            "payload": self.payload,
            "status": _text(self.status),
            "priority": self.priority,
            "max_retries": self.max_retries,
            "retry_count": self.retry_count,
            "created_at": _format_time(self.created_at),
        }
        if self.started_at is not None:
            data["started_at"] = _format_time(self.started_at)
        if self.completed_at is not None:
            data["completed_at"] = _format_time(self.completed_at)
        if self.error:
            data["error"] = self.error
        if self.worker_id:
            data["worker_id"] = self.worker_id
        return data

    def to_json(self) -> str:
        """Serialise the task to a JSON string."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def can_retry(self) -> bool:
        """Whether the task has retries left."""
        return self.retry_count < self.max_retries

    def mark_started(self, worker_id: str) -> None:
        """Record that ``worker_id`` has begun processing the task."""
        self.status = TaskStatus.PROCESSING
        self.started_at = _now()
        self.worker_id = worker_id

    def mark_completed(self) -> None:
        """Record successful completion."""
        self.status = TaskStatus.COMPLETED
        self.completed_at = _now()

    def mark_failed(self, error: str) -> None:
        """Record a failure and count it against the retry budget."""
        self.status = TaskStatus.FAILED
        self.completed_at = _now()
        self.error = error
        self.retry_count += 1


@dataclass
class TaskResult:
    """Outcome of processing a task."""

    task_id: str
    success: bool
    result: dict[str, Any] | None = None
    error: str = ""
    duration: timedelta = timedelta(0)
    worker_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form; the duration is in nanoseconds."""
        data: dict[str, Any] = {"task_id": self.task_id, "success": self.success}
        if self.result:
            data["result"] = self.result
        if self.error:
            data["error"] = self.error
        data["duration"] = (self.duration // timedelta(microseconds=1)) * 1000
        data["worker_id"] = self.worker_id
        return data


def new_task(task_type: str, payload: dict[str, Any] | None) -> Task:
    """Create a pending task with default priority and retry budget."""
    return Task(type=task_type, payload=payload)


def _field(obj: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = obj.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"field {key!r} has invalid value {value!r}")
    return value


def task_from_json(data: str | bytes) -> Task:
    """Build a task from its JSON form; raise ValueError on malformed input."""
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError("task JSON must be an object")

    started = _field(obj, "started_at", str, None)
    completed = _field(obj, "completed_at", str, None)
    created = _field(obj, "created_at", str, None)

    return Task(
        id=_field(obj, "id", str, ""),
        type=_coerce(TaskType, _field(obj, "type", str, "")),
        payload=_field(obj, "payload", dict, None),
        status=_coerce(TaskStatus, _field(obj, "status", str, "")),
        priority=_field(obj, "priority", int, 0),
        max_retries=_field(obj, "max_retries", int, 0),
        retry_count=_field(obj, "retry_count", int, 0),
        created_at=_parse_time(created) if created is not None else _ZERO_TIME,
        started_at=_parse_time(started) if started is not None else None,
        completed_at=_parse_time(completed) if completed is not None else None,
        error=_field(obj, "error", str, ""),
        worker_id=_field(obj, "worker_id", str, ""),
    )