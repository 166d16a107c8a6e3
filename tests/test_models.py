import json
import re
from datetime import timedelta

import pytest

from taskqueue.models import (
    Task,
    TaskResult,
    TaskStatus,
    TaskType,
    generate_task_id,
    generate_worker_id,
    new_task,
    task_from_json,
)


def test_new_task_defaults():
    task = new_task(TaskType.EMAIL, {"recipient": "someone@example.com"})
    assert task.status == TaskStatus.PENDING
    assert task.priority == 0
    assert task.max_retries == 3
    assert task.retry_count == 0
    assert task.started_at is None
    assert task.completed_at is None
    assert task.payload == {"recipient": "someone@example.com"}


def test_task_id_format_and_uniqueness():
    ids = {generate_task_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(re.fullmatch(r"task_\d+_[0-9a-f]{8}", i) for i in ids)


def test_worker_id_format():
    worker_id = generate_worker_id()
    assert re.fullmatch(r"worker_[0-9a-f]{16}", worker_id)
    assert generate_worker_id() != worker_id


def test_enum_values_follow_wire_format():
    task = new_task(TaskType.IMAGE_RESIZE, {"image_url": "http://example.com/a.png"})
    task.mark_started("worker-1")
    data = task.to_dict()
    assert data["status"] == "processing"
    assert data["type"] == "image_resize"
    restored = task_from_json('{"id":"t1","type":"data_process","status":"pending"}')
    assert restored.type is TaskType.DATA_PROCESS
    assert str(restored.type) == "data_process"


def test_to_dict_omits_empty_optional_fields():
    data = new_task(TaskType.WEBHOOK, {"url": "http://example.com/hook"}).to_dict()
    for key in ("started_at", "completed_at", "error", "worker_id"):
        assert key not in data
    assert data["status"] == "pending"
    assert data["type"] == "webhook"


def test_json_round_trip_preserves_fields():
    task = new_task(TaskType.EMAIL, {"recipient": "someone@example.com"})
    task.priority = 4
    task.mark_started("worker-a")
    task.mark_failed("boom")
    restored = task_from_json(task.to_json())
    assert restored == task


def test_json_round_trip_unknown_type_kept_as_text():
    task = new_task("custom", None)
    restored = task_from_json(task.to_json())
    assert restored.type == "custom"
    assert restored.payload is None
    assert json.loads(task.to_json())["payload"] is None


def test_task_from_json_accepts_zulu_and_nanoseconds():
    task = task_from_json(
        '{"id":"t1","type":"email","status":"completed",'
        '"created_at":"2024-01-02T03:04:05.123456789Z"}'
    )
    assert task.status is TaskStatus.COMPLETED
    assert task.created_at.microsecond == 123456
    assert task.created_at.utcoffset() == timedelta(0)


@pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"priority": "high"}', '{"created_at": "yesterday"}'])
def test_task_from_json_rejects_bad_input(text):
    with pytest.raises(ValueError):
        task_from_json(text)


def test_mark_started_and_completed():
    task = new_task(TaskType.EMAIL, {})
    task.mark_started("worker-7")
    assert task.status == TaskStatus.PROCESSING
    assert task.worker_id == "worker-7"
    assert task.started_at is not None
    task.mark_completed()
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at >= task.started_at


def test_mark_failed_counts_retries():
    task = Task(type=TaskType.EMAIL, max_retries=2)
    assert task.can_retry()
    task.mark_failed("first")
    assert task.retry_count == 1
    assert task.error == "first"
    assert task.status == TaskStatus.FAILED
    assert task.can_retry()
    task.mark_failed("second")
    assert not task.can_retry()


def test_task_result_to_dict():
    result = TaskResult(task_id="t1", success=True, duration=timedelta(seconds=1.5), worker_id="w")
    data = result.to_dict()
    assert data["duration"] == 1500000000
    assert "result" not in data
    assert "error" not in data
    failed = TaskResult(task_id="t2", success=False, error="unknown task type: x").to_dict()
    assert failed["error"] == "unknown task type: x"
    assert failed["duration"] == 0