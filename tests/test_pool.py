import threading
import time
from datetime import timedelta

import pytest

from taskqueue.models import TaskResult, TaskStatus, TaskType, new_task
from taskqueue.pool import WorkerPool
from taskqueue.processor import TaskProcessor
from taskqueue.queue import MemoryQueue


class _Succeed(TaskProcessor):
    def process_task(self, task, cancel=None):
        return TaskResult(task_id=task.id, success=True, result={"ok": True})


class _Fail(TaskProcessor):
    def process_task(self, task, cancel=None):
        return TaskResult(task_id=task.id, success=False, error="boom")


class _Blocking(TaskProcessor):
    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def process_task(self, task, cancel=None):
        self.entered.set()
        self.release.wait(5)
        return TaskResult(task_id=task.id, success=True)


@pytest.fixture
def memory_queue():
    q = MemoryQueue(10)
    yield q
    q.close()


def test_completed_task_is_published(memory_queue):
    pool = WorkerPool(memory_queue, _Succeed(), 2)
    pool.start()
    try:
        task = new_task(TaskType.EMAIL, {})
        memory_queue.enqueue(task)
        result = pool.next_result(timeout=5)
        assert result.task_id == task.id
        assert result.success
        assert result.worker_id.startswith("worker-")
        assert result.duration >= timedelta(0)
        stored = memory_queue.get_task(task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.completed_at is not None
        assert stored.worker_id == result.worker_id
    finally:
        pool.stop(timeout=5)


def test_failed_task_is_retried_until_budget_spent(memory_queue):
    pool = WorkerPool(memory_queue, _Fail(), 1)
    pool.start()
    try:
        task = new_task(TaskType.WEBHOOK, {})
        task.max_retries = 2
        memory_queue.enqueue(task)
        results = [pool.next_result(timeout=5), pool.next_result(timeout=5)]
        assert [r.task_id for r in results] == [task.id, task.id]
        assert all(not r.success for r in results)
        stored = memory_queue.get_task(task.id)
        assert stored.retry_count == 2
        assert stored.status == TaskStatus.FAILED
        assert stored.error == "boom"
        assert not stored.can_retry()
        assert pool.next_result(timeout=0.3) is None
    finally:
        pool.stop(timeout=5)


def test_start_twice_raises(memory_queue):
    pool = WorkerPool(memory_queue, _Succeed(), 1)
    pool.start()
    try:
        with pytest.raises(RuntimeError, match="already running"):
            pool.start()
    finally:
        pool.stop(timeout=5)


def test_stop_when_not_running_is_harmless(memory_queue):
    pool = WorkerPool(memory_queue, _Succeed(), 1)
    pool.stop(timeout=1)
    assert pool.status().running is False


def test_status_reports_workers(memory_queue):
    pool = WorkerPool(memory_queue, _Succeed(), 3)
    before = pool.status()
    assert before.running is False
    assert before.worker_count == 3
    assert before.workers == []

    pool.start()
    try:
        during = pool.status()
        assert during.running is True
        assert len(during.workers) == 3
        assert all(worker.running for worker in during.workers)
        ids = [worker.id for worker in during.workers]
        assert len(set(ids)) == 3
        for index, worker_id in enumerate(ids):
            assert worker_id.startswith(f"worker-{index}-worker_")
        assert during.to_dict()["workers"][0]["id"] == ids[0]
    finally:
        pool.stop(timeout=5)

    after = pool.status()
    assert after.running is False
    assert all(not worker.running for worker in after.workers)


def test_status_reports_queue_size(memory_queue):
    pool = WorkerPool(memory_queue, _Succeed(), 1)
    memory_queue.enqueue(new_task(TaskType.EMAIL, {}))
    memory_queue.enqueue(new_task(TaskType.EMAIL, {}))
    assert pool.status().queue_size == memory_queue.size() == 2


def test_next_result_after_stop_returns_none(memory_queue):
    pool = WorkerPool(memory_queue, _Succeed(), 1)
    pool.start()
    pool.stop(timeout=5)
    started = time.monotonic()
    assert pool.next_result(timeout=5) is None
    assert time.monotonic() - started < 1


def test_stop_times_out_while_task_runs(memory_queue):
    processor = _Blocking()
    pool = WorkerPool(memory_queue, processor, 1)
    pool.start()
    try:
        memory_queue.enqueue(new_task(TaskType.EMAIL, {}))
        assert processor.entered.wait(5)
        with pytest.raises(TimeoutError):
            pool.stop(timeout=0.2)
        assert pool.status().running is True
    finally:
        processor.release.set()
    pool.stop(timeout=5)
    assert pool.status().running is False


def test_negative_worker_count_rejected(memory_queue):
    with pytest.raises(ValueError):
        WorkerPool(memory_queue, _Succeed(), -1)