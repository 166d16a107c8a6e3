"""A pool of worker threads that pull tasks from a queue and process them."""

from __future__ import annotations

import logging
import queue as stdqueue
import threading
import time
from collections import deque
from datetime import timedelta

from taskqueue.errors import QueueError
from taskqueue.models import TaskResult, TaskStatus, generate_worker_id
from taskqueue.processor import TaskProcessor, WorkerPoolStatus, WorkerStatus
from taskqueue.queue import Queue

log = logging.getLogger(__name__)


class WorkerPool:
    """Runs ``worker_count`` workers plus a result handler.

    Each result updates the task in the queue (re-enqueueing failed tasks
    that have retries left) and is then made available via ``next_result``.
    """

    TASK_TIMEOUT = 30.0
    IDLE_WAIT = 0.1
    _POLL = 0.1

    def __init__(self, queue: Queue, processor: TaskProcessor, worker_count: int) -> None:
        if worker_count < 0:
            raise ValueError("worker count must not be negative")
        self._queue = queue
        self._processor = processor
        self._worker_count = worker_count
        self._lock = threading.Lock()
        self._running = False
        self._worker_ids: list[str] = []
        self._threads: list[threading.Thread] = []
        self._stop_workers = threading.Event()
        self._shutdown = threading.Event()
        self._pending: stdqueue.Queue[TaskResult] = stdqueue.Queue(maxsize=max(1, worker_count * 2))
        self._published: deque[TaskResult] = deque()
        self._published_cond = threading.Condition()
        self._closed = False

    def start(self) -> None:
        """Start the workers; raise RuntimeError if already running."""
        with self._lock:
            if self._running:
                raise RuntimeError("worker pool is already running")
            log.info("Starting worker pool with %d workers", self._worker_count)

            stop_workers = self._stop_workers = threading.Event()
            shutdown = self._shutdown = threading.Event()
            with self._published_cond:
                self._closed = False

            self._worker_ids = [
                f"worker-{index}-{generate_worker_id()}" for index in range(self._worker_count)
            ]
            self._threads = [
                threading.Thread(
                    target=self._run_worker,
                    args=(worker_id, stop_workers, shutdown),
                    name=worker_id,
                    daemon=True,
                )
                for worker_id in self._worker_ids
            ]
            self._threads.append(
                threading.Thread(
                    target=self._process_results, args=(shutdown,), name="result-processor", daemon=True
                )
            )
            for thread in self._threads:
                thread.start()

            self._running = True
            log.info("Worker pool started successfully")

    def stop(self, timeout: float | None = None) -> None:
        """Signal the workers and wait for them; raise TimeoutError if they do not finish."""
        with self._lock:
            if not self._running:
                return
            log.info("Shutting down worker pool...")
            self._stop_workers.set()
            self._shutdown.set()
            threads = list(self._threads)

        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        if any(thread.is_alive() for thread in threads):
            log.warning("Worker pool shutdown timed out")
            raise TimeoutError("worker pool shutdown timed out")

        log.info("Worker pool shut down gracefully")
        with self._lock:
            self._running = False
        with self._published_cond:
            self._closed = True
            self._published_cond.notify_all()

    def status(self) -> WorkerPoolStatus:
        """Snapshot of the pool and its workers."""
        with self._lock:
            return WorkerPoolStatus(
                running=self._running,
                worker_count=self._worker_count,
                queue_size=self._queue.size(),
                workers=[WorkerStatus(id=worker_id, running=self._running) for worker_id in self._worker_ids],
            )

    def next_result(self, timeout: float | None = None) -> TaskResult | None:
        """Next handled result, or None on timeout or once the pool has stopped and drained."""
        with self._published_cond:
            self._published_cond.wait_for(lambda: self._published or self._closed, timeout)
            if self._published:
                return self._published.popleft()
            return None

    def _run_worker(self, worker_id: str, stop: threading.Event, shutdown: threading.Event) -> None:
        log.info("Worker %s started", worker_id)
        while not stop.is_set():
            self._process_next_task(worker_id, stop, shutdown)
        log.info("Worker %s shutting down", worker_id)

    def _process_next_task(self, worker_id: str, stop: threading.Event, shutdown: threading.Event) -> None:
        try:
            task = self._queue.dequeue()
        except QueueError as exc:
            log.warning("Worker %s failed to dequeue task: %s", worker_id, exc)
            stop.wait(self.IDLE_WAIT)
            return
        if task is None:
            stop.wait(self.IDLE_WAIT)
            return

        task.mark_started(worker_id)
        try:
            self._queue.update_task(task)
        except QueueError as exc:
            log.warning("Worker %s failed to update task %s: %s", worker_id, task.id, exc)
            return

        log.info("Worker %s processing task %s (type: %s)", worker_id, task.id, task.type)
        cancel = threading.Event()
        timer = threading.Timer(self.TASK_TIMEOUT, cancel.set)
        timer.daemon = True
        timer.start()
        started = time.monotonic()
        try:
            result = self._processor.process_task(task, cancel)
        finally:
            timer.cancel()
        result.duration = timedelta(seconds=time.monotonic() - started)
        result.worker_id = worker_id

        while True:
            try:
                self._pending.put(result, timeout=self._POLL)
                return
            except stdqueue.Full:
                if shutdown.is_set():
                    log.warning("Worker %s cancelled while sending result", worker_id)
                    return

    def _process_results(self, shutdown: threading.Event) -> None:
        while not shutdown.is_set():
            try:
                result = self._pending.get(timeout=self._POLL)
            except stdqueue.Empty:
                continue
            self._handle_result(result)
            with self._published_cond:
                self._published.append(result)
                self._published_cond.notify_all()
        log.info("Result processor shutting down")

    def _handle_result(self, result: TaskResult) -> None:
        try:
            task = self._queue.get_task(result.task_id)
        except QueueError as exc:
            log.warning("Failed to get task %s: %s", result.task_id, exc)
            return

        if result.success:
            task.mark_completed()
            log.info(
                "Task %s completed successfully by worker %s in %s",
                result.task_id, result.worker_id, result.duration,
            )
        else:
            task.mark_failed(result.error)
            log.info("Task %s failed on worker %s: %s", result.task_id, result.worker_id, result.error)
            if task.can_retry():
                task.status = TaskStatus.PENDING
                try:
                    self._queue.enqueue(task)
                except (QueueError, TimeoutError) as exc:
                    log.warning("Failed to re-enqueue task %s for retry: %s", task.id, exc)
                else:
                    log.info(
                        "Task %s re-enqueued for retry (%d/%d)", task.id, task.retry_count, task.max_retries
                    )

        try:
            self._queue.update_task(task)
        except QueueError as exc:
            log.warning("Failed to update task %s: %s", task.id, exc)