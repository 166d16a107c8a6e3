"""Command that runs the task queue, its workers and the HTTP API."""

from __future__ import annotations

import argparse
import logging
import os
import re
import signal
import threading
import time

from taskqueue.pool import WorkerPool
from taskqueue.processor import DefaultTaskProcessor
from taskqueue.queue import MemoryQueue
from taskqueue.server import Server

log = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_WORKER_COUNT = 5
DEFAULT_QUEUE_SIZE = 1000
SHUTDOWN_TIMEOUT = 30.0

_INTEGER = re.compile(r"[+-]?[0-9]+")


def get_env_int(key: str, default: int) -> int:
    """Integer value of environment variable ``key``, or ``default`` if unset or invalid."""
    value = os.environ.get(key, "")
    if value:
        if _INTEGER.fullmatch(value):
            return int(value)
        log.warning("Warning: Invalid value for %s: %s, using default %d", key, value, default)
    return default


def get_env_string(key: str, default: str) -> str:
    """Value of environment variable ``key``, or ``default`` if unset or empty."""
    return os.environ.get(key, "") or default


def _monitor_results(pool: WorkerPool, stop: threading.Event) -> None:
    while not stop.is_set():
        result = pool.next_result(timeout=0.5)
        if result is None:
            continue
        status = "COMPLETED" if result.success else "FAILED"
        log.info(
            "Task Result: %s - Task %s (%s) processed by %s in %s",
            status, result.task_id, str(result.success).lower(), result.worker_id, result.duration,
        )
    log.info("Result monitor shutting down")


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


def _run(stop_requested: threading.Event) -> int:
    log.info("Starting Distributed Task Queue System...")
    port = get_env_int("PORT", DEFAULT_PORT)
    worker_count = get_env_int("WORKER_COUNT", DEFAULT_WORKER_COUNT)
    queue_size = get_env_int("QUEUE_SIZE", DEFAULT_QUEUE_SIZE)
    redis_url = get_env_string("REDIS_URL", "")
    log.info("Configuration: port=%d, workers=%d, queue_size=%d", port, worker_count, queue_size)

    if redis_url:
        log.warning(
            "Failed to connect to Redis at %s: Redis queue is not available. Falling back to memory queue.",
            redis_url,
        )
    task_queue = MemoryQueue(queue_size)
    log.info("Memory queue initialized with buffer size %d", queue_size)

    processor = DefaultTaskProcessor()
    log.info("Default task processor initialized")
    pool = WorkerPool(task_queue, processor, worker_count)
    log.info("Worker pool initialized with %d workers", worker_count)
    server = Server(task_queue, pool, port)
    log.info("HTTP server initialized on port %d", port)

    pool.start()
    try:
        server.start()
    except OSError as exc:
        log.error("Failed to start HTTP server: %s", exc)
        pool.stop(SHUTDOWN_TIMEOUT)
        task_queue.close()
        return 1

    monitor_stop = threading.Event()
    monitor = threading.Thread(
        target=_monitor_results, args=(pool, monitor_stop), name="result-monitor", daemon=True
    )
    monitor.start()

    log.info("Distributed Task Queue System started successfully!")
    log.info("API endpoints available:")
    for method, path in (
        ("POST", "tasks"), ("GET", "tasks/{id}"), ("GET", "health"), ("GET", "stats"), ("GET", "workers"),
    ):
        log.info("   - %-6s http://localhost:%d/api/v1/%s", method, server.port, path)

    while not stop_requested.wait(0.5):
        pass
    log.info("Shutdown signal received, initiating graceful shutdown...")

    deadline = time.monotonic() + SHUTDOWN_TIMEOUT
    log.info("Stopping HTTP server...")
    try:
        server.stop(_remaining(deadline))
    except TimeoutError as exc:
        log.error("Error stopping HTTP server: %s", exc)

    log.info("Stopping worker pool...")
    try:
        pool.stop(_remaining(deadline))
    except TimeoutError as exc:
        log.error("Error stopping worker pool: %s", exc)

    log.info("Closing task queue...")
    task_queue.close()
    monitor_stop.set()
    monitor.join(1.0)

    log.info("Distributed Task Queue System shut down gracefully")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run until SIGINT or SIGTERM; configured through PORT, WORKER_COUNT, QUEUE_SIZE and REDIS_URL."""
    parser = argparse.ArgumentParser(
        prog="taskqueue",
        description="Run the task queue server. Configure it with the environment variables "
        "PORT, WORKER_COUNT, QUEUE_SIZE and REDIS_URL.",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    stop_requested = threading.Event()
    signals = (signal.SIGINT, signal.SIGTERM)
    previous = {sig: signal.signal(sig, lambda *_: stop_requested.set()) for sig in signals}
    try:
        return _run(stop_requested)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


if __name__ == "__main__":
    raise SystemExit(main())