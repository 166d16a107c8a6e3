"""HTTP API exposing a task queue and its worker pool."""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Tuple
from urllib.parse import unquote, urlsplit

from taskqueue.errors import QueueError, TaskNotFoundError
from taskqueue.models import TaskType, new_task
from taskqueue.pool import WorkerPool
from taskqueue.queue import Queue

log = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
VERSION = "1.0.0"
_ENQUEUE_TIMEOUT = 5.0
_REQUEST_TIMEOUT = 15.0

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

Response = Tuple[int, Dict[str, str], bytes]
_Handler = Callable[[Dict[str, str], bytes], Tuple[int, Any]]


def _decode_request(body: bytes | str) -> dict[str, Any]:
    """Decode the first JSON value of ``body`` as a task request object."""
    text = body.decode("utf-8") if isinstance(body, bytes) else body
    stripped = text.lstrip()
    if not stripped:
        raise ValueError("EOF")
    value, _ = json.JSONDecoder().raw_decode(stripped)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot decode JSON {type(value).__name__} into a task request")
    return value


def _request_field(obj: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = obj.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"field {key!r} has invalid value {value!r}")
    return value


def _task_type(name: str) -> str:
    try:
        return TaskType(name)
    except ValueError:
        return name


class Server:
    """Routes API requests to the queue and worker pool and serves them over HTTP."""

    def __init__(self, queue: Queue, worker_pool: WorkerPool, port: int) -> None:
        self.queue = queue
        self.worker_pool = worker_pool
        self.port = port
        self._httpd: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._routes: list[tuple[str, re.Pattern[str], _Handler]] = [
            ("POST", re.compile(rf"{API_PREFIX}/tasks"), self._create_task),
            ("GET", re.compile(rf"{API_PREFIX}/tasks/(?P<id>[^/]+)"), self._get_task),
            ("GET", re.compile(rf"{API_PREFIX}/tasks"), self._list_tasks),
            ("GET", re.compile(rf"{API_PREFIX}/health"), self._health_check),
            ("GET", re.compile(rf"{API_PREFIX}/stats"), self._stats),
            ("GET", re.compile(rf"{API_PREFIX}/workers"), self._worker_status),
        ]

    def handle(self, method: str, path: str, body: bytes | str = b"") -> Response:
        """Answer one request: return ``(status, headers, body)``."""
        return self._serve(method, path, body, "")

    def _serve(self, method: str, path: str, body: bytes | str, remote: str) -> Response:
        route_path = unquote(urlsplit(path).path)
        path_matched = False
        for route_method, pattern, handler in self._routes:
            match = pattern.fullmatch(route_path)
            if match is None:
                continue
            if route_method != method:
                path_matched = True
                continue
            started = time.monotonic()
            status, payload = handler(match.groupdict(), body)
            headers = dict(_CORS_HEADERS)
            headers["Content-Type"] = "application/json"
            encoded = (json.dumps(payload) + "\n").encode("utf-8")
            log.info("%s %s %s %.6fs", method, path, remote, time.monotonic() - started)
            return status, headers, encoded
        if path_matched:
            return 405, {}, b""
        return 404, {"Content-Type": "text/plain; charset=utf-8"}, b"404 page not found\n"

    @staticmethod
    def _error(status: int, message: str, details: str) -> tuple[int, dict[str, Any]]:
        return status, {"error": message, "code": status, "message": details}

    def _create_task(self, params: dict[str, str], body: bytes | str) -> tuple[int, Any]:
        try:
            request = _decode_request(body)
            type_name = _request_field(request, "type", str, "")
            payload = _request_field(request, "payload", dict, None)
            priority = _request_field(request, "priority", int, 0)
            max_retries = _request_field(request, "max_retries", int, 0)
        except ValueError as exc:
            return self._error(400, "Invalid JSON", str(exc))

        if not type_name:
            return self._error(400, "Missing task type", "task type is required")

        task = new_task(_task_type(type_name), payload)
        if priority > 0:
            task.priority = priority
        if max_retries > 0:
            task.max_retries = max_retries

        try:
            self.queue.enqueue(task, timeout=_ENQUEUE_TIMEOUT)
        except (QueueError, TimeoutError) as exc:
            return self._error(500, "Failed to enqueue task", str(exc))

        log.info("Task %s created successfully (type: %s)", task.id, task.type)
        return 201, task.to_dict()

    def _get_task(self, params: dict[str, str], body: bytes | str) -> tuple[int, Any]:
        task_id = params["id"]
        try:
            task = self.queue.get_task(task_id)
        except TaskNotFoundError:
            return self._error(404, "Task not found", f"task {task_id} not found")
        except QueueError as exc:
            return self._error(500, "Failed to get task", str(exc))
        return 200, task.to_dict()

    def _list_tasks(self, params: dict[str, str], body: bytes | str) -> tuple[int, Any]:
        return 200, {
            "message": "Task listing not implemented in memory queue",
            "queue_size": self.queue.size(),
            "note": "Use Redis queue for full task listing functionality",
        }

    def _health_check(self, params: dict[str, str], body: bytes | str) -> tuple[int, Any]:
        return 200, {
            "status": "healthy",
            "timestamp": datetime.now().astimezone().isoformat(),
            "version": VERSION,
            "uptime": "N/A",
        }

    def _stats(self, params: dict[str, str], body: bytes | str) -> tuple[int, Any]:
        pool_status = self.worker_pool.status()
        pending = self.queue.size()
        return 200, {
            "queue_size": pending,
            "worker_pool": pool_status.to_dict(),
            "tasks_total": 0,
            "tasks_pending": pending,
            "tasks_running": 0,
            "tasks_complete": 0,
            "tasks_failed": 0,
        }

    def _worker_status(self, params: dict[str, str], body: bytes | str) -> tuple[int, Any]:
        return 200, self.worker_pool.status().to_dict()

    def start(self) -> None:
        """Listen for connections and serve requests on a background thread.

        A listening number of 0 lets the system choose a free one, which is
        then stored back on the instance.
        """
        if self._httpd is not None:
            raise RuntimeError("HTTP server is already running")
        api = self

        class RequestHandler(BaseHTTPRequestHandler):
            timeout = _REQUEST_TIMEOUT

            def _dispatch(self) -> None:
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    self.send_error(400, "invalid Content-Length")
                    return
                body = self.rfile.read(length) if length > 0 else b""
                remote = f"{self.client_address[0]}:{self.client_address[1]}"
                status, headers, payload = api._serve(self.command, self.path, body, remote)
                self.send_response(status)
                for name, value in headers.items():
                    self.send_header(name, value)
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                if self.command != "HEAD":
                    self.wfile.write(payload)

            do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = do_HEAD = _dispatch

            def log_message(self, format: str, *args: Any) -> None:
                pass

        httpd = ThreadingHTTPServer(("", self.port), RequestHandler)
        self.port = httpd.server_address[1]
        self._httpd = httpd
        log.info("Starting HTTP server on port %d", self.port)
        self._thread = threading.Thread(target=httpd.serve_forever, name="http-server", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop serving; raise TimeoutError if that takes longer than ``timeout`` seconds."""
        log.info("Shutting down HTTP server...")
        httpd, self._httpd = self._httpd, None
        if httpd is None:
            return
        stopper = threading.Thread(target=httpd.shutdown, name="http-server-stop", daemon=True)
        stopper.start()
        stopper.join(timeout)
        if stopper.is_alive():
            raise TimeoutError("HTTP server shutdown timed out")
        httpd.server_close()
        self._thread = None