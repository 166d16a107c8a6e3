# taskqueue

An in-memory task queue with priorities, a pool of worker threads, retries
and a small JSON HTTP API for submitting tasks and inspecting their state.
It needs nothing beyond the Python standard library.

## Install

```
pip install .
```

## Running the server

```
taskqueue
```

The command takes no options besides `--help`. It reads its settings from
environment variables:

| Variable       | Default | Meaning                                  |
|----------------|---------|------------------------------------------|
| `PORT`         | 8080    | HTTP port to listen on                   |
| `WORKER_COUNT` | 5       | Number of worker threads                 |
| `QUEUE_SIZE`   | 1000    | Capacity of the in-memory queue buffer   |
| `REDIS_URL`    | unset   | Accepted, but no Redis backend exists. When it is set, a warning is logged and the memory queue is used. |

If an integer setting is not a valid integer, a warning is logged and the
default is used. The server runs until it receives SIGINT (Ctrl+C) or
SIGTERM. It then stops the HTTP server and the worker pool and closes the
queue, waiting up to 30 seconds in total. Progress and each task result are
logged at INFO level.

## HTTP API

All endpoints live under `/api/v1` and answer with JSON. Every JSON response
carries permissive CORS headers.

- `POST /api/v1/tasks` creates a task. The body is
  `{"type": "email", "payload": {...}, "priority": 0, "max_retries": 3}`.
  Only `type` is required. A `priority` or `max_retries` given as 0 or less
  keeps the default: priority 0 and 3 retries. The response is `201` with
  the new task. It is `400` for malformed JSON or a missing type, and `500`
  if the task cannot be enqueued within 5 seconds.
- `GET /api/v1/tasks/{id}` returns a task, or `404` if it is unknown.
- `GET /api/v1/tasks` returns a message and the current queue size. It does
  not list tasks.
- `GET /api/v1/health` returns `status`, `timestamp`, `version` and `uptime`.
- `GET /api/v1/stats` returns the queue size and the worker-pool status.
- `GET /api/v1/workers` returns the worker-pool status.

A known path with the wrong method gets `405`. Any other path gets `404`.

Built-in task types are `email` (needs `recipient`), `image_resize` (needs
`image_url`; optional `width` and `height`), `data_process` (needs
`data_source`) and `webhook` (needs `url`). Each one simulates work for a
few seconds and fails now and then. An unknown type fails at once. A failed
task is put back on the queue until its `max_retries` runs out. Tasks with a
higher `priority` are served first. Processing is cancelled after 30 seconds.

Example:

```
curl -X POST localhost:8080/api/v1/tasks \
  -H 'Content-Type: application/json' \
  -d '{"type": "email", "payload": {"recipient": "someone@example.com", "subject": "Hi"}}'
```

## Using it as a library

```python
from taskqueue.models import TaskType, new_task
from taskqueue.queue import MemoryQueue
from taskqueue.processor import DefaultTaskProcessor
from taskqueue.pool import WorkerPool

queue = MemoryQueue(100)
pool = WorkerPool(queue, DefaultTaskProcessor(), 2)
pool.start()

task = new_task(TaskType.EMAIL, {"recipient": "someone@example.com"})
queue.enqueue(task)

result = pool.next_result(timeout=10)
print(result.to_dict() if result else "no result yet")

pool.stop(timeout=30)
queue.close()
```

The modules:

- `taskqueue.models` has `Task`, `TaskResult`, `TaskStatus`, `TaskType`,
  `new_task`, `task_from_json`, `generate_task_id` and `generate_worker_id`.
  `Task.to_json()` and `task_from_json()` convert a task to and from JSON.
- `taskqueue.queue` has the abstract `Queue` and the thread-safe
  `MemoryQueue(buffer_size)`. `enqueue(task, timeout=None)` blocks a
  normal-priority task until there is room in the buffer. It raises
  `TimeoutError` when the timeout runs out. `dequeue()` never blocks and
  returns `None` when the queue is empty.
- `taskqueue.errors` has `QueueError` and its subclasses
  `QueueClosedError`, `TaskNotFoundError`, `QueueFullError` and
  `InvalidTaskError`.
- `taskqueue.processor` has the abstract `TaskProcessor` and
  `DefaultTaskProcessor(rng=None, time_scale=1.0)`. Pass a seeded
  `random.Random` for repeatable outcomes. A small `time_scale` shortens the
  simulated delays. It also has the `WorkerStatus` and `WorkerPoolStatus`
  records.
- `taskqueue.pool` has `WorkerPool(queue, processor, worker_count)` with
  `start()`, `stop(timeout=None)`, `status()` and
  `next_result(timeout=None)`.
- `taskqueue.server` has `Server(queue, worker_pool, port)`.
  `handle(method, path, body)` answers one request without a network and
  returns `(status, headers, body)`. `start()` serves on a background thread;
  port 0 picks a free port. `stop(timeout=None)` shuts the server down.
- `taskqueue.cli` has `main()`, the `taskqueue` command, which can also be
  run as `python -m taskqueue.cli`.

## What it does not do

- Tasks live only in memory. Nothing is persisted, and everything is lost
  when the process exits. There is no Redis or other shared backend, so the
  queue cannot be shared between processes or machines.
- The task list endpoint reports only the queue size. In the stats
  endpoint, `tasks_total`, `tasks_running`, `tasks_complete` and
  `tasks_failed` are always 0.
- The built-in task types only simulate their work. They send no e-mail,
  resize no images and call no webhooks.