"""In-memory priority task queue with a worker pool, simulated task processors and a JSON HTTP API."""

__version__ = "1.0.0"
__all__ = ["models", "errors", "queue", "processor", "pool", "server", "cli"]