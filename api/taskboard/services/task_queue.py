"""RQ task queue wrapper with inline fallback for local/test runs."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.registry import FailedJobRegistry, ScheduledJobRegistry, StartedJobRegistry
from rq.worker import Worker

from taskboard.core.config import settings

logger = logging.getLogger("taskboard.services.task_queue")

# Automation actions are not all idempotent (comments, notifications); retry once.
DEFAULT_RETRY = Retry(max=1, interval=[10])


def _maybe_async(value: Any) -> Any:
    """Normalize callables/coroutines into an awaitable result."""
    if asyncio.iscoroutine(value):
        return value
    if callable(value):
        return value()
    return value


class TaskQueue:
    """Thin wrapper around RQ that can fall back to inline execution."""

    def __init__(self) -> None:
        self.queue_names: list[str] = settings.worker_queue_names or ["default"]
        self._connection: Redis | None = None
        self._enabled = False
        self._bootstrap()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connection(self) -> Redis | None:
        return self._connection

    def _bootstrap(self) -> None:
        """Initialize Redis connectivity unless disabled for tests."""
        if settings.environment.lower() == "test":
            logger.info("Task queue disabled in test environment")
            return
        try:
            connection = Redis.from_url(settings.redis_url)
            connection.ping()
        except (RedisError, OSError) as exc:  # pragma: no cover - network/redis specific
            logger.warning("Redis unavailable; running jobs inline: %s", exc)
            self._connection = None
            self._enabled = False
            return
        self._connection = connection
        self._enabled = True
        logger.info("Task queue ready (queues: %s)", ", ".join(self.queue_names))

    def get_queue(self, queue_name: str | None = None) -> Queue:
        """Return a configured queue instance for enqueuing jobs."""
        if not self._connection:
            raise RuntimeError("Queue connection not initialized")
        target = queue_name if queue_name in self.queue_names else self.queue_names[0]
        return Queue(target, connection=self._connection)

    async def enqueue_or_run(
        self,
        func: Callable[..., Any],
        *,
        fallback: Callable[[], Any] | None = None,
        queue_name: str | None = None,
        timeout_seconds: int = 60,
        retry: Retry | None = DEFAULT_RETRY,
        description: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Enqueue a job and wait for the result; fall back to inline execution if needed."""

        async def _run_fallback() -> Any:
            target = fallback or (lambda: func(**kwargs))
            result = _maybe_async(target)
            if asyncio.iscoroutine(result):
                return await result
            return result

        if not self._enabled or not self._connection:
            return await _run_fallback()

        def _enqueue_and_wait() -> Any:
            queue = self.get_queue(queue_name)
            enqueue_kwargs: dict[str, Any] = {
                "kwargs": kwargs,
                "job_timeout": timeout_seconds,
                "description": description,
            }
            if retry:
                enqueue_kwargs["retry"] = retry
            job = queue.enqueue(func, **enqueue_kwargs)
            return job.wait(timeout=timeout_seconds)

        try:
            return await asyncio.to_thread(_enqueue_and_wait)
        except Exception as exc:  # pragma: no cover - network/redis specific
            logger.warning("Falling back to inline execution after queue failure: %s", exc)
            return await _run_fallback()

    def snapshot(self) -> dict[str, Any]:
        """Return a diagnostic snapshot of queue and worker state."""
        if not self._connection:
            return {
                "status": "offline",
                "queues": [],
                "workers": [],
                "error": "queue connection not initialized",
            }

        queues: list[dict[str, Any]] = []
        for name in self.queue_names:
            queue = Queue(name, connection=self._connection)
            queues.append(
                {
                    "name": name,
                    "size": queue.count,
                    "scheduled": len(ScheduledJobRegistry(queue=queue)),
                    "started": len(StartedJobRegistry(queue=queue)),
                    "failed": len(FailedJobRegistry(queue=queue)),
                }
            )

        workers: list[dict[str, Any]] = []
        try:
            for worker in Worker.all(connection=self._connection):
                workers.append({"name": worker.name, "queues": list(worker.queue_names())})
        except RedisError as exc:  # pragma: no cover - network/redis specific
            logger.warning("Unable to list workers: %s", exc)

        return {
            "status": "online" if workers else "degraded",
            "queues": queues,
            "workers": workers,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }


task_queue = TaskQueue()
