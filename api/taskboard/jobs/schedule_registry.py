from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from rq_scheduler import Scheduler

from taskboard.core.config import settings
from taskboard.jobs.automations import run_due_date_sweep_job
from taskboard.services.task_queue import task_queue

logger = logging.getLogger("taskboard.jobs.schedule_registry")


def _schedule_entries() -> list[dict]:
    queue_name = task_queue.queue_names[0] if task_queue.queue_names else "default"
    return [
        {
            "id": "automations:due_date_sweep",
            "func": run_due_date_sweep_job,
            "interval": settings.due_sweep_interval_seconds,
            "repeat": None,
            "queue_name": "automations" if "automations" in task_queue.queue_names else queue_name,
        },
    ]


def ensure_schedules() -> None:
    """Idempotently register periodic jobs with rq-scheduler."""
    if settings.environment.lower() == "test":
        return
    if not task_queue.connection:
        logger.info("Skipping scheduler bootstrap; queue connection is unavailable")
        return
    scheduler = Scheduler(connection=task_queue.connection, queue_name=task_queue.queue_names[0])
    for entry in _schedule_entries():
        existing = scheduler.get_job(entry["id"])
        if existing:
            continue
        scheduler.schedule(
            scheduled_time=datetime.now(timezone.utc),
            func=entry["func"],
            interval=entry["interval"],
            repeat=entry["repeat"],
            id=entry["id"],
            queue_name=entry["queue_name"],
            result_ttl=int(timedelta(hours=1).total_seconds()),
        )
        logger.info("Scheduled job %s every %ss on queue %s", entry["id"], entry["interval"], entry["queue_name"])
