"""Worker job entrypoints for automation events and the due-date sweep."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from taskboard.db.session import async_session

logger = logging.getLogger("taskboard.jobs.automations")


def run_automation_event_job(*, event: dict[str, Any]) -> dict[str, Any]:
    """Run the automation engine for a serialized event within a worker context."""
    from taskboard.services import automation_service
    from taskboard.services.automation_types import AutomationEvent

    parsed = AutomationEvent.from_dict(event)

    async def _run() -> dict[str, Any]:
        async with async_session() as session:
            report = await automation_service.run_event(session, parsed)
            return report.to_dict()

    result = asyncio.run(_run())
    logger.info(
        "Automation run complete for %s on card %s (matched=%d)",
        parsed.trigger.value,
        parsed.card.id,
        len(result["matched_rule_ids"]),
    )
    return result


def run_due_date_sweep_job(lookahead_hours: int | None = None) -> dict[str, int]:
    """Scheduled sweep raising due-soon and overdue events."""
    from taskboard.services import due_date_sweep

    async def _run() -> dict[str, int]:
        async with async_session() as session:
            return await due_date_sweep.sweep_due_dates(session, lookahead_hours=lookahead_hours)

    summary = asyncio.run(_run())
    logger.info(
        "Due-date sweep processed %d card(s) (due_soon=%d, overdue=%d)",
        summary["processed"],
        summary["due_soon"],
        summary["overdue"],
    )
    return summary
