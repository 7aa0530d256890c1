"""Automation rule storage, lifecycle, and engine entrypoints."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.jobs.automations import run_automation_event_job
from taskboard.models.automation import (
    AutomationRule,
    AutomationRuleAction,
    AutomationRuleCondition,
    AutomationRun,
)
from taskboard.services.automation_engine import AutomationEngine, RunReport
from taskboard.services.automation_executor import ActionExecutor
from taskboard.services.automation_store import SqlAutomationStore
from taskboard.services.automation_types import AutomationEvent
from taskboard.services.task_queue import task_queue

if TYPE_CHECKING:  # pragma: no cover
    from taskboard.schema.automation import (
        AutomationActionIn,
        AutomationConditionIn,
        AutomationRuleCreate,
        AutomationRuleUpdate,
    )

logger = logging.getLogger("taskboard.services.automation_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _condition_rows(items: list[AutomationConditionIn]) -> list[AutomationRuleCondition]:
    return [
        AutomationRuleCondition(
            condition_type=item.type.value,
            condition_payload=item.payload,
            position=index if item.position is None else item.position,
        )
        for index, item in enumerate(items)
    ]


def _action_rows(items: list[AutomationActionIn]) -> list[AutomationRuleAction]:
    return [
        AutomationRuleAction(
            action_type=item.action.value,
            action_payload=item.payload,
            position=index if item.position is None else item.position,
        )
        for index, item in enumerate(items)
    ]


async def _reload(session: AsyncSession, rule_id: uuid.UUID) -> AutomationRule:
    result = await session.execute(
        select(AutomationRule)
        .where(AutomationRule.id == rule_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def list_rules(
    session: AsyncSession, *, workspace_id: uuid.UUID, board_id: uuid.UUID | None = None
) -> list[AutomationRule]:
    """List rules for a board, or the workspace-scoped rules when no board is given."""
    stmt = select(AutomationRule).where(AutomationRule.workspace_id == workspace_id)
    if board_id:
        stmt = stmt.where(AutomationRule.board_id == board_id)
    else:
        stmt = stmt.where(AutomationRule.board_id.is_(None))
    result = await session.execute(stmt.order_by(AutomationRule.created_at.asc()))
    return list(result.scalars().all())


async def get_rule(session: AsyncSession, *, rule_id: uuid.UUID) -> AutomationRule:
    """Fetch a single automation rule by ID."""
    rule = await session.get(AutomationRule, rule_id)
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Automation rule not found")
    return rule


async def create_rule(
    session: AsyncSession, *, user_id: uuid.UUID, payload: AutomationRuleCreate
) -> AutomationRule:
    """Create a rule together with its conditions and actions."""
    rule = AutomationRule(
        workspace_id=payload.workspace_id,
        board_id=payload.board_id,
        name=payload.name.strip(),
        trigger=payload.trigger.value,
        is_active=payload.is_active,
        created_by=user_id,
        conditions=_condition_rows(payload.conditions),
        actions=_action_rows(payload.actions),
    )
    session.add(rule)
    await session.commit()
    logger.info("Created automation rule %s (%s)", rule.id, rule.trigger)
    return await _reload(session, rule.id)


async def update_rule(
    session: AsyncSession, *, rule: AutomationRule, payload: AutomationRuleUpdate
) -> AutomationRule:
    """Update rule fields; provided condition/action lists replace the stored ones."""
    fields = payload.model_fields_set
    if "name" in fields and payload.name is not None:
        rule.name = payload.name.strip()
    if "trigger" in fields and payload.trigger is not None:
        rule.trigger = payload.trigger.value
    if "board_id" in fields:
        rule.board_id = payload.board_id
    if "is_active" in fields and payload.is_active is not None:
        rule.is_active = payload.is_active
    if payload.conditions is not None:
        rule.conditions = _condition_rows(payload.conditions)
    if payload.actions is not None:
        rule.actions = _action_rows(payload.actions)
    rule.updated_at = _utcnow()
    await session.commit()
    return await _reload(session, rule.id)


async def toggle_active(session: AsyncSession, *, rule: AutomationRule, is_active: bool) -> AutomationRule:
    """Flip a rule on or off."""
    rule.is_active = is_active
    rule.updated_at = _utcnow()
    await session.commit()
    logger.info("Automation rule %s is_active=%s", rule.id, is_active)
    return await _reload(session, rule.id)


async def delete_rule(session: AsyncSession, *, rule: AutomationRule) -> None:
    """Delete an automation rule with its conditions, actions, and run history."""
    await session.delete(rule)
    await session.commit()


async def list_runs(session: AsyncSession, *, rule_id: uuid.UUID, limit: int = 50) -> list[AutomationRun]:
    """Most recent runs first."""
    result = await session.execute(
        select(AutomationRun)
        .where(AutomationRun.rule_id == rule_id)
        .order_by(AutomationRun.started_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def build_engine(session: AsyncSession) -> AutomationEngine:
    """Wire the engine to SQL-backed stores sharing one session."""
    store = SqlAutomationStore(session)
    system_actor = str(settings.automation_actor_id) if settings.automation_actor_id else None
    executor = ActionExecutor(store, store, store, system_actor_id=system_actor)
    return AutomationEngine(store, executor, recorder=store)


async def run_event(session: AsyncSession, event: AutomationEvent) -> RunReport:
    """Run the engine for an event; rule store failures propagate."""
    return await build_engine(session).run(event)


async def dispatch_event(session: AsyncSession, event: AutomationEvent) -> RunReport | None:
    """Best-effort run for trigger producers whose own write already committed."""
    try:
        return await run_event(session, event)
    except Exception:
        logger.exception("Automation dispatch failed for %s on card %s", event.trigger.value, event.card.id)
        await session.rollback()
        return None


async def run_event_queued(session: AsyncSession, event: AutomationEvent) -> dict[str, Any]:
    """Run an event on the worker queue, or inline when the queue is unavailable."""

    async def _fallback() -> dict[str, Any]:
        report = await run_event(session, event)
        return report.to_dict()

    return await task_queue.enqueue_or_run(
        run_automation_event_job,
        fallback=_fallback,
        queue_name="automations",
        timeout_seconds=30,
        description=f"automation:{event.trigger.value}:{event.card.id}",
        event=event.to_dict(),
    )
