"""Automation rule endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.api.deps import get_current_user_id, get_db, require_automation_secret
from taskboard.schema.automation import (
    AutomationEventIn,
    AutomationRuleCreate,
    AutomationRuleRead,
    AutomationRuleToggle,
    AutomationRuleUpdate,
    AutomationRunRead,
    AutomationRunReport,
    DueDateSweepResponse,
)
from taskboard.services import automation_service, due_date_sweep
from taskboard.services.permissions import assert_rule_scope_admin

router = APIRouter()


async def _authorized_rule(session: AsyncSession, rule_id: uuid.UUID, user_id: uuid.UUID):
    rule = await automation_service.get_rule(session, rule_id=rule_id)
    await assert_rule_scope_admin(
        session, workspace_id=rule.workspace_id, board_id=rule.board_id, user_id=user_id
    )
    return rule


@router.get("/rules", response_model=list[AutomationRuleRead])
async def list_automation_rules(
    workspace_id: uuid.UUID = Query(...),
    board_id: uuid.UUID | None = Query(default=None),
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> list[AutomationRuleRead]:
    """List rules for a board, or workspace-wide rules when no board is given."""
    await assert_rule_scope_admin(session, workspace_id=workspace_id, board_id=board_id, user_id=user_id)
    rules = await automation_service.list_rules(session, workspace_id=workspace_id, board_id=board_id)
    return [AutomationRuleRead.model_validate(rule) for rule in rules]


@router.post("/rules", response_model=AutomationRuleRead, status_code=status.HTTP_201_CREATED)
async def create_automation_rule(
    payload: AutomationRuleCreate,
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> AutomationRuleRead:
    """Create a new automation rule."""
    await assert_rule_scope_admin(
        session, workspace_id=payload.workspace_id, board_id=payload.board_id, user_id=user_id
    )
    rule = await automation_service.create_rule(session, user_id=user_id, payload=payload)
    return AutomationRuleRead.model_validate(rule)


@router.get("/rules/{rule_id}", response_model=AutomationRuleRead)
async def get_automation_rule(
    rule_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> AutomationRuleRead:
    rule = await _authorized_rule(session, rule_id, user_id)
    return AutomationRuleRead.model_validate(rule)


@router.patch("/rules/{rule_id}", response_model=AutomationRuleRead)
async def update_automation_rule(
    rule_id: uuid.UUID,
    payload: AutomationRuleUpdate,
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> AutomationRuleRead:
    """Update an automation rule."""
    rule = await _authorized_rule(session, rule_id, user_id)
    if "board_id" in payload.model_fields_set and payload.board_id != rule.board_id:
        # Moving a rule between scopes needs admin rights on the destination too.
        await assert_rule_scope_admin(
            session, workspace_id=rule.workspace_id, board_id=payload.board_id, user_id=user_id
        )
    rule = await automation_service.update_rule(session, rule=rule, payload=payload)
    return AutomationRuleRead.model_validate(rule)


@router.post("/rules/{rule_id}/toggle", response_model=AutomationRuleRead)
async def toggle_automation_rule(
    rule_id: uuid.UUID,
    payload: AutomationRuleToggle,
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> AutomationRuleRead:
    """Activate or deactivate an automation rule."""
    rule = await _authorized_rule(session, rule_id, user_id)
    rule = await automation_service.toggle_active(session, rule=rule, is_active=payload.is_active)
    return AutomationRuleRead.model_validate(rule)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
async def delete_automation_rule(
    rule_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> None:
    """Delete an automation rule."""
    rule = await _authorized_rule(session, rule_id, user_id)
    await automation_service.delete_rule(session, rule=rule)


@router.get("/rules/{rule_id}/runs", response_model=list[AutomationRunRead])
async def list_automation_runs(
    rule_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=200),
    session: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> list[AutomationRunRead]:
    """Recent executions of a rule, newest first."""
    rule = await _authorized_rule(session, rule_id, user_id)
    runs = await automation_service.list_runs(session, rule_id=rule.id, limit=limit)
    return [AutomationRunRead.model_validate(run) for run in runs]


@router.post("/events", response_model=AutomationRunReport, dependencies=[Depends(require_automation_secret)])
async def submit_automation_event(
    payload: AutomationEventIn,
    session: AsyncSession = Depends(get_db),
) -> AutomationRunReport:
    """Run automation for an event raised by a card/list/label mutation."""
    report = await automation_service.run_event_queued(session, payload.to_event())
    return AutomationRunReport.model_validate(report)


@router.post("/run", response_model=DueDateSweepResponse, dependencies=[Depends(require_automation_secret)])
async def run_due_date_sweep(session: AsyncSession = Depends(get_db)) -> DueDateSweepResponse:
    """Raise due-soon and overdue events; called by an external scheduler."""
    summary = await due_date_sweep.sweep_due_dates(session)
    return DueDateSweepResponse(**summary)
