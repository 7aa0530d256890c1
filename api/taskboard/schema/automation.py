"""Automation rule schemas.

Authoring payloads are validated here so malformed rules never reach the engine.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from taskboard.schema.base import ORMModel
from taskboard.services.automation_types import (
    ActionType,
    AutomationEvent,
    CardSnapshot,
    ConditionType,
    TriggerKind,
    as_utc,
)

REQUIRED_CONDITION_KEYS: dict[ConditionType, str] = {
    ConditionType.CARD_PRIORITY_IS: "priority",
    ConditionType.LABEL_IS: "labelId",
    ConditionType.ASSIGNEE_IS: "userId",
    ConditionType.LIST_IS: "listId",
}

REQUIRED_ACTION_KEYS: dict[ActionType, str] = {
    ActionType.MOVE_CARD: "listId",
    ActionType.ADD_LABEL: "labelId",
    ActionType.ASSIGN_MEMBER: "userId",
    ActionType.POST_COMMENT: "content",
    ActionType.NOTIFY: "userId",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_timestamp(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return as_utc(value) is not None
    except ValueError:
        return False


def _require_string(payload: dict[str, Any], key: str, kind: str) -> None:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{kind} payload requires a non-empty string '{key}'")


class AutomationConditionIn(BaseModel):
    """Condition definition as authored."""
    type: ConditionType
    payload: dict[str, Any] = Field(default_factory=dict)
    position: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_payload(self) -> "AutomationConditionIn":
        key = REQUIRED_CONDITION_KEYS.get(self.type)
        if key:
            _require_string(self.payload, key, self.type.value)
        elif self.type is ConditionType.DUE_WITHIN_HOURS:
            hours = self.payload.get("hours")
            if not _is_number(hours) or hours <= 0:
                raise ValueError("due_within_hours payload requires a positive number 'hours'")
        return self


class AutomationActionIn(BaseModel):
    """Action definition as authored."""
    action: ActionType
    payload: dict[str, Any] = Field(default_factory=dict)
    position: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_payload(self) -> "AutomationActionIn":
        key = REQUIRED_ACTION_KEYS.get(self.action)
        if key:
            _require_string(self.payload, key, self.action.value)
        if self.action is ActionType.MOVE_CARD and "position" in self.payload:
            if not _is_number(self.payload["position"]):
                raise ValueError("move_card 'position' must be a number")
        if self.action is ActionType.SET_DUE_DATE:
            due_at = self.payload.get("dueAt")
            offset = self.payload.get("offsetHours")
            if due_at is not None and not _is_timestamp(due_at):
                raise ValueError("set_due_date 'dueAt' must be an ISO-8601 timestamp")
            if offset is not None and not _is_number(offset):
                raise ValueError("set_due_date 'offsetHours' must be a number")
        return self


class AutomationRuleCreate(BaseModel):
    """Payload for creating an automation rule."""
    workspace_id: UUID
    board_id: UUID | None = None
    name: str = Field(min_length=2, max_length=120)
    trigger: TriggerKind
    is_active: bool = True
    conditions: list[AutomationConditionIn] = Field(default_factory=list)
    actions: list[AutomationActionIn] = Field(min_length=1)


class AutomationRuleUpdate(BaseModel):
    """Payload for updating an automation rule; provided lists replace stored ones."""
    board_id: UUID | None = None
    name: str | None = Field(default=None, min_length=2, max_length=120)
    trigger: TriggerKind | None = None
    is_active: bool | None = None
    conditions: list[AutomationConditionIn] | None = None
    actions: Annotated[list[AutomationActionIn], Field(min_length=1)] | None = None


class AutomationRuleToggle(BaseModel):
    is_active: bool


class AutomationConditionRead(ORMModel):
    id: UUID
    condition_type: str
    condition_payload: dict | None = None
    position: int


class AutomationActionRead(ORMModel):
    id: UUID
    action_type: str
    action_payload: dict | None = None
    position: int


class AutomationRuleRead(ORMModel):
    """Automation rule representation."""
    id: UUID
    workspace_id: UUID
    board_id: UUID | None = None
    name: str
    trigger: str
    is_active: bool
    created_by: UUID | None = None
    conditions: list[AutomationConditionRead] = Field(default_factory=list)
    actions: list[AutomationActionRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class AutomationRunRead(ORMModel):
    """Stored outcome of one rule firing."""
    id: UUID
    rule_id: UUID
    trigger_source: str
    status: str
    details: dict | None = None
    started_at: datetime
    finished_at: datetime


class CardSnapshotIn(BaseModel):
    id: UUID
    board_id: UUID
    list_id: UUID
    priority: str | None = None
    due_at: datetime | None = None
    label_ids: list[UUID] = Field(default_factory=list)
    assignee_ids: list[UUID] = Field(default_factory=list)


class AutomationEventIn(BaseModel):
    """Event submitted by a trigger producer after its own write committed."""
    trigger: TriggerKind
    workspace_id: UUID
    board_id: UUID
    actor_id: UUID
    card: CardSnapshotIn
    occurred_at: datetime | None = None

    @model_validator(mode="after")
    def _card_on_event_board(self) -> "AutomationEventIn":
        if self.card.board_id != self.board_id:
            raise ValueError("card.board_id must match the event board_id")
        return self

    def to_event(self) -> AutomationEvent:
        card = CardSnapshot(
            id=str(self.card.id),
            board_id=str(self.card.board_id),
            list_id=str(self.card.list_id),
            priority=self.card.priority,
            due_at=self.card.due_at,
            label_ids=self.card.label_ids,
            assignee_ids=self.card.assignee_ids,
        )
        kwargs: dict[str, Any] = {}
        if self.occurred_at:
            kwargs["occurred_at"] = self.occurred_at
        return AutomationEvent(
            trigger=self.trigger,
            workspace_id=str(self.workspace_id),
            board_id=str(self.board_id),
            actor_id=str(self.actor_id),
            card=card,
            **kwargs,
        )


class AutomationRunReport(BaseModel):
    """Engine run summary returned to trigger producers."""
    event: dict[str, Any]
    depth: int
    matched_rule_ids: list[str]
    per_rule_results: dict[str, dict[str, Any]]
    followups: list[dict[str, Any]]
    diagnostics: list[dict[str, Any]]
    loop_guard_triggered: bool


class DueDateSweepResponse(BaseModel):
    processed: int
    due_soon: int
    overdue: int
