"""Value types shared by the automation evaluator, matcher, executor, and engine.

Invariants:
- Events and card snapshots are immutable; actions derive new snapshots with ``replace``.
- Identifiers are carried as strings so matching never depends on storage types.
- Rule scope is either a board or a workspace, never both and never neither.
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Union


class TriggerKind(str, enum.Enum):
    """Event categories a rule can listen for."""
    CARD_CREATED = "card_created"
    CARD_MOVED = "card_moved"
    CARD_UPDATED = "card_updated"
    LABEL_ADDED = "label_added"
    CHECKLIST_COMPLETED = "checklist_completed"
    DUE_DATE_APPROACHING = "due_date_approaching"
    OVERDUE = "overdue"


class ConditionType(str, enum.Enum):
    """Closed set of predicates understood by the condition evaluator."""
    CARD_PRIORITY_IS = "card_priority_is"
    LABEL_IS = "label_is"
    ASSIGNEE_IS = "assignee_is"
    DUE_WITHIN_HOURS = "due_within_hours"
    LIST_IS = "list_is"


class ActionType(str, enum.Enum):
    """Closed set of side effects understood by the action executor."""
    MOVE_CARD = "move_card"
    ADD_LABEL = "add_label"
    ASSIGN_MEMBER = "assign_member"
    SET_DUE_DATE = "set_due_date"
    POST_COMMENT = "post_comment"
    NOTIFY = "notify"


def utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | str | None) -> datetime | None:
    """Parse ISO strings and coerce naive datetimes to UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def type_name(value: Any) -> str:
    """Return the wire name of a type tag given as an enum member or a plain string."""
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


def _id_set(values: Iterable[Any] | None) -> frozenset[str]:
    return frozenset(str(value) for value in values or () if value is not None)


@dataclass(frozen=True, slots=True)
class CardSnapshot:
    """Card fields visible to conditions at the moment an event was raised."""
    id: str
    board_id: str
    list_id: str
    priority: str | None = None
    due_at: datetime | None = None
    label_ids: frozenset[str] = frozenset()
    assignee_ids: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "board_id", str(self.board_id))
        object.__setattr__(self, "list_id", str(self.list_id))
        object.__setattr__(self, "due_at", as_utc(self.due_at))
        object.__setattr__(self, "label_ids", _id_set(self.label_ids))
        object.__setattr__(self, "assignee_ids", _id_set(self.assignee_ids))

    def replace(self, **changes: Any) -> CardSnapshot:
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "list_id": self.list_id,
            "priority": self.priority,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "label_ids": sorted(self.label_ids),
            "assignee_ids": sorted(self.assignee_ids),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CardSnapshot:
        return cls(
            id=data["id"],
            board_id=data["board_id"],
            list_id=data["list_id"],
            priority=data.get("priority"),
            due_at=data.get("due_at"),
            label_ids=data.get("label_ids") or (),
            assignee_ids=data.get("assignee_ids") or (),
        )


@dataclass(frozen=True, slots=True)
class AutomationEvent:
    """Something happened to a card; consumed once by the engine and discarded."""
    trigger: TriggerKind
    workspace_id: str
    board_id: str
    actor_id: str
    card: CardSnapshot
    occurred_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        object.__setattr__(self, "trigger", TriggerKind(self.trigger))
        object.__setattr__(self, "workspace_id", str(self.workspace_id))
        object.__setattr__(self, "board_id", str(self.board_id))
        object.__setattr__(self, "actor_id", str(self.actor_id))
        object.__setattr__(self, "occurred_at", as_utc(self.occurred_at))

    def followup(self, trigger: TriggerKind, card: CardSnapshot) -> AutomationEvent:
        """Derive an event caused by an automation action on this event's card."""
        return dataclasses.replace(self, trigger=trigger, card=card)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trigger": self.trigger.value,
            "workspace_id": self.workspace_id,
            "board_id": self.board_id,
            "actor_id": self.actor_id,
            "card": self.card.to_dict(),
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AutomationEvent:
        return cls(
            trigger=data["trigger"],
            workspace_id=data["workspace_id"],
            board_id=data["board_id"],
            actor_id=data["actor_id"],
            card=CardSnapshot.from_dict(data["card"]),
            occurred_at=as_utc(data.get("occurred_at")) or utcnow(),
        )


@dataclass(frozen=True, slots=True)
class BoardScope:
    """Rule applies to a single board."""
    board_id: str

    def applies_to(self, event: AutomationEvent) -> bool:
        return event.board_id == self.board_id


@dataclass(frozen=True, slots=True)
class WorkspaceScope:
    """Rule applies to every board in a workspace."""
    workspace_id: str

    def applies_to(self, event: AutomationEvent) -> bool:
        return event.workspace_id == self.workspace_id


RuleScope = Union[BoardScope, WorkspaceScope]


@dataclass(frozen=True, slots=True)
class Condition:
    id: str
    condition_type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    position: int = 0


@dataclass(frozen=True, slots=True)
class Action:
    id: str
    action_type: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    position: int = 0


@dataclass(frozen=True, slots=True)
class Rule:
    """Read-only view of a persisted rule; the engine never mutates rules."""
    id: str
    workspace_id: str
    scope: RuleScope
    name: str
    trigger: str
    is_active: bool = True
    conditions: tuple[Condition, ...] = ()
    actions: tuple[Action, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def board_id(self) -> str | None:
        return self.scope.board_id if isinstance(self.scope, BoardScope) else None

    def ordered_conditions(self) -> list[Condition]:
        return sorted(self.conditions, key=lambda condition: condition.position)

    def ordered_actions(self) -> list[Action]:
        return sorted(self.actions, key=lambda action: action.position)


@dataclass(slots=True)
class ActionResult:
    """Outcome of one action; ``followup_event`` is set when the card changed."""
    action_id: str
    action_type: str
    status: str
    error_kind: str | None = None
    message: str | None = None
    followup_event: AutomationEvent | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_type": self.action_type,
            "status": self.status,
            "error_kind": self.error_kind,
            "message": self.message,
            "followup_trigger": self.followup_event.trigger.value if self.followup_event else None,
        }
