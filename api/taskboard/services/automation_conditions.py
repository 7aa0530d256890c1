"""Condition evaluation for automation rules.

Invariants:
- Evaluation is pure: no I/O, no mutation, same inputs give the same answer.
- Unknown condition types and malformed payloads evaluate to False (fail-closed).
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from taskboard.services.automation_types import (
    AutomationEvent,
    Condition,
    ConditionType,
    as_utc,
    type_name,
    utcnow,
)

ConditionCheck = Callable[[AutomationEvent, Mapping[str, Any], datetime], bool]


def payload_str(payload: Mapping[str, Any], key: str) -> str | None:
    """Return a non-empty string payload value, or None for anything else."""
    value = payload.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def payload_number(payload: Mapping[str, Any], key: str) -> float | None:
    """Return a finite numeric payload value; booleans do not count as numbers."""
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _priority_is(event: AutomationEvent, payload: Mapping[str, Any], now: datetime) -> bool:
    expected = payload_str(payload, "priority")
    return expected is not None and event.card.priority == expected


def _label_is(event: AutomationEvent, payload: Mapping[str, Any], now: datetime) -> bool:
    label_id = payload_str(payload, "labelId")
    return label_id is not None and label_id in event.card.label_ids


def _assignee_is(event: AutomationEvent, payload: Mapping[str, Any], now: datetime) -> bool:
    user_id = payload_str(payload, "userId")
    return user_id is not None and user_id in event.card.assignee_ids


def _due_within_hours(event: AutomationEvent, payload: Mapping[str, Any], now: datetime) -> bool:
    hours = payload_number(payload, "hours")
    due_at = event.card.due_at
    if hours is None or hours < 0 or due_at is None:
        return False
    # Forward-looking window only; overdue cards do not match.
    return now <= due_at <= now + timedelta(hours=hours)


def _list_is(event: AutomationEvent, payload: Mapping[str, Any], now: datetime) -> bool:
    list_id = payload_str(payload, "listId")
    return list_id is not None and event.card.list_id == list_id


CONDITION_CHECKS: dict[str, ConditionCheck] = {
    ConditionType.CARD_PRIORITY_IS.value: _priority_is,
    ConditionType.LABEL_IS.value: _label_is,
    ConditionType.ASSIGNEE_IS.value: _assignee_is,
    ConditionType.DUE_WITHIN_HOURS.value: _due_within_hours,
    ConditionType.LIST_IS.value: _list_is,
}


def evaluate(event: AutomationEvent, condition: Condition, *, now: datetime | None = None) -> bool:
    """Return True when the event's card satisfies the condition."""
    check = CONDITION_CHECKS.get(type_name(condition.condition_type))
    if check is None:
        return False
    payload = condition.payload if isinstance(condition.payload, Mapping) else {}
    return check(event, payload, as_utc(now) or utcnow())
