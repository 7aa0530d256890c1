"""Rule selection for an automation event."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from taskboard.services.automation_conditions import evaluate
from taskboard.services.automation_types import AutomationEvent, Rule, as_utc, type_name, utcnow


def rule_matches(event: AutomationEvent, rule: Rule, *, now: datetime | None = None) -> bool:
    """Active, same trigger, and every condition true (no conditions means match)."""
    if not rule.is_active:
        return False
    if type_name(rule.trigger) != event.trigger.value:
        return False
    moment = as_utc(now) or utcnow()
    return all(evaluate(event, condition, now=moment) for condition in rule.ordered_conditions())


def match_rules(
    event: AutomationEvent,
    candidates: Iterable[Rule],
    *,
    now: datetime | None = None,
) -> list[Rule]:
    """Return the matching rules as an order-preserving subsequence of ``candidates``.

    Candidates are expected to be scoped to the event's board and workspace
    already and sorted by creation time; the engine takes care of both.
    """
    moment = as_utc(now) or utcnow()
    return [rule for rule in candidates if rule_matches(event, rule, now=moment)]
