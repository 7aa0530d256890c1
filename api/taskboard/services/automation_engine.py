"""Automation engine: loads rules for an event, runs matched actions, follows up.

Invariants:
- The engine is stateless between runs and never writes rules.
- Rules run in creation order; actions within a rule run sequentially in position order.
- A failing action or rule never stops sibling actions or rules.
- Follow-up events re-enter ``run`` at most ``max_depth`` levels deep; deeper ones are
  dropped and recorded as ``loop_guard_triggered``.
- Rule store failures are fatal and propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator

from taskboard.core.config import settings
from taskboard.services.automation_executor import ActionExecutor
from taskboard.services.automation_matcher import match_rules
from taskboard.services.automation_store import RuleStore, RunRecorder
from taskboard.services.automation_types import ActionResult, AutomationEvent, Rule, utcnow

logger = logging.getLogger("taskboard.services.automation_engine")

LOOP_GUARD_TRIGGERED = "loop_guard_triggered"


def _truncate_error(value: str | None, limit: int = 500) -> str | None:
    if not value:
        return None
    return value[:limit]


@dataclass(slots=True)
class RuleRunResult:
    """Per-rule outcome inside a run report."""
    rule_id: str
    rule_name: str
    actions_run: int = 0
    actions_failed: int = 0
    actions_skipped: int = 0
    error: str | None = None
    actions: list[ActionResult] = field(default_factory=list)

    def record(self, result: ActionResult) -> None:
        self.actions.append(result)
        if result.status == "ok":
            self.actions_run += 1
        elif result.status == "failed":
            self.actions_failed += 1
        else:
            self.actions_skipped += 1

    @property
    def status(self) -> str:
        if self.error or (self.actions_failed and not self.actions_run):
            return "failed"
        if self.actions_failed:
            return "partial"
        return "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "status": self.status,
            "actions_run": self.actions_run,
            "actions_failed": self.actions_failed,
            "actions_skipped": self.actions_skipped,
            "error": self.error,
            "actions": [item.to_dict() for item in self.actions],
        }


@dataclass(slots=True)
class RunReport:
    """Result of one engine pass plus the passes its follow-up events caused."""
    event: AutomationEvent
    depth: int = 0
    matched_rule_ids: list[str] = field(default_factory=list)
    per_rule_results: dict[str, RuleRunResult] = field(default_factory=dict)
    followups: list["RunReport"] = field(default_factory=list)
    diagnostics: list[dict[str, Any]] = field(default_factory=list)

    def iter_reports(self) -> Iterator["RunReport"]:
        yield self
        for child in self.followups:
            yield from child.iter_reports()

    @property
    def loop_guard_triggered(self) -> bool:
        return any(
            diagnostic.get("kind") == LOOP_GUARD_TRIGGERED
            for report in self.iter_reports()
            for diagnostic in report.diagnostics
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "depth": self.depth,
            "matched_rule_ids": list(self.matched_rule_ids),
            "per_rule_results": {key: value.to_dict() for key, value in self.per_rule_results.items()},
            "followups": [child.to_dict() for child in self.followups],
            "diagnostics": list(self.diagnostics),
            "loop_guard_triggered": self.loop_guard_triggered,
        }


class AutomationEngine:
    """Orchestrates matching and execution for a single event and its follow-ups."""

    def __init__(
        self,
        rules: RuleStore,
        executor: ActionExecutor,
        *,
        recorder: RunRecorder | None = None,
        max_depth: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.rules = rules
        self.executor = executor
        self.recorder = recorder
        self.max_depth = settings.automation_max_depth if max_depth is None else max_depth
        self.clock = clock

    async def load_candidates(self, event: AutomationEvent) -> list[Rule]:
        """Board rules for the event's board plus workspace rules, oldest first."""
        rules = await self.rules.list_active_rules(event.board_id, event.workspace_id)
        scoped = [rule for rule in rules if rule.scope.applies_to(event)]
        return sorted(scoped, key=lambda rule: rule.created_at)

    async def run(self, event: AutomationEvent, *, depth: int = 0) -> RunReport:
        """Process an event and, recursively, the follow-up events its actions raise."""
        candidates = await self.load_candidates(event)
        matched = match_rules(event, candidates, now=self.clock())
        report = RunReport(event=event, depth=depth, matched_rule_ids=[rule.id for rule in matched])

        pending: list[AutomationEvent] = []
        for rule in matched:
            result = await self._run_rule(event, rule)
            report.per_rule_results[rule.id] = result
            for action_result in result.actions:
                followup = action_result.followup_event
                if followup is not None and followup not in pending:
                    pending.append(followup)

        if matched:
            logger.info(
                "Automation %s for card %s matched %d rule(s) at depth %d",
                event.trigger.value,
                event.card.id,
                len(matched),
                depth,
            )

        for followup in pending:
            if depth >= self.max_depth:
                logger.warning(
                    "Loop guard dropped %s for card %s at depth %d",
                    followup.trigger.value,
                    followup.card.id,
                    depth,
                )
                report.diagnostics.append(
                    {
                        "kind": LOOP_GUARD_TRIGGERED,
                        "trigger": followup.trigger.value,
                        "card_id": followup.card.id,
                        "depth": depth + 1,
                        "max_depth": self.max_depth,
                    }
                )
                continue
            report.followups.append(await self.run(followup, depth=depth + 1))
        return report

    async def _run_rule(self, event: AutomationEvent, rule: Rule) -> RuleRunResult:
        started_at = self.clock()
        result = RuleRunResult(rule_id=rule.id, rule_name=rule.name)
        current = event
        try:
            for action in rule.ordered_actions():
                action_result = await self.executor.execute(current, action)
                result.record(action_result)
                if action_result.followup_event is not None:
                    # Later actions see the card as earlier actions left it.
                    current = current.followup(current.trigger, action_result.followup_event.card)
        except Exception as exc:
            logger.exception("Automation rule %s failed for card %s", rule.id, event.card.id)
            result.error = _truncate_error(str(exc) or exc.__class__.__name__)
        await self._record(rule, event, result, started_at)
        return result

    async def _record(self, rule: Rule, event: AutomationEvent, result: RuleRunResult, started_at: datetime) -> None:
        if self.recorder is None:
            return
        details: dict[str, Any] = {
            "card_id": event.card.id,
            "actions_run": result.actions_run,
            "actions_failed": result.actions_failed,
            "actions_skipped": result.actions_skipped,
        }
        if result.error:
            details["message"] = result.error
        failures = [item.error_kind for item in result.actions if item.status == "failed"]
        if failures:
            details["failures"] = failures
        try:
            await self.recorder.record_run(
                rule=rule,
                event=event,
                status=result.status,
                details=details,
                started_at=started_at,
                finished_at=self.clock(),
            )
        except Exception as exc:
            logger.warning("Unable to record automation run for rule %s: %s", rule.id, exc)
