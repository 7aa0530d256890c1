"""Action execution for matched automation rules.

Invariants:
- Each action maps to exactly one write against a store collaborator.
- Failures are returned as results, never raised; the caller decides what to do next.
- Unknown action types and malformed payloads are skipped (no-op), not failed.
- A follow-up event is produced only when the card snapshot actually changed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Mapping

from taskboard.services.automation_conditions import payload_number, payload_str
from taskboard.services.automation_store import AutomationStoreError, CardStore, CommentSink, NotificationSink
from taskboard.services.automation_types import (
    Action,
    ActionResult,
    ActionType,
    AutomationEvent,
    CardSnapshot,
    TriggerKind,
    as_utc,
    type_name,
)

logger = logging.getLogger("taskboard.services.automation_executor")

ActionHandler = Callable[[AutomationEvent, Mapping[str, Any]], Awaitable["AutomationEvent | None"]]

DEFAULT_DUE_OFFSET_HOURS = 24
NOTIFICATION_TYPE = "automation"


class ActionPayloadError(ValueError):
    """Raised by handlers when the payload lacks what the action needs."""

    def __init__(self, kind: str) -> None:
        super().__init__(kind)
        self.kind = kind


def _followup(event: AutomationEvent, trigger: TriggerKind, card: CardSnapshot) -> AutomationEvent | None:
    if card == event.card:
        return None
    return event.followup(trigger, card)


class ActionExecutor:
    """Applies rule actions through the card store and comment/notification sinks."""

    def __init__(
        self,
        cards: CardStore,
        comments: CommentSink,
        notifications: NotificationSink,
        *,
        system_actor_id: str | None = None,
    ) -> None:
        self.cards = cards
        self.comments = comments
        self.notifications = notifications
        self.system_actor_id = system_actor_id
        self._handlers: dict[str, ActionHandler] = {
            ActionType.MOVE_CARD.value: self._move_card,
            ActionType.ADD_LABEL.value: self._add_label,
            ActionType.ASSIGN_MEMBER.value: self._assign_member,
            ActionType.SET_DUE_DATE.value: self._set_due_date,
            ActionType.POST_COMMENT.value: self._post_comment,
            ActionType.NOTIFY.value: self._notify,
        }

    async def execute(self, event: AutomationEvent, action: Action) -> ActionResult:
        """Run one action against external state and describe what happened."""
        action_type = type_name(action.action_type)
        handler = self._handlers.get(action_type)
        if handler is None:
            return ActionResult(
                action_id=action.id,
                action_type=action_type,
                status="skipped",
                error_kind="unsupported_action",
            )
        payload = action.payload if isinstance(action.payload, Mapping) else {}
        try:
            followup_event = await handler(event, payload)
        except ActionPayloadError as exc:
            return ActionResult(
                action_id=action.id,
                action_type=action_type,
                status="skipped",
                error_kind=exc.kind,
            )
        except AutomationStoreError as exc:
            logger.warning("Automation action %s (%s) rejected: %s", action.id, action_type, exc.message)
            return ActionResult(
                action_id=action.id,
                action_type=action_type,
                status="failed",
                error_kind=exc.kind,
                message=exc.message,
            )
        except Exception as exc:
            logger.exception("Automation action %s (%s) failed", action.id, action_type)
            return ActionResult(
                action_id=action.id,
                action_type=action_type,
                status="failed",
                error_kind="store_error",
                message=str(exc)[:500],
            )
        return ActionResult(
            action_id=action.id,
            action_type=action_type,
            status="ok",
            followup_event=followup_event,
        )

    async def _move_card(self, event: AutomationEvent, payload: Mapping[str, Any]) -> AutomationEvent | None:
        list_id = payload_str(payload, "listId")
        if not list_id:
            raise ActionPayloadError("move_card_missing_list")
        await self.cards.move_card(event.card.id, list_id, payload_number(payload, "position"))
        return _followup(event, TriggerKind.CARD_MOVED, event.card.replace(list_id=list_id))

    async def _add_label(self, event: AutomationEvent, payload: Mapping[str, Any]) -> AutomationEvent | None:
        label_id = payload_str(payload, "labelId")
        if not label_id:
            raise ActionPayloadError("add_label_missing_label")
        await self.cards.add_label(event.card.id, label_id)
        card = event.card.replace(label_ids=event.card.label_ids | {label_id})
        return _followup(event, TriggerKind.CARD_UPDATED, card)

    async def _assign_member(self, event: AutomationEvent, payload: Mapping[str, Any]) -> AutomationEvent | None:
        user_id = payload_str(payload, "userId")
        if not user_id:
            raise ActionPayloadError("assign_member_missing_user")
        await self.cards.assign_member(event.card.id, user_id, assigned_by=event.actor_id)
        card = event.card.replace(assignee_ids=event.card.assignee_ids | {user_id})
        return _followup(event, TriggerKind.CARD_UPDATED, card)

    def _resolve_due_at(self, event: AutomationEvent, payload: Mapping[str, Any]) -> datetime:
        raw = payload_str(payload, "dueAt")
        if raw:
            try:
                return as_utc(raw)
            except ValueError as exc:
                raise ActionPayloadError("set_due_date_invalid_due_at") from exc
        offset = payload_number(payload, "offsetHours")
        # Anchored to the event time so redelivery writes the same value.
        return event.occurred_at + timedelta(hours=DEFAULT_DUE_OFFSET_HOURS if offset is None else offset)

    async def _set_due_date(self, event: AutomationEvent, payload: Mapping[str, Any]) -> AutomationEvent | None:
        due_at = self._resolve_due_at(event, payload)
        await self.cards.set_due_date(event.card.id, due_at)
        return _followup(event, TriggerKind.CARD_UPDATED, event.card.replace(due_at=due_at))

    async def _post_comment(self, event: AutomationEvent, payload: Mapping[str, Any]) -> None:
        content = payload_str(payload, "content")
        if not content:
            raise ActionPayloadError("post_comment_missing_content")
        await self.comments.insert_comment(
            card_id=event.card.id,
            author_id=self.system_actor_id or event.actor_id,
            body=content,
        )
        return None

    async def _notify(self, event: AutomationEvent, payload: Mapping[str, Any]) -> None:
        user_id = payload_str(payload, "userId")
        if not user_id:
            raise ActionPayloadError("notify_missing_user")
        message = payload_str(payload, "message") or f'Automation rule updated card "{event.card.id}".'
        await self.notifications.enqueue_notification(
            user_id=user_id,
            workspace_id=event.workspace_id,
            board_id=event.board_id,
            card_id=event.card.id,
            type=NOTIFICATION_TYPE,
            message=message,
            payload=dict(payload),
        )
        return None
