"""Storage collaborators for the automation engine and their SQL implementation.

Invariants:
- Every write commits on its own; a crash mid-run keeps the actions already applied.
- Card mutations are idempotent sets/upserts so redelivered events converge.
- The engine only reads rules through this module; it never writes them.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Protocol

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.models.automation import AutomationRule, AutomationRun
from taskboard.models.board import BoardList, Card, CardAssignee, CardComment, CardLabel, Notification
from taskboard.services.automation_types import (
    Action,
    AutomationEvent,
    BoardScope,
    CardSnapshot,
    Condition,
    Rule,
    WorkspaceScope,
    as_utc,
)

logger = logging.getLogger("taskboard.services.automation_store")


class AutomationStoreError(RuntimeError):
    """Raised when a store rejects a write; ``kind`` lands in the run report."""

    kind = "store_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidIdentifierError(AutomationStoreError):
    kind = "invalid_identifier"


class CardNotFoundError(AutomationStoreError):
    kind = "card_not_found"


class ListNotFoundError(AutomationStoreError):
    kind = "list_not_found"


class RuleStore(Protocol):
    async def list_active_rules(self, board_id: str, workspace_id: str) -> list[Rule]: ...

    async def get_rule(self, rule_id: str) -> Rule | None: ...


class CardStore(Protocol):
    async def move_card(self, card_id: str, list_id: str, position: float | None = None) -> None: ...

    async def add_label(self, card_id: str, label_id: str) -> None: ...

    async def assign_member(self, card_id: str, user_id: str, assigned_by: str | None = None) -> None: ...

    async def set_due_date(self, card_id: str, due_at: datetime) -> None: ...


class CommentSink(Protocol):
    async def insert_comment(self, *, card_id: str, author_id: str, body: str) -> None: ...


class NotificationSink(Protocol):
    async def enqueue_notification(
        self,
        *,
        user_id: str,
        workspace_id: str,
        board_id: str | None,
        card_id: str | None,
        type: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None: ...


class RunRecorder(Protocol):
    async def record_run(
        self,
        *,
        rule: Rule,
        event: AutomationEvent,
        status: str,
        details: dict[str, Any],
        started_at: datetime,
        finished_at: datetime,
    ) -> None: ...


def parse_uuid(value: str | uuid.UUID | None, *, field: str = "id") -> uuid.UUID:
    """Convert an identifier to UUID or raise ``InvalidIdentifierError``."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidIdentifierError(f"invalid {field}: {value!r}") from exc


def rule_to_domain(row: AutomationRule) -> Rule:
    """Map an ORM rule (with conditions/actions loaded) to the engine's value type."""
    scope = BoardScope(str(row.board_id)) if row.board_id else WorkspaceScope(str(row.workspace_id))
    return Rule(
        id=str(row.id),
        workspace_id=str(row.workspace_id),
        scope=scope,
        name=row.name,
        trigger=row.trigger,
        is_active=row.is_active,
        conditions=tuple(
            Condition(
                id=str(item.id),
                condition_type=item.condition_type,
                payload=dict(item.condition_payload or {}),
                position=item.position,
            )
            for item in row.conditions
        ),
        actions=tuple(
            Action(
                id=str(item.id),
                action_type=item.action_type,
                payload=dict(item.action_payload or {}),
                position=item.position,
            )
            for item in row.actions
        ),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


async def build_card_snapshot(session: AsyncSession, card: Card) -> CardSnapshot:
    """Load label and assignee ids for a card and freeze them into a snapshot."""
    labels = await session.execute(select(CardLabel.label_id).where(CardLabel.card_id == card.id))
    assignees = await session.execute(select(CardAssignee.user_id).where(CardAssignee.card_id == card.id))
    return CardSnapshot(
        id=str(card.id),
        board_id=str(card.board_id),
        list_id=str(card.list_id),
        priority=card.priority,
        due_at=card.due_at,
        label_ids=labels.scalars().all(),
        assignee_ids=assignees.scalars().all(),
    )


class SqlAutomationStore:
    """SQLAlchemy-backed rule store, card store, sinks, and run recorder.

    Every public method runs inside ``_guarded``: a database error rolls the
    session back before it propagates, so the next action, the run recorder,
    and follow-up rule lookups start from a clean transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def _guarded(self) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError:
            await self.session.rollback()
            raise

    async def _commit(self, *, conflict_ok: bool = False) -> None:
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            if conflict_ok:
                # Lost a race with a concurrent writer; the row exists either way.
                return
            raise

    async def _get_card(self, card_id: str) -> Card:
        card = await self.session.get(Card, parse_uuid(card_id, field="card_id"))
        if not card:
            raise CardNotFoundError(f"card {card_id} not found")
        return card

    async def list_active_rules(self, board_id: str, workspace_id: str) -> list[Rule]:
        try:
            board_uuid = parse_uuid(board_id, field="board_id")
            workspace_uuid = parse_uuid(workspace_id, field="workspace_id")
        except InvalidIdentifierError:
            logger.info("Skipping rule lookup for non-UUID scope %s/%s", workspace_id, board_id)
            return []
        stmt = (
            select(AutomationRule)
            .where(
                AutomationRule.is_active.is_(True),
                or_(
                    AutomationRule.board_id == board_uuid,
                    and_(AutomationRule.board_id.is_(None), AutomationRule.workspace_id == workspace_uuid),
                ),
            )
            .order_by(AutomationRule.created_at.asc(), AutomationRule.id.asc())
        )
        async with self._guarded():
            result = await self.session.execute(stmt)
            return [rule_to_domain(row) for row in result.scalars().all()]

    async def get_rule(self, rule_id: str) -> Rule | None:
        try:
            rule_uuid = parse_uuid(rule_id, field="rule_id")
        except InvalidIdentifierError:
            return None
        async with self._guarded():
            row = await self.session.get(AutomationRule, rule_uuid)
            return rule_to_domain(row) if row else None

    async def move_card(self, card_id: str, list_id: str, position: float | None = None) -> None:
        async with self._guarded():
            card = await self._get_card(card_id)
            target = await self.session.get(BoardList, parse_uuid(list_id, field="list_id"))
            if not target or target.board_id != card.board_id:
                raise ListNotFoundError(f"list {list_id} not found on board {card.board_id}")
            if position is None:
                if card.list_id == target.id:
                    return
                result = await self.session.execute(
                    select(func.max(Card.position)).where(Card.list_id == target.id, Card.id != card.id)
                )
                position = (result.scalar_one_or_none() or 0) + 1
            card.list_id = target.id
            card.position = position
            await self._commit()

    async def add_label(self, card_id: str, label_id: str) -> None:
        async with self._guarded():
            card = await self._get_card(card_id)
            label_uuid = parse_uuid(label_id, field="label_id")
            existing = await self.session.execute(
                select(CardLabel.id).where(CardLabel.card_id == card.id, CardLabel.label_id == label_uuid)
            )
            if existing.scalar_one_or_none():
                return
            self.session.add(CardLabel(card_id=card.id, label_id=label_uuid))
            await self._commit(conflict_ok=True)

    async def assign_member(self, card_id: str, user_id: str, assigned_by: str | None = None) -> None:
        async with self._guarded():
            card = await self._get_card(card_id)
            user_uuid = parse_uuid(user_id, field="user_id")
            existing = await self.session.execute(
                select(CardAssignee.id).where(CardAssignee.card_id == card.id, CardAssignee.user_id == user_uuid)
            )
            if existing.scalar_one_or_none():
                return
            assigner = parse_uuid(assigned_by, field="assigned_by") if assigned_by else None
            self.session.add(CardAssignee(card_id=card.id, user_id=user_uuid, assigned_by=assigner))
            await self._commit(conflict_ok=True)

    async def set_due_date(self, card_id: str, due_at: datetime) -> None:
        async with self._guarded():
            card = await self._get_card(card_id)
            card.due_at = due_at
            await self._commit()

    async def insert_comment(self, *, card_id: str, author_id: str, body: str) -> None:
        author_uuid = parse_uuid(author_id, field="author_id")
        async with self._guarded():
            card = await self._get_card(card_id)
            self.session.add(CardComment(card_id=card.id, author_id=author_uuid, body=body))
            await self._commit()

    async def enqueue_notification(
        self,
        *,
        user_id: str,
        workspace_id: str,
        board_id: str | None,
        card_id: str | None,
        type: str,
        message: str,
        payload: Mapping[str, Any],
    ) -> None:
        notification = Notification(
            user_id=parse_uuid(user_id, field="user_id"),
            workspace_id=parse_uuid(workspace_id, field="workspace_id"),
            board_id=parse_uuid(board_id, field="board_id") if board_id else None,
            card_id=parse_uuid(card_id, field="card_id") if card_id else None,
            type=type,
            message=message[:1000],
            payload=dict(payload),
        )
        async with self._guarded():
            self.session.add(notification)
            await self._commit()

    async def record_run(
        self,
        *,
        rule: Rule,
        event: AutomationEvent,
        status: str,
        details: dict[str, Any],
        started_at: datetime,
        finished_at: datetime,
    ) -> None:
        run = AutomationRun(
            rule_id=parse_uuid(rule.id, field="rule_id"),
            trigger_source=event.trigger.value,
            status=status,
            details=details,
            started_at=started_at,
            finished_at=finished_at,
        )
        async with self._guarded():
            self.session.add(run)
            await self._commit()
