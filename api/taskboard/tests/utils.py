"""Shared helpers for API and engine tests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.security import create_access_token
from taskboard.models.board import Board, BoardList, BoardMember, Card, WorkspaceMember
from taskboard.services.automation_store import CardNotFoundError, ListNotFoundError
from taskboard.services.automation_types import (
    Action,
    AutomationEvent,
    BoardScope,
    CardSnapshot,
    Condition,
    Rule,
    TriggerKind,
    WorkspaceScope,
)

WORKSPACE_ID = "11111111-1111-1111-1111-111111111111"
BOARD_ID = "22222222-2222-2222-2222-222222222222"
LIST_TODO = "33333333-3333-3333-3333-333333333333"
LIST_DONE = "44444444-4444-4444-4444-444444444444"
CARD_ID = "55555555-5555-5555-5555-555555555555"
ACTOR_ID = "66666666-6666-6666-6666-666666666666"


def auth_headers(user_id: uuid.UUID | str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def make_card(**overrides: Any) -> CardSnapshot:
    values: dict[str, Any] = {"id": CARD_ID, "board_id": BOARD_ID, "list_id": LIST_TODO}
    values.update(overrides)
    return CardSnapshot(**values)


def make_event(trigger: TriggerKind = TriggerKind.CARD_CREATED, **overrides: Any) -> AutomationEvent:
    values: dict[str, Any] = {
        "trigger": trigger,
        "workspace_id": WORKSPACE_ID,
        "board_id": BOARD_ID,
        "actor_id": ACTOR_ID,
        "card": make_card(),
    }
    values.update(overrides)
    return AutomationEvent(**values)


def make_rule(
    *,
    trigger: TriggerKind | str = TriggerKind.CARD_CREATED,
    conditions: list[tuple[str, dict]] | None = None,
    actions: list[tuple[str, dict]] | None = None,
    board_id: str | None = BOARD_ID,
    is_active: bool = True,
    created_at: datetime | None = None,
    name: str = "Rule",
) -> Rule:
    extra: dict[str, Any] = {}
    if created_at is not None:
        extra["created_at"] = created_at
    return Rule(
        id=str(uuid.uuid4()),
        workspace_id=WORKSPACE_ID,
        scope=BoardScope(board_id) if board_id else WorkspaceScope(WORKSPACE_ID),
        name=name,
        trigger=trigger.value if isinstance(trigger, TriggerKind) else trigger,
        is_active=is_active,
        conditions=tuple(
            Condition(id=str(uuid.uuid4()), condition_type=kind, payload=payload, position=index)
            for index, (kind, payload) in enumerate(conditions or [])
        ),
        actions=tuple(
            Action(id=str(uuid.uuid4()), action_type=kind, payload=payload, position=index)
            for index, (kind, payload) in enumerate(actions or [])
        ),
        **extra,
    )


@dataclass(slots=True)
class BoardFixture:
    """Rows seeded for SQL-backed tests."""

    workspace_id: uuid.UUID
    board: Board
    todo: BoardList
    done: BoardList
    card: Card
    admin_id: uuid.UUID
    member_id: uuid.UUID


async def seed_board(session: AsyncSession, *, due_at: datetime | None = None) -> BoardFixture:
    """Create a workspace admin, a board admin, a plain member, two lists, and a card."""
    workspace_id = uuid.uuid4()
    admin_id = uuid.uuid4()
    member_id = uuid.uuid4()
    board = Board(workspace_id=workspace_id, name="Sprint board")
    session.add(board)
    await session.flush()
    todo = BoardList(board_id=board.id, name="To do", position=1)
    done = BoardList(board_id=board.id, name="Done", position=2)
    session.add_all([todo, done])
    await session.flush()
    card = Card(
        board_id=board.id,
        list_id=todo.id,
        title="Write release notes",
        position=1,
        priority="high",
        due_at=due_at,
        created_by=member_id,
    )
    session.add_all(
        [
            card,
            WorkspaceMember(workspace_id=workspace_id, user_id=admin_id, role="workspace_admin"),
            WorkspaceMember(workspace_id=workspace_id, user_id=member_id, role="member"),
            BoardMember(board_id=board.id, user_id=admin_id, role="board_admin"),
            BoardMember(board_id=board.id, user_id=member_id, role="member"),
        ]
    )
    await session.commit()
    return BoardFixture(
        workspace_id=workspace_id,
        board=board,
        todo=todo,
        done=done,
        card=card,
        admin_id=admin_id,
        member_id=member_id,
    )


class InMemoryBoard:
    """Rule store, card store, sinks, and run recorder backed by dicts."""

    def __init__(self, rules: list[Rule] | None = None, *, lists: set[str] | None = None) -> None:
        self.rules = list(rules or [])
        self.lists = set(lists or {LIST_TODO, LIST_DONE})
        self.cards: dict[str, dict[str, Any]] = {}
        self.comments: list[dict[str, Any]] = []
        self.notifications: list[dict[str, Any]] = []
        self.runs: list[dict[str, Any]] = []
        self.moves = 0
        self.fail_on: dict[str, Exception] = {}

    def add_card(self, card: CardSnapshot) -> None:
        self.cards[card.id] = {
            "list_id": card.list_id,
            "label_ids": set(card.label_ids),
            "assignee_ids": set(card.assignee_ids),
            "due_at": card.due_at,
        }

    def _card(self, operation: str, card_id: str) -> dict[str, Any]:
        if operation in self.fail_on:
            raise self.fail_on[operation]
        if card_id not in self.cards:
            raise CardNotFoundError(f"card {card_id} not found")
        return self.cards[card_id]

    async def list_active_rules(self, board_id: str, workspace_id: str) -> list[Rule]:
        return [rule for rule in self.rules if rule.is_active]

    async def get_rule(self, rule_id: str) -> Rule | None:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    async def move_card(self, card_id: str, list_id: str, position: float | None = None) -> None:
        card = self._card("move_card", card_id)
        if list_id not in self.lists:
            raise ListNotFoundError(f"list {list_id} not found")
        card["list_id"] = list_id
        self.moves += 1

    async def add_label(self, card_id: str, label_id: str) -> None:
        self._card("add_label", card_id)["label_ids"].add(label_id)

    async def assign_member(self, card_id: str, user_id: str, assigned_by: str | None = None) -> None:
        self._card("assign_member", card_id)["assignee_ids"].add(user_id)

    async def set_due_date(self, card_id: str, due_at: datetime) -> None:
        self._card("set_due_date", card_id)["due_at"] = due_at

    async def insert_comment(self, *, card_id: str, author_id: str, body: str) -> None:
        self._card("post_comment", card_id)
        self.comments.append({"card_id": card_id, "author_id": author_id, "body": body})

    async def enqueue_notification(self, **kwargs: Any) -> None:
        if "notify" in self.fail_on:
            raise self.fail_on["notify"]
        self.notifications.append(kwargs)

    async def record_run(self, *, rule: Rule, event: AutomationEvent, status: str, **kwargs: Any) -> None:
        self.runs.append({"rule_id": rule.id, "trigger": event.trigger.value, "status": status, **kwargs})
