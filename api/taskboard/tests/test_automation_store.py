"""SQL-backed store tests: idempotent card writes, rule loading, and run history."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import event as sa_event
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from taskboard.models.automation import AutomationRule, AutomationRuleAction, AutomationRuleCondition, AutomationRun
from taskboard.models.board import Board, BoardList, Card, CardAssignee, CardComment, CardLabel, Notification
from taskboard.services import automation_service
from taskboard.services.automation_store import (
    CardNotFoundError,
    InvalidIdentifierError,
    ListNotFoundError,
    SqlAutomationStore,
    build_card_snapshot,
)
from taskboard.services.automation_types import AutomationEvent, TriggerKind
from taskboard.tests.utils import seed_board


async def _count(session, model, *where) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*where))
    return int(result.scalar_one())


async def _add_rule(session, fixture, *, trigger="card_created", board_scoped=True, actions=None, conditions=None):
    rule = AutomationRule(
        workspace_id=fixture.workspace_id,
        board_id=fixture.board.id if board_scoped else None,
        name="Seeded rule",
        trigger=trigger,
        created_by=fixture.admin_id,
        conditions=[
            AutomationRuleCondition(condition_type=kind, condition_payload=payload, position=index)
            for index, (kind, payload) in enumerate(conditions or [])
        ],
        actions=[
            AutomationRuleAction(action_type=kind, action_payload=payload, position=index)
            for index, (kind, payload) in enumerate(actions or [])
        ],
    )
    session.add(rule)
    await session.commit()
    return rule


async def _event(session, fixture, trigger=TriggerKind.CARD_CREATED) -> AutomationEvent:
    return AutomationEvent(
        trigger=trigger,
        workspace_id=str(fixture.workspace_id),
        board_id=str(fixture.board.id),
        actor_id=str(fixture.member_id),
        card=await build_card_snapshot(session, fixture.card),
    )


@pytest.mark.asyncio
async def test_add_label_and_assign_are_idempotent(session):
    fixture = await seed_board(session)
    store = SqlAutomationStore(session)
    label_id = str(uuid.uuid4())
    user_id = str(uuid.uuid4())

    for _ in range(2):
        await store.add_label(str(fixture.card.id), label_id)
        await store.assign_member(str(fixture.card.id), user_id, assigned_by=str(fixture.admin_id))

    assert await _count(session, CardLabel, CardLabel.card_id == fixture.card.id) == 1
    assert await _count(session, CardAssignee, CardAssignee.card_id == fixture.card.id) == 1
    snapshot = await build_card_snapshot(session, fixture.card)
    assert snapshot.label_ids == frozenset({label_id})
    assert snapshot.assignee_ids == frozenset({user_id})


@pytest.mark.asyncio
async def test_move_card_appends_to_target_list_once(session):
    fixture = await seed_board(session)
    session.add(Card(board_id=fixture.board.id, list_id=fixture.done.id, title="Already done", position=5))
    await session.commit()
    store = SqlAutomationStore(session)

    await store.move_card(str(fixture.card.id), str(fixture.done.id))
    await store.move_card(str(fixture.card.id), str(fixture.done.id))

    card = await session.get(Card, fixture.card.id)
    assert card.list_id == fixture.done.id
    assert card.position == 6


@pytest.mark.asyncio
async def test_move_card_rejects_list_from_another_board(session):
    fixture = await seed_board(session)
    other_board = Board(workspace_id=fixture.workspace_id, name="Other")
    session.add(other_board)
    await session.flush()
    foreign_list = BoardList(board_id=other_board.id, name="Elsewhere")
    session.add(foreign_list)
    await session.commit()
    store = SqlAutomationStore(session)

    with pytest.raises(ListNotFoundError):
        await store.move_card(str(fixture.card.id), str(foreign_list.id))
    with pytest.raises(CardNotFoundError):
        await store.move_card(str(uuid.uuid4()), str(fixture.done.id))
    with pytest.raises(InvalidIdentifierError):
        await store.move_card("not-a-uuid", str(fixture.done.id))


@pytest.mark.asyncio
async def test_set_due_date_comment_and_notification(session):
    fixture = await seed_board(session)
    store = SqlAutomationStore(session)
    due_at = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    await store.set_due_date(str(fixture.card.id), due_at)
    await store.insert_comment(card_id=str(fixture.card.id), author_id=str(fixture.admin_id), body="Heads up")
    await store.enqueue_notification(
        user_id=str(fixture.member_id),
        workspace_id=str(fixture.workspace_id),
        board_id=str(fixture.board.id),
        card_id=str(fixture.card.id),
        type="automation",
        message="Card is due soon",
        payload={"userId": str(fixture.member_id)},
    )

    snapshot = await build_card_snapshot(session, await session.get(Card, fixture.card.id))
    assert snapshot.due_at == due_at
    assert await _count(session, CardComment, CardComment.card_id == fixture.card.id) == 1
    notification = (await session.execute(select(Notification))).scalar_one()
    assert notification.user_id == fixture.member_id
    assert notification.type == "automation"


@pytest.mark.asyncio
async def test_list_active_rules_covers_board_and_workspace_scope(session):
    fixture = await seed_board(session)
    board_rule = await _add_rule(session, fixture, actions=[("notify", {"userId": str(fixture.admin_id)})])
    workspace_rule = await _add_rule(session, fixture, board_scoped=False, actions=[("notify", {"userId": "x"})])
    inactive = await _add_rule(session, fixture, actions=[("notify", {"userId": "x"})])
    inactive.is_active = False
    await session.commit()
    store = SqlAutomationStore(session)

    rules = await store.list_active_rules(str(fixture.board.id), str(fixture.workspace_id))

    assert {rule.id for rule in rules} == {str(board_rule.id), str(workspace_rule.id)}
    assert await store.list_active_rules("board-x", "workspace-y") == []
    fetched = await store.get_rule(str(board_rule.id))
    assert fetched.board_id == str(fixture.board.id)
    assert fetched.actions[0].action_type == "notify"


@pytest.mark.asyncio
async def test_run_event_applies_actions_and_records_runs(session):
    fixture = await seed_board(session)
    rule = await _add_rule(
        session,
        fixture,
        conditions=[("card_priority_is", {"priority": "high"})],
        actions=[
            ("move_card", {"listId": str(fixture.done.id)}),
            ("notify", {"userId": str(fixture.admin_id), "message": "Moved to done"}),
        ],
    )

    report = await automation_service.run_event(session, await _event(session, fixture))

    assert report.matched_rule_ids == [str(rule.id)]
    card = await session.get(Card, fixture.card.id)
    assert card.list_id == fixture.done.id
    notification = (await session.execute(select(Notification))).scalar_one()
    assert notification.message == "Moved to done"
    runs = (await session.execute(select(AutomationRun).where(AutomationRun.rule_id == rule.id))).scalars().all()
    assert len(runs) == 1
    assert runs[0].status == "success"
    assert runs[0].trigger_source == "card_created"
    assert runs[0].details["actions_run"] == 2


@pytest.mark.asyncio
async def test_dispatch_event_swallows_engine_failures(session, monkeypatch):
    fixture = await seed_board(session)

    async def _boom(session, event):
        raise RuntimeError("database went away")

    monkeypatch.setattr(automation_service, "run_event", _boom)

    assert await automation_service.dispatch_event(session, await _event(session, fixture)) is None


@pytest.mark.asyncio
async def test_failed_write_leaves_session_usable_for_later_actions(session):
    fixture = await seed_board(session)
    card_id = fixture.card.id
    rule = await _add_rule(
        session,
        fixture,
        actions=[
            ("add_label", {"labelId": str(uuid.uuid4())}),
            ("notify", {"userId": str(fixture.admin_id)}),
        ],
    )
    rule_id = str(rule.id)
    event = await _event(session, fixture)

    def _reject_label(mapper, connection, target):
        raise OperationalError("INSERT INTO card_labels", {}, Exception("disk I/O error"))

    sa_event.listen(CardLabel, "before_insert", _reject_label)
    try:
        report = await automation_service.run_event(session, event)
    finally:
        sa_event.remove(CardLabel, "before_insert", _reject_label)

    result = report.per_rule_results[rule_id]
    assert [item.status for item in result.actions] == ["failed", "ok"]
    assert result.actions[0].error_kind == "store_error"
    assert result.status == "partial"
    assert await _count(session, CardLabel, CardLabel.card_id == card_id) == 0
    assert await _count(session, Notification) == 1
    runs = (await session.execute(select(AutomationRun))).scalars().all()
    assert [run.status for run in runs] == ["partial"]
