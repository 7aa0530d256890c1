"""API tests for automation rule lifecycle and machine endpoints."""

from __future__ import annotations

import uuid

import pytest

from taskboard.core.config import settings
from taskboard.tests.utils import auth_headers, seed_board


def _rule_payload(fixture, **overrides) -> dict:
    payload = {
        "workspace_id": str(fixture.workspace_id),
        "board_id": str(fixture.board.id),
        "name": "Escalate urgent cards",
        "trigger": "card_created",
        "conditions": [{"type": "card_priority_is", "payload": {"priority": "high"}}],
        "actions": [
            {"action": "move_card", "payload": {"listId": str(fixture.done.id)}},
            {"action": "notify", "payload": {"userId": str(fixture.admin_id)}},
        ],
    }
    payload.update(overrides)
    return payload


def _secret_headers() -> dict[str, str]:
    return {"X-Automation-Secret": settings.automation_cron_secret}


@pytest.mark.asyncio
async def test_automation_rule_lifecycle(client, session):
    fixture = await seed_board(session)
    headers = auth_headers(fixture.admin_id)

    create_res = await client.post("/api/automations/rules", json=_rule_payload(fixture), headers=headers)
    assert create_res.status_code == 201
    rule = create_res.json()
    assert rule["trigger"] == "card_created"
    assert rule["is_active"] is True
    assert [item["action_type"] for item in rule["actions"]] == ["move_card", "notify"]
    assert [item["position"] for item in rule["actions"]] == [0, 1]

    list_res = await client.get(
        "/api/automations/rules",
        params={"workspace_id": str(fixture.workspace_id), "board_id": str(fixture.board.id)},
        headers=headers,
    )
    assert list_res.status_code == 200
    assert [item["id"] for item in list_res.json()] == [rule["id"]]

    update_res = await client.patch(
        f"/api/automations/rules/{rule['id']}",
        json={"name": "Escalate anything", "conditions": []},
        headers=headers,
    )
    assert update_res.status_code == 200
    assert update_res.json()["name"] == "Escalate anything"
    assert update_res.json()["conditions"] == []
    assert len(update_res.json()["actions"]) == 2

    toggle_res = await client.post(
        f"/api/automations/rules/{rule['id']}/toggle", json={"is_active": False}, headers=headers
    )
    assert toggle_res.status_code == 200
    assert toggle_res.json()["is_active"] is False

    delete_res = await client.delete(f"/api/automations/rules/{rule['id']}", headers=headers)
    assert delete_res.status_code == 204

    missing_res = await client.get(f"/api/automations/rules/{rule['id']}", headers=headers)
    assert missing_res.status_code == 404


@pytest.mark.asyncio
async def test_rule_lifecycle_requires_admin_role(client, session):
    fixture = await seed_board(session)

    unauthenticated = await client.post("/api/automations/rules", json=_rule_payload(fixture))
    assert unauthenticated.status_code == 401

    member = await client.post(
        "/api/automations/rules", json=_rule_payload(fixture), headers=auth_headers(fixture.member_id)
    )
    assert member.status_code == 403

    workspace_rule = await client.post(
        "/api/automations/rules",
        json=_rule_payload(fixture, board_id=None),
        headers=auth_headers(fixture.admin_id),
    )
    assert workspace_rule.status_code == 201
    assert workspace_rule.json()["board_id"] is None

    stranger = await client.post(
        f"/api/automations/rules/{workspace_rule.json()['id']}/toggle",
        json={"is_active": False},
        headers=auth_headers(uuid.uuid4()),
    )
    assert stranger.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"actions": []},
        {"trigger": "card_archived"},
        {"conditions": [{"type": "label_is", "payload": {}}]},
        {"conditions": [{"type": "due_within_hours", "payload": {"hours": "soon"}}]},
        {"actions": [{"action": "archive_card", "payload": {}}]},
        {"actions": [{"action": "set_due_date", "payload": {"dueAt": "tomorrow-ish"}}]},
        {"name": "x"},
    ],
)
async def test_malformed_rules_are_rejected(client, session, overrides):
    fixture = await seed_board(session)

    res = await client.post(
        "/api/automations/rules",
        json=_rule_payload(fixture, **overrides),
        headers=auth_headers(fixture.admin_id),
    )

    assert res.status_code == 422


@pytest.mark.asyncio
async def test_submitted_event_runs_rules_and_records_history(client, session):
    fixture = await seed_board(session)
    headers = auth_headers(fixture.admin_id)
    rule = (
        await client.post("/api/automations/rules", json=_rule_payload(fixture), headers=headers)
    ).json()
    event = {
        "trigger": "card_created",
        "workspace_id": str(fixture.workspace_id),
        "board_id": str(fixture.board.id),
        "actor_id": str(fixture.member_id),
        "card": {
            "id": str(fixture.card.id),
            "board_id": str(fixture.board.id),
            "list_id": str(fixture.todo.id),
            "priority": "high",
        },
    }

    rejected = await client.post("/api/automations/events", json=event, headers={"X-Automation-Secret": "nope"})
    assert rejected.status_code == 401

    res = await client.post("/api/automations/events", json=event, headers=_secret_headers())
    assert res.status_code == 200
    report = res.json()
    assert report["matched_rule_ids"] == [rule["id"]]
    assert report["per_rule_results"][rule["id"]]["status"] == "success"
    assert report["loop_guard_triggered"] is False

    runs_res = await client.get(f"/api/automations/rules/{rule['id']}/runs", headers=headers)
    assert runs_res.status_code == 200
    runs = runs_res.json()
    assert len(runs) == 1
    assert runs[0]["status"] == "success"


@pytest.mark.asyncio
async def test_due_date_sweep_endpoint_requires_secret(client, session):
    await seed_board(session)

    denied = await client.post("/api/automations/run")
    assert denied.status_code == 401

    res = await client.post(
        "/api/automations/run", headers={"Authorization": f"Bearer {settings.automation_cron_secret}"}
    )
    assert res.status_code == 200
    assert res.json() == {"processed": 0, "due_soon": 0, "overdue": 0}


@pytest.mark.asyncio
async def test_health_reports_ok(client):
    res = await client.get("/api/health")

    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_event_with_card_from_another_board_is_rejected(client, session):
    fixture = await seed_board(session)
    event = {
        "trigger": "card_created",
        "workspace_id": str(fixture.workspace_id),
        "board_id": str(fixture.board.id),
        "actor_id": str(fixture.member_id),
        "card": {
            "id": str(fixture.card.id),
            "board_id": str(uuid.uuid4()),
            "list_id": str(fixture.todo.id),
        },
    }

    res = await client.post("/api/automations/events", json=event, headers=_secret_headers())

    assert res.status_code == 422
