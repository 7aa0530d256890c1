"""Periodic sweep that raises due-soon and overdue events for cards."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.models.board import Board, Card
from taskboard.services import automation_service
from taskboard.services.automation_store import build_card_snapshot
from taskboard.services.automation_types import AutomationEvent, TriggerKind, as_utc, utcnow

logger = logging.getLogger("taskboard.services.due_date_sweep")

SWEEP_ACTOR_ID = uuid.UUID(int=0)


async def _cards_with_workspace(session: AsyncSession, *conditions) -> list[tuple[Card, Board]]:
    stmt = (
        select(Card, Board)
        .join(Board, Board.id == Card.board_id)
        .where(Card.archived.is_(False), Card.due_at.is_not(None), *conditions)
        .order_by(Card.due_at.asc())
    )
    result = await session.execute(stmt)
    return [(card, board) for card, board in result.all()]


async def sweep_due_dates(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    lookahead_hours: int | None = None,
) -> dict[str, int]:
    """Run the engine for cards due within the lookahead window and for overdue cards."""
    moment = as_utc(now) or utcnow()
    if lookahead_hours is None:
        lookahead_hours = settings.due_soon_lookahead_hours
    horizon = moment + timedelta(hours=lookahead_hours)

    due_soon = await _cards_with_workspace(session, Card.due_at >= moment, Card.due_at <= horizon)
    overdue = await _cards_with_workspace(session, Card.due_at < moment)

    logger.info("Due-date sweep at %s: %d due soon, %d overdue", moment.isoformat(), len(due_soon), len(overdue))

    # Events are built before any engine run; a failed action rolls the session back
    # and expires the loaded rows.
    events: list[AutomationEvent] = []
    for trigger, rows in ((TriggerKind.DUE_DATE_APPROACHING, due_soon), (TriggerKind.OVERDUE, overdue)):
        for card, board in rows:
            events.append(
                AutomationEvent(
                    trigger=trigger,
                    workspace_id=str(board.workspace_id),
                    board_id=str(card.board_id),
                    actor_id=str(card.created_by or settings.automation_actor_id or SWEEP_ACTOR_ID),
                    card=await build_card_snapshot(session, card),
                    occurred_at=moment,
                )
            )

    for event in events:
        await automation_service.run_event(session, event)

    return {"processed": len(events), "due_soon": len(due_soon), "overdue": len(overdue)}
