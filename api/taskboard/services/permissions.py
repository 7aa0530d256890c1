"""Role checks for rule lifecycle operations.

Board-scoped rules need board admins; workspace-scoped rules need workspace admins.
The automation engine never calls into this module.
"""

from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.models.board import Board, BoardMember, WorkspaceMember

BOARD_ADMIN = "board_admin"
WORKSPACE_ADMIN = "workspace_admin"


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


async def assert_workspace_role(
    session: AsyncSession, workspace_id: uuid.UUID, user_id: uuid.UUID, roles: set[str]
) -> None:
    result = await session.execute(
        select(WorkspaceMember.role).where(
            WorkspaceMember.workspace_id == workspace_id, WorkspaceMember.user_id == user_id
        )
    )
    role = result.scalar_one_or_none()
    if role not in roles:
        raise _forbidden("Workspace role required")


async def assert_board_role(
    session: AsyncSession, board_id: uuid.UUID, user_id: uuid.UUID, roles: set[str]
) -> Board:
    """Ensure the user holds one of ``roles`` on the board and return the board."""
    board = await session.get(Board, board_id)
    if not board:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
    result = await session.execute(
        select(BoardMember.role).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id)
    )
    role = result.scalar_one_or_none()
    if role not in roles:
        raise _forbidden("Board role required")
    return board


async def assert_rule_scope_admin(
    session: AsyncSession,
    *,
    workspace_id: uuid.UUID,
    board_id: uuid.UUID | None,
    user_id: uuid.UUID,
) -> None:
    """Authorize a lifecycle change for a rule in the given scope."""
    if board_id:
        board = await assert_board_role(session, board_id, user_id, {BOARD_ADMIN})
        if board.workspace_id != workspace_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Board does not belong to workspace"
            )
        return
    await assert_workspace_role(session, workspace_id, user_id, {WORKSPACE_ADMIN})
