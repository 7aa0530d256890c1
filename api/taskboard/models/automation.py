"""Automation rule models for event-driven board workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskboard.db.base_class import Base

JSON_COMPATIBLE = JSON().with_variant(JSONB, "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationRule(Base):
    """Rule header with trigger and scope metadata.

    A null ``board_id`` marks a workspace-scoped rule that applies to every
    board in ``workspace_id``.
    """

    __tablename__ = "automation_rules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    board_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("boards.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    trigger: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    conditions: Mapped[list["AutomationRuleCondition"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="AutomationRuleCondition.position",
        lazy="selectin",
    )
    actions: Mapped[list["AutomationRuleAction"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="AutomationRuleAction.position",
        lazy="selectin",
    )


class AutomationRuleCondition(Base):
    """Single predicate of a rule; all conditions of a rule are AND-ed."""

    __tablename__ = "automation_rule_conditions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    condition_type: Mapped[str] = mapped_column(String(80), nullable=False)
    condition_payload: Mapped[dict | None] = mapped_column(JSON_COMPATIBLE)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    rule: Mapped[AutomationRule] = relationship(back_populates="conditions")


class AutomationRuleAction(Base):
    """Side effect performed when a rule fires, executed in position order."""

    __tablename__ = "automation_rule_actions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action_type: Mapped[str] = mapped_column(String(64), nullable=False)
    action_payload: Mapped[dict | None] = mapped_column(JSON_COMPATIBLE)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    rule: Mapped[AutomationRule] = relationship(back_populates="actions")


class AutomationRun(Base):
    """Outcome of one rule firing for one event."""

    __tablename__ = "automation_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    trigger_source: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON_COMPATIBLE)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
