from taskboard.models.automation import (
    AutomationRule,
    AutomationRuleAction,
    AutomationRuleCondition,
    AutomationRun,
)
from taskboard.models.board import (
    Board,
    BoardList,
    BoardMember,
    Card,
    CardAssignee,
    CardComment,
    CardLabel,
    Notification,
    WorkspaceMember,
)

__all__ = [
    "AutomationRule",
    "AutomationRuleAction",
    "AutomationRuleCondition",
    "AutomationRun",
    "Board",
    "BoardList",
    "BoardMember",
    "Card",
    "CardAssignee",
    "CardComment",
    "CardLabel",
    "Notification",
    "WorkspaceMember",
]
