"""Pydantic domain schemas for the agent core."""

from .base import BaseSchema
from .domain import (
    AgentActivityLog,
    AgentConfiguration,
    AgentWorkflowState,
    AIAgent,
    ApprovalActionType,
    GlobalAISettings,
    InboxItem,
    InboxItemStatus,
    InboxItemType,
    PermissionFlag,
    RunType,
    SourceType,
    TeamContext,
    ToolCategory,
    ToolResultStatus,
    Urgency,
    WorkflowCustomization,
    WorkflowStatus,
)

__all__ = [
    "BaseSchema",
    "AgentActivityLog",
    "AgentConfiguration",
    "AgentWorkflowState",
    "AIAgent",
    "ApprovalActionType",
    "GlobalAISettings",
    "InboxItem",
    "InboxItemStatus",
    "InboxItemType",
    "PermissionFlag",
    "RunType",
    "SourceType",
    "TeamContext",
    "ToolCategory",
    "ToolResultStatus",
    "Urgency",
    "WorkflowCustomization",
    "WorkflowStatus",
]
