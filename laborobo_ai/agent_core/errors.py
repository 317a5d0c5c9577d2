"""Error types for the agent core.

``PermissionDenied``, ``BudgetExceeded`` and ``ApprovalRequired`` describe
expected gateway outcomes. The gateway returns them as ``ToolResult`` statuses;
callers that prefer exceptions use ``ToolResult.raise_for_status``.

``WorkflowStepFailed`` is raised when a step function fails unexpectedly. It
propagates out of ``run`` and leaves the last checkpoint untouched.
"""

from __future__ import annotations

from typing import Optional


class LaboroboAIError(Exception):
    """Base error for all agent core exceptions."""


class ToolNotFound(LaboroboAIError):
    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' not found")


class PermissionDenied(LaboroboAIError):
    """Raised when the agent configuration lacks the permission a tool requires."""

    def __init__(self, tool_name: str, reason: str) -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Permission denied for tool '{tool_name}': {reason}")


class BudgetExceeded(LaboroboAIError):
    """Raised when a call would push spend past the daily or monthly cap."""

    def __init__(self, tool_name: str, estimated_cost: float) -> None:
        self.tool_name = tool_name
        self.estimated_cost = estimated_cost
        super().__init__(f"Budget exceeded for tool '{tool_name}' (estimated cost {estimated_cost:.4f})")


class ApprovalRequired(LaboroboAIError):
    """Raised when team settings require human approval for the tool's action type."""

    def __init__(self, tool_name: str, action_type: str) -> None:
        self.tool_name = tool_name
        self.action_type = action_type
        super().__init__(f"Tool '{tool_name}' requires human approval for '{action_type}' actions")


class ToolExecutionFailed(LaboroboAIError):
    """Wraps an arbitrary error raised from inside a tool."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class WorkflowStepFailed(LaboroboAIError):
    """Raised when a workflow step raises an unexpected exception."""

    def __init__(self, state_id: str, node: str, message: str) -> None:
        self.state_id = state_id
        self.node = node
        super().__init__(f"Workflow step '{node}' failed for state '{state_id}': {message}")


class WorkflowStateNotFound(LaboroboAIError):
    def __init__(self, state_id: str) -> None:
        self.state_id = state_id
        super().__init__(f"Workflow state not found: '{state_id}'")


class WorkflowNotPausedError(LaboroboAIError):
    """Raised when resuming a workflow state that is not currently paused."""

    def __init__(self, state_id: str, status: Optional[str] = None) -> None:
        self.state_id = state_id
        detail = f" (status={status})" if status else ""
        super().__init__(f"Workflow state '{state_id}' is not paused{detail}")


class InboxItemNotFound(LaboroboAIError):
    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Inbox item not found: '{item_id}'")


class InboxItemAlreadyDecided(LaboroboAIError):
    def __init__(self, item_id: str, status: str) -> None:
        self.item_id = item_id
        self.status = status
        super().__init__(f"Inbox item '{item_id}' was already {status}")


class UnknownWorkflow(LaboroboAIError):
    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"No workflow registered for '{identifier}'")
