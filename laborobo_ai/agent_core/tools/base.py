from __future__ import annotations

"""Tool protocol and execution data models.

A tool is a named, permissioned action an agent can invoke. Tools are only
ever executed by ``ToolGateway``; they must not perform permission, approval or
budget checks themselves.

Tools:

- describe themselves with a ``ToolDefinition`` (name, category, typed
  parameters),
- receive the caller's explicit ``ToolContext`` (team, agent, configuration),
- return a JSON-serializable dict, or raise on failure.
"""

import inspect
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from pydantic import Field

from ..errors import ApprovalRequired, BudgetExceeded, PermissionDenied, ToolExecutionFailed
from ..schemas.base import BaseSchema
from ..schemas.domain import (
    AgentConfiguration,
    AIAgent,
    PermissionFlag,
    ToolCategory,
    ToolResultStatus,
)


class ParameterType(str, Enum):
    string = "string"
    integer = "integer"
    number = "number"
    boolean = "boolean"
    array = "array"
    object = "object"


class ToolParameter(BaseSchema):
    name: str
    type: ParameterType = ParameterType.string
    description: str = ""
    required: bool = True
    enum: Optional[List[Any]] = None

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type.value}
        if self.description:
            schema["description"] = self.description
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        return schema


class ToolDefinition(BaseSchema):
    """Static description of a tool.

    ``required_permissions`` replaces the category's default flag when set.
    """

    name: str = Field(pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")
    description: str
    category: ToolCategory = ToolCategory.general
    parameters: List[ToolParameter] = Field(default_factory=list)
    required_permissions: List[PermissionFlag] = Field(default_factory=list)

    def json_schema(self) -> Dict[str, Any]:
        """Return a JSON Schema object describing the tool's parameters."""
        return {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
            "additionalProperties": False,
        }


@dataclass(frozen=True)
class ToolContext:
    """Execution context passed to tool implementations.

    Attributes
    ----------
    team_id:
        The team the call is scoped to.
    agent:
        The agent invoking the tool.
    configuration:
        The agent's configuration for ``team_id``.
    workflow_state_id:
        The workflow run the call belongs to, if any.
    """

    team_id: str
    agent: AIAgent
    configuration: AgentConfiguration
    workflow_state_id: Optional[str] = None


@dataclass(frozen=True)
class ToolResult:
    """Structured result of a gateway call."""

    status: ToolResultStatus
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    execution_time_ms: float = 0.0

    @classmethod
    def success(cls, data: Dict[str, Any], execution_time_ms: float = 0.0) -> "ToolResult":
        return cls(status=ToolResultStatus.success, data=data, execution_time_ms=execution_time_ms)

    @classmethod
    def failure(cls, error: str, execution_time_ms: float = 0.0) -> "ToolResult":
        return cls(status=ToolResultStatus.failed, error=error, execution_time_ms=execution_time_ms)

    @classmethod
    def denied(cls, reason: str) -> "ToolResult":
        return cls(status=ToolResultStatus.denied, error=reason)

    @classmethod
    def approval_required(cls, action_type: str) -> "ToolResult":
        return cls(
            status=ToolResultStatus.approval_required,
            data={"action_type": action_type},
            error=f"Human approval required for '{action_type}' actions",
        )

    @classmethod
    def budget_exceeded(cls, estimated_cost: float) -> "ToolResult":
        return cls(
            status=ToolResultStatus.budget_exceeded,
            data={"estimated_cost": estimated_cost},
            error="Budget exceeded",
        )

    @property
    def ok(self) -> bool:
        return self.status == ToolResultStatus.success

    def raise_for_status(self, tool_name: str) -> "ToolResult":
        """Raise the matching error for a non-success result; return self otherwise."""
        if self.status == ToolResultStatus.denied:
            raise PermissionDenied(tool_name, self.error or "denied")
        if self.status == ToolResultStatus.approval_required:
            raise ApprovalRequired(tool_name, str(self.data.get("action_type", "")))
        if self.status == ToolResultStatus.budget_exceeded:
            raise BudgetExceeded(tool_name, float(self.data.get("estimated_cost", 0.0)))
        if self.status == ToolResultStatus.failed:
            raise ToolExecutionFailed(tool_name, self.error or "unknown error")
        return self

    def to_agent_text(self) -> str:
        """Serialize for an LLM: JSON on success, ``Error: ...`` otherwise."""
        if self.ok:
            return json.dumps(self.data, default=str)
        return f"Error: {self.error or self.status.value}"


class Tool(Protocol):
    """Protocol for tool implementations."""

    definition: ToolDefinition

    async def execute(self, params: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]: ...


ToolHandler = Callable[[Dict[str, Any], ToolContext], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]


@dataclass(frozen=True)
class FunctionTool:
    """Tool backed by a plain sync or async function."""

    definition: ToolDefinition
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.definition.name

    async def execute(self, params: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
        out = self.handler(params, ctx)
        if inspect.isawaitable(out):
            out = await out
        return dict(out or {})
