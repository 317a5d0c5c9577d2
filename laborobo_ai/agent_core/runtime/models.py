from __future__ import annotations

"""Workflow step outcomes, typed state data and the LangGraph loop state.

- ``StepOutcome`` is what a step function returns: advance, pause or complete.
- ``WorkflowStateData`` is the typed view of ``AgentWorkflowState.state_data``;
  each workflow subclasses it with its own input and step output fields.
- ``WorkflowDeps`` bundles the services a workflow needs.
- ``_GraphState`` is the small mutable dict passed between LangGraph nodes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    NotRequired,
    Optional,
    Required,
    TypedDict,
)

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import Urgency

if TYPE_CHECKING:
    from ..llm import AgentRunner
    from ..policy.auto_approval import AutoApprovalPolicy
    from ..tools.builtin import WorkOrderContextSource
    from ..tools.gateway import ToolGateway
    from .approvals import AgentApprovalService
    from .orchestrator import AgentOrchestrator


START_NODE = "start"
COMPLETED_NODE = "completed"


class StepKind(str, Enum):
    advance = "advance"
    pause = "pause"
    complete = "complete"


@dataclass(frozen=True)
class StepOutcome:
    """Result of a single workflow step.

    Use the constructors rather than building instances directly:

    - ``StepOutcome.advance()`` checkpoints and moves to the next step, or to
      ``to`` when given.
    - ``StepOutcome.pause(reason, action_description)`` checkpoints, pauses and
      files an approval inbox item.
    - ``StepOutcome.complete(result)`` finishes the workflow.
    """

    kind: StepKind
    to: Optional[str] = None
    reason: Optional[str] = None
    action_description: Optional[str] = None
    action_input: Dict[str, Any] = field(default_factory=dict)
    urgency: Urgency = Urgency.normal
    result: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def advance(cls, to: Optional[str] = None) -> "StepOutcome":
        return cls(kind=StepKind.advance, to=to)

    @classmethod
    def pause(
        cls,
        reason: str,
        action_description: Optional[str] = None,
        *,
        action_input: Optional[Dict[str, Any]] = None,
        urgency: Urgency = Urgency.normal,
    ) -> "StepOutcome":
        return cls(
            kind=StepKind.pause,
            reason=reason,
            action_description=action_description or reason,
            action_input=dict(action_input or {}),
            urgency=urgency,
        )

    @classmethod
    def complete(cls, result: Optional[Dict[str, Any]] = None) -> "StepOutcome":
        return cls(kind=StepKind.complete, result=dict(result or {}))


class RejectionRecord(BaseSchema):
    rejected: bool = True
    rejection_reason: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: datetime


class WorkflowStateData(BaseSchema):
    """Engine-managed fields of ``state_data``.

    ``next_node`` holds the jump target of an ``advance(to=...)`` outcome until
    the engine consumes it.
    """

    input: Dict[str, Any] = Field(default_factory=dict)
    customization_id: Optional[str] = None
    started_at: Optional[datetime] = None
    next_node: Optional[str] = None

    approval_data: Dict[str, Any] = Field(default_factory=dict)
    inbox_item_id: Optional[str] = None
    approval_requested_at: Optional[datetime] = None
    rejection: Optional[RejectionRecord] = None

    result: Optional[Dict[str, Any]] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class WorkflowDeps:
    """Dependency bundle for workflows.

    ``gateway`` and ``runner`` are optional: without a gateway, steps read
    through ``context_source`` directly; without a runner, steps use their
    deterministic builders instead of the LLM. Without ``auto_approval`` every
    review checkpoint pauses.
    """

    orchestrator: "AgentOrchestrator"
    approvals: "AgentApprovalService"
    gateway: Optional["ToolGateway"] = None
    runner: Optional["AgentRunner"] = None
    context_source: Optional["WorkOrderContextSource"] = None
    auto_approval: Optional["AutoApprovalPolicy"] = None


class _GraphState(TypedDict):
    """Mutable LangGraph state for one ``run`` call.

    Required keys:

    - ``state_id``: workflow state being executed.

    Optional keys:

    - ``_outcome``: routing decision of the last ``execute`` node
      (``continue`` / ``pause`` / ``finish``).
    - ``_steps_run``: number of step functions executed in this call.
    """

    state_id: Required[str]
    _outcome: NotRequired[str]
    _steps_run: NotRequired[int]
