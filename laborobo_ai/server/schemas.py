"""
API Schemas.

This module contains Pydantic models used for API request bodies and response validation.
These schemas define the interface contract between the client and the server.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from laborobo_ai.agent_core.schemas.domain import AgentWorkflowState, WorkflowStatus


class PMCopilotRunCreate(BaseModel):
    """
    Schema for starting a PM Copilot run on a work order.
    """

    work_order_id: str = Field(..., description="The work order to plan.", examples=["wo-42"])
    pm_copilot_mode: Optional[Literal["staged", "full"]] = Field(
        default=None,
        description="'staged' pauses for deliverable review; 'full' runs straight through. "
        "Defaults to the server setting.",
    )

    model_config = ConfigDict(
        json_schema_extra={"example": {"work_order_id": "wo-42", "pm_copilot_mode": "staged"}}
    )


class ApprovalSubmit(BaseModel):
    """
    Schema for approving an inbox item.

    ``approval_data`` is merged into the paused workflow's state; PM Copilot reads
    ``approved_deliverables`` (entries with ``"approved": true``) from it.
    """

    approval_data: Dict[str, Any] = Field(default_factory=dict)


class RejectionSubmit(BaseModel):
    """Schema for rejecting an inbox item."""

    feedback: Optional[str] = Field(default=None, description="Why the action was rejected.")


class WorkflowStateRead(BaseModel):
    """Workflow state as returned by the API, including its derived status."""

    id: str
    team_id: str
    agent_id: str
    workflow_class: str
    status: WorkflowStatus
    current_node: str
    state_data: Dict[str, Any]
    pause_reason: Optional[str] = None
    approval_required: bool = False
    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_state(cls, state: AgentWorkflowState) -> "WorkflowStateRead":
        return cls(status=state.status, **state.model_dump())
