from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class ToolCategory(str, Enum):
    tasks = "tasks"
    work_orders = "work_orders"
    client_data = "client_data"
    email = "email"
    deliverables = "deliverables"
    financial = "financial"
    playbooks = "playbooks"
    general = "general"


class PermissionFlag(str, Enum):
    """Boolean capability flags carried by an ``AgentConfiguration``.

    Values match the attribute names on ``AgentConfiguration``.
    """

    can_modify_tasks = "can_modify_tasks"
    can_create_work_orders = "can_create_work_orders"
    can_access_client_data = "can_access_client_data"
    can_send_emails = "can_send_emails"
    can_modify_deliverables = "can_modify_deliverables"
    can_access_financial_data = "can_access_financial_data"
    can_modify_playbooks = "can_modify_playbooks"


class ApprovalActionType(str, Enum):
    external_sends = "external_sends"
    financial = "financial"
    contracts = "contracts"
    scope_changes = "scope_changes"
    client_facing_content = "client_facing_content"
    financial_data = "financial_data"
    contractual_changes = "contractual_changes"
    work_order_creation = "work_order_creation"
    task_assignment = "task_assignment"


class ToolResultStatus(str, Enum):
    success = "success"
    failed = "failed"
    denied = "denied"
    approval_required = "approval_required"
    budget_exceeded = "budget_exceeded"


class WorkflowStatus(str, Enum):
    running = "running"
    paused = "paused"
    completed = "completed"


class RunType(str, Enum):
    tool_execution = "tool_execution"
    agent_run = "agent_run"


class InboxItemType(str, Enum):
    approval = "approval"
    review = "review"


class InboxItemStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class Urgency(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class SourceType(str, Enum):
    ai_agent = "ai_agent"
    user = "user"


class TeamContext(BaseSchema):
    """Explicit caller context passed into every service call."""

    team_id: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None


class AIAgent(BaseSchema):
    id: str = Field(default_factory=_new_id)
    code: str
    name: str
    description: Optional[str] = None


class AgentConfiguration(BaseSchema):
    """Per-team, per-agent permissions and budget counters.

    ``daily_budget_cap`` falls back to ``monthly_budget_cap`` when unset; a
    ``None`` cap means the agent is not capped for that window.
    """

    id: str = Field(default_factory=_new_id)
    team_id: str
    agent_id: str
    enabled: bool = True

    can_modify_tasks: bool = False
    can_create_work_orders: bool = False
    can_access_client_data: bool = False
    can_send_emails: bool = False
    can_modify_deliverables: bool = False
    can_access_financial_data: bool = False
    can_modify_playbooks: bool = False

    tool_permissions: Dict[str, bool] = Field(
        default_factory=dict,
        description="Per-tool overrides applied after the category flags.",
    )

    daily_budget_cap: Optional[float] = Field(default=None, ge=0.0)
    monthly_budget_cap: Optional[float] = Field(default=None, ge=0.0)
    daily_spend: float = Field(default=0.0, ge=0.0)
    current_month_spend: float = Field(default=0.0, ge=0.0)

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def has_flag(self, flag: PermissionFlag) -> bool:
        return bool(getattr(self, flag.value))

    @property
    def effective_daily_cap(self) -> Optional[float]:
        return self.daily_budget_cap if self.daily_budget_cap is not None else self.monthly_budget_cap


_APPROVAL_FIELDS: Dict[ApprovalActionType, str] = {
    ApprovalActionType.external_sends: "require_approval_external_sends",
    ApprovalActionType.financial: "require_approval_financial",
    ApprovalActionType.contracts: "require_approval_contracts",
    ApprovalActionType.scope_changes: "require_approval_scope_changes",
    ApprovalActionType.client_facing_content: "approval_client_facing_content",
    ApprovalActionType.financial_data: "approval_financial_data",
    ApprovalActionType.contractual_changes: "approval_contractual_changes",
    ApprovalActionType.work_order_creation: "approval_work_order_creation",
    ApprovalActionType.task_assignment: "approval_task_assignment",
}


class GlobalAISettings(BaseSchema):
    """Team-wide human-in-the-loop switches."""

    id: str = Field(default_factory=_new_id)
    team_id: str

    require_approval_external_sends: bool = True
    require_approval_financial: bool = True
    require_approval_contracts: bool = True
    require_approval_scope_changes: bool = False
    approval_client_facing_content: bool = True
    approval_financial_data: bool = True
    approval_contractual_changes: bool = True
    approval_work_order_creation: bool = False
    approval_task_assignment: bool = False

    pm_copilot_auto_suggest: bool = False
    pm_copilot_auto_approval_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    def requires_approval_for(self, action_type: ApprovalActionType) -> bool:
        return bool(getattr(self, _APPROVAL_FIELDS[action_type]))

    def meets_auto_approval_threshold(self, confidence_score: float) -> bool:
        return confidence_score >= self.pm_copilot_auto_approval_threshold


class AgentWorkflowState(BaseSchema):
    """Persisted checkpoint of one workflow run.

    ``state_data`` is stored as a plain dict; workflows decode it into their
    own typed model inside the engine.
    """

    id: str = Field(default_factory=_new_id)
    team_id: str
    agent_id: str
    workflow_class: str

    current_node: str = "start"
    state_data: Dict[str, Any] = Field(default_factory=dict)

    paused_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    pause_reason: Optional[str] = None
    approval_required: bool = False

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def is_paused(self) -> bool:
        return self.paused_at is not None and self.completed_at is None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def status(self) -> WorkflowStatus:
        if self.is_completed:
            return WorkflowStatus.completed
        if self.is_paused:
            return WorkflowStatus.paused
        return WorkflowStatus.running


class AgentActivityLog(BaseSchema):
    id: str = Field(default_factory=_new_id)
    team_id: str
    agent_id: str
    workflow_state_id: Optional[str] = None

    run_type: RunType = RunType.tool_execution
    tool_name: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    status: ToolResultStatus

    tokens_used: int = 0
    cost: float = 0.0
    duration_ms: float = 0.0

    created_at: datetime = Field(default_factory=_utc_now)


class InboxItem(BaseSchema):
    id: str = Field(default_factory=_new_id)
    team_id: str
    type: InboxItemType = InboxItemType.approval

    title: str
    content_preview: str
    full_content: str

    source_id: str
    source_name: str
    source_type: SourceType = SourceType.ai_agent

    approvable_type: str
    approvable_id: str

    urgency: Urgency = Urgency.normal
    status: InboxItemStatus = InboxItemStatus.pending

    decided_by: Optional[str] = None
    feedback: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=_utc_now)


class WorkflowCustomization(BaseSchema):
    id: str = Field(default_factory=_new_id)
    team_id: str
    workflow_class: str
    enabled: bool = True
    disabled_steps: List[str] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
