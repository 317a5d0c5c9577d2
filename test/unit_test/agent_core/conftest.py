from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from laborobo_ai.agent_core.policy import ApprovalPolicy, BudgetService
from laborobo_ai.agent_core.repos.interfaces import BudgetRefund, InboxDecision
from laborobo_ai.agent_core.runtime import AgentApprovalService, AgentOrchestrator, WorkflowDeps
from laborobo_ai.agent_core.schemas.domain import (
    AgentActivityLog,
    AgentConfiguration,
    AgentWorkflowState,
    AIAgent,
    GlobalAISettings,
    InboxItem,
    InboxItemStatus,
    TeamContext,
    WorkflowCustomization,
)
from laborobo_ai.agent_core.tools import (
    InMemoryWorkOrderContextSource,
    ToolGateway,
    ToolRegistry,
    register_builtin_tools,
)

TEAM_ID = "team-1"


class _AgentsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, AIAgent] = {}

    async def create(self, agent: AIAgent) -> None:
        self.by_id[agent.id] = agent

    async def get(self, agent_id: str) -> Optional[AIAgent]:
        return self.by_id.get(agent_id)

    async def get_by_code(self, code: str) -> Optional[AIAgent]:
        return next((a for a in self.by_id.values() if a.code == code), None)


class _ConfigurationsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, AgentConfiguration] = {}
        self.reserve_calls: List[tuple[str, float]] = []

    async def save(self, configuration: AgentConfiguration) -> None:
        self.by_id[configuration.id] = configuration.model_copy(deep=True)

    async def get(self, team_id: str, agent_id: str) -> Optional[AgentConfiguration]:
        for c in self.by_id.values():
            if c.team_id == team_id and c.agent_id == agent_id:
                return c.model_copy(deep=True)
        return None

    async def get_by_id(self, configuration_id: str) -> Optional[AgentConfiguration]:
        c = self.by_id.get(configuration_id)
        return c.model_copy(deep=True) if c is not None else None

    async def try_reserve_spend(self, configuration_id: str, amount: float) -> bool:
        self.reserve_calls.append((configuration_id, amount))
        c = self.by_id.get(configuration_id)
        if c is None:
            return False
        daily_cap = c.effective_daily_cap
        if daily_cap is not None and c.daily_spend + amount > daily_cap:
            return False
        if c.monthly_budget_cap is not None and c.current_month_spend + amount > c.monthly_budget_cap:
            return False
        c.daily_spend += amount
        c.current_month_spend += amount
        return True

    async def refund(self, refund: BudgetRefund) -> None:
        self.apply_refund(refund)

    def apply_refund(self, refund: BudgetRefund) -> None:
        c = self.by_id.get(refund.configuration_id)
        if c is None:
            return
        c.daily_spend = max(0.0, c.daily_spend - refund.amount)
        c.current_month_spend = max(0.0, c.current_month_spend - refund.amount)

    async def reset_daily_spend(self) -> int:
        touched = [c for c in self.by_id.values() if c.daily_spend != 0]
        for c in touched:
            c.daily_spend = 0.0
        return len(touched)

    async def reset_monthly_spend(self) -> int:
        touched = [c for c in self.by_id.values() if c.current_month_spend != 0]
        for c in touched:
            c.current_month_spend = 0.0
        return len(touched)


class _SettingsRepo:
    def __init__(self) -> None:
        self.by_team: Dict[str, GlobalAISettings] = {}

    async def get(self, team_id: str) -> Optional[GlobalAISettings]:
        return self.by_team.get(team_id)

    async def save(self, settings: GlobalAISettings) -> None:
        self.by_team[settings.team_id] = settings


class _ActivityRepo:
    def __init__(self, configurations: _ConfigurationsRepo) -> None:
        self.entries: List[AgentActivityLog] = []
        self.refunds: List[BudgetRefund] = []
        self.fail = False
        self._configurations = configurations

    async def append(self, entry: AgentActivityLog, *, refund: Optional[BudgetRefund] = None) -> None:
        if self.fail:
            raise RuntimeError("activity store unavailable")
        self.entries.append(entry)
        if refund is not None:
            self.refunds.append(refund)
            self._configurations.apply_refund(refund)

    async def list_for_state(self, workflow_state_id: str) -> List[AgentActivityLog]:
        return [e for e in self.entries if e.workflow_state_id == workflow_state_id]

    async def list_for_team(self, team_id: str, limit: int = 100) -> List[AgentActivityLog]:
        return [e for e in self.entries if e.team_id == team_id][:limit]


class _InboxRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, InboxItem] = {}

    async def create(self, item: InboxItem) -> None:
        self.by_id[item.id] = item.model_copy(deep=True)

    async def get(self, item_id: str) -> Optional[InboxItem]:
        item = self.by_id.get(item_id)
        return item.model_copy(deep=True) if item is not None else None

    def is_pending(self, item_id: str) -> bool:
        item = self.by_id.get(item_id)
        return item is not None and item.status == InboxItemStatus.pending

    def apply(self, decision: InboxDecision) -> Optional[InboxItem]:
        if not self.is_pending(decision.item_id):
            return None
        item = self.by_id[decision.item_id]
        item.status = decision.status
        item.decided_by = decision.decided_by
        item.feedback = decision.feedback
        if decision.status == InboxItemStatus.approved:
            item.approved_at = decision.decided_at
        else:
            item.rejected_at = decision.decided_at
        return item.model_copy(deep=True)

    async def decide(
        self,
        item_id: str,
        *,
        status: InboxItemStatus,
        decided_by: Optional[str],
        feedback: Optional[str] = None,
        decided_at: datetime,
    ) -> Optional[InboxItem]:
        return self.apply(
            InboxDecision(
                item_id=item_id, status=status, decided_by=decided_by, decided_at=decided_at, feedback=feedback
            )
        )

    async def list_pending(self, team_id: str, approvable_type: Optional[str] = None) -> List[InboxItem]:
        return [
            i
            for i in self.by_id.values()
            if i.team_id == team_id
            and i.status == InboxItemStatus.pending
            and (approvable_type is None or i.approvable_type == approvable_type)
        ]

    async def find_pending_for(self, approvable_type: str, approvable_id: str) -> Optional[InboxItem]:
        return next(
            (
                i
                for i in self.by_id.values()
                if i.approvable_type == approvable_type
                and i.approvable_id == approvable_id
                and i.status == InboxItemStatus.pending
            ),
            None,
        )


class _StatesRepo:
    def __init__(self, inbox: _InboxRepo) -> None:
        self.by_id: Dict[str, AgentWorkflowState] = {}
        self.saved_nodes: List[str] = []
        self._inbox = inbox

    async def create(self, state: AgentWorkflowState) -> None:
        self.by_id[state.id] = state.model_copy(deep=True)

    async def get(self, state_id: str) -> Optional[AgentWorkflowState]:
        state = self.by_id.get(state_id)
        return state.model_copy(deep=True) if state is not None else None

    async def save(self, state: AgentWorkflowState) -> None:
        self.by_id[state.id] = state.model_copy(deep=True)
        self.saved_nodes.append(state.current_node)

    async def pause(self, state: AgentWorkflowState, item: InboxItem) -> None:
        await self.save(state)
        await self._inbox.create(item)

    async def resume(
        self,
        state_id: str,
        *,
        approval_data: Dict[str, Any],
        resumed_at: datetime,
        decision: Optional[InboxDecision] = None,
    ) -> Optional[AgentWorkflowState]:
        state = self.by_id.get(state_id)
        if state is None or not state.is_paused:
            return None
        if decision is not None and self._inbox.apply(decision) is None:
            return None
        data = dict(state.state_data)
        merged = dict(data.get("approval_data") or {})
        merged.update(approval_data)
        data["approval_data"] = merged
        resumed = state.model_copy(
            update={
                "state_data": data,
                "paused_at": None,
                "resumed_at": resumed_at,
                "approval_required": False,
                "updated_at": resumed_at,
            }
        )
        self.by_id[state_id] = resumed
        return resumed.model_copy(deep=True)

    async def reject(
        self,
        state_id: str,
        *,
        rejection: Dict[str, Any],
        decision: InboxDecision,
    ) -> Optional[AgentWorkflowState]:
        state = self.by_id.get(state_id)
        if state is None or not state.is_paused or self._inbox.apply(decision) is None:
            return None
        data = dict(state.state_data)
        data["rejection"] = rejection
        rejected = state.model_copy(update={"state_data": data, "updated_at": decision.decided_at})
        self.by_id[state_id] = rejected
        return rejected.model_copy(deep=True)

    async def list_paused(self, team_id: str) -> List[AgentWorkflowState]:
        return [s for s in self.by_id.values() if s.team_id == team_id and s.is_paused]


class _CustomizationsRepo:
    def __init__(self) -> None:
        self.by_id: Dict[str, WorkflowCustomization] = {}

    async def save(self, customization: WorkflowCustomization) -> None:
        self.by_id[customization.id] = customization

    async def get_enabled(self, team_id: str, workflow_class: str) -> Optional[WorkflowCustomization]:
        return next(
            (
                c
                for c in self.by_id.values()
                if c.team_id == team_id and c.workflow_class == workflow_class and c.enabled
            ),
            None,
        )

    async def get(self, customization_id: str) -> Optional[WorkflowCustomization]:
        return self.by_id.get(customization_id)


@dataclass
class MemoryRepos:
    agents: _AgentsRepo = field(default_factory=_AgentsRepo)
    configurations: _ConfigurationsRepo = field(default_factory=_ConfigurationsRepo)
    settings: _SettingsRepo = field(default_factory=_SettingsRepo)
    inbox: _InboxRepo = field(default_factory=_InboxRepo)
    customizations: _CustomizationsRepo = field(default_factory=_CustomizationsRepo)

    def __post_init__(self) -> None:
        self.activity = _ActivityRepo(self.configurations)
        self.states = _StatesRepo(self.inbox)


@pytest.fixture
def repos() -> MemoryRepos:
    return MemoryRepos()


@pytest.fixture
def team_context() -> TeamContext:
    return TeamContext(team_id=TEAM_ID, user_id="user-1", user_name="Pat Manager")


@pytest.fixture
def agent(repos: MemoryRepos) -> AIAgent:
    a = AIAgent(id="agent-1", code="pm-copilot", name="PM Copilot")
    repos.agents.by_id[a.id] = a
    return a


@pytest.fixture
async def configuration(repos: MemoryRepos, agent: AIAgent) -> AgentConfiguration:
    cfg = AgentConfiguration(
        id="cfg-1",
        team_id=TEAM_ID,
        agent_id=agent.id,
        can_access_client_data=True,
        daily_budget_cap=1.0,
        monthly_budget_cap=10.0,
    )
    await repos.configurations.save(cfg)
    return cfg


@pytest.fixture
def context_source() -> InMemoryWorkOrderContextSource:
    return InMemoryWorkOrderContextSource(
        work_orders={
            "wo-1": {
                "id": "wo-1",
                "team_id": TEAM_ID,
                "title": "Website Redesign",
                "description": "Refresh the marketing site with the new brand.",
                "acceptance_criteria": ["Responsive layout", "Brand colors applied"],
                "status": "in-progress",
            },
            "wo-other": {"id": "wo-other", "team_id": "team-2", "title": "Other team's work"},
        },
        playbooks={
            TEAM_ID: [
                {
                    "id": "pb-1",
                    "name": "Website Launch",
                    "description": "Steps to launch a website",
                    "tags": ["website"],
                    "times_applied": 3,
                    "content": {"checklist": ["Set up staging", "Run QA", "Go live"]},
                },
                {"id": "pb-2", "name": "Email Campaign", "description": "Newsletter", "times_applied": 7},
            ]
        },
        tasks=[
            {"id": "t-1", "team_id": TEAM_ID, "work_order_id": "wo-1", "status": "done"},
            {"id": "t-2", "team_id": TEAM_ID, "work_order_id": "wo-1", "status": "blocked"},
            {"id": "t-3", "team_id": TEAM_ID, "work_order_id": "wo-1", "status": "todo"},
        ],
        project_contexts={
            "wo-1": {
                "budget_hours": 100,
                "actual_hours": 90,
                "pending_tasks": [
                    {"id": "t-2", "due_date": "2020-01-01", "is_blocked": True},
                    {"id": "t-3", "due_date": "2999-01-01", "is_blocked": False},
                ],
            }
        },
    )


@pytest.fixture
def orchestrator(repos: MemoryRepos) -> AgentOrchestrator:
    return AgentOrchestrator(
        states=repos.states,
        inbox=repos.inbox,
        customizations=repos.customizations,
        configurations=repos.configurations,
    )


@pytest.fixture
def approvals(orchestrator: AgentOrchestrator, repos: MemoryRepos) -> AgentApprovalService:
    return AgentApprovalService(orchestrator=orchestrator, inbox=repos.inbox)


@pytest.fixture
def budget(repos: MemoryRepos) -> BudgetService:
    return BudgetService(repos.configurations)


@pytest.fixture
def gateway(
    repos: MemoryRepos, budget: BudgetService, context_source: InMemoryWorkOrderContextSource
) -> ToolGateway:
    registry = register_builtin_tools(ToolRegistry(), context_source)
    return ToolGateway(
        registry=registry,
        activity=repos.activity,
        budget=budget,
        approvals=ApprovalPolicy(repos.settings),
    )


@pytest.fixture
def deps(
    orchestrator: AgentOrchestrator,
    approvals: AgentApprovalService,
    gateway: ToolGateway,
    context_source: InMemoryWorkOrderContextSource,
) -> WorkflowDeps:
    return WorkflowDeps(
        orchestrator=orchestrator,
        approvals=approvals,
        gateway=gateway,
        context_source=context_source,
    )
