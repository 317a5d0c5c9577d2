from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from laborobo_ai.agent_core.errors import WorkflowStateNotFound
from laborobo_ai.agent_core.llm import AgentRunner, LLMClient, PydanticAILLMClient
from laborobo_ai.agent_core.policy import ApprovalPolicy, AutoApprovalPolicy, BudgetService
from laborobo_ai.agent_core.repos.sql import SqlRepoBundle, build_sql_repos
from laborobo_ai.agent_core.runtime import (
    AgentApprovalService,
    AgentOrchestrator,
    WorkflowDeps,
    WorkflowRegistry,
)
from laborobo_ai.agent_core.schemas.domain import (
    AgentWorkflowState,
    AIAgent,
    InboxItem,
    TeamContext,
)
from laborobo_ai.agent_core.tools import (
    InMemoryWorkOrderContextSource,
    ToolGateway,
    ToolRegistry,
    WorkOrderContextSource,
    register_builtin_tools,
)
from laborobo_ai.agent_core.workflows import PMCopilotWorkflow, default_workflow_registry
from laborobo_ai.core.logging_config import get_logger
from laborobo_ai.server.core.config import Settings, settings

logger = get_logger(__name__)


def build_llm_client(config: Settings) -> Optional[LLMClient]:
    """Build the configured pydantic-ai client, or ``None`` to use deterministic fallbacks."""
    provider = config.llm_provider
    if provider == "openai" and config.openai.api_key:
        return PydanticAILLMClient(f"openai:{config.openai.model}")
    if provider == "anthropic" and config.anthropic.api_key:
        return PydanticAILLMClient(f"anthropic:{config.anthropic.model}")
    if provider is not None:
        logger.warning(f"LLM provider '{provider}' selected but no API key configured; using fallbacks")
    return None


class AgentService:
    """
    Service layer wiring repositories, the tool gateway and workflows for the API.

    Every method takes the caller's ``TeamContext`` and only touches rows of
    that team.
    """

    def __init__(
        self,
        *,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        context_source: Optional[WorkOrderContextSource] = None,
        llm_client: Optional[LLMClient] = None,
        workflows: Optional[WorkflowRegistry] = None,
        config: Optional[Settings] = None,
    ) -> None:
        if session_factory is None:
            from laborobo_ai.server.core.database import async_session_maker

            session_factory = async_session_maker
        self.config = config or settings
        self.repos: SqlRepoBundle = build_sql_repos(session_factory=session_factory)

        self.orchestrator = AgentOrchestrator(
            states=self.repos.states,
            inbox=self.repos.inbox,
            customizations=self.repos.customizations,
            configurations=self.repos.configurations,
        )
        self.approvals = AgentApprovalService(orchestrator=self.orchestrator, inbox=self.repos.inbox)
        self.budget = BudgetService(self.repos.configurations)
        self.auto_approval = AutoApprovalPolicy(self.repos.settings)

        self.context_source = context_source or InMemoryWorkOrderContextSource()
        self.tools = register_builtin_tools(ToolRegistry(), self.context_source)
        self.gateway = ToolGateway(
            registry=self.tools,
            activity=self.repos.activity,
            budget=self.budget,
            approvals=ApprovalPolicy(self.repos.settings),
        )

        client = llm_client if llm_client is not None else build_llm_client(self.config)
        self.runner = AgentRunner(client, budget=self.budget, activity=self.repos.activity) if client else None
        self.workflows = workflows or default_workflow_registry()

    @property
    def deps(self) -> WorkflowDeps:
        return WorkflowDeps(
            orchestrator=self.orchestrator,
            approvals=self.approvals,
            gateway=self.gateway,
            runner=self.runner,
            context_source=self.context_source,
            auto_approval=self.auto_approval,
        )

    async def resolve_agent(self, code: str, *, name: Optional[str] = None) -> AIAgent:
        """Return the agent with ``code``, registering it on first use."""
        agent = await self.repos.agents.get_by_code(code)
        if agent is None:
            agent = AIAgent(code=code, name=name or code.replace("-", " ").title())
            await self.repos.agents.create(agent)
            logger.info(f"Registered agent '{code}' ({agent.id})")
        return agent

    async def start_pm_copilot(
        self,
        context: TeamContext,
        *,
        work_order_id: str,
        mode: Optional[str] = None,
    ) -> AgentWorkflowState:
        """Start a PM Copilot run and execute it until it pauses or completes."""
        agent = await self.resolve_agent(self.config.agent_runtime.pm_copilot_agent_code, name="PM Copilot")
        workflow = PMCopilotWorkflow(deps=self.deps, agent=agent)
        await workflow.start(
            {
                "work_order_id": work_order_id,
                "team_id": context.team_id,
                "pm_copilot_mode": mode or self.config.agent_runtime.pm_copilot_default_mode,
            },
            context,
        )
        return await workflow.run()

    async def get_state(self, context: TeamContext, state_id: str) -> AgentWorkflowState:
        return await self.orchestrator.get(state_id, team_id=context.team_id)

    async def list_pending(self, context: TeamContext) -> List[InboxItem]:
        return await self.orchestrator.get_pending_items(context.team_id)

    async def approve(
        self,
        context: TeamContext,
        item_id: str,
        approval_data: Optional[Dict[str, Any]] = None,
    ) -> AgentWorkflowState:
        """
        Approve an inbox item and continue the workflow it paused.

        Raises:
            InboxItemNotFound: Unknown item or another team's item.
            InboxItemAlreadyDecided: The item was already decided.
            WorkflowNotPausedError: The linked workflow is not paused.
        """
        state = await self.approvals.handle_approval(item_id, approver=context, approval_data=approval_data)
        if state.is_completed or state.is_paused:
            return state

        agent = await self.repos.agents.get(state.agent_id)
        if agent is None:
            raise WorkflowStateNotFound(state.id)
        workflow = self.workflows.create(state.workflow_class, deps=self.deps, agent=agent, state=state)
        await workflow.apply_resumed(state)
        return await workflow.run()

    async def reject(self, context: TeamContext, item_id: str, feedback: Optional[str] = None) -> AgentWorkflowState:
        return await self.approvals.handle_rejection(item_id, rejector=context, reason=feedback)

    async def reset_budgets(self, window: str) -> int:
        """
        Zero the spend counters of one budget window for every configuration.

        Called by the scheduler at the start of each day (``daily``) and month
        (``monthly``).

        Raises:
            ValueError: If ``window`` is neither ``daily`` nor ``monthly``.
        """
        if window == "daily":
            return await self.budget.reset_daily()
        if window == "monthly":
            return await self.budget.reset_monthly()
        raise ValueError(f"Unknown budget window '{window}'")


_agent_service: Optional[AgentService] = None


def get_agent_service() -> AgentService:
    global _agent_service
    if _agent_service is None:
        _agent_service = AgentService()
    return _agent_service
