from __future__ import annotations

"""Tool gateway.

``ToolGateway`` is the single execution path for agent tools. Every call goes
through the same sequence:

1. Resolve the tool in the ``ToolRegistry`` (unknown tool -> ``failed``).
2. Permission check against the agent configuration (-> ``denied``).
3. Approval check against the team's global AI settings
   (-> ``approval_required``; the tool is not run).
4. Budget reservation when an estimated cost is given (-> ``budget_exceeded``).
5. Execute the tool, timing it. Exceptions become ``failed`` results and the
   budget reservation is refunded.

Exactly one activity log row is written per call, whatever the outcome. A
failure to write that row is logged and never changes the returned result; a
pending refund is then applied on its own.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from ..errors import ToolExecutionFailed
from ..policy.budget import BudgetService
from ..policy.permissions import ApprovalPolicy, PermissionPolicy
from ..repos.interfaces import ActivityLogRepository, BudgetRefund
from ..schemas.domain import AgentActivityLog, AgentConfiguration, AIAgent, RunType
from .base import Tool, ToolContext, ToolResult
from .registry import ToolRegistry

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class ToolGateway:
    """Enforce permissions, approvals and budget around tool execution."""

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        activity: ActivityLogRepository,
        budget: BudgetService,
        approvals: ApprovalPolicy,
        permissions: Optional[PermissionPolicy] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            registry: Tools the gateway may execute.
            activity: Append-only audit log.
            budget: Spend reservation service.
            approvals: Team-level approval policy.
            permissions: Category permission policy (default ``PermissionPolicy()``).
        """
        self._registry = registry
        self._activity = activity
        self._budget = budget
        self._approvals = approvals
        self._permissions = permissions or PermissionPolicy()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute(
        self,
        agent: AIAgent,
        configuration: AgentConfiguration,
        tool_name: str,
        params: Dict[str, Any],
        *,
        estimated_cost: float = 0.0,
        workflow_state_id: Optional[str] = None,
    ) -> ToolResult:
        """
        Execute ``tool_name`` on behalf of ``agent``.

        Args:
            agent: The invoking agent.
            configuration: The agent's configuration for the calling team.
            tool_name: Registered tool name.
            params: Tool arguments.
            estimated_cost: Cost to reserve against the budget before running.
            workflow_state_id: Workflow run to link the audit row to.

        Returns:
            A ``ToolResult``; permission, approval and budget outcomes are
            returned as statuses, never raised.
        """
        started = time.perf_counter()
        logger.debug(f"Tool call requested: tool={tool_name} agent={agent.code} team={configuration.team_id}")

        if not self._registry.has(tool_name):
            result = ToolResult.failure(f"Tool '{tool_name}' not found")
            logger.warning(f"Unknown tool '{tool_name}' requested by agent {agent.code}")
            await self._log(agent, configuration, tool_name, params, result, workflow_state_id=workflow_state_id)
            return result

        tool: Tool = self._registry.get(tool_name)
        definition = tool.definition

        decision = self._permissions.can_execute_tool(configuration, definition)
        if not decision.allowed:
            result = ToolResult.denied(decision.reason or "Permission denied")
            logger.info(f"Tool '{tool_name}' denied for agent {agent.code}: {decision.reason}")
            await self._log(agent, configuration, tool_name, params, result, workflow_state_id=workflow_state_id)
            return result

        action_type = await self._approvals.required_action(configuration.team_id, definition.category)
        if action_type is not None:
            result = ToolResult.approval_required(action_type.value)
            logger.info(f"Tool '{tool_name}' requires approval ({action_type.value}) for team {configuration.team_id}")
            await self._log(agent, configuration, tool_name, params, result, workflow_state_id=workflow_state_id)
            return result

        reserved = 0.0
        if estimated_cost > 0:
            if not await self._budget.reserve(configuration, estimated_cost):
                result = ToolResult.budget_exceeded(estimated_cost)
                await self._log(agent, configuration, tool_name, params, result, workflow_state_id=workflow_state_id)
                return result
            reserved = estimated_cost

        ctx = ToolContext(
            team_id=configuration.team_id,
            agent=agent,
            configuration=configuration,
            workflow_state_id=workflow_state_id,
        )
        try:
            data = await tool.execute(dict(params), ctx)
        except Exception as e:
            error = ToolExecutionFailed(tool_name, str(e))
            logger.error(str(error), exc_info=True)
            result = ToolResult.failure(str(error), _elapsed_ms(started))
            refund = BudgetRefund(configuration.id, reserved) if reserved > 0 else None
            await self._log(
                agent, configuration, tool_name, params, result, workflow_state_id=workflow_state_id, refund=refund
            )
            return result

        result = ToolResult.success(data, _elapsed_ms(started))
        logger.debug(f"Tool '{tool_name}' succeeded in {result.execution_time_ms}ms")
        await self._log(
            agent, configuration, tool_name, params, result, workflow_state_id=workflow_state_id, cost=reserved
        )
        return result

    def has_permission(self, configuration: AgentConfiguration, tool_name: str) -> bool:
        if not self._registry.has(tool_name):
            return False
        return self._permissions.has_permission(configuration, self._registry.get(tool_name).definition)

    def get_available_tools(self, configuration: AgentConfiguration) -> List[Tool]:
        """Tools the configuration is permitted to execute (approval and budget not considered)."""
        return [t for t in self._registry.all() if self._permissions.has_permission(configuration, t.definition)]

    async def _log(
        self,
        agent: AIAgent,
        configuration: AgentConfiguration,
        tool_name: str,
        params: Dict[str, Any],
        result: ToolResult,
        *,
        workflow_state_id: Optional[str],
        cost: float = 0.0,
        refund: Optional[BudgetRefund] = None,
    ) -> None:
        entry = AgentActivityLog(
            team_id=configuration.team_id,
            agent_id=agent.id,
            workflow_state_id=workflow_state_id,
            run_type=RunType.tool_execution,
            tool_name=tool_name,
            input=dict(params),
            output=result.data if result.ok else None,
            error=result.error,
            status=result.status,
            cost=cost,
            duration_ms=result.execution_time_ms,
        )
        try:
            await self._activity.append(entry, refund=refund)
        except Exception as e:
            # The audit write must not change the outcome of the call.
            logger.error(f"Failed to write activity log for tool '{tool_name}': {e}", exc_info=True)
            if refund is not None:
                await self._release(refund)

    async def _release(self, refund: BudgetRefund) -> None:
        try:
            await self._budget.release(refund)
        except Exception as e:
            logger.error(
                f"Failed to refund {refund.amount:.6f} to configuration {refund.configuration_id}: {e}", exc_info=True
            )
