from __future__ import annotations

"""LLM access for agent workflows.

``LLMClient`` is the minimal protocol workflows depend on: a prompt in, text
and token usage out. ``PydanticAILLMClient`` implements it on top of a
pydantic-ai ``Agent``; tools handed to it should come from
``GatewayToolAdapter`` so every tool call the model makes is still checked and
logged by the gateway.

``AgentRunner`` wraps a client with budget reservation and an ``agent_run``
activity log row, and reports failures as ``None`` so workflows can fall back
to their deterministic builders.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from .policy.budget import BudgetService
from .repos.interfaces import ActivityLogRepository, BudgetRefund
from .schemas.domain import AgentActivityLog, AgentConfiguration, AIAgent, RunType, ToolResultStatus

logger = logging.getLogger(__name__)

BASE_RUN_COST = 0.01
COST_PER_PROMPT_CHAR = 0.000001


@dataclass(frozen=True)
class LLMUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class LLMCompletion:
    text: str
    usage: LLMUsage = LLMUsage()
    model: Optional[str] = None


class LLMClient(Protocol):
    async def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> LLMCompletion: ...


def _usage_from_result(result: Any) -> LLMUsage:
    usage = getattr(result, "usage", None)
    if callable(usage):
        usage = usage()
    if usage is None:
        return LLMUsage()
    input_tokens = getattr(usage, "input_tokens", None)
    if input_tokens is None:
        input_tokens = getattr(usage, "request_tokens", None)
    output_tokens = getattr(usage, "output_tokens", None)
    if output_tokens is None:
        output_tokens = getattr(usage, "response_tokens", None)
    return LLMUsage(input_tokens=int(input_tokens or 0), output_tokens=int(output_tokens or 0))


class PydanticAILLMClient:
    """``LLMClient`` backed by a pydantic-ai ``Agent``.

    Attributes:
        model: pydantic-ai model identifier, e.g. ``openai:gpt-4o``.
        system_prompt: Default instructions for every run.
        tools: pydantic-ai tools; build them with ``GatewayToolAdapter``.
    """

    def __init__(self, model: str, *, system_prompt: Optional[str] = None, tools: Sequence[Any] = ()) -> None:
        self.model = model
        self.system_prompt = system_prompt
        self.tools = list(tools)

    def _build_agent(self, system_prompt: Optional[str]) -> Any:
        from pydantic_ai import Agent

        kwargs: dict[str, Any] = {"model": self.model, "tools": self.tools}
        prompt = system_prompt or self.system_prompt
        if prompt:
            kwargs["system_prompt"] = prompt
        logger.debug(f"Building pydantic-ai agent for model {self.model} with {len(self.tools)} tool(s)")
        return Agent(**kwargs)

    async def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> LLMCompletion:
        agent = self._build_agent(system_prompt)
        result = await agent.run(prompt)
        output = getattr(result, "output", None)
        if output is None:
            output = getattr(result, "data", "")
        return LLMCompletion(text=str(output), usage=_usage_from_result(result), model=self.model)


class AgentRunner:
    """Run a single LLM prompt on behalf of an agent with budget accounting."""

    def __init__(self, client: LLMClient, *, budget: BudgetService, activity: ActivityLogRepository) -> None:
        self._client = client
        self._budget = budget
        self._activity = activity

    @staticmethod
    def estimate_cost(prompt: str) -> float:
        return round(BASE_RUN_COST + len(prompt) * COST_PER_PROMPT_CHAR, 6)

    async def run_prompt(
        self,
        agent: AIAgent,
        configuration: AgentConfiguration,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        workflow_state_id: Optional[str] = None,
    ) -> Optional[LLMCompletion]:
        """
        Reserve the estimated cost, call the model and log an ``agent_run`` row.

        Returns:
            The completion, or ``None`` when the agent is disabled, the budget
            is exhausted or the call failed.
        """
        if not configuration.enabled:
            logger.info(f"Agent {agent.code} is disabled for team {configuration.team_id}; skipping LLM call")
            return None

        cost = self.estimate_cost(prompt)
        if not await self._budget.reserve(configuration, cost):
            await self._log(
                agent, configuration, prompt, ToolResultStatus.budget_exceeded, workflow_state_id, error="Budget exceeded"
            )
            return None

        started = time.perf_counter()
        try:
            completion = await self._client.complete(prompt, system_prompt=system_prompt)
        except Exception as e:
            logger.warning(f"LLM call failed for agent {agent.code}: {e}", exc_info=True)
            await self._log(
                agent,
                configuration,
                prompt,
                ToolResultStatus.failed,
                workflow_state_id,
                error=str(e),
                duration_ms=(time.perf_counter() - started) * 1000,
                refund=BudgetRefund(configuration.id, cost),
            )
            return None

        await self._log(
            agent,
            configuration,
            prompt,
            ToolResultStatus.success,
            workflow_state_id,
            output={"text": completion.text, "model": completion.model},
            tokens_used=completion.usage.total_tokens,
            cost=cost,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return completion

    async def _log(
        self,
        agent: AIAgent,
        configuration: AgentConfiguration,
        prompt: str,
        status: ToolResultStatus,
        workflow_state_id: Optional[str],
        *,
        output: Optional[dict] = None,
        error: Optional[str] = None,
        tokens_used: int = 0,
        cost: float = 0.0,
        duration_ms: float = 0.0,
        refund: Optional[BudgetRefund] = None,
    ) -> None:
        entry = AgentActivityLog(
            team_id=configuration.team_id,
            agent_id=agent.id,
            workflow_state_id=workflow_state_id,
            run_type=RunType.agent_run,
            input={"prompt": prompt},
            output=output,
            error=error,
            status=status,
            tokens_used=tokens_used,
            cost=cost,
            duration_ms=round(duration_ms, 3),
        )
        try:
            await self._activity.append(entry, refund=refund)
        except Exception as e:
            logger.error(f"Failed to write agent run log for agent {agent.code}: {e}", exc_info=True)
            if refund is not None:
                await self._release(refund)

    async def _release(self, refund: BudgetRefund) -> None:
        try:
            await self._budget.release(refund)
        except Exception as e:
            logger.error(
                f"Failed to refund {refund.amount:.6f} to configuration {refund.configuration_id}: {e}", exc_info=True
            )
