from __future__ import annotations

"""Pydantic AI tool adapter.

This module exposes gateway-registered tools to a pydantic-ai ``Agent``. The
generated ``pydantic_ai.Tool`` objects carry the tool's own JSON schema and
their function never calls the tool directly: every invocation goes through
``ToolGateway.execute`` so permissions, approvals, budget and the audit log
apply to model-initiated calls exactly as to any other caller.
"""

import logging
from typing import Any, Iterable, List, Optional

from pydantic_ai import Tool as PydanticAITool

from ..schemas.domain import AgentConfiguration, AIAgent
from ..tools.base import Tool
from ..tools.gateway import ToolGateway

logger = logging.getLogger(__name__)


class GatewayToolAdapter:
    """Build pydantic-ai tools bound to one agent and configuration.

    Attributes:
        gateway: The gateway every call is routed through.
        agent: The agent the model acts as.
        configuration: The agent's configuration for the calling team.
        workflow_state_id: Workflow run the calls are logged against, if any.
    """

    def __init__(
        self,
        gateway: ToolGateway,
        agent: AIAgent,
        configuration: AgentConfiguration,
        *,
        workflow_state_id: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self.agent = agent
        self.configuration = configuration
        self.workflow_state_id = workflow_state_id

    def adapt(self, tool: Tool) -> PydanticAITool:
        """Translate one tool into a ``pydantic_ai.Tool``.

        The returned tool's function answers with JSON text on success and
        ``"Error: <message>"`` for any non-success gateway outcome, which the
        model reads as an ordinary tool reply.
        """
        definition = tool.definition
        name = definition.name

        async def _call(**kwargs: Any) -> str:
            result = await self.gateway.execute(
                self.agent,
                self.configuration,
                name,
                kwargs,
                workflow_state_id=self.workflow_state_id,
            )
            logger.debug(f"Model tool call '{name}' returned {result.status.value}")
            return result.to_agent_text()

        _call.__name__ = name
        return PydanticAITool.from_schema(
            function=_call,
            name=name,
            description=definition.description,
            json_schema=definition.json_schema(),
        )

    def adapt_all(self, tools: Optional[Iterable[Tool]] = None) -> List[PydanticAITool]:
        """Adapt ``tools``, defaulting to every tool the configuration may execute."""
        selected = list(tools) if tools is not None else self.gateway.get_available_tools(self.configuration)
        return [self.adapt(t) for t in selected]
