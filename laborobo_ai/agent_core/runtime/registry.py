from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ..errors import UnknownWorkflow
from ..schemas.domain import AgentWorkflowState, AIAgent
from .models import WorkflowDeps

if TYPE_CHECKING:
    from .engine import BaseAgentWorkflow

WorkflowFactory = Callable[..., "BaseAgentWorkflow"]
"""
WorkflowFactory:
    A callable accepting ``deps``, ``agent`` and ``state`` keyword arguments and
    returning a workflow instance. Workflow classes themselves satisfy it.
"""


class WorkflowRegistry:
    """
    Registry for workflow factories keyed by workflow identifier.

    The identifier is the value stored in ``AgentWorkflowState.workflow_class``,
    so a persisted state can always be mapped back to the workflow that
    created it when it is resumed.
    """

    def __init__(self) -> None:
        """Initialize an empty workflow registry."""
        self._factories: Dict[str, WorkflowFactory] = {}

    def register(self, identifier: str, factory: WorkflowFactory) -> None:
        """
        Register a factory for a workflow identifier.

        Args:
            identifier: The workflow identifier (e.g., 'pm_copilot').
            factory: A callable building the workflow.
        """
        self._factories[str(identifier)] = factory

    def create(
        self,
        identifier: str,
        *,
        deps: WorkflowDeps,
        agent: AIAgent,
        state: Optional[AgentWorkflowState] = None,
    ) -> "BaseAgentWorkflow":
        """
        Build the workflow registered under ``identifier``.

        Raises:
            UnknownWorkflow: If no factory is registered for the identifier.
        """
        try:
            factory = self._factories[str(identifier)]
        except KeyError as e:
            raise UnknownWorkflow(identifier) from e
        return factory(deps=deps, agent=agent, state=state)

    def has(self, identifier: str) -> bool:
        return str(identifier) in self._factories

    def identifiers(self) -> List[str]:
        return sorted(self._factories)
