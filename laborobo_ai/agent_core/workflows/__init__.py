"""Concrete agent workflows."""

from ..runtime.registry import WorkflowRegistry
from .pm_copilot import PMCopilotInput, PMCopilotStateData, PMCopilotWorkflow


def default_workflow_registry() -> WorkflowRegistry:
    """Registry with every workflow shipped in this package."""
    registry = WorkflowRegistry()
    registry.register(PMCopilotWorkflow.identifier, PMCopilotWorkflow)
    return registry


__all__ = [
    "PMCopilotInput",
    "PMCopilotStateData",
    "PMCopilotWorkflow",
    "default_workflow_registry",
]
