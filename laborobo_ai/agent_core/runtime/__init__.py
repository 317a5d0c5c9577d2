"""Checkpointed workflow runtime for Laborobo agents.

The runtime executes a workflow's ordered steps over a persisted
``AgentWorkflowState``:

- ``BaseAgentWorkflow`` drives the steps with a LangGraph loop and writes a
  checkpoint after every step.
- ``AgentOrchestrator`` owns every state write (create, checkpoint, pause,
  resume, complete).
- ``AgentApprovalService`` links pauses to inbox items and applies human
  decisions.
- ``WorkflowRegistry`` maps ``workflow_class`` identifiers back to workflows.
"""

from .approvals import AgentApprovalService
from .engine import BaseAgentWorkflow
from .models import (
    COMPLETED_NODE,
    START_NODE,
    StepKind,
    StepOutcome,
    WorkflowDeps,
    WorkflowStateData,
)
from .orchestrator import APPROVABLE_TYPE, AgentOrchestrator
from .registry import WorkflowRegistry

__all__ = [
    "APPROVABLE_TYPE",
    "AgentApprovalService",
    "AgentOrchestrator",
    "BaseAgentWorkflow",
    "COMPLETED_NODE",
    "START_NODE",
    "StepKind",
    "StepOutcome",
    "WorkflowDeps",
    "WorkflowRegistry",
    "WorkflowStateData",
]
