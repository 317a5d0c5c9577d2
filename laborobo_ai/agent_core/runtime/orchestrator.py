from __future__ import annotations

"""Workflow state lifecycle operations.

``AgentOrchestrator`` owns every write to ``AgentWorkflowState``. Workflows
never touch the repository directly, so the lifecycle invariants hold in one
place:

- a state is paused iff ``paused_at`` is set and ``completed_at`` is not,
- resume is only applied to a paused state and only once,
- completion sets ``current_node = "completed"`` and ``completed_at``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import WorkflowNotPausedError, WorkflowStateNotFound
from ..repos.interfaces import (
    AgentConfigurationRepository,
    InboxDecision,
    InboxRepository,
    WorkflowCustomizationRepository,
    WorkflowStateRepository,
)
from ..schemas.domain import (
    AgentConfiguration,
    AgentWorkflowState,
    AIAgent,
    InboxItem,
    InboxItemType,
    TeamContext,
    WorkflowCustomization,
)
from .models import COMPLETED_NODE, START_NODE

logger = logging.getLogger(__name__)

APPROVABLE_TYPE = "agent_workflow_state"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentOrchestrator:
    def __init__(
        self,
        *,
        states: WorkflowStateRepository,
        inbox: InboxRepository,
        customizations: WorkflowCustomizationRepository,
        configurations: AgentConfigurationRepository,
    ) -> None:
        self._states = states
        self._inbox = inbox
        self._customizations = customizations
        self._configurations = configurations

    async def create(
        self,
        *,
        context: TeamContext,
        agent: AIAgent,
        workflow_class: str,
        state_data: Dict[str, Any],
    ) -> AgentWorkflowState:
        state = AgentWorkflowState(
            team_id=context.team_id,
            agent_id=agent.id,
            workflow_class=workflow_class,
            current_node=START_NODE,
            state_data=state_data,
        )
        await self._states.create(state)
        logger.info(f"Created workflow state {state.id} ({workflow_class}) for team {context.team_id}")
        return state

    async def get(self, state_id: str, *, team_id: Optional[str] = None) -> AgentWorkflowState:
        """
        Load a workflow state.

        Raises:
            WorkflowStateNotFound: If the state does not exist or belongs to another team.
        """
        state = await self._states.get(state_id)
        if state is None or (team_id is not None and state.team_id != team_id):
            raise WorkflowStateNotFound(state_id)
        return state

    async def checkpoint(
        self,
        state: AgentWorkflowState,
        *,
        node: str,
        state_data: Dict[str, Any],
    ) -> AgentWorkflowState:
        """Durably record ``node`` as the last completed step along with its data."""
        updated = state.model_copy(update={"current_node": node, "state_data": state_data, "updated_at": _utc_now()})
        await self._states.save(updated)
        logger.debug(f"Checkpointed workflow state {state.id} at node '{node}'")
        return updated

    async def update_node(self, state: AgentWorkflowState, node: str) -> AgentWorkflowState:
        return await self.checkpoint(state, node=node, state_data=state.state_data)

    async def pause(
        self,
        state: AgentWorkflowState,
        *,
        node: str,
        state_data: Dict[str, Any],
        reason: str,
        item: InboxItem,
    ) -> AgentWorkflowState:
        """Checkpoint at ``node`` as paused and file ``item``, in one unit of work."""
        now = _utc_now()
        updated = state.model_copy(
            update={
                "current_node": node,
                "state_data": state_data,
                "paused_at": now,
                "pause_reason": reason,
                "approval_required": True,
                "updated_at": now,
            }
        )
        await self._states.pause(updated, item)
        logger.info(f"Paused workflow state {state.id} at node '{node}': {reason}")
        return updated

    async def resume(
        self,
        state: AgentWorkflowState,
        approval_data: Dict[str, Any],
        *,
        decision: Optional[InboxDecision] = None,
    ) -> AgentWorkflowState:
        """
        Resume a paused state with ``approval_data``.

        Args:
            state: The paused state.
            approval_data: Merged into ``state_data["approval_data"]``.
            decision: Inbox resolution committed together with the resume.

        Raises:
            WorkflowNotPausedError: If the state is not paused, or the decision's
                item is no longer pending; nothing is applied.
        """
        if not state.is_paused:
            raise WorkflowNotPausedError(state.id, state.status.value)
        resumed = await self._states.resume(
            state.id, approval_data=dict(approval_data), resumed_at=_utc_now(), decision=decision
        )
        if resumed is None:
            # Another writer resumed, completed or decided after the read.
            raise WorkflowNotPausedError(state.id)
        logger.info(f"Resumed workflow state {state.id} at node '{resumed.current_node}'")
        return resumed

    async def complete(
        self,
        state: AgentWorkflowState,
        *,
        state_data: Dict[str, Any],
    ) -> AgentWorkflowState:
        now = _utc_now()
        updated = state.model_copy(
            update={
                "current_node": COMPLETED_NODE,
                "state_data": state_data,
                "completed_at": now,
                "paused_at": None,
                "approval_required": False,
                "updated_at": now,
            }
        )
        await self._states.save(updated)
        logger.info(f"Completed workflow state {state.id}")
        return updated

    async def record_rejection(
        self,
        state: AgentWorkflowState,
        rejection: Dict[str, Any],
        *,
        decision: InboxDecision,
    ) -> AgentWorkflowState:
        """
        Store rejection feedback and resolve the item in one unit of work.

        The state stays paused at its node.

        Raises:
            WorkflowNotPausedError: If the state is not paused, or the decision's
                item is no longer pending; nothing is applied.
        """
        rejected = await self._states.reject(state.id, rejection=dict(rejection), decision=decision)
        if rejected is None:
            raise WorkflowNotPausedError(state.id, state.status.value)
        logger.info(f"Recorded rejection for workflow state {state.id}")
        return rejected

    async def load_customization(self, team_id: str, workflow_class: str) -> Optional[WorkflowCustomization]:
        return await self._customizations.get_enabled(team_id, workflow_class)

    async def get_customization(self, customization_id: Optional[str]) -> Optional[WorkflowCustomization]:
        if not customization_id:
            return None
        return await self._customizations.get(customization_id)

    @staticmethod
    def should_skip_step(customization: Optional[WorkflowCustomization], node: str) -> bool:
        if customization is None or not customization.enabled:
            return False
        return node in customization.disabled_steps

    @staticmethod
    def get_parameter(customization: Optional[WorkflowCustomization], key: str, default: Any = None) -> Any:
        if customization is None:
            return default
        return customization.parameters.get(key, default)

    async def configuration_for(self, team_id: str, agent_id: str) -> Optional[AgentConfiguration]:
        return await self._configurations.get(team_id, agent_id)

    async def get_pending_items(self, team_id: str) -> List[InboxItem]:
        """Every pending inbox item filed by an agent workflow of the team."""
        return await self._inbox.list_pending(team_id, approvable_type=APPROVABLE_TYPE)

    async def get_pending_approvals(self, team_id: str) -> List[InboxItem]:
        """Pending approval items of the team, without informational review items."""
        items = await self._inbox.list_pending(team_id, approvable_type=APPROVABLE_TYPE)
        return [i for i in items if i.type == InboxItemType.approval]

    async def list_paused(self, team_id: str) -> List[AgentWorkflowState]:
        return await self._states.list_paused(team_id)
