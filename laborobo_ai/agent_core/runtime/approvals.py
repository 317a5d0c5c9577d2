from __future__ import annotations

"""Human approval gates for agent workflows.

``AgentApprovalService`` turns a step's pause into an inbox item and turns an
inbox decision back into a workflow transition:

- ``request_approval``: pause the state and file an approval item together.
- ``handle_approval``: resume the paused state with the approver's data and
  mark the item approved, in one transaction.
- ``handle_rejection``: mark the item rejected and store the feedback on the
  state, which stays paused, in one transaction.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..errors import InboxItemAlreadyDecided, InboxItemNotFound, WorkflowNotPausedError
from ..repos.interfaces import InboxDecision, InboxRepository
from ..schemas.domain import (
    AgentWorkflowState,
    AIAgent,
    InboxItem,
    InboxItemStatus,
    InboxItemType,
    SourceType,
    TeamContext,
    Urgency,
)
from .orchestrator import APPROVABLE_TYPE, AgentOrchestrator

logger = logging.getLogger(__name__)

TITLE_PREFIX = "Agent action requires approval: "
TITLE_DESCRIPTION_LIMIT = 50


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class AgentApprovalService:
    def __init__(self, *, orchestrator: AgentOrchestrator, inbox: InboxRepository) -> None:
        self._orchestrator = orchestrator
        self._inbox = inbox

    def build_approval_item(
        self,
        state: AgentWorkflowState,
        *,
        agent: AIAgent,
        node: str,
        action_description: str,
        action_input: Optional[Dict[str, Any]] = None,
        urgency: Urgency = Urgency.normal,
    ) -> InboxItem:
        full_content = "\n".join(
            [
                f"Agent: {agent.name}",
                f"Workflow: {state.workflow_class}",
                f"Current Step: {node}",
                "",
                "Action requiring approval:",
                action_description,
                "",
                "Input:",
                json.dumps(action_input or {}, indent=2, default=str),
            ]
        )
        return InboxItem(
            team_id=state.team_id,
            type=InboxItemType.approval,
            title=TITLE_PREFIX + _truncate(action_description, TITLE_DESCRIPTION_LIMIT),
            content_preview=f"{agent.name} requests approval: {action_description}",
            full_content=full_content,
            source_id=f"agent-{agent.id}",
            source_name=agent.name,
            source_type=SourceType.ai_agent,
            approvable_type=APPROVABLE_TYPE,
            approvable_id=state.id,
            urgency=urgency,
        )

    async def request_approval(
        self,
        state: AgentWorkflowState,
        *,
        agent: AIAgent,
        node: str,
        state_data: Dict[str, Any],
        reason: str,
        action_description: str,
        action_input: Optional[Dict[str, Any]] = None,
        urgency: Urgency = Urgency.normal,
    ) -> Tuple[AgentWorkflowState, InboxItem]:
        """
        Pause ``state`` at ``node`` and file an approval inbox item.

        Args:
            state: The running workflow state.
            agent: The agent requesting approval.
            node: The step that asked to pause.
            state_data: Encoded state data produced by that step.
            reason: Short pause reason stored on the state.
            action_description: What the human is asked to approve.
            action_input: Structured details shown in the item.
            urgency: Inbox urgency.

        Returns:
            The paused state and the created inbox item.
        """
        item = self.build_approval_item(
            state,
            agent=agent,
            node=node,
            action_description=action_description,
            action_input=action_input,
            urgency=urgency,
        )
        data = dict(state_data)
        data["inbox_item_id"] = item.id
        data["approval_requested_at"] = item.created_at.isoformat()
        paused = await self._orchestrator.pause(state, node=node, state_data=data, reason=reason, item=item)
        logger.info(f"Approval requested for workflow state {state.id}: inbox item {item.id}")
        return paused, item

    async def file_review_item(self, item: InboxItem) -> InboxItem:
        """File an informational item that does not gate the workflow."""
        await self._inbox.create(item)
        return item

    async def _load_pending(self, item_id: str, context: TeamContext) -> InboxItem:
        item = await self._inbox.get(item_id)
        if item is None or item.team_id != context.team_id or item.approvable_type != APPROVABLE_TYPE:
            raise InboxItemNotFound(item_id)
        if item.status != InboxItemStatus.pending:
            raise InboxItemAlreadyDecided(item_id, item.status.value)
        return item

    async def _raise_if_decided(self, item_id: str) -> None:
        item = await self._inbox.get(item_id)
        if item is not None and item.status != InboxItemStatus.pending:
            raise InboxItemAlreadyDecided(item_id, item.status.value)

    async def _decide_review(self, item: InboxItem, decision: InboxDecision) -> None:
        decided = await self._inbox.decide(
            item.id,
            status=decision.status,
            decided_by=decision.decided_by,
            feedback=decision.feedback,
            decided_at=decision.decided_at,
        )
        if decided is None:
            await self._raise_if_decided(item.id)

    async def handle_approval(
        self,
        item_id: str,
        *,
        approver: TeamContext,
        approval_data: Optional[Dict[str, Any]] = None,
    ) -> AgentWorkflowState:
        """
        Approve an inbox item.

        Approval items resume their workflow state in the same transaction that
        marks the item approved; review items are only marked approved.

        Raises:
            InboxItemNotFound: Unknown item or item owned by another team.
            InboxItemAlreadyDecided: The item is no longer pending.
            WorkflowNotPausedError: The linked state is not paused.
        """
        item = await self._load_pending(item_id, approver)
        state = await self._orchestrator.get(item.approvable_id, team_id=approver.team_id)
        now = _utc_now()
        decision = InboxDecision(
            item_id=item.id,
            status=InboxItemStatus.approved,
            decided_by=approver.user_id,
            decided_at=now,
        )

        if item.type != InboxItemType.approval:
            await self._decide_review(item, decision)
            return state

        data: Dict[str, Any] = dict(approval_data or {})
        data.update(
            {
                "approved": True,
                "approver_id": approver.user_id,
                "approver_name": approver.user_name,
                "approved_at": now.isoformat(),
            }
        )
        try:
            return await self._orchestrator.resume(state, data, decision=decision)
        except WorkflowNotPausedError:
            await self._raise_if_decided(item.id)
            raise

    async def handle_rejection(
        self,
        item_id: str,
        *,
        rejector: TeamContext,
        reason: Optional[str] = None,
    ) -> AgentWorkflowState:
        """
        Reject an inbox item and record the feedback on its workflow state.

        The item decision and the feedback are written together; the state
        stays paused.

        Raises:
            InboxItemNotFound: Unknown item or item owned by another team.
            InboxItemAlreadyDecided: The item is no longer pending.
            WorkflowNotPausedError: The linked state is not paused.
        """
        item = await self._load_pending(item_id, rejector)
        state = await self._orchestrator.get(item.approvable_id, team_id=rejector.team_id)
        now = _utc_now()
        decision = InboxDecision(
            item_id=item.id,
            status=InboxItemStatus.rejected,
            decided_by=rejector.user_id,
            decided_at=now,
            feedback=reason,
        )

        if item.type != InboxItemType.approval:
            await self._decide_review(item, decision)
            return state

        rejection = {
            "rejected": True,
            "rejection_reason": reason,
            "rejected_by": rejector.user_id,
            "rejected_at": now.isoformat(),
        }
        try:
            return await self._orchestrator.record_rejection(state, rejection, decision=decision)
        except WorkflowNotPausedError:
            await self._raise_if_decided(item.id)
            raise

    async def find_pending_approval(self, state_id: str) -> Optional[InboxItem]:
        item = await self._inbox.find_pending_for(APPROVABLE_TYPE, state_id)
        return item if item is not None and item.type == InboxItemType.approval else None

    async def has_pending_approval(self, state_id: str) -> bool:
        return await self.find_pending_approval(state_id) is not None
