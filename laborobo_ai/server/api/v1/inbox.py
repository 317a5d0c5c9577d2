"""
Inbox API Endpoints.

This module provides endpoints for human-in-the-loop decisions on agent
actions: listing a team's pending approvals and approving or rejecting an
inbox item. Approving an item that paused a workflow resumes the workflow and
runs it until it pauses again or completes.
"""

from typing import List, Optional

from fastapi import APIRouter

from laborobo_ai.agent_core.schemas.domain import InboxItem
from laborobo_ai.server.schemas import ApprovalSubmit, RejectionSubmit, WorkflowStateRead
from laborobo_ai.server.services.deps import AgentServiceDep, TeamContextDep

router = APIRouter()


@router.get(
    "/pending",
    response_model=List[InboxItem],
    summary="List Pending Approvals",
    description="Retrieve the calling team's pending inbox items raised by agent workflows.",
)
async def list_pending(service: AgentServiceDep, context: TeamContextDep):
    return await service.list_pending(context)


@router.post(
    "/{item_id}/approve",
    response_model=WorkflowStateRead,
    summary="Approve Inbox Item",
    description="Approve a pending item; a paused workflow resumes and continues running.",
    responses={
        404: {"description": "Inbox item or workflow not found"},
        409: {"description": "Item already decided or workflow not paused"},
    },
)
async def approve_item(
    item_id: str,
    service: AgentServiceDep,
    context: TeamContextDep,
    submission: Optional[ApprovalSubmit] = None,
):
    state = await service.approve(context, item_id, submission.approval_data if submission else None)
    return WorkflowStateRead.from_state(state)


@router.post(
    "/{item_id}/reject",
    response_model=WorkflowStateRead,
    summary="Reject Inbox Item",
    description="Reject a pending item; the feedback is stored on the workflow, which stays paused.",
    responses={
        404: {"description": "Inbox item not found"},
        409: {"description": "Item already decided"},
    },
)
async def reject_item(item_id: str, submission: RejectionSubmit, service: AgentServiceDep, context: TeamContextDep):
    state = await service.reject(context, item_id, submission.feedback)
    return WorkflowStateRead.from_state(state)
