"""
Workflow API Endpoints.

This module provides endpoints to start PM Copilot runs and read the persisted
state of any workflow run of the calling team.
"""

from fastapi import APIRouter, status

from laborobo_ai.server.schemas import PMCopilotRunCreate, WorkflowStateRead
from laborobo_ai.server.services.deps import AgentServiceDep, TeamContextDep

router = APIRouter()


@router.post(
    "/pm-copilot",
    response_model=WorkflowStateRead,
    status_code=status.HTTP_201_CREATED,
    summary="Start PM Copilot",
    description="Start a PM Copilot run for a work order. The response reflects the state after the "
    "run paused for review (staged mode) or completed (full mode).",
)
async def start_pm_copilot(body: PMCopilotRunCreate, service: AgentServiceDep, context: TeamContextDep):
    state = await service.start_pm_copilot(context, work_order_id=body.work_order_id, mode=body.pm_copilot_mode)
    return WorkflowStateRead.from_state(state)


@router.get(
    "/{state_id}",
    response_model=WorkflowStateRead,
    summary="Get Workflow State",
    responses={404: {"description": "Workflow state not found"}},
)
async def get_workflow_state(state_id: str, service: AgentServiceDep, context: TeamContextDep):
    return WorkflowStateRead.from_state(await service.get_state(context, state_id))
