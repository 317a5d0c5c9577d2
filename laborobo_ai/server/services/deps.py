"""
Service Dependencies.

Provides the singleton AgentService and the caller's TeamContext for API endpoints.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header

from laborobo_ai.agent_core.schemas.domain import TeamContext
from laborobo_ai.server.services.agent_service import AgentService, get_agent_service


def get_team_context(
    x_team_id: Annotated[str, Header(description="Team the request acts for")],
    x_user_id: Annotated[Optional[str], Header(description="Acting user id")] = None,
    x_user_name: Annotated[Optional[str], Header(description="Acting user display name")] = None,
) -> TeamContext:
    """Build the explicit caller context from request headers."""
    return TeamContext(team_id=x_team_id, user_id=x_user_id, user_name=x_user_name)


AgentServiceDep = Annotated[AgentService, Depends(get_agent_service)]
TeamContextDep = Annotated[TeamContext, Depends(get_team_context)]
