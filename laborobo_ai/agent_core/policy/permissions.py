from __future__ import annotations

"""Permission and approval decisions for tool calls.

Tools never check permissions themselves; the gateway asks these policies
before execution.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..repos.interfaces import GlobalAISettingsRepository
from ..schemas.domain import AgentConfiguration, ApprovalActionType, ToolCategory
from .models import PermissionDecision, approval_type_for, required_permission_for

if TYPE_CHECKING:
    from ..tools.base import ToolDefinition

logger = logging.getLogger(__name__)


class PermissionPolicy:
    """Evaluate an agent configuration against a tool definition.

    Order of evaluation:

    1. A disabled configuration denies every tool.
    2. The tool's explicit ``required_permissions`` (if any) or else its
       category flag must all be set.
    3. A ``tool_permissions`` override for the tool name can revoke access;
       it never grants a missing flag.
    """

    def can_execute_tool(self, configuration: AgentConfiguration, tool: "ToolDefinition") -> PermissionDecision:
        if not configuration.enabled:
            return PermissionDecision(allowed=False, reason="Agent is disabled for this team")

        required = tuple(tool.required_permissions)
        if not required:
            flag = required_permission_for(tool.category)
            required = (flag,) if flag is not None else ()

        missing = [flag for flag in required if not configuration.has_flag(flag)]
        allowed = not missing
        reason: Optional[str] = None
        if missing:
            reason = f"Missing permission: {', '.join(flag.value for flag in missing)}"

        # Overrides can only withdraw access the flags grant.
        override = configuration.tool_permissions.get(tool.name)
        if allowed and override is not None and not override:
            allowed = False
            reason = f"Tool '{tool.name}' is disabled for this agent"

        return PermissionDecision(allowed=allowed, required=required, reason=reason)

    def has_permission(self, configuration: AgentConfiguration, tool: "ToolDefinition") -> bool:
        return self.can_execute_tool(configuration, tool).allowed


class ApprovalPolicy:
    """Decide whether a tool category needs human sign-off for a team.

    Teams without a ``GlobalAISettings`` row never require approval.
    """

    def __init__(self, settings: GlobalAISettingsRepository) -> None:
        self._settings = settings

    async def required_action(self, team_id: str, category: ToolCategory) -> Optional[ApprovalActionType]:
        """Return the action type needing approval, or ``None`` when the call may proceed."""
        action_type = approval_type_for(category)
        if action_type is None:
            return None
        settings = await self._settings.get(team_id)
        if settings is None:
            logger.debug(f"No global AI settings for team {team_id}; approval not required")
            return None
        return action_type if settings.requires_approval_for(action_type) else None

    async def requires_human_approval(self, team_id: str, category: ToolCategory) -> bool:
        return await self.required_action(team_id, category) is not None
