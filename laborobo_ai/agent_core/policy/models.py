from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from ..schemas.domain import ApprovalActionType, PermissionFlag, ToolCategory

CATEGORY_PERMISSIONS: Mapping[ToolCategory, Optional[PermissionFlag]] = MappingProxyType(
    {
        ToolCategory.tasks: PermissionFlag.can_modify_tasks,
        ToolCategory.work_orders: PermissionFlag.can_create_work_orders,
        ToolCategory.client_data: PermissionFlag.can_access_client_data,
        ToolCategory.email: PermissionFlag.can_send_emails,
        ToolCategory.deliverables: PermissionFlag.can_modify_deliverables,
        ToolCategory.financial: PermissionFlag.can_access_financial_data,
        ToolCategory.playbooks: PermissionFlag.can_modify_playbooks,
        ToolCategory.general: None,
    }
)

# Categories missing from this map never require approval.
CATEGORY_APPROVAL_TYPES: Mapping[ToolCategory, ApprovalActionType] = MappingProxyType(
    {
        ToolCategory.email: ApprovalActionType.external_sends,
        ToolCategory.financial: ApprovalActionType.financial,
        ToolCategory.work_orders: ApprovalActionType.work_order_creation,
        ToolCategory.tasks: ApprovalActionType.task_assignment,
    }
)


def required_permission_for(category: ToolCategory) -> Optional[PermissionFlag]:
    return CATEGORY_PERMISSIONS[category]


def approval_type_for(category: ToolCategory) -> Optional[ApprovalActionType]:
    return CATEGORY_APPROVAL_TYPES.get(category)


@dataclass(frozen=True)
class PermissionDecision:
    """
    Result of a permission evaluation for a single tool call.

    Attributes:
        allowed: Whether the agent may execute the tool.
        required: The flags that were checked.
        reason: Human-readable reason when the call is denied.
    """
    allowed: bool
    required: Tuple[PermissionFlag, ...] = field(default_factory=tuple)
    reason: Optional[str] = None
