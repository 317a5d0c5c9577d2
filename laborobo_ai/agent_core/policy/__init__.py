"""Permission, approval and budget policy for agent tool calls.

The policy layer answers three questions for the ``ToolGateway`` before a tool
runs:

- ``PermissionPolicy``: does the agent configuration carry the flag the tool's
  category requires (or a per-tool override)?
- ``ApprovalPolicy``: do the team's ``GlobalAISettings`` require a human to
  approve this category's action type?
- ``BudgetService``: can the estimated cost be reserved without crossing the
  daily or monthly cap?

For PM Copilot suggestions, ``AutoApprovalPolicy`` decides whether a
confident plan without budget impact may skip the review checkpoint.

Category lookups go through the fixed maps in ``policy.models`` rather than a
runtime configuration file.
"""

from .auto_approval import AutoApprovalPolicy, confidence_to_score
from .budget import BudgetService
from .models import (
    CATEGORY_APPROVAL_TYPES,
    CATEGORY_PERMISSIONS,
    PermissionDecision,
    approval_type_for,
    required_permission_for,
)
from .permissions import ApprovalPolicy, PermissionPolicy

__all__ = [
    "ApprovalPolicy",
    "AutoApprovalPolicy",
    "BudgetService",
    "CATEGORY_APPROVAL_TYPES",
    "CATEGORY_PERMISSIONS",
    "PermissionDecision",
    "PermissionPolicy",
    "approval_type_for",
    "confidence_to_score",
    "required_permission_for",
]
