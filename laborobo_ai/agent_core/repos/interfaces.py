from __future__ import annotations

"""Repository interface contracts.

The gateway, policies and workflow engine depend on these Protocols instead of
concrete persistence implementations.

Contract guidelines
-------------------

- All methods are async.
- Implementations must not leak sessions or transactions to callers; each
  method is its own unit of work.
- Methods that guard a state transition (``try_reserve_spend``, ``resume``,
  ``reject``, ``decide``) are conditional: they apply nothing and report
  failure when the precondition does not hold at write time.
- The activity log is append-only and workflow states are never deleted.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ..schemas.domain import (
    AgentActivityLog,
    AgentConfiguration,
    AgentWorkflowState,
    AIAgent,
    GlobalAISettings,
    InboxItem,
    InboxItemStatus,
    WorkflowCustomization,
)


@dataclass(frozen=True)
class BudgetRefund:
    """Spend to give back to a configuration alongside an activity log write."""

    configuration_id: str
    amount: float


@dataclass(frozen=True)
class InboxDecision:
    """Resolution of a pending inbox item, written with the workflow transition it gates."""

    item_id: str
    status: InboxItemStatus
    decided_by: Optional[str]
    decided_at: datetime
    feedback: Optional[str] = None


class AgentRepository(Protocol):
    async def create(self, agent: AIAgent) -> None: ...

    async def get(self, agent_id: str) -> Optional[AIAgent]: ...

    async def get_by_code(self, code: str) -> Optional[AIAgent]: ...


class AgentConfigurationRepository(Protocol):
    """Persist per-team agent permissions and spend counters."""

    async def save(self, configuration: AgentConfiguration) -> None:
        """Insert or fully replace a configuration."""
        ...

    async def get(self, team_id: str, agent_id: str) -> Optional[AgentConfiguration]: ...

    async def get_by_id(self, configuration_id: str) -> Optional[AgentConfiguration]: ...

    async def try_reserve_spend(self, configuration_id: str, amount: float) -> bool:
        """
        Add ``amount`` to daily and monthly spend in one conditional statement.

        Args:
            configuration_id: The configuration to charge.
            amount: Positive cost to add.

        Returns:
            True when the spend was added, False when either cap would be exceeded.
        """
        ...

    async def refund(self, refund: BudgetRefund) -> None:
        """Subtract ``refund.amount`` from both spend counters, never below zero."""
        ...

    async def reset_daily_spend(self) -> int: ...

    async def reset_monthly_spend(self) -> int: ...


class GlobalAISettingsRepository(Protocol):
    async def get(self, team_id: str) -> Optional[GlobalAISettings]: ...

    async def save(self, settings: GlobalAISettings) -> None: ...


class ActivityLogRepository(Protocol):
    """Append-only audit trail of tool and agent invocations."""

    async def append(self, entry: AgentActivityLog, *, refund: Optional[BudgetRefund] = None) -> None:
        """
        Append an activity log row.

        Args:
            entry: The activity record.
            refund: Optional spend to return to a configuration in the same
                transaction as the log write.
        """
        ...

    async def list_for_state(self, workflow_state_id: str) -> List[AgentActivityLog]: ...

    async def list_for_team(self, team_id: str, limit: int = 100) -> List[AgentActivityLog]: ...


class WorkflowStateRepository(Protocol):
    """Persist workflow checkpoints."""

    async def create(self, state: AgentWorkflowState) -> None: ...

    async def get(self, state_id: str) -> Optional[AgentWorkflowState]: ...

    async def save(self, state: AgentWorkflowState) -> None:
        """Write the node, data and lifecycle fields of ``state`` as a durable checkpoint."""
        ...

    async def pause(self, state: AgentWorkflowState, item: InboxItem) -> None:
        """Write a paused checkpoint and its approval inbox item in one transaction."""
        ...

    async def resume(
        self,
        state_id: str,
        *,
        approval_data: Dict[str, Any],
        resumed_at: datetime,
        decision: Optional[InboxDecision] = None,
    ) -> Optional[AgentWorkflowState]:
        """
        Resume a paused state.

        Merges ``approval_data`` into ``state_data["approval_data"]``, clears
        ``paused_at`` and ``approval_required`` and sets ``resumed_at``. With a
        ``decision`` the inbox item is resolved in the same transaction.

        Returns:
            The updated state, or None when the state was not paused or the
            item was no longer pending at write time. Nothing is applied then.
        """
        ...

    async def reject(
        self,
        state_id: str,
        *,
        rejection: Dict[str, Any],
        decision: InboxDecision,
    ) -> Optional[AgentWorkflowState]:
        """
        Store ``rejection`` as ``state_data["rejection"]`` and resolve the item together.

        The state stays paused.

        Returns:
            The updated state, or None when the state was not paused or the
            item was no longer pending at write time. Nothing is applied then.
        """
        ...

    async def list_paused(self, team_id: str) -> List[AgentWorkflowState]: ...


class InboxRepository(Protocol):
    async def create(self, item: InboxItem) -> None: ...

    async def get(self, item_id: str) -> Optional[InboxItem]: ...

    async def decide(
        self,
        item_id: str,
        *,
        status: InboxItemStatus,
        decided_by: Optional[str],
        feedback: Optional[str] = None,
        decided_at: datetime,
    ) -> Optional[InboxItem]:
        """
        Resolve a pending item.

        Returns:
            The updated item, or None when the item was no longer pending.
        """
        ...

    async def list_pending(self, team_id: str, approvable_type: Optional[str] = None) -> List[InboxItem]: ...

    async def find_pending_for(self, approvable_type: str, approvable_id: str) -> Optional[InboxItem]: ...


class WorkflowCustomizationRepository(Protocol):
    async def save(self, customization: WorkflowCustomization) -> None: ...

    async def get_enabled(self, team_id: str, workflow_class: str) -> Optional[WorkflowCustomization]: ...

    async def get(self, customization_id: str) -> Optional[WorkflowCustomization]: ...
