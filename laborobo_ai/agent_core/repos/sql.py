from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides a Postgres-backed persistence implementation for the
repository interfaces defined in ``laborobo_ai.agent_core.repos.interfaces``.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (for tests/dev; production uses the
  Alembic migrations under ``alembic/versions``).
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. Guarded transitions are expressed as a single conditional ``UPDATE``
whose ``rowcount`` tells the caller whether the precondition held:

- spend reservation only applies when both caps still allow the cost,
- resume and reject only apply to a state that is still paused at the
  version read, and roll back together with the inbox decision they carry,
- inbox decisions only apply to pending items.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

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
from .interfaces import (
    ActivityLogRepository,
    AgentConfigurationRepository,
    AgentRepository,
    BudgetRefund,
    GlobalAISettingsRepository,
    InboxDecision,
    InboxRepository,
    WorkflowCustomizationRepository,
    WorkflowStateRepository,
)
from .models import (
    ActivityLogRow,
    AgentConfigurationRow,
    AgentRow,
    Base,
    GlobalAISettingsRow,
    InboxItemRow,
    WorkflowCustomizationRow,
    WorkflowStateRow,
)


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata.

    This is mainly intended for tests and local development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _row_values(row: Base, *, exclude: Iterable[str] = ()) -> Dict[str, Any]:
    skip = set(exclude)
    values = {c.key: getattr(row, c.key) for c in row.__table__.columns if c.key not in skip}
    # SQLite returns naive datetimes; every stored timestamp is UTC.
    for key, value in values.items():
        if isinstance(value, datetime) and value.tzinfo is None:
            values[key] = value.replace(tzinfo=timezone.utc)
    return values


def _state_from_row(row: WorkflowStateRow) -> AgentWorkflowState:
    values = _row_values(row, exclude=("version",))
    values["state_data"] = dict(values.get("state_data") or {})
    return AgentWorkflowState.model_validate(values)


def _item_from_row(row: InboxItemRow) -> InboxItem:
    return InboxItem.model_validate(_row_values(row))


def _state_values(state: AgentWorkflowState) -> Dict[str, Any]:
    return {
        "current_node": state.current_node,
        "state_data": state.state_data,
        "paused_at": state.paused_at,
        "resumed_at": state.resumed_at,
        "completed_at": state.completed_at,
        "pause_reason": state.pause_reason,
        "approval_required": state.approval_required,
        "updated_at": state.updated_at,
        "version": WorkflowStateRow.version + 1,
    }



def _refund_statement(refund: BudgetRefund):
    row = AgentConfigurationRow
    amount = refund.amount
    return (
        update(row)
        .where(row.id == refund.configuration_id)
        .values(
            daily_spend=case((row.daily_spend > amount, row.daily_spend - amount), else_=0.0),
            current_month_spend=case((row.current_month_spend > amount, row.current_month_spend - amount), else_=0.0),
            updated_at=_utc_now(),
        )
        .execution_options(synchronize_session=False)
    )


def _decision_statement(decision: InboxDecision):
    values: Dict[str, Any] = {
        "status": decision.status.value,
        "decided_by": decision.decided_by,
        "feedback": decision.feedback,
    }
    if decision.status == InboxItemStatus.approved:
        values["approved_at"] = decision.decided_at
    elif decision.status == InboxItemStatus.rejected:
        values["rejected_at"] = decision.decided_at
    return (
        update(InboxItemRow)
        .where(InboxItemRow.id == decision.item_id, InboxItemRow.status == InboxItemStatus.pending.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


@dataclass(frozen=True)
class SqlAgentRepository(AgentRepository):
    """SQL implementation of ``AgentRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, agent: AIAgent) -> None:
        async with self.session_factory() as s:
            s.add(AgentRow(**agent.model_dump()))
            await s.commit()

    async def get(self, agent_id: str) -> Optional[AIAgent]:
        async with self.session_factory() as s:
            row = await s.get(AgentRow, agent_id)
            return AIAgent.model_validate(_row_values(row)) if row is not None else None

    async def get_by_code(self, code: str) -> Optional[AIAgent]:
        async with self.session_factory() as s:
            res = await s.execute(select(AgentRow).where(AgentRow.code == code))
            row = res.scalars().first()
            return AIAgent.model_validate(_row_values(row)) if row is not None else None


@dataclass(frozen=True)
class SqlAgentConfigurationRepository(AgentConfigurationRepository):
    """SQL implementation of ``AgentConfigurationRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def save(self, configuration: AgentConfiguration) -> None:
        """
        Insert or replace a configuration.

        Args:
            configuration: The configuration to persist. Spend counters are
                written as given.
        """
        async with self.session_factory() as s:
            await s.merge(AgentConfigurationRow(**configuration.model_dump()))
            await s.commit()

    async def get(self, team_id: str, agent_id: str) -> Optional[AgentConfiguration]:
        async with self.session_factory() as s:
            stmt = select(AgentConfigurationRow).where(
                AgentConfigurationRow.team_id == team_id,
                AgentConfigurationRow.agent_id == agent_id,
            )
            row = (await s.execute(stmt)).scalars().first()
            return AgentConfiguration.model_validate(_row_values(row)) if row is not None else None

    async def get_by_id(self, configuration_id: str) -> Optional[AgentConfiguration]:
        async with self.session_factory() as s:
            row = await s.get(AgentConfigurationRow, configuration_id)
            return AgentConfiguration.model_validate(_row_values(row)) if row is not None else None

    async def try_reserve_spend(self, configuration_id: str, amount: float) -> bool:
        """
        Add ``amount`` to both spend counters in one conditional statement.

        The daily cap falls back to the monthly cap when unset; a window with no
        cap at all is unbounded.

        Returns:
            True if the row was updated, False if a cap would be exceeded or the
            configuration does not exist.
        """
        row = AgentConfigurationRow
        daily_cap = func.coalesce(row.daily_budget_cap, row.monthly_budget_cap)
        stmt = (
            update(row)
            .where(
                row.id == configuration_id,
                or_(daily_cap.is_(None), row.daily_spend + amount <= daily_cap),
                or_(row.monthly_budget_cap.is_(None), row.current_month_spend + amount <= row.monthly_budget_cap),
            )
            .values(
                daily_spend=row.daily_spend + amount,
                current_month_spend=row.current_month_spend + amount,
                updated_at=_utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1

    async def refund(self, refund: BudgetRefund) -> None:
        if refund.amount <= 0:
            return
        async with self.session_factory() as s:
            await s.execute(_refund_statement(refund))
            await s.commit()

    async def reset_daily_spend(self) -> int:
        async with self.session_factory() as s:
            res = await s.execute(
                update(AgentConfigurationRow)
                .where(AgentConfigurationRow.daily_spend != 0)
                .values(daily_spend=0.0, updated_at=_utc_now())
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            return int(res.rowcount or 0)

    async def reset_monthly_spend(self) -> int:
        async with self.session_factory() as s:
            res = await s.execute(
                update(AgentConfigurationRow)
                .where(AgentConfigurationRow.current_month_spend != 0)
                .values(current_month_spend=0.0, updated_at=_utc_now())
                .execution_options(synchronize_session=False)
            )
            await s.commit()
            return int(res.rowcount or 0)


@dataclass(frozen=True)
class SqlGlobalAISettingsRepository(GlobalAISettingsRepository):
    """SQL implementation of ``GlobalAISettingsRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, team_id: str) -> Optional[GlobalAISettings]:
        async with self.session_factory() as s:
            res = await s.execute(select(GlobalAISettingsRow).where(GlobalAISettingsRow.team_id == team_id))
            row = res.scalars().first()
            return GlobalAISettings.model_validate(_row_values(row)) if row is not None else None

    async def save(self, settings: GlobalAISettings) -> None:
        async with self.session_factory() as s:
            await s.merge(GlobalAISettingsRow(**settings.model_dump()))
            await s.commit()


@dataclass(frozen=True)
class SqlActivityLogRepository(ActivityLogRepository):
    """SQL implementation of ``ActivityLogRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, entry: AgentActivityLog, *, refund: Optional[BudgetRefund] = None) -> None:
        """
        Append a log row, optionally refunding spend in the same transaction.

        Refunds never drive a counter below zero.
        """
        async with self.session_factory() as s:
            s.add(ActivityLogRow(**entry.model_dump(mode="json", exclude={"created_at"}), created_at=entry.created_at))
            if refund is not None and refund.amount > 0:
                await s.execute(_refund_statement(refund))
            await s.commit()

    async def list_for_state(self, workflow_state_id: str) -> List[AgentActivityLog]:
        async with self.session_factory() as s:
            stmt = (
                select(ActivityLogRow)
                .where(ActivityLogRow.workflow_state_id == workflow_state_id)
                .order_by(ActivityLogRow.created_at)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [AgentActivityLog.model_validate(_row_values(r)) for r in rows]

    async def list_for_team(self, team_id: str, limit: int = 100) -> List[AgentActivityLog]:
        async with self.session_factory() as s:
            stmt = (
                select(ActivityLogRow)
                .where(ActivityLogRow.team_id == team_id)
                .order_by(ActivityLogRow.created_at.desc())
                .limit(limit)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [AgentActivityLog.model_validate(_row_values(r)) for r in rows]


@dataclass(frozen=True)
class SqlWorkflowStateRepository(WorkflowStateRepository):
    """SQL implementation of ``WorkflowStateRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, state: AgentWorkflowState) -> None:
        async with self.session_factory() as s:
            s.add(WorkflowStateRow(**state.model_dump(), version=1))
            await s.commit()

    async def get(self, state_id: str) -> Optional[AgentWorkflowState]:
        async with self.session_factory() as s:
            row = await s.get(WorkflowStateRow, state_id)
            return _state_from_row(row) if row is not None else None

    async def save(self, state: AgentWorkflowState) -> None:
        async with self.session_factory() as s:
            await s.execute(
                update(WorkflowStateRow)
                .where(WorkflowStateRow.id == state.id)
                .values(**_state_values(state))
                .execution_options(synchronize_session=False)
            )
            await s.commit()

    async def pause(self, state: AgentWorkflowState, item: InboxItem) -> None:
        """Write the paused checkpoint and insert the approval item atomically."""
        async with self.session_factory() as s:
            await s.execute(
                update(WorkflowStateRow)
                .where(WorkflowStateRow.id == state.id)
                .values(**_state_values(state))
                .execution_options(synchronize_session=False)
            )
            s.add(InboxItemRow(**item.model_dump(mode="json", exclude={"created_at"}), created_at=item.created_at))
            await s.commit()

    async def resume(
        self,
        state_id: str,
        *,
        approval_data: Dict[str, Any],
        resumed_at: datetime,
        decision: Optional[InboxDecision] = None,
    ) -> Optional[AgentWorkflowState]:
        """
        Resume a paused state with optimistic concurrency.

        The update is conditioned on the row still being paused at the version
        that was read, so two concurrent resumes apply the approval data once.
        A ``decision`` is applied in the same transaction and both roll back
        unless the item was still pending.
        """
        async with self.session_factory() as s:
            row = await s.get(WorkflowStateRow, state_id)
            if row is None or row.paused_at is None or row.completed_at is not None:
                return None

            data = dict(row.state_data or {})
            merged = dict(data.get("approval_data") or {})
            merged.update(approval_data)
            data["approval_data"] = merged
            values = {
                "state_data": data,
                "paused_at": None,
                "resumed_at": resumed_at,
                "approval_required": False,
                "updated_at": resumed_at,
            }

            if not await self._guarded_update(s, row, values, decision):
                await s.rollback()
                return None
            await s.commit()
            return _state_from_row(row).model_copy(update=values)

    async def reject(
        self,
        state_id: str,
        *,
        rejection: Dict[str, Any],
        decision: InboxDecision,
    ) -> Optional[AgentWorkflowState]:
        """Record rejection feedback on a paused state and resolve its item atomically."""
        async with self.session_factory() as s:
            row = await s.get(WorkflowStateRow, state_id)
            if row is None or row.paused_at is None or row.completed_at is not None:
                return None

            data = dict(row.state_data or {})
            data["rejection"] = rejection
            values = {"state_data": data, "updated_at": decision.decided_at}

            if not await self._guarded_update(s, row, values, decision):
                await s.rollback()
                return None
            await s.commit()
            return _state_from_row(row).model_copy(update=values)

    @staticmethod
    async def _guarded_update(
        s: AsyncSession,
        row: WorkflowStateRow,
        values: Dict[str, Any],
        decision: Optional[InboxDecision],
    ) -> bool:
        res = await s.execute(
            update(WorkflowStateRow)
            .where(
                WorkflowStateRow.id == row.id,
                WorkflowStateRow.version == row.version,
                WorkflowStateRow.paused_at.is_not(None),
                WorkflowStateRow.completed_at.is_(None),
            )
            .values(**values, version=row.version + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return False
        if decision is not None:
            res = await s.execute(_decision_statement(decision))
            if res.rowcount != 1:
                return False
        return True

    async def list_paused(self, team_id: str) -> List[AgentWorkflowState]:
        async with self.session_factory() as s:
            stmt = (
                select(WorkflowStateRow)
                .where(
                    WorkflowStateRow.team_id == team_id,
                    WorkflowStateRow.paused_at.is_not(None),
                    WorkflowStateRow.completed_at.is_(None),
                )
                .order_by(WorkflowStateRow.paused_at)
            )
            rows = (await s.execute(stmt)).scalars().all()
            return [_state_from_row(r) for r in rows]


@dataclass(frozen=True)
class SqlInboxRepository(InboxRepository):
    """SQL implementation of ``InboxRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, item: InboxItem) -> None:
        async with self.session_factory() as s:
            s.add(InboxItemRow(**item.model_dump(mode="json", exclude={"created_at"}), created_at=item.created_at))
            await s.commit()

    async def get(self, item_id: str) -> Optional[InboxItem]:
        async with self.session_factory() as s:
            row = await s.get(InboxItemRow, item_id)
            return _item_from_row(row) if row is not None else None

    async def decide(
        self,
        item_id: str,
        *,
        status: InboxItemStatus,
        decided_by: Optional[str],
        feedback: Optional[str] = None,
        decided_at: datetime,
    ) -> Optional[InboxItem]:
        decision = InboxDecision(
            item_id=item_id, status=status, decided_by=decided_by, decided_at=decided_at, feedback=feedback
        )
        async with self.session_factory() as s:
            res = await s.execute(_decision_statement(decision))
            if res.rowcount != 1:
                await s.rollback()
                return None
            await s.commit()
            row = await s.get(InboxItemRow, item_id)
            return _item_from_row(row) if row is not None else None

    async def list_pending(self, team_id: str, approvable_type: Optional[str] = None) -> List[InboxItem]:
        async with self.session_factory() as s:
            stmt = select(InboxItemRow).where(
                InboxItemRow.team_id == team_id,
                InboxItemRow.status == InboxItemStatus.pending.value,
            )
            if approvable_type:
                stmt = stmt.where(InboxItemRow.approvable_type == approvable_type)
            stmt = stmt.order_by(InboxItemRow.created_at)
            rows = (await s.execute(stmt)).scalars().all()
            return [_item_from_row(r) for r in rows]

    async def find_pending_for(self, approvable_type: str, approvable_id: str) -> Optional[InboxItem]:
        async with self.session_factory() as s:
            stmt = (
                select(InboxItemRow)
                .where(
                    InboxItemRow.approvable_type == approvable_type,
                    InboxItemRow.approvable_id == approvable_id,
                    InboxItemRow.status == InboxItemStatus.pending.value,
                )
                .order_by(InboxItemRow.created_at.desc())
            )
            row = (await s.execute(stmt)).scalars().first()
            return _item_from_row(row) if row is not None else None


@dataclass(frozen=True)
class SqlWorkflowCustomizationRepository(WorkflowCustomizationRepository):
    """SQL implementation of ``WorkflowCustomizationRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def save(self, customization: WorkflowCustomization) -> None:
        async with self.session_factory() as s:
            await s.merge(WorkflowCustomizationRow(**customization.model_dump()))
            await s.commit()

    async def get_enabled(self, team_id: str, workflow_class: str) -> Optional[WorkflowCustomization]:
        async with self.session_factory() as s:
            stmt = select(WorkflowCustomizationRow).where(
                WorkflowCustomizationRow.team_id == team_id,
                WorkflowCustomizationRow.workflow_class == workflow_class,
                WorkflowCustomizationRow.enabled.is_(True),
            )
            row = (await s.execute(stmt)).scalars().first()
            return WorkflowCustomization.model_validate(_row_values(row)) if row is not None else None

    async def get(self, customization_id: str) -> Optional[WorkflowCustomization]:
        async with self.session_factory() as s:
            row = await s.get(WorkflowCustomizationRow, customization_id)
            return WorkflowCustomization.model_validate(_row_values(row)) if row is not None else None


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of SQL repository implementations."""

    agents: SqlAgentRepository
    configurations: SqlAgentConfigurationRepository
    settings: SqlGlobalAISettingsRepository
    activity: SqlActivityLogRepository
    states: SqlWorkflowStateRepository
    inbox: SqlInboxRepository
    customizations: SqlWorkflowCustomizationRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """
    Construct all SQL repositories sharing a single session factory.

    Args:
        session_factory: The async sessionmaker to use for all repositories.

    Returns:
        A bundle containing all initialized repositories.
    """
    return SqlRepoBundle(
        agents=SqlAgentRepository(session_factory),
        configurations=SqlAgentConfigurationRepository(session_factory),
        settings=SqlGlobalAISettingsRepository(session_factory),
        activity=SqlActivityLogRepository(session_factory),
        states=SqlWorkflowStateRepository(session_factory),
        inbox=SqlInboxRepository(session_factory),
        customizations=SqlWorkflowCustomizationRepository(session_factory),
    )
