from __future__ import annotations

"""SQLAlchemy ORM models for agent persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``laborobo_ai.agent_core.repos.sql``.

Design
------

- Agent configurations hold permission flags and the spend counters the
  gateway reserves against.
- The activity log is append-only.
- Workflow states are checkpoints; ``version`` is bumped on every write so
  conditional transitions (resume) can detect concurrent writers.
- Inbox items reference workflow states through ``approvable_type`` /
  ``approvable_id``.

JSON columns use JSONB on Postgres and plain JSON elsewhere (tests run on
SQLite). Table names are prefixed with ``lb_`` to avoid collisions in shared
databases.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AgentRow(Base):
    """Row model for ``lb_ai_agents``."""

    __tablename__ = "lb_ai_agents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True)
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class AgentConfigurationRow(Base):
    """Row model for ``lb_agent_configurations``.

    One row per team and agent. ``daily_spend`` and ``current_month_spend``
    are only changed through conditional updates in the SQL repository.
    """

    __tablename__ = "lb_agent_configurations"
    __table_args__ = (UniqueConstraint("team_id", "agent_id", name="uq_lb_agent_configurations_team_agent"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    can_modify_tasks: Mapped[bool] = mapped_column(Boolean, default=False)
    can_create_work_orders: Mapped[bool] = mapped_column(Boolean, default=False)
    can_access_client_data: Mapped[bool] = mapped_column(Boolean, default=False)
    can_send_emails: Mapped[bool] = mapped_column(Boolean, default=False)
    can_modify_deliverables: Mapped[bool] = mapped_column(Boolean, default=False)
    can_access_financial_data: Mapped[bool] = mapped_column(Boolean, default=False)
    can_modify_playbooks: Mapped[bool] = mapped_column(Boolean, default=False)

    tool_permissions: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)

    daily_budget_cap: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    monthly_budget_cap: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    daily_spend: Mapped[float] = mapped_column(Float, default=0.0)
    current_month_spend: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class GlobalAISettingsRow(Base):
    """Row model for ``lb_global_ai_settings`` (one row per team)."""

    __tablename__ = "lb_global_ai_settings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), unique=True)

    require_approval_external_sends: Mapped[bool] = mapped_column(Boolean, default=True)
    require_approval_financial: Mapped[bool] = mapped_column(Boolean, default=True)
    require_approval_contracts: Mapped[bool] = mapped_column(Boolean, default=True)
    require_approval_scope_changes: Mapped[bool] = mapped_column(Boolean, default=False)
    approval_client_facing_content: Mapped[bool] = mapped_column(Boolean, default=True)
    approval_financial_data: Mapped[bool] = mapped_column(Boolean, default=True)
    approval_contractual_changes: Mapped[bool] = mapped_column(Boolean, default=True)
    approval_work_order_creation: Mapped[bool] = mapped_column(Boolean, default=False)
    approval_task_assignment: Mapped[bool] = mapped_column(Boolean, default=False)

    pm_copilot_auto_suggest: Mapped[bool] = mapped_column(Boolean, default=False)
    pm_copilot_auto_approval_threshold: Mapped[float] = mapped_column(Float, default=0.8)


class ActivityLogRow(Base):
    """Row model for ``lb_agent_activity_logs``.

    Append-only audit record per tool call or agent run.
    """

    __tablename__ = "lb_agent_activity_logs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    workflow_state_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    run_type: Mapped[str] = mapped_column(String(32))
    tool_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    input: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)
    output: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32))

    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[float] = mapped_column(Float, default=0.0)
    duration_ms: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class WorkflowStateRow(Base):
    """Row model for ``lb_agent_workflow_states``.

    ``state_data`` carries the workflow-specific payload (input, step outputs,
    approval data) as JSON.
    """

    __tablename__ = "lb_agent_workflow_states"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), index=True)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    workflow_class: Mapped[str] = mapped_column(String(128))

    current_node: Mapped[str] = mapped_column(String(128))
    state_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)

    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    pause_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approval_required: Mapped[bool] = mapped_column(Boolean, default=False)

    version: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class InboxItemRow(Base):
    """Row model for ``lb_inbox_items``."""

    __tablename__ = "lb_inbox_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), index=True)
    type: Mapped[str] = mapped_column(String(32))

    title: Mapped[str] = mapped_column(String(255))
    content_preview: Mapped[str] = mapped_column(Text)
    full_content: Mapped[str] = mapped_column(Text)

    source_id: Mapped[str] = mapped_column(String(128))
    source_name: Mapped[str] = mapped_column(String(128))
    source_type: Mapped[str] = mapped_column(String(32))

    approvable_type: Mapped[str] = mapped_column(String(64))
    approvable_id: Mapped[str] = mapped_column(String(64), index=True)

    urgency: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), index=True)

    decided_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class WorkflowCustomizationRow(Base):
    """Row model for ``lb_workflow_customizations``."""

    __tablename__ = "lb_workflow_customizations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(64), index=True)
    workflow_class: Mapped[str] = mapped_column(String(128))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    disabled_steps: Mapped[List[str]] = mapped_column(JSONType, default=list)
    parameters: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)
