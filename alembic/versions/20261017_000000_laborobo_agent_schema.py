"""Agent gateway and workflow schema for Laborobo-AI

Revision ID: 20261017_000000
Revises: None
Create Date: 2026-10-17 00:00:00.000000

This is the initial migration for the Laborobo agent subsystem. It creates:
- Agents and per-team agent configurations (permission flags, budget counters)
- Team-wide global AI settings (approval switches)
- The append-only agent activity log
- Workflow state checkpoints and workflow customizations
- Inbox items for human approvals
- The default PM Copilot agent

Revision format: YYYYMMDD_HHMMSS_description

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261017_000000"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")

PM_COPILOT_AGENT_ID = "00000000-0000-0000-0000-00000000a001"


def upgrade() -> None:
    """Create all tables and seed the default agent."""

    agents = op.create_table(
        "lb_ai_agents",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "lb_agent_configurations",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("can_modify_tasks", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_create_work_orders", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_access_client_data", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_send_emails", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_modify_deliverables", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_access_financial_data", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_modify_playbooks", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tool_permissions", JSON_TYPE, nullable=False, server_default="{}"),
        sa.Column("daily_budget_cap", sa.Float(), nullable=True),
        sa.Column("monthly_budget_cap", sa.Float(), nullable=True),
        sa.Column("daily_spend", sa.Float(), nullable=False, server_default="0"),
        sa.Column("current_month_spend", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id", "agent_id", name="uq_lb_agent_configurations_team_agent"),
        sa.CheckConstraint("daily_spend >= 0", name="ck_lb_agent_configurations_daily_spend"),
        sa.CheckConstraint("current_month_spend >= 0", name="ck_lb_agent_configurations_month_spend"),
        sa.Index("ix_lb_agent_configurations_team_id", "team_id"),
        sa.Index("ix_lb_agent_configurations_agent_id", "agent_id"),
    )

    op.create_table(
        "lb_global_ai_settings",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("require_approval_external_sends", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("require_approval_financial", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("require_approval_contracts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("require_approval_scope_changes", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approval_client_facing_content", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("approval_financial_data", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("approval_contractual_changes", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("approval_work_order_creation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approval_task_assignment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pm_copilot_auto_suggest", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pm_copilot_auto_approval_threshold", sa.Float(), nullable=False, server_default="0.8"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("team_id"),
    )

    op.create_table(
        "lb_agent_activity_logs",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=False),
        sa.Column("workflow_state_id", sa.String(64), nullable=True),
        sa.Column("run_type", sa.String(32), nullable=False),
        sa.Column("tool_name", sa.String(128), nullable=True),
        sa.Column("input", JSON_TYPE, nullable=False, server_default="{}"),
        sa.Column("output", JSON_TYPE, nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Float(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_lb_agent_activity_logs_team_id", "team_id"),
        sa.Index("ix_lb_agent_activity_logs_agent_id", "agent_id"),
        sa.Index("ix_lb_agent_activity_logs_workflow_state_id", "workflow_state_id"),
        sa.Index("ix_lb_agent_activity_logs_created_at", "created_at"),
    )

    op.create_table(
        "lb_agent_workflow_states",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("agent_id", sa.String(64), nullable=False),
        sa.Column("workflow_class", sa.String(128), nullable=False),
        sa.Column("current_node", sa.String(128), nullable=False),
        sa.Column("state_data", JSON_TYPE, nullable=False, server_default="{}"),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pause_reason", sa.Text(), nullable=True),
        sa.Column("approval_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_lb_agent_workflow_states_team_id", "team_id"),
        sa.Index("ix_lb_agent_workflow_states_agent_id", "agent_id"),
    )

    op.create_table(
        "lb_inbox_items",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content_preview", sa.Text(), nullable=False),
        sa.Column("full_content", sa.Text(), nullable=False),
        sa.Column("source_id", sa.String(128), nullable=False),
        sa.Column("source_name", sa.String(128), nullable=False),
        sa.Column("source_type", sa.String(32), nullable=False),
        sa.Column("approvable_type", sa.String(64), nullable=False),
        sa.Column("approvable_id", sa.String(64), nullable=False),
        sa.Column("urgency", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("decided_by", sa.String(128), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_lb_inbox_items_team_id", "team_id"),
        sa.Index("ix_lb_inbox_items_approvable_id", "approvable_id"),
        sa.Index("ix_lb_inbox_items_status", "status"),
    )

    op.create_table(
        "lb_workflow_customizations",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("team_id", sa.String(64), nullable=False),
        sa.Column("workflow_class", sa.String(128), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("disabled_steps", JSON_TYPE, nullable=False, server_default="[]"),
        sa.Column("parameters", JSON_TYPE, nullable=False, server_default="{}"),
        sa.PrimaryKeyConstraint("id"),
        sa.Index("ix_lb_workflow_customizations_team_id", "team_id"),
    )

    op.bulk_insert(
        agents,
        [
            {
                "id": PM_COPILOT_AGENT_ID,
                "code": "pm-copilot",
                "name": "PM Copilot",
                "description": "Plans work orders into deliverables, tasks and project insights.",
            }
        ],
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("lb_workflow_customizations")
    op.drop_table("lb_inbox_items")
    op.drop_table("lb_agent_workflow_states")
    op.drop_table("lb_agent_activity_logs")
    op.drop_table("lb_global_ai_settings")
    op.drop_table("lb_agent_configurations")
    op.drop_table("lb_ai_agents")
