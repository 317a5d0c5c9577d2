"""Repository interfaces and SQL implementations for agent persistence.

The repository layer is the persistence boundary for the agent core.

Responsibilities
----------------

- Provide a small set of async repository interfaces (Protocols) that the
  gateway and workflow engine depend on.
- Persist durable, auditable records:

  - agent configurations with their spend counters,
  - team-wide AI settings,
  - the append-only activity log,
  - workflow state checkpoints,
  - approval inbox items,
  - workflow customizations.

Design notes
------------

The core is written against interfaces so it can be used with:

- a SQL database (async SQLAlchemy implementation provided in ``repos.sql``),
- in-memory fakes for unit tests.

The SQL implementation commits at repository-method boundaries. Operations that
must not straddle transactions (pause + inbox item, activity log + refund,
conditional spend reservation) are single repository methods.
"""

from .interfaces import (
    ActivityLogRepository,
    AgentConfigurationRepository,
    AgentRepository,
    BudgetRefund,
    GlobalAISettingsRepository,
    InboxRepository,
    WorkflowCustomizationRepository,
    WorkflowStateRepository,
)

__all__ = [
    "ActivityLogRepository",
    "AgentConfigurationRepository",
    "AgentRepository",
    "BudgetRefund",
    "GlobalAISettingsRepository",
    "InboxRepository",
    "WorkflowCustomizationRepository",
    "WorkflowStateRepository",
]
