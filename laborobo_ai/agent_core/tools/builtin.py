from __future__ import annotations

"""Read-only context tools used by the PM Copilot workflow.

The tools read work orders, playbooks and tasks through a
``WorkOrderContextSource``; the host application provides the real source,
``InMemoryWorkOrderContextSource`` serves tests and local runs.

Every query is scoped to ``ToolContext.team_id``; a work order owned by another
team is reported as not found.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Protocol

from ..schemas.domain import ToolCategory
from .base import ParameterType, ToolContext, ToolDefinition, ToolParameter
from .registry import ToolRegistry

WORK_ORDER_INFO = "work_order_info"
GET_PLAYBOOKS = "get_playbooks"
TASK_LIST = "task_list"

_DONE_STATUSES = ("done", "approved")


class WorkOrderContextSource(Protocol):
    """Read access to the work-management data the agents reason over."""

    async def get_work_order(self, team_id: str, work_order_id: str) -> Optional[Dict[str, Any]]: ...

    async def search_playbooks(self, team_id: str, search: Optional[str], limit: int) -> List[Dict[str, Any]]: ...

    async def get_project_context(self, team_id: str, work_order_id: str) -> Dict[str, Any]: ...

    async def list_tasks(
        self, team_id: str, work_order_id: str, status: Optional[str] = None
    ) -> List[Dict[str, Any]]: ...


@dataclass
class InMemoryWorkOrderContextSource:
    """Dict-backed ``WorkOrderContextSource``.

    Work orders and tasks carry a ``team_id`` key; playbooks are stored per
    team; project context is stored per work order id.
    """

    work_orders: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    playbooks: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    project_contexts: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    async def get_work_order(self, team_id: str, work_order_id: str) -> Optional[Dict[str, Any]]:
        wo = self.work_orders.get(str(work_order_id))
        if wo is None or wo.get("team_id") != team_id:
            return None
        return dict(wo)

    async def search_playbooks(self, team_id: str, search: Optional[str], limit: int) -> List[Dict[str, Any]]:
        items = self.playbooks.get(team_id, [])
        if search:
            words = [w for w in search.lower().split() if w]
            scored = []
            for pb in items:
                haystack = " ".join(
                    [str(pb.get("name") or ""), str(pb.get("description") or ""), " ".join(pb.get("tags") or [])]
                ).lower()
                if any(w in haystack for w in words):
                    scored.append(pb)
            items = scored or items
        ordered = sorted(items, key=lambda pb: int(pb.get("times_applied") or 0), reverse=True)
        return [dict(pb) for pb in ordered[: max(0, limit)]]

    async def get_project_context(self, team_id: str, work_order_id: str) -> Dict[str, Any]:
        if await self.get_work_order(team_id, work_order_id) is None:
            return {}
        return dict(self.project_contexts.get(str(work_order_id), {}))

    async def list_tasks(
        self, team_id: str, work_order_id: str, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return [
            dict(t)
            for t in self.tasks
            if t.get("team_id") == team_id
            and str(t.get("work_order_id")) == str(work_order_id)
            and (status is None or t.get("status") == status)
        ]


def _task_summary(tasks: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_status: Dict[str, int] = {}
    for t in tasks:
        key = str(t.get("status") or "unknown")
        by_status[key] = by_status.get(key, 0) + 1
    return {
        "total": len(tasks),
        "completed": sum(by_status.get(s, 0) for s in _DONE_STATUSES),
        "in_progress": by_status.get("in-progress", 0),
        "todo": by_status.get("todo", 0),
        "blocked": by_status.get("blocked", 0),
        "in_review": by_status.get("in-review", 0),
        "by_status": by_status,
    }


WORK_ORDER_INFO_DEFINITION = ToolDefinition(
    name=WORK_ORDER_INFO,
    description=(
        "Retrieves detailed information about a specific work order including status, "
        "task summary and related project context."
    ),
    category=ToolCategory.client_data,
    parameters=[
        ToolParameter(name="work_order_id", description="The ID of the work order to retrieve"),
        ToolParameter(
            name="include_task_summary",
            type=ParameterType.boolean,
            description="Whether to include task summary statistics (default: true)",
            required=False,
        ),
        ToolParameter(
            name="include_project_context",
            type=ParameterType.boolean,
            description="Whether to include project context such as pending tasks and budget hours (default: true)",
            required=False,
        ),
    ],
)

GET_PLAYBOOKS_DEFINITION = ToolDefinition(
    name=GET_PLAYBOOKS,
    description="Searches the team's playbooks (SOPs and templates) relevant to a piece of work.",
    category=ToolCategory.general,
    parameters=[
        ToolParameter(name="search", description="Keywords matched against name, description and tags", required=False),
        ToolParameter(
            name="limit",
            type=ParameterType.integer,
            description="Maximum number of playbooks to return (default: 10)",
            required=False,
        ),
    ],
)

TASK_LIST_DEFINITION = ToolDefinition(
    name=TASK_LIST,
    description="Lists the tasks of a work order, optionally filtered by status.",
    category=ToolCategory.tasks,
    parameters=[
        ToolParameter(name="work_order_id", description="The ID of the work order"),
        ToolParameter(name="status", description="Only return tasks with this status", required=False),
    ],
)


@dataclass(frozen=True)
class WorkOrderInfoTool:
    """
    Tool returning a work order with its task summary and project context.

    Raises ``ValueError`` for a missing id or an unknown work order; the gateway
    reports it as a failed call.
    """

    source: WorkOrderContextSource
    definition: ClassVar[ToolDefinition] = WORK_ORDER_INFO_DEFINITION

    async def execute(self, params: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
        work_order_id = str(params.get("work_order_id") or "").strip()
        if not work_order_id:
            raise ValueError("work_order_id is required")
        work_order = await self.source.get_work_order(ctx.team_id, work_order_id)
        if work_order is None:
            raise ValueError(f"Work order with ID {work_order_id} not found")

        out: Dict[str, Any] = {"work_order": work_order}
        if params.get("include_task_summary", True):
            tasks = await self.source.list_tasks(ctx.team_id, work_order_id)
            out["work_order"]["task_summary"] = _task_summary(tasks)
        if params.get("include_project_context", True):
            out["project_context"] = await self.source.get_project_context(ctx.team_id, work_order_id)
        return out


@dataclass(frozen=True)
class GetPlaybooksTool:
    source: WorkOrderContextSource
    definition: ClassVar[ToolDefinition] = GET_PLAYBOOKS_DEFINITION

    async def execute(self, params: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
        search = params.get("search") or None
        limit = int(params.get("limit") or 10)
        playbooks = await self.source.search_playbooks(ctx.team_id, search, limit)
        return {
            "search_criteria": {"search": search, "limit": limit},
            "playbooks": playbooks,
            "total_found": len(playbooks),
        }


@dataclass(frozen=True)
class TaskListTool:
    source: WorkOrderContextSource
    definition: ClassVar[ToolDefinition] = TASK_LIST_DEFINITION

    async def execute(self, params: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
        work_order_id = str(params.get("work_order_id") or "").strip()
        if not work_order_id:
            raise ValueError("work_order_id is required")
        tasks = await self.source.list_tasks(ctx.team_id, work_order_id, params.get("status") or None)
        return {"work_order_id": work_order_id, "tasks": tasks, "total": len(tasks)}


def register_builtin_tools(registry: ToolRegistry, source: WorkOrderContextSource) -> ToolRegistry:
    """Register the read-only context tools backed by ``source``."""
    registry.register(WorkOrderInfoTool(source=source))
    registry.register(GetPlaybooksTool(source=source))
    registry.register(TaskListTool(source=source))
    return registry
