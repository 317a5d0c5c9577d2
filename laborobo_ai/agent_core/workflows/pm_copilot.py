from __future__ import annotations

"""PM Copilot workflow.

Analyzes a work order and proposes deliverable alternatives, a task breakdown
with estimates and project insights.

Steps:

1. ``gather_context``: work order, project context and playbooks, read
   through the gateway when the agent has a configuration for the team.
2. ``generate_deliverables``: 2-3 alternative deliverable structures.
3. ``checkpoint_deliverables``: pauses for human review in ``staged`` mode,
   unless the team's auto-approval threshold lets a confident alternative
   without budget impact through.
4. ``generate_task_breakdown``: plan/execute/review tasks per deliverable.
5. ``generate_insights``: overdue, blocked and budget-burn signals.
6. ``present_results``: completes and files a review inbox item.

Each generation step asks the LLM first (JSON answer) and falls back to the
deterministic builders below when no runner is configured, the call fails or
the answer cannot be parsed.
"""

import json
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from ..runtime.engine import BaseAgentWorkflow
from ..runtime.models import StepOutcome, WorkflowStateData
from ..runtime.orchestrator import APPROVABLE_TYPE
from ..schemas.base import BaseSchema
from ..schemas.domain import AgentWorkflowState, InboxItem, InboxItemType, SourceType, TeamContext
from ..tools.builtin import GET_PLAYBOOKS, WORK_ORDER_INFO

logger = logging.getLogger(__name__)

PLAYBOOK_SEARCH_LIMIT = 5
BUDGET_WARNING_RATIO = 0.8

SYSTEM_PROMPT = (
    "You are PM Copilot, an assistant that plans work for a professional services team. "
    "Answer with JSON only, wrapped in ```json fences, following the schema you are given."
)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PMCopilotInput(BaseSchema):
    work_order_id: str
    team_id: str
    pm_copilot_mode: Literal["staged", "full"] = "full"


class PMCopilotStateData(WorkflowStateData):
    input: PMCopilotInput  # type: ignore[assignment]

    context: Dict[str, Any] = Field(default_factory=dict)
    context_warnings: List[str] = Field(default_factory=list)

    deliverable_alternatives: List[Dict[str, Any]] = Field(default_factory=list)
    deliverables_generated_at: Optional[datetime] = None
    approved_deliverables: List[Dict[str, Any]] = Field(default_factory=list)
    auto_approval: Optional[Dict[str, Any]] = None

    task_breakdown: List[Dict[str, Any]] = Field(default_factory=list)
    tasks_generated_at: Optional[datetime] = None

    insights: List[Dict[str, Any]] = Field(default_factory=list)
    insights_generated_at: Optional[datetime] = None


def extract_json(response: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object from an LLM answer: fenced ```json block first, then the raw text."""
    match = _JSON_FENCE.search(response)
    if match:
        try:
            decoded = json.loads(match.group(1).strip())
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            return decoded
    try:
        decoded = json.loads(response.strip())
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def object_list(parsed: Optional[Dict[str, Any]], key: str) -> Optional[List[Dict[str, Any]]]:
    """Return ``parsed[key]`` when it is a list of JSON objects, else ``None``."""
    value = parsed.get(key) if parsed else None
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        return None
    return value


def determine_confidence(description: str, acceptance_criteria: List[Any], playbooks: List[Dict[str, Any]]) -> str:
    has_description = bool(description)
    has_criteria = bool(acceptance_criteria)
    has_playbooks = bool(playbooks)
    if has_description and has_criteria and has_playbooks:
        return "high"
    if has_description and (has_criteria or has_playbooks):
        return "medium"
    return "low"


def build_deliverable_alternatives(work_order: Dict[str, Any], playbooks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Standard alternative always; multi-phase with a description; template-based with a playbook."""
    title = work_order.get("title") or "Untitled Work Order"
    description = work_order.get("description") or ""
    criteria = list(work_order.get("acceptance_criteria") or [])

    alternatives: List[Dict[str, Any]] = [
        {
            "alternative_id": 1,
            "name": "Standard Approach",
            "deliverables": [
                {
                    "title": f"Primary Deliverable for {title}",
                    "description": f"Main deliverable based on work order requirements: {description}",
                    "type": "document",
                    "acceptance_criteria": criteria,
                    "confidence": determine_confidence(description, criteria, playbooks),
                }
            ],
            "confidence": "medium",
            "reasoning": "Standard single-deliverable approach based on work order description.",
        }
    ]

    if description:
        alternatives.append(
            {
                "alternative_id": 2,
                "name": "Multi-Phase Approach",
                "deliverables": [
                    {
                        "title": f"Phase 1: Planning for {title}",
                        "description": "Initial planning and requirements gathering phase.",
                        "type": "document",
                        "acceptance_criteria": ["Requirements documented", "Plan approved"],
                        "confidence": "medium",
                    },
                    {
                        "title": f"Phase 2: Implementation for {title}",
                        "description": "Core implementation and delivery phase.",
                        "type": "deliverable",
                        "acceptance_criteria": criteria,
                        "confidence": "medium",
                    },
                ],
                "confidence": "medium",
                "reasoning": "Phased approach allowing for iterative review and approval.",
            }
        )

    if playbooks:
        playbook = playbooks[0]
        alternatives.append(
            {
                "alternative_id": 3,
                "name": "Template-Based Approach",
                "deliverables": [
                    {
                        "title": f"Deliverable based on {playbook.get('name')}",
                        "description": f"Following template: {playbook.get('description') or ''}",
                        "type": playbook.get("type") or "document",
                        "acceptance_criteria": criteria,
                        "confidence": "high",
                    }
                ],
                "confidence": "high",
                "reasoning": f"Based on existing playbook: {playbook.get('name')}",
            }
        )
    return alternatives


def extract_checklist(playbooks: List[Dict[str, Any]]) -> List[str]:
    if not playbooks:
        return ["Complete task requirements", "Verify output quality"]
    content = playbooks[0].get("content")
    if isinstance(content, dict) and isinstance(content.get("checklist"), list):
        return [str(item) for item in content["checklist"][:5]]
    return ["Follow playbook guidelines", "Complete all requirements", "Verify against criteria"]


def build_task_breakdown(deliverables: List[Dict[str, Any]], playbooks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Plan (2h), execute (8h) and review (2h) tasks per deliverable, each depending on the previous one."""
    breakdown: List[Dict[str, Any]] = []
    position = 1
    for deliverable in deliverables:
        title = deliverable.get("title") or "Untitled Deliverable"
        plan, execute, review = position, position + 1, position + 2
        position += 3
        tasks = [
            {
                "title": f"Plan: {title}",
                "description": "Initial planning and requirements analysis.",
                "estimated_hours": 2.0,
                "position_in_work_order": plan,
                "checklist_items": ["Review requirements", "Define approach", "Estimate effort"],
                "dependencies": [],
                "confidence": "medium",
            },
            {
                "title": f"Execute: {title}",
                "description": "Main execution of deliverable requirements.",
                "estimated_hours": 8.0,
                "position_in_work_order": execute,
                "checklist_items": extract_checklist(playbooks),
                "dependencies": [plan],
                "confidence": "medium",
            },
            {
                "title": f"Review: {title}",
                "description": "Quality review and acceptance testing.",
                "estimated_hours": 2.0,
                "position_in_work_order": review,
                "checklist_items": ["Quality check", "Test against criteria", "Document findings"],
                "dependencies": [execute],
                "confidence": "high",
            },
        ]
        breakdown.append(
            {
                "deliverable_title": title,
                "tasks": tasks,
                "total_estimated_hours": sum(t["estimated_hours"] for t in tasks),
                "confidence": "medium",
            }
        )
    return breakdown


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _is_before(value: Any, today: date) -> bool:
    due = _parse_date(value)
    return due is not None and due < today


def build_project_insights(project_context: Dict[str, Any], *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    today = today or _utc_now().date()
    pending = list(project_context.get("pending_tasks") or [])
    insights: List[Dict[str, Any]] = []

    overdue = [t for t in pending if _is_before(t.get("due_date"), today)]
    if overdue:
        insights.append(
            {
                "type": "overdue",
                "severity": "high",
                "title": "Overdue Tasks Detected",
                "description": f"{len(overdue)} task(s) are past their due date.",
                "affected_items": [t.get("id") for t in overdue],
                "suggestion": "Review and reprioritize overdue tasks or update due dates.",
                "confidence": "high",
            }
        )

    blocked = [t for t in pending if t.get("is_blocked") is True]
    if blocked:
        insights.append(
            {
                "type": "bottleneck",
                "severity": "medium",
                "title": "Blocked Tasks Identified",
                "description": f"{len(blocked)} task(s) are currently blocked.",
                "affected_items": [t.get("id") for t in blocked],
                "suggestion": "Review blockers and resolve dependencies to unblock work.",
                "confidence": "high",
            }
        )

    budget_hours = float(project_context.get("budget_hours") or 0)
    actual_hours = float(project_context.get("actual_hours") or 0)
    if budget_hours > 0 and actual_hours > budget_hours * BUDGET_WARNING_RATIO:
        percent_used = round(actual_hours / budget_hours * 100)
        insights.append(
            {
                "type": "scope_creep",
                "severity": "high" if percent_used >= 100 else "medium",
                "title": "Budget Hours Warning",
                "description": f"Project has used {percent_used}% of budgeted hours.",
                "affected_items": [],
                "suggestion": "Review scope and consider adjusting budget or timeline.",
                "confidence": "high",
            }
        )
    return insights


def _playbook_lines(playbooks: List[Dict[str, Any]]) -> str:
    lines = [f"- {pb.get('name')}: {pb.get('description') or ''}" for pb in playbooks]
    return "\n".join(lines) or "None available."


def deliverables_prompt(work_order: Dict[str, Any], playbooks: List[Dict[str, Any]]) -> str:
    criteria = work_order.get("acceptance_criteria") or []
    criteria_text = "\n- ".join(str(c) for c in criteria) or "None specified"
    return f"""Analyze the following work order and generate 2-3 alternative deliverable structures.

## Work Order
Title: {work_order.get("title") or "Untitled Work Order"}
Description: {work_order.get("description") or "No description provided."}
Acceptance Criteria:
- {criteria_text}

## Available Playbooks
{_playbook_lines(playbooks)}

## Instructions
Each alternative should follow a different strategy (single deliverable, multi-phase, template-based).
Respond with a JSON object of the form:
{{"alternatives": [{{"alternative_id": 1, "name": "...", "deliverables": [{{"title": "...", "description": "...",
"type": "document|deliverable|code|design", "acceptance_criteria": ["..."], "confidence": "low|medium|high"}}],
"confidence": "low|medium|high", "reasoning": "..."}}]}}
"""


def task_breakdown_prompt(deliverables: List[Dict[str, Any]], playbooks: List[Dict[str, Any]]) -> str:
    deliverable_lines = "\n".join(
        f"{i}. {d.get('title') or 'Untitled'}: {d.get('description') or ''}" for i, d in enumerate(deliverables, 1)
    )
    return f"""Break down the following deliverables into actionable tasks with time estimates.

## Deliverables
{deliverable_lines or "No deliverables provided."}

## Available Playbooks
{_playbook_lines(playbooks)}

## Instructions
Cover planning, execution and review for each deliverable, with realistic hour estimates and dependencies.
Respond with a JSON object of the form:
{{"task_breakdown": [{{"deliverable_title": "...", "tasks": [{{"title": "...", "description": "...",
"estimated_hours": 2.0, "position_in_work_order": 1, "checklist_items": ["..."], "dependencies": [],
"confidence": "low|medium|high"}}], "total_estimated_hours": 12.0, "confidence": "low|medium|high"}}]}}
"""


def insights_prompt(context: Dict[str, Any]) -> str:
    payload = json.dumps(
        {"project": context.get("project_context") or {}, "work_order": context.get("work_order") or {}},
        indent=2,
        default=str,
    )
    return f"""Analyze the following project data and identify overdue items, bottlenecks, scope creep risks
and resource allocation issues.

## Project Data
{payload}

## Instructions
Classify each insight by type (overdue, bottleneck, scope_creep, resource) and severity (low, medium, high).
Respond with a JSON object of the form:
{{"insights": [{{"type": "...", "severity": "...", "title": "...", "description": "...", "affected_items": [],
"suggestion": "...", "confidence": "low|medium|high"}}]}}
"""


def build_content_preview(alternatives: List[Dict[str, Any]], task_breakdown: List[Dict[str, Any]]) -> str:
    deliverable_count = sum(len(a.get("deliverables") or []) for a in alternatives)
    task_count = sum(len(b.get("tasks") or []) for b in task_breakdown)
    return (
        f"{len(alternatives)} alternative(s) with {deliverable_count} deliverable(s) "
        f"and {task_count} task(s) suggested"
    )


def build_inbox_content(alternatives: List[Dict[str, Any]], task_breakdown: List[Dict[str, Any]]) -> str:
    by_title = {b.get("deliverable_title"): b for b in task_breakdown}
    lines: List[str] = []
    for number, alt in enumerate(alternatives, 1):
        name = alt.get("name") or f"Alternative {number}"
        lines += [f"## Alternative {number}: {name} ({alt.get('confidence') or 'unknown'} confidence)", ""]
        deliverables = alt.get("deliverables") or []
        if deliverables:
            lines.append("### Deliverables")
            lines += [f"- {d.get('title')} ({d.get('type') or 'deliverable'})" for d in deliverables]
            lines.append("")
        for d in deliverables:
            breakdown = by_title.get(d.get("title"))
            if breakdown is None:
                continue
            lines.append("### Tasks")
            lines += [f"- {t.get('title')}: {t.get('estimated_hours', 0)}h" for t in breakdown.get("tasks") or []]
            lines.append("")
        lines += ["---", ""]
    return "\n".join(lines)


class PMCopilotWorkflow(BaseAgentWorkflow[PMCopilotStateData]):
    identifier = "pm_copilot"
    description = (
        "Analyzes work orders to generate deliverable alternatives, break them down into tasks with "
        "estimates and surface project insights. Supports staged review or full plan generation."
    )
    state_model = PMCopilotStateData

    def define_steps(self):
        return {
            "gather_context": self.gather_context,
            "generate_deliverables": self.generate_deliverables,
            "checkpoint_deliverables": self.checkpoint_deliverables,
            "generate_task_breakdown": self.generate_task_breakdown,
            "generate_insights": self.generate_insights,
            "present_results": self.present_results,
        }

    async def start(self, input: Dict[str, Any], context: TeamContext) -> AgentWorkflowState:
        """Start for ``context.team_id``; an explicit ``team_id`` in ``input`` must match it."""
        payload = dict(input)
        payload.setdefault("team_id", context.team_id)
        if payload["team_id"] != context.team_id:
            raise ValueError("team_id in input does not match the calling team")
        return await super().start(payload, context)

    async def _call_llm(self, prompt: str) -> Optional[Dict[str, Any]]:
        runner = self.deps.runner
        if runner is None or self.configuration is None:
            return None
        completion = await runner.run_prompt(
            self.agent,
            self.configuration,
            prompt,
            system_prompt=SYSTEM_PROMPT,
            workflow_state_id=self.state.id,
        )
        if completion is None:
            return None
        parsed = extract_json(completion.text)
        if parsed is None:
            logger.warning(f"Unparseable LLM answer for workflow state {self.state.id}; using fallback")
        return parsed

    async def _read_tool(self, data: PMCopilotStateData, tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
        gateway = self.deps.gateway
        assert gateway is not None and self.configuration is not None
        result = await gateway.execute(
            self.agent, self.configuration, tool_name, params, workflow_state_id=self.state.id
        )
        if not result.ok:
            data.context_warnings.append(f"{tool_name}: {result.error or result.status.value}")
            return {}
        return result.data

    async def gather_context(self, data: PMCopilotStateData) -> StepOutcome:
        team_id = self.state.team_id
        work_order_id = data.input.work_order_id
        context: Dict[str, Any] = {"gathered_at": _utc_now().isoformat()}

        if self.deps.gateway is not None and self.configuration is not None:
            info = await self._read_tool(data, WORK_ORDER_INFO, {"work_order_id": work_order_id})
            context["work_order"] = info.get("work_order") or {}
            context["project_context"] = info.get("project_context") or {}
            found = await self._read_tool(
                data,
                GET_PLAYBOOKS,
                {"search": context["work_order"].get("title") or "", "limit": PLAYBOOK_SEARCH_LIMIT},
            )
            context["playbooks"] = found.get("playbooks") or []
        elif self.deps.context_source is not None:
            source = self.deps.context_source
            context["work_order"] = await source.get_work_order(team_id, work_order_id) or {}
            context["project_context"] = await source.get_project_context(team_id, work_order_id)
            context["playbooks"] = await source.search_playbooks(
                team_id, context["work_order"].get("title") or None, PLAYBOOK_SEARCH_LIMIT
            )
        else:
            data.context_warnings.append("no context source configured")
            context.update({"work_order": {}, "project_context": {}, "playbooks": []})

        if not context["work_order"]:
            logger.info(f"Work order {work_order_id} unavailable for workflow state {self.state.id}")
        data.context = context
        return StepOutcome.advance()

    async def generate_deliverables(self, data: PMCopilotStateData) -> StepOutcome:
        work_order = data.context.get("work_order") or {}
        playbooks = data.context.get("playbooks") or []

        parsed = await self._call_llm(deliverables_prompt(work_order, playbooks))
        alternatives = object_list(parsed, "alternatives")
        if alternatives is None:
            alternatives = build_deliverable_alternatives(work_order, playbooks)

        data.deliverable_alternatives = alternatives
        data.deliverables_generated_at = _utc_now()
        return StepOutcome.advance()

    async def checkpoint_deliverables(self, data: PMCopilotStateData) -> StepOutcome:
        if data.input.pm_copilot_mode != "staged":
            return StepOutcome.advance()
        if await self._auto_approve(data):
            return StepOutcome.advance()
        return StepOutcome.pause(
            "Deliverable review required",
            "Review and approve the generated deliverable alternatives before task breakdown",
            action_input={
                "work_order_id": data.input.work_order_id,
                "alternatives": [a.get("name") for a in data.deliverable_alternatives],
            },
        )

    async def _auto_approve(self, data: PMCopilotStateData) -> bool:
        policy = self.deps.auto_approval
        if policy is None or not data.deliverable_alternatives:
            return False
        selected = await policy.select(self.state.team_id, data.deliverable_alternatives)
        if selected is None:
            return False
        index, score, threshold = selected
        alternative = data.deliverable_alternatives[index]
        data.approved_deliverables = [
            {**d, "approved": True} for d in alternative.get("deliverables") or [] if isinstance(d, dict)
        ]
        data.auto_approval = {
            "alternative_id": alternative.get("alternative_id"),
            "confidence_score": score,
            "threshold": threshold,
            "approved_at": _utc_now().isoformat(),
        }
        logger.info(
            f"Auto-approved alternative '{alternative.get('name')}' for workflow state {self.state.id} "
            f"(score {score:.2f} >= {threshold:.2f})"
        )
        return True

    def on_resume(self, data: PMCopilotStateData) -> Optional[PMCopilotStateData]:
        submitted = data.approval_data.get("approved_deliverables")
        if not isinstance(submitted, list):
            return None
        data.approved_deliverables = [d for d in submitted if isinstance(d, dict) and d.get("approved") is True]
        return data

    def approved_deliverables(self, data: PMCopilotStateData) -> List[Dict[str, Any]]:
        """Deliverables approved on resume, else the first alternative's."""
        if data.approved_deliverables:
            return data.approved_deliverables
        if data.deliverable_alternatives:
            return list(data.deliverable_alternatives[0].get("deliverables") or [])
        return []

    async def generate_task_breakdown(self, data: PMCopilotStateData) -> StepOutcome:
        deliverables = self.approved_deliverables(data)
        playbooks = data.context.get("playbooks") or []

        parsed = await self._call_llm(task_breakdown_prompt(deliverables, playbooks))
        breakdown = object_list(parsed, "task_breakdown")
        if breakdown is None:
            breakdown = build_task_breakdown(deliverables, playbooks)

        data.task_breakdown = breakdown
        data.tasks_generated_at = _utc_now()
        return StepOutcome.advance()

    async def generate_insights(self, data: PMCopilotStateData) -> StepOutcome:
        parsed = await self._call_llm(insights_prompt(data.context))
        insights = object_list(parsed, "insights")
        if insights is None:
            insights = build_project_insights(data.context.get("project_context") or {})

        data.insights = insights
        data.insights_generated_at = _utc_now()
        return StepOutcome.advance()

    async def present_results(self, data: PMCopilotStateData) -> StepOutcome:
        return StepOutcome.complete(
            {
                "deliverable_alternatives": data.deliverable_alternatives,
                "task_breakdown": data.task_breakdown,
                "insights": data.insights,
                "context_warnings": data.context_warnings,
                "generated_at": _utc_now().isoformat(),
            }
        )

    async def on_complete(self, state: AgentWorkflowState) -> None:
        """File the "plan generated" review item when the work order was found."""
        data = self.decode(state)
        work_order = data.context.get("work_order") or {}
        if not work_order:
            return
        item = InboxItem(
            team_id=state.team_id,
            type=InboxItemType.review,
            title=f"PM Copilot: Plan generated for {work_order.get('title') or data.input.work_order_id}",
            content_preview=build_content_preview(data.deliverable_alternatives, data.task_breakdown),
            full_content=build_inbox_content(data.deliverable_alternatives, data.task_breakdown),
            source_id=f"agent-{self.agent.id}",
            source_name=self.agent.name,
            source_type=SourceType.ai_agent,
            approvable_type=APPROVABLE_TYPE,
            approvable_id=state.id,
        )
        try:
            await self.deps.approvals.file_review_item(item)
        except Exception as e:
            # The plan is already stored on the completed state.
            logger.error(f"Failed to file review item for workflow state {state.id}: {e}", exc_info=True)
