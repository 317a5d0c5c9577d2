from __future__ import annotations

"""LangGraph workflow engine.

``BaseAgentWorkflow`` executes a named, ordered sequence of steps over a
persisted ``AgentWorkflowState``.

Execution model
---------------

- ``start`` creates the state at node ``start`` with the input stored in
  ``state_data``.
- ``run`` drives a LangGraph state machine whose ``execute`` node runs exactly
  one step per iteration and routes to ``continue`` / ``pause`` / ``finish``.
- ``current_node`` is the last step that completed; the next step is its
  successor (or the jump target recorded by ``StepOutcome.advance(to=...)``).

Checkpoints
-----------

Each step receives a deep copy of the decoded state data. Only after the step
returns is the new node and data written, and that write completes before the
next step starts. An exception inside a step is wrapped in
``WorkflowStepFailed`` and propagates with nothing from the step persisted, so
a retry replays the failed step.

Pause/resume
------------

A step returning ``StepOutcome.pause`` checkpoints at that step, marks the
state paused and files an approval inbox item in the same transaction, then
ends the graph. ``resume`` merges approval data into ``state_data`` and a later
``run`` continues with the step after the paused one.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, ClassVar, Dict, Generic, Optional, Type, TypeVar

from langgraph.graph import END, StateGraph

from ..errors import WorkflowStepFailed
from ..schemas.domain import (
    AgentConfiguration,
    AgentWorkflowState,
    AIAgent,
    TeamContext,
    WorkflowCustomization,
)
from .models import (
    COMPLETED_NODE,
    START_NODE,
    StepKind,
    StepOutcome,
    WorkflowDeps,
    WorkflowStateData,
    _GraphState,
)

logger = logging.getLogger(__name__)

DataT = TypeVar("DataT", bound=WorkflowStateData)
Step = Callable[[DataT], Awaitable[StepOutcome]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseAgentWorkflow(ABC, Generic[DataT]):
    """Base class for checkpointed agent workflows.

    Subclasses set ``identifier`` (stored as ``workflow_class``),
    ``state_model`` and implement ``define_steps``.
    """

    identifier: ClassVar[str]
    description: ClassVar[str] = ""
    state_model: ClassVar[Type[WorkflowStateData]] = WorkflowStateData

    def __init__(
        self,
        *,
        deps: WorkflowDeps,
        agent: AIAgent,
        state: Optional[AgentWorkflowState] = None,
    ) -> None:
        """
        Initialize the workflow.

        Args:
            deps: Services the workflow uses (orchestrator, approvals, gateway, ...).
            agent: The agent the workflow runs as.
            state: An existing state to continue; ``None`` until ``start``.
        """
        self._deps = deps
        self._agent = agent
        self._state = state
        self._steps: Dict[str, Step] = dict(self.define_steps())
        self._customization: Optional[WorkflowCustomization] = None
        self._configuration: Optional[AgentConfiguration] = None
        self._graph = self._build_graph()

    @abstractmethod
    def define_steps(self) -> Dict[str, Step]:
        """Return the ordered mapping of node name to step function."""

    @property
    def agent(self) -> AIAgent:
        return self._agent

    @property
    def deps(self) -> WorkflowDeps:
        return self._deps

    @property
    def state(self) -> AgentWorkflowState:
        if self._state is None:
            raise RuntimeError(f"{type(self).__name__} has not been started")
        return self._state

    @property
    def configuration(self) -> Optional[AgentConfiguration]:
        """The agent's configuration for the state's team, loaded by ``run``."""
        return self._configuration

    @property
    def customization(self) -> Optional[WorkflowCustomization]:
        return self._customization

    @property
    def step_names(self) -> list[str]:
        return list(self._steps)

    def get_parameter(self, key: str, default: Any = None) -> Any:
        return self._deps.orchestrator.get_parameter(self._customization, key, default)

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("execute", self._node_execute)
        g.add_node("pause", self._node_pause)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("execute")
        g.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {
                "pause": "pause",
                "finish": "finish",
                "continue": "execute",
            },
        )
        g.add_edge("pause", END)
        g.add_edge("finish", END)
        return g.compile()

    def decode(self, state: AgentWorkflowState) -> DataT:
        return self.state_model.model_validate(state.state_data)  # type: ignore[return-value]

    @staticmethod
    def encode(data: WorkflowStateData) -> Dict[str, Any]:
        return data.model_dump(mode="json")

    def on_start(self, data: DataT) -> DataT:
        """Hook to adjust the initial state data."""
        return data

    def on_resume(self, data: DataT) -> Optional[DataT]:
        """Hook to derive data from ``data.approval_data`` after a resume.

        Return ``None`` to leave the resumed state untouched.
        """
        return None

    async def start(self, input: Dict[str, Any], context: TeamContext) -> AgentWorkflowState:
        """
        Create and persist a new state at node ``start``.

        Raises:
            pydantic.ValidationError: If ``input`` does not match the workflow's input model.
        """
        customization = await self._deps.orchestrator.load_customization(context.team_id, self.identifier)
        data = self.state_model.model_validate(
            {
                "input": input,
                "customization_id": customization.id if customization else None,
                "started_at": _utc_now(),
            }
        )
        data = self.on_start(data)  # type: ignore[arg-type]
        self._customization = customization
        self._state = await self._deps.orchestrator.create(
            context=context,
            agent=self._agent,
            workflow_class=self.identifier,
            state_data=self.encode(data),
        )
        return self._state

    async def run(self) -> AgentWorkflowState:
        """Execute steps until the workflow pauses or completes."""
        state = self.state
        if state.is_completed:
            logger.debug(f"Workflow state {state.id} already completed")
            return state
        if state.is_paused:
            logger.info(f"Workflow state {state.id} is paused at '{state.current_node}'; resume it first")
            return state

        data = self.decode(state)
        self._customization = await self._deps.orchestrator.get_customization(data.customization_id)
        self._configuration = await self._deps.orchestrator.configuration_for(state.team_id, state.agent_id)

        graph_state: _GraphState = {"state_id": state.id, "_steps_run": 0}
        await self._graph.ainvoke(graph_state, config={"recursion_limit": 3 * len(self._steps) + 10})
        return self.state

    async def resume(self, approval_data: Dict[str, Any]) -> AgentWorkflowState:
        """
        Resume the paused state with ``approval_data``; call ``run`` to continue.

        Raises:
            WorkflowNotPausedError: If the state is not paused.
        """
        state = await self._deps.orchestrator.resume(self.state, approval_data)
        return await self.apply_resumed(state)

    async def apply_resumed(self, state: AgentWorkflowState) -> AgentWorkflowState:
        """Adopt a state resumed elsewhere (e.g. by an inbox approval) and run ``on_resume``."""
        derived = self.on_resume(self.decode(state))
        if derived is not None:
            state = await self._deps.orchestrator.checkpoint(
                state, node=state.current_node, state_data=self.encode(derived)
            )
        self._state = state
        return state

    def _next_node(self, current: str, data: WorkflowStateData) -> Optional[str]:
        if data.next_node:
            if data.next_node not in self._steps:
                raise WorkflowStepFailed(self.state.id, data.next_node, "unknown jump target")
            return data.next_node
        names = list(self._steps)
        if current == START_NODE:
            return names[0] if names else None
        if current == COMPLETED_NODE:
            return None
        if current not in self._steps:
            raise WorkflowStepFailed(self.state.id, current, "node is not defined by this workflow")
        idx = names.index(current) + 1
        return names[idx] if idx < len(names) else None

    async def _complete(self, data: WorkflowStateData, result: Dict[str, Any]) -> None:
        now = _utc_now()
        data.result = result
        data.completed_at = now
        data.next_node = None
        self._state = await self._deps.orchestrator.complete(self.state, state_data=self.encode(data))
        await self.on_complete(self._state)

    async def on_complete(self, state: AgentWorkflowState) -> None:
        """Hook called after the completed checkpoint is written."""

    async def _node_execute(self, gs: _GraphState) -> _GraphState:
        """Execute the next step.

        This node is responsible for:

        - detecting terminal conditions (paused, completed, no more steps),
        - skipping steps disabled by the team's customization,
        - running the step and checkpointing its outcome.
        """
        state = self.state
        if state.is_completed:
            gs["_outcome"] = "finish"
            return gs
        if state.is_paused:
            gs["_outcome"] = "pause"
            return gs

        data = self.decode(state)
        node = self._next_node(state.current_node, data)
        if node is None:
            await self._complete(data, dict(data.result or {}))
            gs["_outcome"] = "finish"
            return gs

        orchestrator = self._deps.orchestrator
        if orchestrator.should_skip_step(self._customization, node):
            logger.info(f"Skipping disabled step '{node}' for workflow state {state.id}")
            data.next_node = None
            self._state = await orchestrator.checkpoint(state, node=node, state_data=self.encode(data))
            gs["_outcome"] = "continue"
            return gs

        working = data.model_copy(deep=True)
        working.next_node = None
        logger.debug(f"Running step '{node}' for workflow state {state.id}")
        try:
            outcome = await self._steps[node](working)
            # Attribute assignment is not validated; a checkpoint must decode on the next run.
            working = self.state_model.model_validate(working.model_dump())
        except Exception as e:
            logger.error(f"Step '{node}' failed for workflow state {state.id}: {e}", exc_info=True)
            raise WorkflowStepFailed(state.id, node, str(e)) from e
        gs["_steps_run"] = int(gs.get("_steps_run") or 0) + 1

        if outcome.kind == StepKind.advance:
            if outcome.to is not None and outcome.to not in self._steps:
                raise WorkflowStepFailed(state.id, node, f"unknown jump target '{outcome.to}'")
            working.next_node = outcome.to
            self._state = await orchestrator.checkpoint(state, node=node, state_data=self.encode(working))
            gs["_outcome"] = "continue"
            return gs

        if outcome.kind == StepKind.pause:
            self._state, _ = await self._deps.approvals.request_approval(
                state,
                agent=self._agent,
                node=node,
                state_data=self.encode(working),
                reason=outcome.reason or "Approval required",
                action_description=outcome.action_description or outcome.reason or node,
                action_input=outcome.action_input,
                urgency=outcome.urgency,
            )
            gs["_outcome"] = "pause"
            return gs

        await self._complete(working, outcome.result)
        gs["_outcome"] = "finish"
        return gs

    async def _node_pause(self, gs: _GraphState) -> _GraphState:
        """Pause node.

        The graph transitions to END after this node; resuming is handled
        outside the graph via the persisted state.
        """
        return gs

    async def _node_finish(self, gs: _GraphState) -> _GraphState:
        logger.debug(f"Workflow state {gs['state_id']} finished after {gs.get('_steps_run', 0)} step(s)")
        return gs

    def _route_after_execute(self, gs: _GraphState) -> str:
        """Route to pause/finish/continue after executing a step."""
        return str(gs.get("_outcome") or "continue")
