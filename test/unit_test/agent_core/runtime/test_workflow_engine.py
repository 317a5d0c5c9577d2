from __future__ import annotations

from typing import List, Optional

import pytest

from laborobo_ai.agent_core.errors import (
    UnknownWorkflow,
    WorkflowNotPausedError,
    WorkflowStepFailed,
)
from laborobo_ai.agent_core.runtime import (
    APPROVABLE_TYPE,
    BaseAgentWorkflow,
    StepOutcome,
    WorkflowRegistry,
    WorkflowStateData,
)
from laborobo_ai.agent_core.schemas.domain import InboxItemType, WorkflowCustomization, WorkflowStatus


class _SampleData(WorkflowStateData):
    log: List[str] = []
    note: Optional[str] = None


class _SampleWorkflow(BaseAgentWorkflow[_SampleData]):
    """Three steps ``a -> b -> c`` whose behaviour is steered by class attributes."""

    identifier = "sample"
    state_model = _SampleData

    pause_at: Optional[str] = None
    fail_at: Optional[str] = None
    jump_from_a: Optional[str] = None
    corrupt_at: Optional[str] = None

    def define_steps(self):
        return {"a": self.step_a, "b": self.step_b, "c": self.step_c}

    async def _record(self, name: str, data: _SampleData) -> Optional[StepOutcome]:
        if self.fail_at == name:
            data.log.append(f"{name}-partial")
            raise RuntimeError(f"{name} exploded")
        data.log.append(name)
        if self.corrupt_at == name:
            data.note = ["not", "a", "note"]  # type: ignore[assignment]
        if self.pause_at == name:
            return StepOutcome.pause("Needs review", f"Review step {name}", action_input={"step": name})
        return None

    async def step_a(self, data: _SampleData) -> StepOutcome:
        return await self._record("a", data) or StepOutcome.advance(to=self.jump_from_a)

    async def step_b(self, data: _SampleData) -> StepOutcome:
        return await self._record("b", data) or StepOutcome.advance()

    async def step_c(self, data: _SampleData) -> StepOutcome:
        return await self._record("c", data) or StepOutcome.advance()

    def on_resume(self, data: _SampleData) -> Optional[_SampleData]:
        note = data.approval_data.get("note")
        if note is None:
            return None
        data.note = str(note)
        return data


@pytest.fixture
def workflow(deps, agent) -> _SampleWorkflow:
    return _SampleWorkflow(deps=deps, agent=agent)


async def test_runs_all_steps_with_a_checkpoint_each(workflow, repos, team_context) -> None:
    started = await workflow.start({"topic": "x"}, team_context)
    assert started.current_node == "start"
    assert started.state_data["input"] == {"topic": "x"}

    state = await workflow.run()

    assert state.status == WorkflowStatus.completed
    assert state.current_node == "completed"
    assert state.state_data["log"] == ["a", "b", "c"]
    assert state.state_data["completed_at"] is not None
    assert repos.states.saved_nodes == ["a", "b", "c", "completed"]
    assert repos.states.by_id[state.id].is_completed


async def test_state_property_requires_start(workflow) -> None:
    with pytest.raises(RuntimeError, match="has not been started"):
        _ = workflow.state


async def test_start_rejects_input_not_matching_state_model(deps, agent, team_context) -> None:
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        await _SampleWorkflow(deps=deps, agent=agent).start("not a dict", team_context)  # type: ignore[arg-type]


async def test_jump_skips_intermediate_step(workflow, team_context) -> None:
    workflow.jump_from_a = "c"
    await workflow.start({}, team_context)

    state = await workflow.run()

    assert state.state_data["log"] == ["a", "c"]
    assert state.state_data["next_node"] is None


async def test_unknown_jump_target_fails(workflow, repos, team_context) -> None:
    workflow.jump_from_a = "zzz"
    started = await workflow.start({}, team_context)

    with pytest.raises(WorkflowStepFailed):
        await workflow.run()
    assert repos.states.by_id[started.id].current_node == "start"


async def test_disabled_step_is_skipped_but_checkpointed(workflow, repos, team_context) -> None:
    await repos.customizations.save(
        WorkflowCustomization(team_id=team_context.team_id, workflow_class="sample", disabled_steps=["b"])
    )
    started = await workflow.start({}, team_context)
    assert started.state_data["customization_id"] is not None

    state = await workflow.run()

    assert state.state_data["log"] == ["a", "c"]
    assert repos.states.saved_nodes == ["a", "b", "c", "completed"]


async def test_disabled_customization_is_ignored(workflow, repos, team_context) -> None:
    await repos.customizations.save(
        WorkflowCustomization(team_id=team_context.team_id, workflow_class="sample", enabled=False, disabled_steps=["b"])
    )
    await workflow.start({}, team_context)

    state = await workflow.run()

    assert state.state_data["log"] == ["a", "b", "c"]


async def test_step_failure_keeps_last_checkpoint(workflow, repos, team_context) -> None:
    workflow.fail_at = "b"
    started = await workflow.start({}, team_context)

    with pytest.raises(WorkflowStepFailed) as exc_info:
        await workflow.run()

    assert exc_info.value.node == "b"
    assert exc_info.value.state_id == started.id
    stored = repos.states.by_id[started.id]
    assert stored.current_node == "a"
    assert stored.state_data["log"] == ["a"]


async def test_retry_after_failure_replays_failed_step(workflow, deps, agent, repos, team_context) -> None:
    workflow.fail_at = "b"
    started = await workflow.start({}, team_context)
    with pytest.raises(WorkflowStepFailed):
        await workflow.run()

    retry = _SampleWorkflow(deps=deps, agent=agent, state=repos.states.by_id[started.id])
    state = await retry.run()

    assert state.state_data["log"] == ["a", "b", "c"]


async def test_pause_files_one_approval_item(workflow, repos, team_context) -> None:
    workflow.pause_at = "b"
    await workflow.start({}, team_context)

    state = await workflow.run()

    assert state.status == WorkflowStatus.paused
    assert state.current_node == "b"
    assert state.approval_required is True
    assert state.pause_reason == "Needs review"
    assert state.state_data["log"] == ["a", "b"]

    (item,) = repos.inbox.by_id.values()
    assert item.type == InboxItemType.approval
    assert item.approvable_type == APPROVABLE_TYPE
    assert item.approvable_id == state.id
    assert item.title == "Agent action requires approval: Review step b"
    assert state.state_data["inbox_item_id"] == item.id


async def test_run_while_paused_is_a_no_op(workflow, repos, team_context) -> None:
    workflow.pause_at = "b"
    await workflow.start({}, team_context)
    await workflow.run()
    saved = list(repos.states.saved_nodes)

    state = await workflow.run()

    assert state.is_paused
    assert repos.states.saved_nodes == saved


async def test_resume_continues_after_paused_step(workflow, repos, team_context) -> None:
    workflow.pause_at = "b"
    await workflow.start({}, team_context)
    await workflow.run()

    resumed = await workflow.resume({"note": "looks good"})
    assert resumed.status == WorkflowStatus.running
    assert resumed.resumed_at is not None
    assert resumed.state_data["approval_data"] == {"note": "looks good"}
    assert resumed.state_data["note"] == "looks good"

    state = await workflow.run()

    assert state.is_completed
    assert state.state_data["log"] == ["a", "b", "c"]
    assert state.state_data["note"] == "looks good"


async def test_resume_requires_paused_state(workflow, team_context) -> None:
    await workflow.start({}, team_context)
    await workflow.run()

    with pytest.raises(WorkflowNotPausedError):
        await workflow.resume({})


async def test_run_on_completed_state_returns_it_unchanged(workflow, repos, team_context) -> None:
    await workflow.start({}, team_context)
    first = await workflow.run()
    saved = list(repos.states.saved_nodes)

    second = await workflow.run()

    assert second == first
    assert repos.states.saved_nodes == saved


async def test_unknown_current_node_fails(deps, agent, repos, team_context) -> None:
    workflow = _SampleWorkflow(deps=deps, agent=agent)
    started = await workflow.start({}, team_context)
    repos.states.by_id[started.id] = started.model_copy(update={"current_node": "removed_step"})

    stale = _SampleWorkflow(deps=deps, agent=agent, state=repos.states.by_id[started.id])
    with pytest.raises(WorkflowStepFailed, match="not defined"):
        await stale.run()


def test_get_parameter_reads_customization(workflow) -> None:
    assert workflow.get_parameter("depth", 3) == 3
    workflow._customization = WorkflowCustomization(
        team_id="team-1", workflow_class="sample", parameters={"depth": 5}
    )
    assert workflow.get_parameter("depth", 3) == 5


class TestWorkflowRegistry:
    def test_create_registered_workflow(self, deps, agent) -> None:
        registry = WorkflowRegistry()
        registry.register(_SampleWorkflow.identifier, _SampleWorkflow)

        assert registry.has("sample")
        assert registry.identifiers() == ["sample"]
        wf = registry.create("sample", deps=deps, agent=agent)
        assert isinstance(wf, _SampleWorkflow)
        assert wf.step_names == ["a", "b", "c"]

    def test_unknown_identifier_raises(self, deps, agent) -> None:
        with pytest.raises(UnknownWorkflow):
            WorkflowRegistry().create("nope", deps=deps, agent=agent)


async def test_step_output_outside_state_model_fails_without_checkpoint(
    workflow, deps, agent, repos, team_context
) -> None:
    workflow.corrupt_at = "b"
    started = await workflow.start({}, team_context)

    with pytest.raises(WorkflowStepFailed) as exc_info:
        await workflow.run()

    assert exc_info.value.node == "b"
    stored = repos.states.by_id[started.id]
    assert stored.current_node == "a"
    assert stored.state_data["note"] is None
    assert repos.states.saved_nodes == ["a"]

    retry = _SampleWorkflow(deps=deps, agent=agent, state=stored)
    state = await retry.run()
    assert state.is_completed
    assert state.state_data["log"] == ["a", "b", "c"]


async def test_update_node_checkpoints_without_touching_data(orchestrator, agent, repos, team_context) -> None:
    created = await orchestrator.create(
        context=team_context, agent=agent, workflow_class="sample", state_data={"input": {"k": 1}}
    )

    moved = await orchestrator.update_node(created, "b")

    assert moved.current_node == "b"
    assert moved.state_data == {"input": {"k": 1}}
    stored = repos.states.by_id[created.id]
    assert stored.current_node == "b"
    assert stored.state_data == {"input": {"k": 1}}
    assert repos.states.saved_nodes == ["b"]
