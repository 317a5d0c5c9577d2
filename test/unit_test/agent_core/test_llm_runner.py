from __future__ import annotations

from types import SimpleNamespace
from typing import Optional

import pytest

from laborobo_ai.agent_core.llm import (
    BASE_RUN_COST,
    AgentRunner,
    LLMCompletion,
    LLMUsage,
    PydanticAILLMClient,
    _usage_from_result,
)
from laborobo_ai.agent_core.schemas.domain import RunType, ToolResultStatus


class _Client:
    def __init__(self, *, text: str = "ok", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls = []

    async def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> LLMCompletion:
        self.calls.append((prompt, system_prompt))
        if self.error is not None:
            raise self.error
        return LLMCompletion(text=self.text, usage=LLMUsage(input_tokens=12, output_tokens=8), model="test-model")


@pytest.fixture
def client() -> _Client:
    return _Client()


@pytest.fixture
def runner(client, budget, repos) -> AgentRunner:
    return AgentRunner(client, budget=budget, activity=repos.activity)


def test_estimate_cost_grows_with_prompt() -> None:
    assert AgentRunner.estimate_cost("") == BASE_RUN_COST
    assert AgentRunner.estimate_cost("x" * 1000) == pytest.approx(BASE_RUN_COST + 0.001)


async def test_success_logs_agent_run_with_usage(runner, client, repos, agent, configuration) -> None:
    completion = await runner.run_prompt(
        agent, configuration, "Plan this", system_prompt="Be brief", workflow_state_id="state-1"
    )

    assert completion is not None and completion.text == "ok"
    assert client.calls == [("Plan this", "Be brief")]
    (entry,) = repos.activity.entries
    assert entry.run_type == RunType.agent_run
    assert entry.status == ToolResultStatus.success
    assert entry.tokens_used == 20
    assert entry.cost == AgentRunner.estimate_cost("Plan this")
    assert entry.input == {"prompt": "Plan this"}
    assert entry.output == {"text": "ok", "model": "test-model"}
    assert entry.workflow_state_id == "state-1"
    assert repos.configurations.by_id[configuration.id].daily_spend == pytest.approx(entry.cost)


async def test_disabled_agent_is_not_called(runner, client, repos, agent, configuration) -> None:
    disabled = configuration.model_copy(update={"enabled": False})

    assert await runner.run_prompt(agent, disabled, "Plan this") is None
    assert client.calls == []
    assert repos.activity.entries == []


async def test_exhausted_budget_is_logged_and_skipped(runner, client, repos, agent, configuration) -> None:
    repos.configurations.by_id[configuration.id].daily_spend = 1.0

    assert await runner.run_prompt(agent, configuration, "Plan this") is None
    assert client.calls == []
    (entry,) = repos.activity.entries
    assert entry.status == ToolResultStatus.budget_exceeded
    assert entry.cost == 0.0


async def test_failure_refunds_and_returns_none(budget, repos, agent, configuration) -> None:
    runner = AgentRunner(_Client(error=TimeoutError("slow")), budget=budget, activity=repos.activity)

    assert await runner.run_prompt(agent, configuration, "Plan this") is None

    (entry,) = repos.activity.entries
    assert entry.status == ToolResultStatus.failed
    assert entry.error == "slow"
    assert entry.cost == 0.0
    assert repos.configurations.by_id[configuration.id].daily_spend == 0.0


async def test_log_failure_does_not_hide_completion(runner, repos, agent, configuration) -> None:
    repos.activity.fail = True
    completion = await runner.run_prompt(agent, configuration, "Plan this")
    assert completion is not None


async def test_log_failure_still_refunds_failed_call(budget, repos, agent, configuration) -> None:
    runner = AgentRunner(_Client(error=TimeoutError("slow")), budget=budget, activity=repos.activity)
    repos.activity.fail = True

    assert await runner.run_prompt(agent, configuration, "Plan this") is None

    assert repos.activity.entries == []
    assert repos.configurations.by_id[configuration.id].daily_spend == 0.0


class TestUsageFromResult:
    def test_callable_usage_with_input_output_tokens(self) -> None:
        result = SimpleNamespace(usage=lambda: SimpleNamespace(input_tokens=3, output_tokens=4))
        assert _usage_from_result(result) == LLMUsage(input_tokens=3, output_tokens=4)

    def test_request_response_token_names(self) -> None:
        result = SimpleNamespace(usage=SimpleNamespace(request_tokens=5, response_tokens=None))
        usage = _usage_from_result(result)
        assert usage.input_tokens == 5
        assert usage.output_tokens == 0
        assert usage.total_tokens == 5

    def test_missing_usage(self) -> None:
        assert _usage_from_result(object()) == LLMUsage()


async def test_pydantic_ai_client_reads_output_and_usage(monkeypatch) -> None:
    created = {}

    class _FakeAgent:
        def __init__(self, **kwargs) -> None:
            created.update(kwargs)

        async def run(self, prompt: str):
            return SimpleNamespace(output=f"echo: {prompt}", usage=lambda: SimpleNamespace(input_tokens=1, output_tokens=2))

    client = PydanticAILLMClient("test", system_prompt="default", tools=["tool"])
    monkeypatch.setattr(client, "_build_agent", lambda system_prompt: _FakeAgent(model=client.model, sp=system_prompt))

    completion = await client.complete("hi", system_prompt="override")

    assert completion.text == "echo: hi"
    assert completion.usage.total_tokens == 3
    assert completion.model == "test"
    assert created == {"model": "test", "sp": "override"}


def test_pydantic_ai_agent_is_built_with_tools_and_prompt() -> None:
    from pydantic_ai.models.test import TestModel

    client = PydanticAILLMClient(TestModel(), system_prompt="You plan work.")  # type: ignore[arg-type]
    agent = client._build_agent(None)

    assert agent is not None
    assert client.tools == []
