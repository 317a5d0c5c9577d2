from __future__ import annotations

import json
import logging

import pytest
from pydantic_ai import Agent
from pydantic_ai.models.test import TestModel

from laborobo_ai.agent_core.adapters import GatewayToolAdapter
from laborobo_ai.agent_core.schemas.domain import GlobalAISettings, RunType, ToolCategory, ToolResultStatus
from laborobo_ai.agent_core.tools import ToolDefinition, ToolParameter


@pytest.fixture
def adapter(gateway, agent, configuration) -> GatewayToolAdapter:
    return GatewayToolAdapter(gateway, agent, configuration, workflow_state_id="state-7")


def test_adapt_carries_name_description_and_schema(adapter, gateway) -> None:
    tool = adapter.adapt(gateway.registry.get("work_order_info"))

    assert tool.name == "work_order_info"
    assert tool.description.startswith("Retrieves detailed information about a specific work order")


def test_adapt_all_defaults_to_permitted_tools(adapter) -> None:
    assert sorted(t.name for t in adapter.adapt_all()) == ["get_playbooks", "work_order_info"]


def test_adapt_all_accepts_explicit_tools(adapter, gateway) -> None:
    tools = adapter.adapt_all([gateway.registry.get("task_list")])
    assert [t.name for t in tools] == ["task_list"]


async def test_calls_are_routed_through_gateway(adapter, gateway, repos) -> None:
    tool = adapter.adapt(gateway.registry.get("work_order_info"))

    text = await tool.function(work_order_id="wo-1", include_project_context=False)

    payload = json.loads(text)
    assert payload["work_order"]["title"] == "Website Redesign"
    (entry,) = repos.activity.entries
    assert entry.tool_name == "work_order_info"
    assert entry.status == ToolResultStatus.success
    assert entry.workflow_state_id == "state-7"
    assert entry.input == {"work_order_id": "wo-1", "include_project_context": False}


async def test_denied_call_returns_error_text(adapter, gateway, repos) -> None:
    tool = adapter.adapt(gateway.registry.get("task_list"))

    text = await tool.function(work_order_id="wo-1")

    assert text == "Error: Missing permission: can_modify_tasks"
    assert [e.status for e in repos.activity.entries] == [ToolResultStatus.denied]


async def test_model_calls_log_under_the_adapter_module(adapter, gateway, caplog) -> None:
    tool = adapter.adapt(gateway.registry.get("task_list"))

    with caplog.at_level(logging.DEBUG, logger="laborobo_ai.agent_core.adapters"):
        await tool.function(work_order_id="wo-1")

    (record,) = [r for r in caplog.records if r.name == "laborobo_ai.agent_core.adapters.pydantic_ai_tools"]
    assert record.getMessage() == "Model tool call 'task_list' returned denied"


async def test_approval_gate_applies_to_model_calls(adapter, gateway, repos, configuration) -> None:
    sent = []
    gateway.registry.register_function(
        ToolDefinition(
            name="send_email",
            description="Email the client",
            category=ToolCategory.email,
            parameters=[ToolParameter(name="to")],
        ),
        lambda params, ctx: sent.append(params) or {"sent": True},
    )
    await repos.settings.save(GlobalAISettings(team_id=configuration.team_id))
    adapter.configuration = configuration.model_copy(update={"can_send_emails": True})

    text = await adapter.adapt(gateway.registry.get("send_email")).function(to="client@example.com")

    assert text == "Error: Human approval required for 'external_sends' actions"
    assert sent == []


async def test_agent_tool_calls_are_audited(adapter, repos) -> None:
    agent = Agent(TestModel(call_tools=["get_playbooks"]), tools=adapter.adapt_all())

    await agent.run("Which playbooks fit a website project?")

    assert repos.activity.entries
    assert all(e.run_type == RunType.tool_execution for e in repos.activity.entries)
    assert {e.tool_name for e in repos.activity.entries} == {"get_playbooks"}
    assert all(e.workflow_state_id == "state-7" for e in repos.activity.entries)
