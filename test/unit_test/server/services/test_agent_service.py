from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from laborobo_ai.agent_core.llm import AgentRunner, PydanticAILLMClient
from laborobo_ai.agent_core.schemas.domain import AIAgent
from laborobo_ai.server.core.config import Settings
from laborobo_ai.server.services import agent_service as agent_service_module
from laborobo_ai.server.services.agent_service import AgentService, build_llm_client, get_agent_service


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestBuildLLMClient:
    def test_no_provider(self):
        assert build_llm_client(_settings(llm_provider=None, openai_api_key="sk")) is None

    def test_openai(self):
        client = build_llm_client(_settings(llm_provider="openai", openai_api_key="sk", openai_model="gpt-4o-mini"))
        assert isinstance(client, PydanticAILLMClient)
        assert client.model == "openai:gpt-4o-mini"

    def test_anthropic(self):
        client = build_llm_client(_settings(llm_provider="anthropic", anthropic_api_key="ak"))
        assert isinstance(client, PydanticAILLMClient)
        assert client.model == "anthropic:claude-3-5-sonnet-latest"

    def test_provider_without_key_falls_back(self):
        assert build_llm_client(_settings(llm_provider="openai", openai_api_key=None)) is None


class TestAgentServiceWiring:
    def test_without_llm_there_is_no_runner(self):
        service = AgentService(session_factory=MagicMock(), config=_settings(llm_provider=None))

        assert service.runner is None
        assert sorted(t.definition.name for t in service.tools.all()) == ["get_playbooks", "task_list", "work_order_info"]
        deps = service.deps
        assert deps.gateway is service.gateway
        assert deps.context_source is service.context_source
        assert deps.runner is None

    def test_injected_llm_client_gets_a_runner(self):
        service = AgentService(session_factory=MagicMock(), llm_client=MagicMock(), config=_settings())

        assert isinstance(service.runner, AgentRunner)
        assert service.deps.runner is service.runner

    @pytest.mark.asyncio
    async def test_resolve_agent_registers_once(self):
        service = AgentService(session_factory=MagicMock(), config=_settings())
        existing = AIAgent(code="pm-copilot", name="PM Copilot")
        agents = MagicMock()
        agents.get_by_code = AsyncMock(side_effect=[None, existing])
        agents.create = AsyncMock()
        service.repos = replace(service.repos, agents=agents)

        created = await service.resolve_agent("pm-copilot", name="PM Copilot")
        again = await service.resolve_agent("pm-copilot")

        assert created.code == "pm-copilot"
        assert created.name == "PM Copilot"
        agents.create.assert_awaited_once()
        assert again is existing

    @pytest.mark.asyncio
    async def test_reset_budgets_by_window(self):
        service = AgentService(session_factory=MagicMock(), config=_settings())
        service.budget = MagicMock()
        service.budget.reset_daily = AsyncMock(return_value=3)
        service.budget.reset_monthly = AsyncMock(return_value=1)

        assert await service.reset_budgets("daily") == 3
        assert await service.reset_budgets("monthly") == 1
        with pytest.raises(ValueError):
            await service.reset_budgets("weekly")


def test_get_agent_service_is_a_singleton(monkeypatch):
    monkeypatch.setattr(agent_service_module, "_agent_service", None)
    monkeypatch.setattr(agent_service_module, "AgentService", MagicMock(side_effect=lambda: object()))

    assert get_agent_service() is get_agent_service()
