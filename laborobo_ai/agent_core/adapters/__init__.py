"""Adapters exposing gateway tools to LLM orchestration frameworks."""

from .pydantic_ai_tools import GatewayToolAdapter

__all__ = ["GatewayToolAdapter"]
