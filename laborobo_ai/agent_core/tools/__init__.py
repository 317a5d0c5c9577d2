"""Agent tools and the gateway that executes them.

- ``ToolDefinition`` / ``Tool``: what a tool is and how it runs.
- ``ToolRegistry``: name -> tool mapping, optionally loaded from a manifest.
- ``ToolGateway``: the only execution path; permission, approval and budget
  checks plus one activity log row per call.
- ``register_builtin_tools``: read-only work order, playbook and task tools.
"""

from .base import (
    FunctionTool,
    ParameterType,
    Tool,
    ToolContext,
    ToolDefinition,
    ToolHandler,
    ToolParameter,
    ToolResult,
)
from .builtin import InMemoryWorkOrderContextSource, WorkOrderContextSource, register_builtin_tools
from .gateway import ToolGateway
from .registry import ToolManifest, ToolRegistry, load_manifest

__all__ = [
    "FunctionTool",
    "InMemoryWorkOrderContextSource",
    "ParameterType",
    "Tool",
    "ToolContext",
    "ToolDefinition",
    "ToolGateway",
    "ToolHandler",
    "ToolManifest",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "WorkOrderContextSource",
    "load_manifest",
    "register_builtin_tools",
]
