from __future__ import annotations

"""Tool registry.

The registry maps a tool name to an executable tool implementation. The
``ToolGateway`` resolves tool names through it.

Tool definitions can also be loaded from a JSON manifest and bound to handler
functions, which keeps the category and parameter metadata out of code::

    {
      "tools": [
        {"name": "send_email", "description": "...", "category": "email",
         "parameters": [{"name": "to", "type": "string"}]}
      ]
    }
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Mapping, Union

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import ToolCategory
from .base import FunctionTool, Tool, ToolDefinition, ToolHandler

logger = logging.getLogger(__name__)


class ToolManifest(BaseSchema):
    tools: List[ToolDefinition] = Field(default_factory=list)


def load_manifest(path: Union[str, Path]) -> ToolManifest:
    """Read and validate a JSON tool manifest."""
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return ToolManifest.model_validate(raw)


class ToolRegistry:
    """
    In-memory mapping of tool names to implementations.

    Notes:
        - ``register`` overwrites any existing mapping for the tool name.
        - ``get`` will raise ``KeyError`` if the tool is missing.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        name = tool.definition.name
        if name in self._tools:
            logger.debug(f"Replacing registered tool '{name}'")
        self._tools[name] = tool

    def register_function(self, definition: ToolDefinition, handler: ToolHandler) -> FunctionTool:
        tool = FunctionTool(definition=definition, handler=handler)
        self.register(tool)
        return tool

    def register_manifest(self, manifest: ToolManifest, handlers: Mapping[str, ToolHandler]) -> List[str]:
        """
        Bind each manifest definition to the handler of the same name.

        Raises:
            KeyError: If a definition has no handler.
        """
        registered: List[str] = []
        for definition in manifest.tools:
            if definition.name not in handlers:
                raise KeyError(f"no handler for tool '{definition.name}'")
            self.register_function(definition, handlers[definition.name])
            registered.append(definition.name)
        logger.info(f"Registered {len(registered)} tools from manifest")
        return registered

    def get(self, name: str) -> Tool:
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    def all(self) -> List[Tool]:
        return list(self._tools.values())

    def by_category(self, category: ToolCategory) -> List[Tool]:
        return [t for t in self._tools.values() if t.definition.category == category]

    def __len__(self) -> int:
        return len(self._tools)
