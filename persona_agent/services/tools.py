"""
Tool-call targets.

Side-effecting actions the model can pick during voice turns. Each tool is
an async handler plus the JSON function schema the model sees.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests

from persona_agent.config import ToolsConfig, settings
from persona_agent.logger import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[..., Awaitable["ToolResult"]]

DEFAULT_TOOL = "default_tool"


@dataclass
class ToolResult:
    """Outcome of one tool call."""
    name: str
    ok: bool = True
    detail: str = ""

    def describe(self) -> str:
        status = "done" if self.ok else "failed"
        return f"{self.name}: {status}{' (' + self.detail + ')' if self.detail else ''}"


@dataclass
class ToolDef:
    """Internal representation of a registered tool."""
    name: str
    description: str
    handler: ToolHandler
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "required": [], "properties": {}}
    )

    def schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """
    Catalog of the tools offered to the model.

    Usage:
        registry = ToolRegistry()

        @registry.tool(name="wave", description="Wave at the user")
        async def wave() -> ToolResult:
            return ToolResult(name="wave")
    """

    def __init__(self) -> None:
        self._tools: Dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator to register an async function as a tool."""

        def decorator(fn: ToolHandler) -> ToolHandler:
            if not inspect.iscoroutinefunction(fn):
                raise TypeError(f"Tool handler '{name}' must be an async function")
            tool_def = ToolDef(name=name, description=description, handler=fn)
            if parameters is not None:
                tool_def.parameters = parameters
            self._tools[name] = tool_def
            return fn

        return decorator

    def get(self, name: str) -> Optional[ToolDef]:
        return self._tools.get(name)

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools.keys())

    def schemas(self) -> List[Dict[str, Any]]:
        return [t.schema() for t in self._tools.values()]

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """
        Run a tool by name.

        Unknown names and failing handlers produce a failed ToolResult so a
        misbehaving device never aborts the conversation turn.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            logger.warning(f"Model asked for unknown tool '{name}'")
            return ToolResult(name=name, ok=False, detail="unknown tool")

        logger.info(f"Tool '{name}' called with {arguments or {}}")
        try:
            return await tool_def.handler(**(arguments or {}))
        except (requests.RequestException, TypeError) as e:
            logger.error(f"Tool '{name}' failed: {e}")
            return ToolResult(name=name, ok=False, detail=str(e))


def build_default_registry(config: Optional[ToolsConfig] = None) -> ToolRegistry:
    """Registry with the door actuator and the no-op fallback."""
    config = config or settings.tools
    registry = ToolRegistry()

    @registry.tool(
        name="open_door",
        description="Use this when the user asks you to open the door, or to let them in or out",
    )
    async def open_door() -> ToolResult:
        def _post() -> requests.Response:
            response = requests.post(config.door_url, timeout=10)
            response.raise_for_status()
            return response

        response = await asyncio.to_thread(_post)
        logger.info(f"Door actuator returned {len(response.content)} bytes")
        return ToolResult(name="open_door", detail="the door is open")

    @registry.tool(
        name=DEFAULT_TOOL,
        description="This is the default tool, call this tool when none of the other tools seem to fit the users request",
    )
    async def default_tool() -> ToolResult:
        logger.debug("Default tool selected")
        return ToolResult(name=DEFAULT_TOOL)

    return registry
