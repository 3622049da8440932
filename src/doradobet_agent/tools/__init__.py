"""
Tool registry for doradobet-agent.

This module provides a decorator to register tools and a registry to look them up by name.
Each tool is an async handler ``(tool_input, deps) -> str`` plus the JSON schema the model sees.
Handlers return text for the model; they may raise, and the dispatcher turns failures into an
advisory message.
"""

import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    TypedDict,
)

from doradobet_agent.core.schema import SessionContext

if TYPE_CHECKING:
    from doradobet_agent.memory.profile_store import ProfileStore
    from doradobet_agent.sports.client import SportsDataClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDeps:
    """Collaborators and request context handed to every handler."""

    ctx: SessionContext
    profiles: "ProfileStore"
    sports: "SportsDataClient"
    event_url_base: str = "https://vsft.virtualsoft.tech/sport"


ToolHandler = Callable[[Dict[str, Any], ToolDeps], Awaitable[str]]


class ToolSpec(TypedDict):
    """
    Schema and handler for a registered tool.
    """

    description: str
    input_schema: Mapping[str, Any]
    handler: ToolHandler


TOOL_REGISTRY: Dict[str, ToolSpec] = {}
"""Global registry of tools, keyed by the name the model uses."""


def register_tool(name: str, description: str, input_schema: Mapping[str, Any]) -> Callable:
    """
    Register an async tool handler under *name*.

    Used as a decorator:
        @register_tool("my_tool", "What it does", {"type": "object", "properties": {...}})
        async def my_tool(tool_input, deps):
            return "text for the model"

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering tool '%s'", name)

    def wrapper(fn: ToolHandler) -> ToolHandler:
        TOOL_REGISTRY[name] = ToolSpec(description=description, input_schema=input_schema, handler=fn)
        return fn

    return wrapper


def get_tool_definitions() -> List[Dict[str, Any]]:
    """Tool definitions in the provider's ``tools=[...]`` format."""
    return [
        {"name": name, "description": spec["description"], "input_schema": dict(spec["input_schema"])}
        for name, spec in TOOL_REGISTRY.items()
    ]


# Importing the handler modules registers them.
from doradobet_agent.tools import (  # noqa: E402  pylint: disable=wrong-import-position
    profile_tool,
    sports_tools,
)

__all__ = [
    "TOOL_REGISTRY",
    "ToolDeps",
    "ToolHandler",
    "ToolSpec",
    "get_tool_definitions",
    "register_tool",
    "profile_tool",
    "sports_tools",
]
