"""Tool layer: registry, typed arguments, dispatcher and collaborator interfaces."""

from sidebar_agent.tools.browser_tools import ALL_TOOLS
from sidebar_agent.tools.collaborators import (
    AutomationTransport,
    BrowserController,
    CollaboratorUnavailable,
    FetchProxy,
    InMemoryKeyValueStore,
    KeyValueStore,
)
from sidebar_agent.tools.dispatcher import UNKNOWN_TOOL, ToolDispatcher
from sidebar_agent.tools.policy import RESTRICTED_CONTEXT
from sidebar_agent.tools.registry import ToolRegistry, parse_tool_call
from sidebar_agent.tools.types import (
    DispatchOutcome,
    InvalidToolCall,
    KnownToolCall,
    Step,
    TabInfo,
    ToolDefinition,
    ToolResult,
    UnknownToolCall,
)

_default_registry: ToolRegistry | None = None


def register_browser_tools(registry: ToolRegistry) -> None:
    """Register the agent's tools in a registry.

    Args:
        registry: Registry to populate.
    """
    for tool_def in ALL_TOOLS:
        registry.register(tool_def)


def get_default_registry() -> ToolRegistry:
    """Get the process-wide registry with every tool registered.

    Returns:
        ToolRegistry singleton.
    """
    global _default_registry
    if _default_registry is None:
        registry = ToolRegistry()
        register_browser_tools(registry)
        _default_registry = registry
    return _default_registry


__all__ = [
    "ALL_TOOLS",
    "AutomationTransport",
    "BrowserController",
    "CollaboratorUnavailable",
    "DispatchOutcome",
    "FetchProxy",
    "InMemoryKeyValueStore",
    "InvalidToolCall",
    "KeyValueStore",
    "KnownToolCall",
    "RESTRICTED_CONTEXT",
    "Step",
    "TabInfo",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolRegistry",
    "ToolResult",
    "UNKNOWN_TOOL",
    "UnknownToolCall",
    "get_default_registry",
    "parse_tool_call",
    "register_browser_tools",
]
