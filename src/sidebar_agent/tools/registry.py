"""Tool registry: the single source of truth for tool names and schemas.

The same registry renders the tool list sent to the model and parses the
model's tool calls before the dispatcher routes them.
"""

import json
from typing import Any

from pydantic import ValidationError

from sidebar_agent.telemetry import get_logger
from sidebar_agent.tools.types import (
    InvalidToolCall,
    KnownToolCall,
    ParsedToolCall,
    ToolCategory,
    ToolDefinition,
    UnknownToolCall,
)

log = get_logger(__name__)

_SCHEMA_NOISE_KEYS = {"title"}


def _clean_schema(node: Any) -> Any:
    """Strip pydantic-only keys (titles) from a generated JSON schema."""
    if isinstance(node, dict):
        return {
            key: _clean_schema(value)
            for key, value in node.items()
            if key not in _SCHEMA_NOISE_KEYS or not isinstance(value, str)
        }
    if isinstance(node, list):
        return [_clean_schema(item) for item in node]
    return node


def parameters_schema(tool_def: ToolDefinition) -> dict[str, Any]:
    """JSON schema of a tool's parameters, derived from its argument model.

    Args:
        tool_def: Tool definition.

    Returns:
        An object schema with ``properties``, ``required`` and
        ``additionalProperties: false``.
    """
    schema = _clean_schema(tool_def.args_model.model_json_schema())
    result: dict[str, Any] = {
        "type": "object",
        "properties": schema.get("properties", {}),
        "additionalProperties": False,
    }
    required = schema.get("required")
    if required:
        result["required"] = required
    if "$defs" in schema:
        result["$defs"] = schema["$defs"]
    return result


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg', 'invalid')}")
    return "invalid arguments: " + "; ".join(problems)


class ToolRegistry:
    """Central registry of available tools."""

    def __init__(self) -> None:
        """Initialize empty tool registry."""
        self._tools: dict[str, ToolDefinition] = {}
        log.debug("tool_registry_initialized")

    def register(self, tool_def: ToolDefinition) -> None:
        """Register a tool definition.

        Args:
            tool_def: Tool definition with its argument model.

        Raises:
            ValueError: If the tool name is already registered.
        """
        if tool_def.name in self._tools:
            raise ValueError(f"Tool '{tool_def.name}' is already registered")

        self._tools[tool_def.name] = tool_def
        log.debug(
            "tool_registered",
            tool_name=tool_def.name,
            category=tool_def.category,
            side_effecting=tool_def.side_effecting,
        )

    def get_tool(self, name: str) -> ToolDefinition | None:
        """Retrieve a tool definition by exact name.

        Args:
            name: Tool name.

        Returns:
            The definition, or None if not registered.
        """
        return self._tools.get(name)

    def list_tools(self, category: ToolCategory | None = None) -> list[ToolDefinition]:
        """List registered tools in registration order.

        Args:
            category: Optional category filter.

        Returns:
            Matching tool definitions.
        """
        tools = list(self._tools.values())
        if category is None:
            return tools
        return [tool_def for tool_def in tools if tool_def.category == category]

    def list_tool_names(self) -> list[str]:
        """List names of all registered tools.

        Returns:
            List of tool names.
        """
        return list(self._tools.keys())

    def label_for(self, name: str) -> str:
        """Short progress label for a tool, falling back to its name."""
        tool_def = self._tools.get(name)
        return tool_def.label if tool_def else name

    def get_tool_definitions_for_llm(
        self, category: ToolCategory | None = None
    ) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI function calling format.

        Args:
            category: Optional category filter. If None, returns all tools.

        Returns:
            List of ``{"type": "function", "function": {...}}`` entries.
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": tool_def.name,
                    "description": tool_def.description,
                    "parameters": parameters_schema(tool_def),
                },
            }
            for tool_def in self.list_tools(category)
        ]

    def parse_call(
        self, call_id: str, name: str, arguments: str | dict[str, Any] | None
    ) -> ParsedToolCall:
        """Turn a raw tool call from the model into a typed call.

        Args:
            call_id: Identifier the model gave the call.
            name: Tool name as sent by the model.
            arguments: JSON text (as on the wire), an already-decoded dict,
                or None/empty for no arguments.

        Returns:
            KnownToolCall with validated arguments, UnknownToolCall for an
            unregistered name, or InvalidToolCall when the arguments are not
            a JSON object or fail validation.
        """
        raw: dict[str, Any]
        decode_error: str | None = None
        if arguments is None or arguments == "":
            raw = {}
        elif isinstance(arguments, dict):
            raw = arguments
        else:
            try:
                decoded = json.loads(arguments)
            except json.JSONDecodeError as e:
                decoded = None
                decode_error = f"arguments are not valid JSON: {e.msg}"
            if decoded is None and decode_error is None:
                decoded = {}
            if decoded is not None and not isinstance(decoded, dict):
                decode_error = "arguments must be a JSON object"
            raw = decoded if isinstance(decoded, dict) else {}

        tool_def = self._tools.get(name)
        if tool_def is None:
            return UnknownToolCall(call_id=call_id, name=name, raw_arguments=raw)
        if decode_error is not None:
            return InvalidToolCall(
                call_id=call_id, name=name, error=decode_error, raw_arguments=raw
            )

        try:
            args = tool_def.args_model.model_validate(raw)
        except ValidationError as e:
            return InvalidToolCall(
                call_id=call_id,
                name=name,
                error=_format_validation_error(e),
                raw_arguments=raw,
            )
        return KnownToolCall(call_id=call_id, definition=tool_def, args=args)


def parse_tool_call(
    registry: ToolRegistry,
    name: str,
    arguments: str | dict[str, Any] | None,
    call_id: str = "",
) -> ParsedToolCall:
    """Parse a raw tool call against a registry (see ``ToolRegistry.parse_call``)."""
    return registry.parse_call(call_id, name, arguments)
