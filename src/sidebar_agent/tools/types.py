"""Type definitions for the tool layer.

This module defines:
- Argument models, one per tool, validated before dispatch
- ToolDefinition: registry entry shared by the model's tool list and routing
- Parsed tool calls: KnownToolCall | UnknownToolCall | InvalidToolCall
- ToolResult / DispatchOutcome / Step: what a dispatch produces
- TabInfo: browser tab snapshot returned by the browser collaborator
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ToolCategory = Literal["page", "browser", "utility"]


class ToolArgs(BaseModel):
    """Base for tool argument models.

    Unknown keys sent by the model are ignored rather than rejected.
    """

    model_config = ConfigDict(extra="ignore")


class NoArgs(ToolArgs):
    """Tools that take no arguments."""


class SelectorArgs(ToolArgs):
    """Arguments addressing one element by CSS selector."""

    selector: str = Field(..., min_length=1, description="CSS selector of the target element")


class ClickTextArgs(ToolArgs):
    """Arguments for click_text."""

    text: str = Field(..., min_length=1, description="Visible text of the element to click")


class TypeTextArgs(ToolArgs):
    """Arguments for type."""

    selector: str = Field(..., min_length=1, description="CSS selector of the input element")
    text: str = Field(..., description="Text to enter into the element")


class ScrollArgs(ToolArgs):
    """Arguments for scroll."""

    top: float = Field(0, ge=0, description="Vertical offset in pixels from the top of the page")
    behavior: Literal["auto", "smooth"] = Field("smooth", description="Scroll animation")


class OpenTabArgs(ToolArgs):
    """Arguments for open_tab."""

    url: str = Field(..., min_length=1, description="Absolute URL to open")


class TabMatchArgs(ToolArgs):
    """Arguments for tools that locate a tab by title or URL."""

    match: str = Field(..., min_length=1, description="Text to match against tab title or URL")


class FetchGetArgs(ToolArgs):
    """Arguments for mcp.fetch.get."""

    url: str = Field(..., min_length=1, description="http(s) URL to GET")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")


class FsReadArgs(ToolArgs):
    """Arguments for mcp.fs.read."""

    path: str = Field(..., min_length=1, description="Virtual file path")


class FsWriteArgs(ToolArgs):
    """Arguments for mcp.fs.write."""

    path: str = Field(..., min_length=1, description="Virtual file path")
    content: str = Field(..., description="Full file content to store")


class RagQueryArgs(ToolArgs):
    """Arguments for mcp.rag.query."""

    q: str = Field(..., min_length=1, description="Text to search for in saved notes")


class ToolDefinition(BaseModel):
    """Registry entry for one tool.

    The JSON schema offered to the model is derived from ``args_model``, so
    the advertised schema and the validation applied before dispatch can
    never drift apart.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(..., description="Exact tool name used by the model and the dispatcher")
    description: str = Field(..., description="Description shown to the model")
    category: ToolCategory = Field(..., description="Which collaborator serves the tool")
    label: str = Field(..., description="Short progress label, e.g. 'Reading Page'")
    args_model: type[ToolArgs] = Field(NoArgs, description="Argument model")
    requires_tab: bool = Field(False, description="Whether the tool acts on the session tab")
    side_effecting: bool = Field(False, description="Whether the tool changes page or tab state")


class ToolResult(BaseModel):
    """Normalized outcome of one dispatch; immutable once created."""

    model_config = ConfigDict(frozen=True)

    ok: bool = Field(..., description="Whether the tool succeeded")
    result: Any = Field(None, description="Tool-specific structured output")
    error: str | None = Field(None, description="Error message when ok is False")
    latency_ms: float = Field(0.0, ge=0, description="Dispatch latency in milliseconds")

    @classmethod
    def success(cls, result: Any = None, latency_ms: float = 0.0) -> "ToolResult":
        """Build a successful result."""
        return cls(ok=True, result=result, latency_ms=latency_ms)

    @classmethod
    def failure(cls, error: str, latency_ms: float = 0.0) -> "ToolResult":
        """Build a failed result."""
        return cls(ok=False, error=error, latency_ms=latency_ms)

    def with_latency(self, latency_ms: float) -> "ToolResult":
        """Copy of this result carrying the measured latency."""
        return self.model_copy(update={"latency_ms": latency_ms})

    def to_payload(self) -> dict[str, Any]:
        """Wire shape fed back to the model: ``{ok, result}`` or ``{ok, error}``."""
        if self.ok:
            return {"ok": True, "result": self.result}
        return {"ok": False, "error": self.error}


class TabInfo(BaseModel):
    """Snapshot of one browser tab."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str = ""
    url: str = ""
    active: bool = False
    window_id: int | None = Field(None, alias="windowId")

    def summary(self) -> dict[str, Any]:
        """Compact form returned to the model."""
        return {"id": self.id, "title": self.title, "url": self.url}


class Step(BaseModel):
    """UI-facing record of one executed tool call."""

    call_id: str
    tool_name: str
    title: str
    human_readable: str
    raw_result: ToolResult
    is_image: bool = False
    input_args: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class KnownToolCall:
    """A call to a registered tool with validated arguments."""

    call_id: str
    definition: ToolDefinition
    args: ToolArgs

    @property
    def name(self) -> str:
        return self.definition.name

    def arguments(self) -> dict[str, Any]:
        """Validated arguments as plain data."""
        return self.args.model_dump()


@dataclass(frozen=True)
class UnknownToolCall:
    """A call naming a tool the registry does not know."""

    call_id: str
    name: str
    raw_arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InvalidToolCall:
    """A call to a known tool whose arguments failed to parse or validate."""

    call_id: str
    name: str
    error: str
    raw_arguments: dict[str, Any] = field(default_factory=dict)


ParsedToolCall = KnownToolCall | UnknownToolCall | InvalidToolCall


@dataclass(frozen=True)
class DispatchOutcome:
    """Result of one dispatch plus the tab the run must use from now on.

    Attributes:
        tool_name: Name the model used.
        result: Normalized tool result.
        arguments: Arguments as dispatched (raw when they failed validation).
        session_tab_id: New session tab id when the tool opened or switched
            to a tab, otherwise None (keep the current one).
    """

    tool_name: str
    result: ToolResult
    arguments: dict[str, Any] = field(default_factory=dict)
    session_tab_id: int | None = None
