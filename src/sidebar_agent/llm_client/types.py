"""Type definitions for the completion gateway.

This module defines:
- ToolCall / LLMResponse: normalized non-streaming results
- StreamOutcome: result of a streaming attempt
- StreamListener: callbacks the gateway drives while streaming
- Error classes: hierarchy of completion errors
"""

from dataclasses import dataclass
from typing import Any, Protocol

from typing_extensions import TypedDict


class ToolCall(TypedDict):
    """Tool call requested by the model.

    Attributes:
        id: Opaque identifier echoed back on the tool message.
        name: Name of the tool to call.
        arguments: JSON string containing tool arguments.
    """

    id: str
    name: str
    arguments: str  # JSON string


class LLMResponse(TypedDict):
    """Normalized non-streaming completion.

    Attributes:
        role: Response role (typically "assistant").
        content: Assistant text, empty string when the model sent none.
        tool_calls: Tool calls in the order the model listed them.
        usage: Token usage information (prompt_tokens, completion_tokens, ...).
        raw: Raw response body for debugging.
    """

    role: str
    content: str
    tool_calls: list[ToolCall]
    usage: dict[str, Any]
    raw: dict[str, Any]


@dataclass(frozen=True)
class StreamOutcome:
    """Result of ``complete_streaming``.

    Exactly one of two shapes:
    - ``aborted=True``: the model started a tool call; text is discarded.
    - ``aborted=False``: the stream ended normally and ``text`` holds the
      full accumulated answer (possibly empty).
    """

    aborted: bool
    text: str = ""

    @property
    def streamed(self) -> bool:
        """True when the stream ran to completion."""
        return not self.aborted

    @classmethod
    def aborted_for_tools(cls) -> "StreamOutcome":
        """Outcome for a stream abandoned because of a tool-call delta."""
        return cls(aborted=True)

    @classmethod
    def completed(cls, text: str) -> "StreamOutcome":
        """Outcome for a stream that ended without tool calls."""
        return cls(aborted=False, text=text)


class StreamListener(Protocol):
    """Receives stream lifecycle callbacks from the gateway.

    Implementations must not raise; the orchestrator's adapter turns these
    into progress events.
    """

    async def on_start(self) -> None:
        """The response stream is open."""

    async def on_delta(self, text: str) -> None:
        """A coalesced chunk of assistant text is ready."""

    async def on_abort(self) -> None:
        """The stream was abandoned; no further deltas follow."""


# Error hierarchy


class LLMClientError(Exception):
    """Base exception for all completion gateway errors."""

    pass


class LLMConfigurationError(LLMClientError):
    """Raised when the gateway cannot be used at all (e.g. no API key)."""

    pass


class LLMTimeout(LLMClientError):
    """Raised when a completion request times out."""

    pass


class LLMConnectionError(LLMClientError):
    """Raised when the completion endpoint cannot be reached."""

    pass


class LLMRateLimit(LLMClientError):
    """Raised when the completion endpoint returns 429."""

    pass


class LLMServerError(LLMClientError):
    """Raised when the completion endpoint returns a 5xx status."""

    pass


class LLMInvalidResponse(LLMClientError):
    """Raised when the completion endpoint returns an unexpected body."""

    pass


class LLMPrematureEnd(LLMClientError):
    """Raised when the response body ends before it was complete.

    The orchestrator treats this one transport failure as an empty answer.
    """

    pass
