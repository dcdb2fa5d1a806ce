"""Completion gateway module.

Provides the CompletionGateway for the OpenAI-compatible completion endpoint,
its SSE decoder, and the error hierarchy used across the agent.
"""

from typing import TYPE_CHECKING

from sidebar_agent.llm_client.types import (
    LLMClientError,
    LLMConfigurationError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMPrematureEnd,
    LLMRateLimit,
    LLMResponse,
    LLMServerError,
    LLMTimeout,
    StreamListener,
    StreamOutcome,
    ToolCall,
)

if TYPE_CHECKING:
    from sidebar_agent.llm_client.client import CompletionGateway
else:
    # Lazy import: client imports security, which imports this package's types
    def __getattr__(name: str):
        if name == "CompletionGateway":
            from sidebar_agent.llm_client.client import CompletionGateway

            return CompletionGateway
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CompletionGateway",
    "LLMClientError",
    "LLMConfigurationError",
    "LLMConnectionError",
    "LLMInvalidResponse",
    "LLMPrematureEnd",
    "LLMRateLimit",
    "LLMResponse",
    "LLMServerError",
    "LLMTimeout",
    "StreamListener",
    "StreamOutcome",
    "ToolCall",
]
