"""Adapters between conversation history and the chat/completions wire format.

The completion endpoint is OpenAI-compatible (OpenRouter). Requests are built
from the stored history; responses are normalized into LLMResponse.
"""

import json
import uuid
from typing import Any

from sidebar_agent.llm_client.types import LLMInvalidResponse, LLMResponse, ToolCall
from sidebar_agent.telemetry import get_logger

log = get_logger(__name__)


def drop_orphan_tool_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Remove tool messages whose originating assistant call is missing.

    History compaction keeps the most recent messages, which can cut an
    assistant tool-call message while keeping its tool results. Endpoints
    reject such tool messages, so they are left out of the request.

    Args:
        messages: History in chat/completions shape.

    Returns:
        History without orphaned tool messages.
    """
    known_call_ids: set[str] = set()
    kept: list[dict[str, Any]] = []
    dropped = 0
    for msg in messages:
        role = msg.get("role")
        if role == "assistant":
            for tc in msg.get("tool_calls") or []:
                if isinstance(tc, dict) and tc.get("id"):
                    known_call_ids.add(tc["id"])
        elif role == "tool" and msg.get("tool_call_id") not in known_call_ids:
            dropped += 1
            continue
        kept.append(msg)

    if dropped:
        log.debug("orphan_tool_messages_dropped", count=dropped)
    return kept


def build_chat_completions_request(
    messages: list[dict[str, Any]],
    model: str,
    tools: list[dict[str, Any]] | None = None,
    tool_choice: str | dict[str, Any] | None = None,
    parallel_tool_calls: bool = True,
    stream: bool = False,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> dict[str, Any]:
    """Build a chat/completions request payload.

    Args:
        messages: Conversation history (system, user, assistant, tool).
        model: Model identifier.
        tools: Tool definitions in function-calling format. Empty or None
            sends no tools, so the model cannot request actions.
        tool_choice: Tool choice parameter; defaults to "auto" with tools.
        parallel_tool_calls: Whether several tool calls per turn are allowed.
        stream: Request a text/event-stream response.
        max_tokens: Maximum tokens to generate.
        temperature: Sampling temperature.

    Returns:
        Request payload dictionary.
    """
    normalized_messages: list[dict[str, Any]] = []
    for msg in drop_orphan_tool_messages(messages):
        msg_copy = dict(msg)
        if msg_copy.get("role") == "assistant" and msg_copy.get("tool_calls"):
            normalized_tool_calls = []
            for idx, tc in enumerate(msg_copy["tool_calls"]):
                tc_copy = dict(tc) if isinstance(tc, dict) else {}
                tc_copy.setdefault("index", idx)
                tc_copy.setdefault("type", "function")
                normalized_tool_calls.append(tc_copy)
            msg_copy["tool_calls"] = normalized_tool_calls
        normalized_messages.append(msg_copy)

    payload: dict[str, Any] = {
        "model": model,
        "messages": normalized_messages,
    }

    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = tool_choice or "auto"
        payload["parallel_tool_calls"] = parallel_tool_calls

    if stream:
        payload["stream"] = True

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if temperature is not None:
        payload["temperature"] = temperature

    return payload


def adapt_chat_completions_response(response_data: dict[str, Any]) -> LLMResponse:
    """Adapt a chat/completions response body to LLMResponse.

    Args:
        response_data: Decoded JSON body.

    Returns:
        Normalized LLMResponse structure.

    Raises:
        LLMInvalidResponse: If the body has no usable choice.
    """
    try:
        choices = response_data.get("choices", [])
        if not choices:
            raise LLMInvalidResponse("Response has no choices")

        message = choices[0].get("message") or {}
        content = message.get("content") or ""
        if not isinstance(content, str):
            # Some providers return content parts; keep only the text ones
            content = "".join(
                part.get("text", "")
                for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )

        tool_calls: list[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            if not isinstance(tc, dict):
                continue
            function = tc.get("function") or {}
            arguments = function.get("arguments")
            if not isinstance(arguments, str):
                arguments = "{}" if arguments is None else json.dumps(arguments)
            tool_calls.append(
                ToolCall(
                    id=tc.get("id") or f"call_{uuid.uuid4().hex[:24]}",
                    name=function.get("name", ""),
                    arguments=arguments,
                )
            )

        usage = response_data.get("usage") or {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
        }

        return LLMResponse(
            role=message.get("role", "assistant"),
            content=content,
            tool_calls=tool_calls,
            usage=usage,
            raw=response_data,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise LLMInvalidResponse(f"Invalid response format: {e}") from e


def assistant_message(response: LLMResponse) -> dict[str, Any]:
    """Build the history entry for an assistant response.

    Args:
        response: Normalized completion.

    Returns:
        Assistant message in chat/completions shape; ``tool_calls`` only
        when the model requested any, ``content`` None when it sent no text.
    """
    message: dict[str, Any] = {
        "role": "assistant",
        "content": response["content"] or None,
    }
    if response["tool_calls"]:
        message["tool_calls"] = [
            {
                "id": tc["id"],
                "type": "function",
                "function": {"name": tc["name"], "arguments": tc["arguments"]},
            }
            for tc in response["tool_calls"]
        ]
    return message
