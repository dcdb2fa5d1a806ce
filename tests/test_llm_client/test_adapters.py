"""Tests for chat/completions request and response adapters."""

import pytest

from sidebar_agent.llm_client.adapters import (
    adapt_chat_completions_response,
    assistant_message,
    build_chat_completions_request,
    drop_orphan_tool_messages,
)
from sidebar_agent.llm_client.types import LLMInvalidResponse

TOOLS = [{"type": "function", "function": {"name": "get_tabs", "parameters": {}}}]


class TestBuildRequest:
    """Test request payload construction."""

    def test_basic_payload(self) -> None:
        """Test model and messages are always present."""
        payload = build_chat_completions_request(
            messages=[{"role": "user", "content": "Hi"}], model="test/model"
        )

        assert payload == {"model": "test/model", "messages": [{"role": "user", "content": "Hi"}]}

    def test_tools_enable_tool_choice(self) -> None:
        """Test a tool list adds tool_choice and parallel_tool_calls."""
        payload = build_chat_completions_request(
            messages=[], model="m", tools=TOOLS, parallel_tool_calls=False
        )

        assert payload["tools"] == TOOLS
        assert payload["tool_choice"] == "auto"
        assert payload["parallel_tool_calls"] is False

    def test_empty_tools_send_no_tools(self) -> None:
        """Test forced finalization requests carry no tools at all."""
        payload = build_chat_completions_request(messages=[], model="m", tools=[])

        assert "tools" not in payload
        assert "tool_choice" not in payload

    def test_stream_flag(self) -> None:
        """Test streaming requests set stream: true."""
        payload = build_chat_completions_request(messages=[], model="m", stream=True)
        assert payload["stream"] is True

    def test_assistant_tool_calls_are_normalized(self) -> None:
        """Test tool calls get index and type without mutating the input."""
        messages = [
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [{"id": "c1", "function": {"name": "get_tabs", "arguments": "{}"}}],
            },
            {"role": "tool", "tool_call_id": "c1", "content": "[]"},
        ]

        payload = build_chat_completions_request(messages=messages, model="m")

        tool_call = payload["messages"][0]["tool_calls"][0]
        assert tool_call["index"] == 0
        assert tool_call["type"] == "function"
        assert "index" not in messages[0]["tool_calls"][0]


def test_orphan_tool_messages_are_dropped() -> None:
    """Test tool messages whose assistant call was compacted away are removed."""
    messages = [
        {"role": "tool", "tool_call_id": "gone", "content": "{}"},
        {"role": "user", "content": "next"},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "c2", "function": {"name": "get_tabs", "arguments": "{}"}}],
        },
        {"role": "tool", "tool_call_id": "c2", "content": "[]"},
    ]

    kept = drop_orphan_tool_messages(messages)

    assert [m["role"] for m in kept] == ["user", "assistant", "tool"]


class TestAdaptResponse:
    """Test response normalization."""

    def test_text_response(self) -> None:
        """Test plain text answers."""
        response = adapt_chat_completions_response(
            {
                "choices": [{"message": {"role": "assistant", "content": "Hello"}}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 1},
            }
        )

        assert response["content"] == "Hello"
        assert response["tool_calls"] == []
        assert response["usage"]["prompt_tokens"] == 5

    def test_tool_calls_in_order(self) -> None:
        """Test tool calls keep the model's order and ids."""
        response = adapt_chat_completions_response(
            {
                "choices": [
                    {
                        "message": {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "a",
                                    "type": "function",
                                    "function": {"name": "get_tabs", "arguments": "{}"},
                                },
                                {
                                    "id": "b",
                                    "type": "function",
                                    "function": {
                                        "name": "switch_tab",
                                        "arguments": {"match": "docs"},
                                    },
                                },
                            ],
                        }
                    }
                ]
            }
        )

        assert response["content"] == ""
        assert [tc["id"] for tc in response["tool_calls"]] == ["a", "b"]
        assert response["tool_calls"][1]["arguments"] == '{"match": "docs"}'

    def test_missing_ids_are_unique_across_responses(self) -> None:
        """Test calls without an id get fresh ids on every response."""
        body = {
            "choices": [
                {
                    "message": {
                        "tool_calls": [
                            {"function": {"name": "get_tabs", "arguments": "{}"}},
                            {"function": {"name": "get_tabs", "arguments": "{}"}},
                        ]
                    }
                }
            ]
        }

        first = adapt_chat_completions_response(body)
        second = adapt_chat_completions_response(body)

        ids = [tc["id"] for tc in first["tool_calls"] + second["tool_calls"]]
        assert len(set(ids)) == 4
        assert all(call_id.startswith("call_") for call_id in ids)

    def test_content_parts_are_joined(self) -> None:
        """Test list-style content keeps only text parts."""
        response = adapt_chat_completions_response(
            {
                "choices": [
                    {
                        "message": {
                            "content": [
                                {"type": "text", "text": "Hel"},
                                {"type": "image_url", "image_url": {}},
                                {"type": "text", "text": "lo"},
                            ]
                        }
                    }
                ]
            }
        )

        assert response["content"] == "Hello"
        assert response["role"] == "assistant"

    def test_no_choices(self) -> None:
        """Test a body without choices is invalid."""
        with pytest.raises(LLMInvalidResponse):
            adapt_chat_completions_response({"choices": []})


def test_assistant_message_round_trips_tool_calls() -> None:
    """Test the history entry of a tool-calling response."""
    response = adapt_chat_completions_response(
        {
            "choices": [
                {
                    "message": {
                        "content": "",
                        "tool_calls": [
                            {"id": "a", "function": {"name": "get_tabs", "arguments": "{}"}}
                        ],
                    }
                }
            ]
        }
    )

    message = assistant_message(response)

    assert message == {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {"id": "a", "type": "function", "function": {"name": "get_tabs", "arguments": "{}"}}
        ],
    }
