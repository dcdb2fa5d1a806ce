"""Shared fixtures and fakes for the test suite.

The fakes stand in for the collaborators that live outside this process:
the completion endpoint, the browser and the in-page automation script.
"""

import asyncio
import copy
import json
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any

import pytest

# Keep test logs out of the repository's telemetry directory
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("AGENT_LOG_DIR", tempfile.mkdtemp(prefix="sidebar-agent-logs-"))

from sidebar_agent.cancellation import CancellationToken, RunCancelled  # noqa: E402
from sidebar_agent.config.settings import DEFAULT_RESTRICTED_URL_PREFIXES  # noqa: E402
from sidebar_agent.llm_client.types import (  # noqa: E402
    LLMResponse,
    StreamListener,
    StreamOutcome,
    ToolCall,
)
from sidebar_agent.orchestrator.history import ConversationStore  # noqa: E402
from sidebar_agent.orchestrator.types import RunServices  # noqa: E402
from sidebar_agent.telemetry import TraceContext  # noqa: E402
from sidebar_agent.tools import (  # noqa: E402
    InMemoryKeyValueStore,
    TabInfo,
    ToolDispatcher,
    ToolRegistry,
    register_browser_tools,
)
from sidebar_agent.tools.automation import AutomationClient  # noqa: E402

PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4"


# ---------------------------------------------------------------------------
# Completion endpoint
# ---------------------------------------------------------------------------


def text_response(text: str) -> LLMResponse:
    """Non-streaming completion carrying only text."""
    return LLMResponse(role="assistant", content=text, tool_calls=[], usage={}, raw={})


def tool_response(*calls: tuple[str, dict[str, Any] | str, str], text: str = "") -> LLMResponse:
    """Non-streaming completion requesting tool calls.

    Each call is ``(name, arguments, call_id)``; dict arguments are sent as JSON.
    """
    tool_calls = [
        ToolCall(
            id=call_id,
            name=name,
            arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
        )
        for name, arguments, call_id in calls
    ]
    return LLMResponse(role="assistant", content=text, tool_calls=tool_calls, usage={}, raw={})


@dataclass
class ScriptedStream:
    """One scripted streaming attempt.

    Attributes:
        deltas: Text chunks delivered to the listener.
        aborted: End the stream as if the model started a tool call.
        hang: After the deltas, wait until the run is cancelled.
    """

    deltas: list[str] = field(default_factory=list)
    aborted: bool = False
    hang: bool = False


class FakeGateway:
    """Scripted completion client.

    ``streams`` and ``responses`` are consumed in order. An item that is an
    exception instance is raised instead of returned. A streaming call with
    an empty script behaves like an immediate abort (fall back to
    ``complete_once``); an unexpected ``complete_once`` call fails the run.
    """

    def __init__(
        self,
        streams: list[ScriptedStream | Exception] | None = None,
        responses: list[LLMResponse | Exception] | None = None,
    ) -> None:
        self.streams = list(streams or [])
        self.responses = list(responses or [])
        self.stream_calls: list[list[dict[str, Any]]] = []
        self.once_calls: list[tuple[list[dict[str, Any]], list[dict[str, Any]]]] = []

    async def complete_once(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        cancel_token: CancellationToken,
        trace_ctx: TraceContext | None = None,
    ) -> LLMResponse:
        cancel_token.raise_if_cancelled()
        self.once_calls.append((copy.deepcopy(messages), list(tools)))
        if not self.responses:
            raise AssertionError("unexpected complete_once call")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def complete_streaming(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        cancel_token: CancellationToken,
        listener: StreamListener,
        trace_ctx: TraceContext | None = None,
    ) -> StreamOutcome:
        cancel_token.raise_if_cancelled()
        self.stream_calls.append(copy.deepcopy(messages))
        if not self.streams:
            return StreamOutcome.aborted_for_tools()
        item = self.streams.pop(0)
        if isinstance(item, Exception):
            raise item

        await listener.on_start()
        for delta in item.deltas:
            await listener.on_delta(delta)
        if item.hang:
            try:
                await cancel_token.guard(asyncio.Event().wait())
            except RunCancelled:
                await listener.on_abort()
                raise
        if item.aborted:
            await listener.on_abort()
            return StreamOutcome.aborted_for_tools()
        return StreamOutcome.completed("".join(item.deltas))


# ---------------------------------------------------------------------------
# Browser and page automation
# ---------------------------------------------------------------------------


class FakeBrowser:
    """In-memory BrowserController."""

    def __init__(self, tabs: list[TabInfo] | None = None) -> None:
        self.tabs: list[TabInfo] = list(tabs or [])
        self.activated: list[int] = []
        self.closed: list[int] = []
        self.captured: list[int] = []

    async def list_tabs(self) -> list[TabInfo]:
        return list(self.tabs)

    async def get_tab(self, tab_id: int) -> TabInfo | None:
        return next((tab for tab in self.tabs if tab.id == tab_id), None)

    async def open_tab(self, url: str) -> TabInfo:
        new_id = max((tab.id for tab in self.tabs), default=0) + 1
        self.tabs = [tab.model_copy(update={"active": False}) for tab in self.tabs]
        tab = TabInfo(id=new_id, title="", url=url, active=True, window_id=1)
        self.tabs.append(tab)
        return tab

    async def activate_tab(self, tab_id: int) -> TabInfo:
        self.activated.append(tab_id)
        self.tabs = [
            tab.model_copy(update={"active": tab.id == tab_id}) for tab in self.tabs
        ]
        tab = await self.get_tab(tab_id)
        assert tab is not None
        return tab

    async def close_tab(self, tab_id: int) -> None:
        self.closed.append(tab_id)
        self.tabs = [tab for tab in self.tabs if tab.id != tab_id]

    async def capture_visible_tab(self, tab_id: int) -> str:
        self.captured.append(tab_id)
        return PNG_DATA_URL


class FakeAutomationTransport:
    """Scripted AutomationTransport.

    ``responses`` maps a page tool name (or, for messages without a name,
    the message type) to the response dict, a list consumed in order, a
    callable receiving the message, or an exception to raise. Tools without
    an entry answer ``{ok: true}``.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = dict(responses or {})
        self.sent: list[tuple[int, dict[str, Any]]] = []
        self.injected: list[int] = []

    async def send(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]:
        self.sent.append((tab_id, message))
        item = self.responses.get(message.get("name") or message["type"], {"ok": True})
        if isinstance(item, Exception):
            raise item
        if isinstance(item, list):
            item = item.pop(0)
        if callable(item):
            item = item(message)
        return item

    async def inject(self, tab_id: int) -> None:
        self.injected.append(tab_id)


def confirming_page(tool: str, prompt_text: str) -> dict[str, Any]:
    """Responses of a page script that asks for approval before running ``tool``.

    Approval ends with ``{ok: true, result: {done: true}}``; a denial with
    ``{ok: true, cancelled: true}``.
    """

    def decide(message: dict[str, Any]) -> dict[str, Any]:
        if message["ok"]:
            return {"ok": True, "result": {"done": True}}
        return {"ok": True, "cancelled": True}

    return {
        tool: {"type": "CONFIRM_REQUEST", "promptText": prompt_text, "callId": "page-1"},
        "CONFIRM_RESPONSE": decide,
    }


class FakeFetchProxy:
    """Records fetches and answers with a fixed page."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict[str, str] | None]] = []

    async def get(self, url: str, headers: dict[str, str] | None = None) -> dict[str, Any]:
        self.requests.append((url, headers))
        return {"status": 200, "headers": {"content-type": "text/html"}, "body": "<h1>Hi</h1>"}


def make_tabs() -> list[TabInfo]:
    """Three ordinary tabs; tab 1 is active."""
    return [
        TabInfo(id=1, title="Inbox - Mail", url="https://mail.example.com/inbox", active=True,
                window_id=1),
        TabInfo(id=2, title="Python documentation", url="https://docs.python.org/3/",
                window_id=1),
        TabInfo(id=3, title="Weather forecast", url="https://weather.example.org/today",
                window_id=1),
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with every agent tool."""
    registry = ToolRegistry()
    register_browser_tools(registry)
    return registry


@pytest.fixture
def browser() -> FakeBrowser:
    """Browser with three open tabs."""
    return FakeBrowser(make_tabs())


@pytest.fixture
def transport() -> FakeAutomationTransport:
    """Automation transport answering read_page with page text."""
    return FakeAutomationTransport(
        {
            "read_page": {
                "ok": True,
                "result": {"title": "Inbox - Mail", "text": "3 unread messages"},
            }
        }
    )


@pytest.fixture
def fetch_proxy() -> FakeFetchProxy:
    """Fetch proxy that never touches the network."""
    return FakeFetchProxy()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    """Key-value store holding two notes."""
    return InMemoryKeyValueStore(
        {
            "notes": [
                {"id": "n1", "text": "Quarterly report due Friday"},
                {"id": "n2", "text": "Buy milk"},
            ]
        }
    )


@pytest.fixture
def dispatcher(
    registry: ToolRegistry,
    browser: FakeBrowser,
    transport: FakeAutomationTransport,
    fetch_proxy: FakeFetchProxy,
    kv_store: InMemoryKeyValueStore,
) -> ToolDispatcher:
    """Dispatcher wired to the fakes."""
    return ToolDispatcher(
        registry,
        browser=browser,
        automation=AutomationClient(transport, timeout_seconds=1.0),
        fetch=fetch_proxy,
        store=kv_store,
        restricted_url_prefixes=list(DEFAULT_RESTRICTED_URL_PREFIXES),
    )


@pytest.fixture
def store() -> ConversationStore:
    """Empty conversation store."""
    return ConversationStore()


@pytest.fixture
def make_services(registry: ToolRegistry, dispatcher: ToolDispatcher, store: ConversationStore):
    """Factory for RunServices around a scripted gateway."""

    def _make(gateway: FakeGateway, **limits: Any) -> RunServices:
        limits.setdefault("streaming_enabled", False)
        limits.setdefault("seed_page_context", False)
        return RunServices(
            gateway=gateway,
            dispatcher=dispatcher,
            registry=registry,
            store=store,
            **limits,
        )

    return _make
