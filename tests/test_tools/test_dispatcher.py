"""Tests for ToolDispatcher."""

import pytest
from conftest import (
    PNG_DATA_URL,
    FakeAutomationTransport,
    FakeBrowser,
    FakeFetchProxy,
)

from sidebar_agent.cancellation import RunCancelled
from sidebar_agent.tools import InMemoryKeyValueStore, TabInfo, ToolDispatcher, ToolRegistry
from sidebar_agent.tools.automation import AutomationClient
from sidebar_agent.tools.types import NoArgs, ToolDefinition


class TestFailureShapes:
    """Every call produces exactly one result, failures included."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher: ToolDispatcher) -> None:
        """Test an unregistered name fails with 'unknown tool'."""
        outcome = await dispatcher.dispatch(1, "format_disk", "{}")

        assert outcome.result.ok is False
        assert outcome.result.error == "unknown tool"
        assert outcome.session_tab_id is None

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, dispatcher: ToolDispatcher) -> None:
        """Test validation failures are reported without dispatching."""
        outcome = await dispatcher.dispatch(1, "click", "{}")

        assert outcome.result.ok is False
        assert "selector" in (outcome.result.error or "")

    @pytest.mark.asyncio
    async def test_collaborator_exception_becomes_failure(
        self, registry: ToolRegistry
    ) -> None:
        """Test an exception raised by a collaborator is caught."""

        class BrokenBrowser(FakeBrowser):
            async def list_tabs(self) -> list[TabInfo]:
                raise RuntimeError("tabs API exploded")

        dispatcher = ToolDispatcher(registry, browser=BrokenBrowser())

        outcome = await dispatcher.dispatch(None, "get_tabs", {})

        assert outcome.result.ok is False
        assert outcome.result.error == "tabs API exploded"

    @pytest.mark.asyncio
    async def test_missing_collaborator(self, registry: ToolRegistry) -> None:
        """Test tools report an unconfigured collaborator."""
        dispatcher = ToolDispatcher(registry)

        outcome = await dispatcher.dispatch(None, "get_tabs", {})

        assert outcome.result.error == (
            "collaborator unavailable: browser controller not configured"
        )

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, registry: ToolRegistry) -> None:
        """Test RunCancelled is not converted into a failed result."""

        class CancellingBrowser(FakeBrowser):
            async def list_tabs(self) -> list[TabInfo]:
                raise RunCancelled("stop")

        dispatcher = ToolDispatcher(registry, browser=CancellingBrowser())

        with pytest.raises(RunCancelled):
            await dispatcher.dispatch(None, "get_tabs", {})

    @pytest.mark.asyncio
    async def test_latency_is_recorded(self, dispatcher: ToolDispatcher) -> None:
        """Test successful results carry a latency."""
        outcome = await dispatcher.dispatch(1, "get_tabs", {})
        assert outcome.result.latency_ms >= 0

    def test_tool_without_handler_is_rejected(self, registry: ToolRegistry) -> None:
        """Test construction fails when a registered tool cannot be routed."""
        registry.register(
            ToolDefinition(
                name="teleport",
                description="Not routable",
                category="utility",
                label="Teleporting",
                args_model=NoArgs,
            )
        )

        with pytest.raises(ValueError, match="teleport"):
            ToolDispatcher(registry)


class TestPageTools:
    """Test tools executed by the in-page automation script."""

    @pytest.mark.asyncio
    async def test_read_page_on_session_tab(
        self, dispatcher: ToolDispatcher, transport: FakeAutomationTransport
    ) -> None:
        """Test read_page is sent to the session tab."""
        outcome = await dispatcher.dispatch(1, "read_page", {})

        assert outcome.result.ok is True
        assert outcome.result.result == {"title": "Inbox - Mail", "text": "3 unread messages"}
        tab_id, message = transport.sent[0]
        assert tab_id == 1
        assert message["type"] == "EXT_TOOL"
        assert message["name"] == "read_page"

    @pytest.mark.asyncio
    async def test_no_active_tab(
        self, dispatcher: ToolDispatcher, transport: FakeAutomationTransport
    ) -> None:
        """Test page tools need a session tab."""
        outcome = await dispatcher.dispatch(None, "click", {"selector": "#go"})

        assert outcome.result.error == "no active tab"
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_closed_session_tab(self, dispatcher: ToolDispatcher) -> None:
        """Test a session tab that no longer exists counts as no active tab."""
        outcome = await dispatcher.dispatch(99, "read_page", {})
        assert outcome.result.error == "no active tab"

    @pytest.mark.asyncio
    async def test_restricted_context(
        self,
        registry: ToolRegistry,
        transport: FakeAutomationTransport,
    ) -> None:
        """Test page tools refuse internal browser pages before dispatch."""
        browser = FakeBrowser(
            [TabInfo(id=7, title="Settings", url="chrome://settings/", active=True)]
        )
        dispatcher = ToolDispatcher(
            registry,
            browser=browser,
            automation=AutomationClient(transport),
            restricted_url_prefixes=["chrome://"],
        )

        outcome = await dispatcher.dispatch(7, "read_page", {})

        assert outcome.result.error == "restricted context"
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_script_error_is_passed_through(self, registry: ToolRegistry) -> None:
        """Test an ok:false answer keeps the script's error text."""
        transport = FakeAutomationTransport(
            {"click": {"ok": False, "error": "Element not found: #go"}}
        )
        dispatcher = ToolDispatcher(
            registry,
            browser=FakeBrowser([TabInfo(id=1, url="https://example.com")]),
            automation=AutomationClient(transport),
        )

        outcome = await dispatcher.dispatch(1, "click", {"selector": "#go"})

        assert outcome.result.ok is False
        assert outcome.result.error == "Element not found: #go"

    @pytest.mark.asyncio
    async def test_screenshot(self, dispatcher: ToolDispatcher, browser: FakeBrowser) -> None:
        """Test screenshot captures the session tab."""
        outcome = await dispatcher.dispatch(2, "screenshot", {})

        assert outcome.result.result == {"dataUrl": PNG_DATA_URL}
        assert browser.captured == [2]


class TestTabTools:
    """Test tab management tools."""

    @pytest.mark.asyncio
    async def test_get_tabs_lists_every_tab(self, dispatcher: ToolDispatcher) -> None:
        """Test get_tabs returns one entry per open tab."""
        outcome = await dispatcher.dispatch(1, "get_tabs", {})

        tabs = outcome.result.result
        assert len(tabs) == 3
        assert tabs[0] == {
            "id": 1,
            "title": "Inbox - Mail",
            "url": "https://mail.example.com/inbox",
            "active": True,
            "windowId": 1,
        }

    @pytest.mark.asyncio
    async def test_open_tab_reassigns_session_tab(
        self, dispatcher: ToolDispatcher, browser: FakeBrowser
    ) -> None:
        """Test open_tab reports the new tab as the session tab."""
        outcome = await dispatcher.dispatch(1, "open_tab", {"url": "https://example.com/"})

        assert outcome.result.ok is True
        assert outcome.session_tab_id == 4
        assert outcome.result.result == {"id": 4, "title": "", "url": "https://example.com/"}
        assert len(browser.tabs) == 4

    @pytest.mark.asyncio
    async def test_open_tab_restricted_url(
        self, dispatcher: ToolDispatcher, browser: FakeBrowser
    ) -> None:
        """Test open_tab refuses internal pages without opening anything."""
        outcome = await dispatcher.dispatch(1, "open_tab", {"url": "chrome://extensions"})

        assert outcome.result.error == "restricted context"
        assert outcome.session_tab_id is None
        assert len(browser.tabs) == 3

    @pytest.mark.asyncio
    async def test_switch_tab_fuzzy(
        self, dispatcher: ToolDispatcher, browser: FakeBrowser
    ) -> None:
        """Test switch_tab activates the best match and reassigns the session tab."""
        outcome = await dispatcher.dispatch(1, "switch_tab", {"match": "python docs"})

        assert outcome.result.ok is True
        assert outcome.session_tab_id == 2
        assert browser.activated == [2]

    @pytest.mark.asyncio
    async def test_switch_tab_no_match(
        self, dispatcher: ToolDispatcher, browser: FakeBrowser
    ) -> None:
        """Test switch_tab fails without touching the browser."""
        outcome = await dispatcher.dispatch(1, "switch_tab", {"match": "spreadsheet"})

        assert outcome.result.error == "No tab matched"
        assert outcome.session_tab_id is None
        assert browser.activated == []

    @pytest.mark.asyncio
    async def test_close_tab(self, dispatcher: ToolDispatcher, browser: FakeBrowser) -> None:
        """Test close_tab closes the matched tab."""
        outcome = await dispatcher.dispatch(1, "close_tab", {"match": "weather"})

        assert outcome.result.result == {
            "closed": {
                "id": 3,
                "title": "Weather forecast",
                "url": "https://weather.example.org/today",
            }
        }
        assert browser.closed == [3]
        assert outcome.session_tab_id is None


class TestUtilityTools:
    """Test fetch, virtual file and notes tools."""

    @pytest.mark.asyncio
    async def test_fetch_allowed(
        self, dispatcher: ToolDispatcher, fetch_proxy: FakeFetchProxy
    ) -> None:
        """Test an http URL is fetched when no allowlist is configured."""
        outcome = await dispatcher.dispatch(
            None, "mcp.fetch.get", {"url": "https://example.com/", "headers": {"X-A": "1"}}
        )

        assert outcome.result.result["status"] == 200
        assert fetch_proxy.requests == [("https://example.com/", {"X-A": "1"})]

    @pytest.mark.asyncio
    async def test_fetch_domain_not_allowed(
        self, registry: ToolRegistry, fetch_proxy: FakeFetchProxy
    ) -> None:
        """Test the allowlist is enforced before the proxy is called."""
        dispatcher = ToolDispatcher(
            registry, fetch=fetch_proxy, fetch_allowlist=["example.com"]
        )

        allowed = await dispatcher.dispatch(
            None, "mcp.fetch.get", {"url": "https://api.example.com/x"}
        )
        denied = await dispatcher.dispatch(None, "mcp.fetch.get", {"url": "https://evil.test/"})

        assert allowed.result.ok is True
        assert denied.result.error == "Domain not allowed by policy"
        assert len(fetch_proxy.requests) == 1

    @pytest.mark.asyncio
    async def test_fetch_non_http_scheme(
        self, dispatcher: ToolDispatcher, fetch_proxy: FakeFetchProxy
    ) -> None:
        """Test file: and similar URLs are refused."""
        outcome = await dispatcher.dispatch(None, "mcp.fetch.get", {"url": "file:///etc/passwd"})

        assert outcome.result.error == "restricted context"
        assert fetch_proxy.requests == []

    @pytest.mark.asyncio
    async def test_fs_write_then_read(self, dispatcher: ToolDispatcher) -> None:
        """Test the virtual file store keeps written content."""
        written = await dispatcher.dispatch(
            None, "mcp.fs.write", {"path": "/notes/todo.md", "content": "- ship it"}
        )
        read = await dispatcher.dispatch(None, "mcp.fs.read", {"path": "/notes/todo.md"})

        assert written.result.result == {"path": "/notes/todo.md", "chars": 9}
        assert read.result.result == {"path": "/notes/todo.md", "content": "- ship it"}

    @pytest.mark.asyncio
    async def test_fs_read_missing_file(self, dispatcher: ToolDispatcher) -> None:
        """Test a missing file reads as empty content."""
        outcome = await dispatcher.dispatch(None, "mcp.fs.read", {"path": "/nope"})
        assert outcome.result.result == {"path": "/nope", "content": ""}

    @pytest.mark.asyncio
    async def test_rag_query_matches_case_insensitively(
        self, dispatcher: ToolDispatcher
    ) -> None:
        """Test notes are searched by substring."""
        outcome = await dispatcher.dispatch(None, "mcp.rag.query", {"q": "REPORT"})

        assert outcome.result.result == {
            "results": [{"id": "n1", "text": "Quarterly report due Friday"}]
        }

    @pytest.mark.asyncio
    async def test_rag_query_caps_results(self, registry: ToolRegistry) -> None:
        """Test at most ten notes are returned."""
        notes = [{"id": str(i), "text": f"meeting {i}"} for i in range(25)]
        dispatcher = ToolDispatcher(registry, store=InMemoryKeyValueStore({"notes": notes}))

        outcome = await dispatcher.dispatch(None, "mcp.rag.query", {"q": "meeting"})

        assert len(outcome.result.result["results"]) == 10
