"""Tool dispatcher: routes parsed tool calls to their collaborators.

Every call yields exactly one ToolResult. Policy preconditions run before
any collaborator is touched, and collaborator exceptions become
``ok: false`` results; only cancellation propagates.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from sidebar_agent.cancellation import RunCancelled
from sidebar_agent.telemetry import TraceContext, get_logger
from sidebar_agent.telemetry.events import (
    POLICY_VIOLATION,
    TAB_REASSIGNED,
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_STARTED,
)
from sidebar_agent.tools.automation import AutomationClient
from sidebar_agent.tools.collaborators import (
    BrowserController,
    CollaboratorUnavailable,
    FetchProxy,
    KeyValueStore,
)
from sidebar_agent.tools.policy import (
    NO_ACTIVE_TAB,
    PermissionResult,
    check_fetch,
    check_navigation,
    check_tab_context,
)
from sidebar_agent.tools.registry import ToolRegistry
from sidebar_agent.tools.tabs import NO_TAB_MATCHED, find_tab
from sidebar_agent.tools.types import (
    DispatchOutcome,
    InvalidToolCall,
    KnownToolCall,
    ParsedToolCall,
    TabInfo,
    ToolResult,
    UnknownToolCall,
)

log = get_logger(__name__)

UNKNOWN_TOOL = "unknown tool"
FS_KEY = "fs"
NOTES_KEY = "notes"
MAX_NOTE_RESULTS = 10

# (result, new session tab id or None)
HandlerResult = tuple[ToolResult, int | None]
Handler = Callable[[int | None, dict[str, Any]], Awaitable[HandlerResult]]


class PolicyDenied(Exception):
    """A precondition rejected the call before dispatch."""

    def __init__(self, permission: PermissionResult) -> None:  # noqa: D107
        super().__init__(permission.reason)
        self.reason = permission.reason


def _unavailable(what: str) -> CollaboratorUnavailable:
    return CollaboratorUnavailable(f"{what} not configured")


class ToolDispatcher:
    """Executes tool calls against the browser, automation, fetch and storage collaborators.

    Collaborators are optional; a tool whose collaborator is missing fails
    with "collaborator unavailable: ...".
    """

    def __init__(
        self,
        registry: ToolRegistry,
        browser: BrowserController | None = None,
        automation: AutomationClient | None = None,
        fetch: FetchProxy | None = None,
        store: KeyValueStore | None = None,
        restricted_url_prefixes: list[str] | None = None,
        fetch_allowlist: list[str] | None = None,
        tab_match_threshold: float = 0.55,
        tab_match_early_exit: float = 0.9,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Registry whose tools this dispatcher serves.
            browser: Tab controller.
            automation: Client for in-page automation.
            fetch: Network fetch proxy.
            store: Key-value store for the fs and notes utilities.
            restricted_url_prefixes: Internal URL prefixes tools must not target.
            fetch_allowlist: Domains reachable through the fetch proxy.
            tab_match_threshold: Minimum similarity for fuzzy tab matching.
            tab_match_early_exit: Similarity at which tab search stops.

        Raises:
            ValueError: If a registered tool has no handler.
        """
        self.registry = registry
        self.browser = browser
        self.automation = automation
        self.fetch = fetch
        self.store = store
        self.restricted_url_prefixes = list(restricted_url_prefixes or [])
        self.fetch_allowlist = list(fetch_allowlist or [])
        self.tab_match_threshold = tab_match_threshold
        self.tab_match_early_exit = tab_match_early_exit

        self._handlers: dict[str, Handler] = {
            "read_page": self._page_tool("read_page"),
            "click": self._page_tool("click"),
            "click_text": self._page_tool("click_text"),
            "type": self._page_tool("type"),
            "scroll": self._page_tool("scroll"),
            "extract_table": self._page_tool("extract_table"),
            "screenshot": self._screenshot,
            "get_tabs": self._get_tabs,
            "open_tab": self._open_tab,
            "switch_tab": self._switch_tab,
            "close_tab": self._close_tab,
            "mcp.fetch.get": self._fetch_get,
            "mcp.fs.read": self._fs_read,
            "mcp.fs.write": self._fs_write,
            "mcp.rag.query": self._rag_query,
        }
        missing = [name for name in registry.list_tool_names() if name not in self._handlers]
        if missing:
            raise ValueError(f"No dispatch handler for tools: {missing}")

    async def dispatch(
        self,
        session_tab_id: int | None,
        tool_name: str,
        arguments: str | dict[str, Any] | None,
        call_id: str = "",
        trace_ctx: TraceContext | None = None,
    ) -> DispatchOutcome:
        """Parse and execute one tool call.

        Args:
            session_tab_id: Tab the run currently acts on, if any.
            tool_name: Name the model used.
            arguments: Arguments as JSON text or a decoded dict.
            call_id: The model's id for the call (for logging).
            trace_ctx: Trace of the enclosing run.

        Returns:
            DispatchOutcome; ``session_tab_id`` is set when the run must
            switch to another tab.

        Raises:
            RunCancelled: If the run was cancelled while dispatching.
        """
        parsed = self.registry.parse_call(call_id, tool_name, arguments)
        return await self.dispatch_call(session_tab_id, parsed, trace_ctx)

    async def dispatch_call(
        self,
        session_tab_id: int | None,
        call: ParsedToolCall,
        trace_ctx: TraceContext | None = None,
    ) -> DispatchOutcome:
        """Execute an already parsed tool call (see ``dispatch``)."""
        trace_fields: dict[str, Any] = {}
        if trace_ctx is not None:
            _, span_id = trace_ctx.new_span()
            trace_fields = {**trace_ctx.log_fields(), "span_id": span_id}

        if isinstance(call, UnknownToolCall):
            log.warning(TOOL_CALL_FAILED, tool_name=call.name, error=UNKNOWN_TOOL, **trace_fields)
            return DispatchOutcome(
                tool_name=call.name,
                result=ToolResult.failure(UNKNOWN_TOOL),
                arguments=call.raw_arguments,
            )
        if isinstance(call, InvalidToolCall):
            log.warning(TOOL_CALL_FAILED, tool_name=call.name, error=call.error, **trace_fields)
            return DispatchOutcome(
                tool_name=call.name,
                result=ToolResult.failure(call.error),
                arguments=call.raw_arguments,
            )

        return await self._execute(session_tab_id, call, trace_fields)

    async def _execute(
        self, session_tab_id: int | None, call: KnownToolCall, trace_fields: dict[str, Any]
    ) -> DispatchOutcome:
        arguments = call.arguments()
        handler = self._handlers[call.name]

        log.info(
            TOOL_CALL_STARTED,
            tool_name=call.name,
            call_id=call.call_id,
            tab_id=session_tab_id,
            **trace_fields,
        )
        start = time.monotonic()
        new_tab_id: int | None = None
        try:
            result, new_tab_id = await handler(session_tab_id, arguments)
        except (RunCancelled, asyncio.CancelledError):
            raise
        except PolicyDenied as e:
            log.warning(POLICY_VIOLATION, tool_name=call.name, reason=e.reason, **trace_fields)
            result = ToolResult.failure(e.reason)
        except CollaboratorUnavailable as e:
            result = ToolResult.failure(f"collaborator unavailable: {e}")
        except Exception as e:
            result = ToolResult.failure(str(e) or type(e).__name__)

        latency_ms = (time.monotonic() - start) * 1000
        result = result.with_latency(latency_ms)

        if result.ok:
            log.info(
                TOOL_CALL_COMPLETED,
                tool_name=call.name,
                latency_ms=round(latency_ms, 2),
                **trace_fields,
            )
        else:
            log.warning(
                TOOL_CALL_FAILED,
                tool_name=call.name,
                error=result.error,
                latency_ms=round(latency_ms, 2),
                **trace_fields,
            )

        if new_tab_id is not None and new_tab_id != session_tab_id:
            log.info(
                TAB_REASSIGNED, from_tab=session_tab_id, to_tab=new_tab_id, **trace_fields
            )
        return DispatchOutcome(
            tool_name=call.name,
            result=result,
            arguments=arguments,
            session_tab_id=new_tab_id,
        )

    # Preconditions

    def _require_browser(self) -> BrowserController:
        if self.browser is None:
            raise _unavailable("browser controller")
        return self.browser

    async def _session_tab(self, session_tab_id: int | None) -> TabInfo:
        """Resolve the session tab and check it is not a restricted page."""
        if session_tab_id is None:
            raise PolicyDenied(PermissionResult(allowed=False, reason=NO_ACTIVE_TAB))
        tab = await self._require_browser().get_tab(session_tab_id)
        permission = check_tab_context(tab, self.restricted_url_prefixes)
        if tab is None or not permission:
            raise PolicyDenied(permission)
        return tab

    async def _all_tabs(self) -> list[TabInfo]:
        return await self._require_browser().list_tabs()

    # Handlers

    def _page_tool(self, name: str) -> Handler:
        async def handler(session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
            tab = await self._session_tab(session_tab_id)
            if self.automation is None:
                raise _unavailable("page automation")
            return await self.automation.call(tab.id, name, args), None

        return handler

    async def _screenshot(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        tab = await self._session_tab(session_tab_id)
        data_url = await self._require_browser().capture_visible_tab(tab.id)
        return ToolResult.success({"dataUrl": data_url}), None

    async def _get_tabs(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        tabs = await self._all_tabs()
        return ToolResult.success([tab.model_dump(by_alias=True) for tab in tabs]), None

    async def _open_tab(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        url = args["url"]
        permission = check_navigation(url, self.restricted_url_prefixes)
        if not permission:
            raise PolicyDenied(permission)
        tab = await self._require_browser().open_tab(url)
        return ToolResult.success(tab.summary()), tab.id

    async def _switch_tab(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        match = find_tab(
            await self._all_tabs(),
            args["match"],
            threshold=self.tab_match_threshold,
            early_exit=self.tab_match_early_exit,
        )
        if match is None:
            return ToolResult.failure(NO_TAB_MATCHED), None
        tab = await self._require_browser().activate_tab(match.tab.id)
        return ToolResult.success(tab.summary()), tab.id

    async def _close_tab(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        match = find_tab(
            await self._all_tabs(),
            args["match"],
            threshold=self.tab_match_threshold,
            early_exit=self.tab_match_early_exit,
        )
        if match is None:
            return ToolResult.failure(NO_TAB_MATCHED), None
        await self._require_browser().close_tab(match.tab.id)
        return ToolResult.success({"closed": match.tab.summary()}), None

    async def _fetch_get(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        url = args["url"]
        permission = check_fetch(url, self.fetch_allowlist)
        if not permission:
            raise PolicyDenied(permission)
        if self.fetch is None:
            raise _unavailable("fetch proxy")
        return ToolResult.success(await self.fetch.get(url, args.get("headers") or {})), None

    def _require_store(self) -> KeyValueStore:
        if self.store is None:
            raise _unavailable("key-value store")
        return self.store

    async def _fs_read(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        files = await self._require_store().get(FS_KEY, {}) or {}
        content = files.get(args["path"], "")
        return ToolResult.success({"path": args["path"], "content": content}), None

    async def _fs_write(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        store = self._require_store()
        files = dict(await store.get(FS_KEY, {}) or {})
        files[args["path"]] = args["content"]
        await store.set(FS_KEY, files)
        return ToolResult.success({"path": args["path"], "chars": len(args["content"])}), None

    async def _rag_query(self, session_tab_id: int | None, args: dict[str, Any]) -> HandlerResult:
        notes = await self._require_store().get(NOTES_KEY, []) or []
        needle = args["q"].lower()
        hits = [
            note
            for note in notes
            if isinstance(note, dict) and needle in str(note.get("text", "")).lower()
        ]
        return ToolResult.success({"results": hits[:MAX_NOTE_RESULTS]}), None
