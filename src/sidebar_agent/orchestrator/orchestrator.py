"""High-level orchestrator API.

The Orchestrator is the entry point used by the UI surfaces: it owns the
run slots, the event hub and the confirmation broker, and drives each run
through the executor's state machine.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from sidebar_agent.config import AppConfig, settings
from sidebar_agent.llm_client.client import CompletionGateway
from sidebar_agent.orchestrator.confirmation import ConfirmationBroker
from sidebar_agent.orchestrator.events import EventChannel, EventHub, ProgressEvent
from sidebar_agent.orchestrator.executor import event_fields, execute_run, terminal_event
from sidebar_agent.orchestrator.history import ConversationStore
from sidebar_agent.orchestrator.runs import AlreadyRunningError, Run, RunManager
from sidebar_agent.orchestrator.types import CompletionClient, ExecutionContext, RunServices
from sidebar_agent.telemetry import TraceContext, get_logger
from sidebar_agent.telemetry.events import REQUEST_RECEIVED
from sidebar_agent.tools import InMemoryKeyValueStore, ToolDispatcher, get_default_registry
from sidebar_agent.tools.fetch import HttpFetchProxy
from sidebar_agent.tools.registry import ToolRegistry

log = get_logger(__name__)


def build_default_dispatcher(registry: ToolRegistry, config: AppConfig) -> ToolDispatcher:
    """Dispatcher with the local collaborators (fetch proxy, key-value store).

    Browser and page-automation collaborators are left unset; their tools
    report "collaborator unavailable" until a bridge provides them.
    """
    return ToolDispatcher(
        registry,
        fetch=HttpFetchProxy(max_body_chars=config.fetch_max_body_chars),
        store=InMemoryKeyValueStore(),
        restricted_url_prefixes=config.restricted_url_prefixes,
        fetch_allowlist=config.fetch_allowlist,
        tab_match_threshold=config.tab_match_threshold,
        tab_match_early_exit=config.tab_match_early_exit,
    )


class Orchestrator:
    """High-level orchestrator interface.

    Every collaborator can be injected; missing ones are built from the
    application settings.
    """

    def __init__(
        self,
        gateway: CompletionClient | None = None,
        dispatcher: ToolDispatcher | None = None,
        store: ConversationStore | None = None,
        run_manager: RunManager | None = None,
        broker: ConfirmationBroker | None = None,
        hub: EventHub | None = None,
        config: AppConfig | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            gateway: Completion client. Defaults to a CompletionGateway.
            dispatcher: Tool dispatcher. Defaults to local collaborators only.
            store: Conversation store.
            run_manager: Run slot manager.
            broker: Confirmation broker. Defaults to one that broadcasts
                requests through the hub.
            hub: Event hub.
            config: Settings; defaults to the process settings.
        """
        self.config = config or settings
        self.hub = hub or EventHub(
            channel_size=self.config.event_queue_size,
            publish_timeout=self.config.event_publish_timeout_seconds,
        )
        self.gateway = gateway or CompletionGateway(
            api_key=self.config.openrouter_api_key,
            base_url=self.config.llm_base_url,
            model=self.config.llm_model,
            timeout_seconds=self.config.llm_timeout_seconds,
            delta_interval_ms=self.config.stream_delta_interval_ms,
            parallel_tool_calls=self.config.llm_parallel_tool_calls,
        )
        self.dispatcher = dispatcher or build_default_dispatcher(
            get_default_registry(), self.config
        )
        self.store = store or ConversationStore(
            max_messages=self.config.history_max_messages,
            tool_content_limit=self.config.history_tool_content_limit,
            content_limit=self.config.history_content_limit,
        )
        self.run_manager = run_manager or RunManager()
        self.broker = broker or ConfirmationBroker(
            notify=self.hub.broadcast,
            timeout_seconds=self.config.confirmation_timeout_seconds,
        )
        # Page scripts ask for approval through the broker
        automation = self.dispatcher.automation
        if automation is not None and automation.confirmer is None:
            automation.confirmer = self.request_confirmation
        self.services = RunServices(
            gateway=self.gateway,
            dispatcher=self.dispatcher,
            registry=self.dispatcher.registry,
            store=self.store,
            max_turns=self.config.orchestrator_max_turns,
            streaming_enabled=self.config.llm_streaming_enabled,
            seed_page_context=self.config.orchestrator_seed_page_context,
        )

    async def run_turn(
        self, session_key: str, user_text: str, tab_id: int | None = None
    ) -> AsyncIterator[ProgressEvent]:
        """Handle one user request and stream its progress events.

        The last event is always the run's single terminal event, preceded
        by ``status-idle``. A busy session yields only ``already-running``.
        Leaving the iteration early cancels the run.

        Args:
            session_key: Conversation identifier.
            user_text: The user's request.
            tab_id: Tab the user is looking at, if known.

        Yields:
            ProgressEvent instances in publication order.
        """
        log.info(REQUEST_RECEIVED, session_key=session_key, tab_id=tab_id)
        try:
            run = self.run_manager.start(session_key)
        except AlreadyRunningError:
            yield ProgressEvent.already_running(session_key=session_key, tab_id=tab_id)
            return

        channel = self.hub.attach(session_key)
        task = asyncio.create_task(self._drive(run, channel, user_text, tab_id))
        try:
            async for event in channel:
                yield event
        finally:
            if not task.done():
                channel.close()
                run.token.cancel("event consumer went away")
            await task
            self.run_manager.finish(session_key, run)

    async def _drive(
        self, run: Run, channel: EventChannel, user_text: str, tab_id: int | None
    ) -> None:
        ctx = ExecutionContext(
            session_key=run.session_key,
            user_text=user_text,
            token=run.token,
            publish=channel.publish,
            trace_ctx=TraceContext.new_trace(run.session_key),
            tab_id=tab_id,
        )
        try:
            async with self.run_manager.active(run):
                await execute_run(ctx, self.services)
                run.turn_count = ctx.turn_count
            await channel.publish(ProgressEvent.idle(**event_fields(ctx)))
            await channel.publish(terminal_event(ctx))
        finally:
            self.hub.detach(run.session_key, channel)

    async def submit(
        self,
        session_key: str,
        user_text: str,
        tab_id: int | None = None,
        on_event: Callable[[ProgressEvent], Awaitable[None]] | None = None,
    ) -> ProgressEvent:
        """Run a request to completion.

        Args:
            session_key: Conversation identifier.
            user_text: The user's request.
            tab_id: Tab the user is looking at, if known.
            on_event: Optional callback for every event, terminal included.

        Returns:
            The terminal event.
        """
        terminal: ProgressEvent | None = None
        async for event in self.run_turn(session_key, user_text, tab_id):
            if on_event is not None:
                await on_event(event)
            if event.is_terminal:
                terminal = event
        if terminal is None:
            raise RuntimeError(f"run for session {session_key} ended without a terminal event")
        return terminal

    def cancel(self, session_key: str) -> bool:
        """Cancel the live run of a session.

        Returns:
            True if a run was live.
        """
        return self.run_manager.cancel(session_key)

    def resolve_confirmation(self, call_id: str, approved: bool) -> bool:
        """Apply a user's decision to a pending confirmation (no-op if unknown)."""
        return self.broker.resolve(call_id, approved)

    async def request_confirmation(
        self, prompt_text: str, tab_id: int | None = None, timeout: float | None = None
    ) -> bool:
        """Ask the user to approve a sensitive page action.

        Installed as the page-automation confirmer: scripts call it before an
        irreversible action.

        Returns:
            True only if the user approved before the timeout.
        """
        return await self.broker.confirm(prompt_text, tab_id=tab_id, timeout=timeout)

    async def clear_history(self, session_key: str) -> bool:
        """Forget a session's stored conversation."""
        return await self.store.clear(session_key)
