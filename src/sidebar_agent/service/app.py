"""FastAPI service application."""

import json
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing, asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import StreamingResponse

from sidebar_agent.config.settings import get_settings
from sidebar_agent.orchestrator import Orchestrator, ProgressEvent
from sidebar_agent.service.models import (
    CancelResponse,
    ClearHistoryResponse,
    ConfirmationDecision,
    ConfirmationResponse,
    HealthResponse,
    MessageRequest,
)
from sidebar_agent.telemetry import get_logger

log = get_logger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"


def sse_format(event: dict[str, Any]) -> str:
    """Frame one event for a text/event-stream response."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


async def _sse_events(events: AsyncIterator[ProgressEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield sse_format(event.to_wire())


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    """Build the service.

    Args:
        orchestrator: Orchestrator to serve. If None, one is built from the
            settings when the application starts.

    Returns:
        The FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan management."""
        log.info("service_starting")
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = Orchestrator()
        settings = get_settings()
        log.info("service_ready", host=settings.service_host, port=settings.service_port)

        yield

        log.info("service_shutting_down")
        current: Orchestrator = app.state.orchestrator
        for session_key in current.run_manager.active_sessions():
            current.cancel(session_key)
        log.info("service_stopped")

    app = FastAPI(
        title="Agent Sidebar Service",
        description="Tool-calling browser agent with streamed progress events",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    # ========================================================================
    # Health Check
    # ========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check(
        orch: Orchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> HealthResponse:
        """Service health check endpoint."""
        return HealthResponse(
            status="healthy",
            components={
                "completion_endpoint": "configured"
                if orch.config.openrouter_api_key
                else "missing_api_key",
                "model": orch.config.llm_model,
                "active_runs": len(orch.run_manager.active_sessions()),
                "pending_confirmations": len(orch.broker.pending()),
                "tools": len(orch.services.registry.list_tool_names()),
            },
        )

    # ========================================================================
    # Session Endpoints
    # ========================================================================

    @app.post("/sessions/{session_key}/messages", response_model=None)
    async def post_message(
        session_key: str,
        body: MessageRequest,
        orch: Orchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> StreamingResponse | dict[str, Any]:
        """Run the agent on a user message.

        Streams progress events as ``data: <json>`` frames, or returns the
        terminal event as JSON when ``stream`` is false.
        """
        if not body.stream:
            terminal = await orch.submit(session_key, body.text, tab_id=body.tab_id)
            return terminal.to_wire()

        async def event_stream() -> AsyncIterator[str]:
            async with aclosing(orch.run_turn(session_key, body.text, tab_id=body.tab_id)) as run:
                async for frame in _sse_events(run):
                    yield frame

        return StreamingResponse(event_stream(), media_type=SSE_MEDIA_TYPE)

    @app.post("/sessions/{session_key}/cancel", response_model=CancelResponse)
    async def cancel_run(
        session_key: str,
        orch: Orchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> CancelResponse:
        """Cancel the live run of a session."""
        return CancelResponse(session_key=session_key, cancelled=orch.cancel(session_key))

    @app.delete("/sessions/{session_key}/history", response_model=ClearHistoryResponse)
    async def clear_history(
        session_key: str,
        orch: Orchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> ClearHistoryResponse:
        """Forget a session's conversation."""
        cleared = await orch.clear_history(session_key)
        return ClearHistoryResponse(session_key=session_key, cleared=cleared)

    # ========================================================================
    # Confirmations and global events
    # ========================================================================

    @app.post("/confirmations/{call_id}", response_model=ConfirmationResponse)
    async def resolve_confirmation(
        call_id: str,
        decision: ConfirmationDecision,
        orch: Orchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> ConfirmationResponse:
        """Apply the user's decision to a pending confirmation."""
        applied = orch.resolve_confirmation(call_id, decision.approved)
        return ConfirmationResponse(call_id=call_id, applied=applied)

    @app.get("/events")
    async def stream_global_events(
        orch: Orchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> StreamingResponse:
        """Stream broadcast events (confirmation requests) to any listener."""

        async def event_stream() -> AsyncIterator[str]:
            channel = orch.hub.subscribe()
            try:
                async for frame in _sse_events(channel):
                    yield frame
            finally:
                orch.hub.unsubscribe(channel)

        return StreamingResponse(event_stream(), media_type=SSE_MEDIA_TYPE)

    return app
