"""Core types for the orchestrator.

This module defines the data structures used throughout the orchestrator:
- TaskState: State machine states
- ExecutionContext: Mutable state container passed through execution steps
- RunServices: Collaborators and limits a run executes against
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from sidebar_agent.cancellation import CancellationToken
from sidebar_agent.llm_client.types import LLMResponse, StreamListener, StreamOutcome, ToolCall
from sidebar_agent.telemetry import TraceContext
from sidebar_agent.tools.types import Step

if TYPE_CHECKING:
    from sidebar_agent.orchestrator.events import ProgressEvent
    from sidebar_agent.orchestrator.history import ConversationStore
    from sidebar_agent.tools.dispatcher import ToolDispatcher
    from sidebar_agent.tools.registry import ToolRegistry


class TaskState(str, Enum):
    """State machine states for one run."""

    INIT = "init"
    LLM_CALL = "llm_call"
    TOOL_EXECUTION = "tool_execution"
    FINALIZATION = "finalization"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({TaskState.COMPLETED, TaskState.CANCELLED, TaskState.FAILED})

Publisher = Callable[["ProgressEvent"], Awaitable[bool]]


class CompletionClient(Protocol):
    """The two completion operations the loop relies on."""

    async def complete_once(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        cancel_token: CancellationToken,
        trace_ctx: TraceContext | None = None,
    ) -> LLMResponse: ...

    async def complete_streaming(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        cancel_token: CancellationToken,
        listener: StreamListener,
        trace_ctx: TraceContext | None = None,
    ) -> StreamOutcome: ...


@dataclass
class RunServices:
    """Collaborators and limits shared by every run of an orchestrator.

    Attributes:
        gateway: Completion client.
        dispatcher: Tool dispatcher.
        registry: Tool registry (source of the tool list sent to the model).
        store: Conversation store.
        max_turns: Model turns per run before forced finalization.
        streaming_enabled: Try a streaming completion first on each turn.
        seed_page_context: Record a read_page result before the first message.
    """

    gateway: CompletionClient
    dispatcher: "ToolDispatcher"
    registry: "ToolRegistry"
    store: "ConversationStore"
    max_turns: int = 10
    streaming_enabled: bool = True
    seed_page_context: bool = True


@dataclass
class ExecutionContext:
    """Mutable state container passed through execution steps.

    Step functions update it as the run progresses; the orchestrator turns
    the final state into the run's terminal event.

    Attributes:
        session_key: Conversation the run belongs to.
        user_text: The user's request.
        token: Cancellation token of the run.
        publish: Sends a progress event to the run's channel (never raises).
        trace_ctx: Trace of the run.
        tab_id: Tab the run acts on; reassigned by open_tab/switch_tab.
        messages: Working history (system, user, assistant, tool), unbounded
            until persisted.
        steps: UI records of executed tool calls, in call order.
        turn_count: Model turns taken so far.
        pending_tool_calls: Tool calls of the latest assistant message.
        pending_text: Text that accompanied those tool calls.
        final_answer: Answer text once known.
        streamed: Whether the answer was delivered through stream deltas.
        forced: Whether forced finalization produced the answer.
        error: Exception that failed the run.
        state: Current state in the state machine.
        started_at: Monotonic start time.
    """

    session_key: str
    user_text: str
    token: CancellationToken
    publish: Publisher
    trace_ctx: TraceContext
    tab_id: int | None = None
    messages: list[dict[str, Any]] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    turn_count: int = 0
    pending_tool_calls: list[ToolCall] = field(default_factory=list)
    pending_text: str = ""
    final_answer: str | None = None
    streamed: bool = False
    forced: bool = False
    error: BaseException | None = None
    state: TaskState = TaskState.INIT
    started_at: float = field(default_factory=time.monotonic)

    @property
    def trace_id(self) -> str:
        return self.trace_ctx.trace_id

    def elapsed_seconds(self) -> float:
        """Seconds since the run started."""
        return round(time.monotonic() - self.started_at, 2)
