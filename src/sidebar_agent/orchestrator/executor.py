"""Run execution: the state machine behind one orchestrator run.

INIT loads history, seeds page context and appends the user message.
LLM_CALL tries a streaming completion and falls back to a non-streaming
one. TOOL_EXECUTION dispatches the requested tools in order. FINALIZATION
forces an answer when none was produced and persists the history. The
loop ends in COMPLETED, CANCELLED or FAILED; the caller turns that into
the run's single terminal event.
"""

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from sidebar_agent.cancellation import RunCancelled
from sidebar_agent.llm_client.adapters import assistant_message
from sidebar_agent.llm_client.types import (
    LLMClientError,
    LLMConfigurationError,
    LLMPrematureEnd,
)
from sidebar_agent.orchestrator.events import ProgressEvent
from sidebar_agent.orchestrator.prompts import (
    FALLBACK_FINAL_ANSWER,
    FINALIZATION_DIRECTIVE,
    SYSTEM_PROMPT,
    WORKING_TEXT,
)
from sidebar_agent.orchestrator.types import (
    TERMINAL_STATES,
    ExecutionContext,
    RunServices,
    TaskState,
)
from sidebar_agent.security import sanitize_error_message
from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import (
    CONTEXT_SEEDED,
    FORCED_FINALIZATION,
    MODEL_CALL_ERROR,
    ORCHESTRATOR_FATAL_ERROR,
    REPLY_READY,
    RUN_CANCELLED,
    RUN_COMPLETED,
    RUN_FAILED,
    STATE_TRANSITION,
    STREAM_FALLBACK,
    TURN_BUDGET_EXHAUSTED,
    TURN_STARTED,
    UNKNOWN_STATE,
)
from sidebar_agent.tools.feedback import build_step, history_content
from sidebar_agent.tools.types import Step

log = get_logger(__name__)

PAGE_CONTEXT_TOOL = "read_page"

StepFunction = Callable[[ExecutionContext, RunServices], Awaitable[TaskState]]


def event_fields(ctx: ExecutionContext) -> dict[str, Any]:
    """Correlation fields stamped on every event of a run."""
    return {"session_key": ctx.session_key, "trace_id": ctx.trace_id, "tab_id": ctx.tab_id}


class RunStreamListener:
    """Publishes gateway stream callbacks as progress events."""

    def __init__(self, ctx: ExecutionContext) -> None:  # noqa: D107
        self.ctx = ctx

    async def on_start(self) -> None:
        await self.ctx.publish(ProgressEvent.stream_start(**event_fields(self.ctx)))

    async def on_delta(self, text: str) -> None:
        await self.ctx.publish(ProgressEvent.stream_delta(text, **event_fields(self.ctx)))

    async def on_abort(self) -> None:
        await self.ctx.publish(ProgressEvent.stream_abort(**event_fields(self.ctx)))


def ensure_system_message(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Prepend the system prompt unless the history already starts with one."""
    if messages and messages[0].get("role") == "system":
        return messages
    return [{"role": "system", "content": SYSTEM_PROMPT}, *messages]


def has_page_context(messages: list[dict[str, Any]]) -> bool:
    """Whether the history already holds a read_page result."""
    return any(
        message.get("role") == "tool" and message.get("name") == PAGE_CONTEXT_TOOL
        for message in messages
    )


async def execute_tool_call(
    ctx: ExecutionContext,
    services: RunServices,
    call_id: str,
    tool_name: str,
    arguments: str | dict[str, Any] | None,
) -> Step:
    """Dispatch one tool call and record its result.

    Publishes the "executing" event, dispatches (racing the run's token),
    adopts a reassigned session tab, appends the tool message and publishes
    the completed event carrying the Step.

    Raises:
        RunCancelled: If the run was cancelled before or during dispatch.
    """
    ctx.token.raise_if_cancelled()
    await ctx.publish(
        ProgressEvent.working(services.registry.label_for(tool_name), **event_fields(ctx))
    )

    outcome = await ctx.token.guard(
        services.dispatcher.dispatch(
            ctx.tab_id, tool_name, arguments, call_id=call_id, trace_ctx=ctx.trace_ctx
        )
    )
    if outcome.session_tab_id is not None:
        ctx.tab_id = outcome.session_tab_id

    step = build_step(call_id, outcome.tool_name, outcome.arguments, outcome.result)
    ctx.steps.append(step)
    ctx.messages.append(
        {
            "role": "tool",
            "tool_call_id": call_id,
            "name": outcome.tool_name,
            "content": history_content(outcome.result),
        }
    )
    await ctx.publish(
        ProgressEvent.working(f"Executed {outcome.tool_name}", step=step, **event_fields(ctx))
    )
    return step


async def seed_page_context(ctx: ExecutionContext, services: RunServices) -> None:
    """Record a read_page call and its result ahead of the user message."""
    call_id = f"seed_{uuid.uuid4().hex[:12]}"
    ctx.messages.append(
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": call_id,
                    "type": "function",
                    "function": {"name": PAGE_CONTEXT_TOOL, "arguments": "{}"},
                }
            ],
        }
    )
    step = await execute_tool_call(ctx, services, call_id, PAGE_CONTEXT_TOOL, {})
    log.info(
        CONTEXT_SEEDED,
        tab_id=ctx.tab_id,
        ok=step.raw_result.ok,
        **ctx.trace_ctx.log_fields(),
    )


async def step_init(ctx: ExecutionContext, services: RunServices) -> TaskState:
    """Load history, seed page context and append the user message."""
    history = await services.store.load(ctx.session_key)
    ctx.messages = ensure_system_message(history)

    if (
        services.seed_page_context
        and ctx.tab_id is not None
        and not has_page_context(ctx.messages)
    ):
        await seed_page_context(ctx, services)

    ctx.messages.append({"role": "user", "content": ctx.user_text})
    return TaskState.LLM_CALL


async def _try_streaming(
    ctx: ExecutionContext, services: RunServices, tools: list[dict[str, Any]]
) -> str | None:
    """Streaming attempt of a turn.

    Returns:
        The full streamed text, or None when the turn must fall back to a
        non-streaming call (aborted for tools or stream failure).
    """
    try:
        outcome = await services.gateway.complete_streaming(
            ctx.messages, tools, ctx.token, RunStreamListener(ctx), ctx.trace_ctx
        )
    except LLMConfigurationError:
        raise
    except LLMClientError as e:
        log.warning(
            STREAM_FALLBACK,
            reason=type(e).__name__,
            error=str(e),
            turn=ctx.turn_count,
            **ctx.trace_ctx.log_fields(),
        )
        return None

    if outcome.aborted:
        log.info(
            STREAM_FALLBACK, reason="tool_calls", turn=ctx.turn_count, **ctx.trace_ctx.log_fields()
        )
        return None
    return outcome.text


async def step_llm_call(ctx: ExecutionContext, services: RunServices) -> TaskState:
    """Run one model turn.

    Returns:
        TOOL_EXECUTION when the model requested tools, FINALIZATION when it
        answered, produced nothing, or the turn budget is spent.
    """
    ctx.token.raise_if_cancelled()
    if ctx.turn_count >= services.max_turns:
        log.warning(
            TURN_BUDGET_EXHAUSTED, max_turns=services.max_turns, **ctx.trace_ctx.log_fields()
        )
        return TaskState.FINALIZATION

    ctx.turn_count += 1
    log.info(
        TURN_STARTED,
        turn=ctx.turn_count,
        message_count=len(ctx.messages),
        **ctx.trace_ctx.log_fields(),
    )
    await ctx.publish(ProgressEvent.working(WORKING_TEXT, **event_fields(ctx)))
    tools = services.registry.get_tool_definitions_for_llm()

    if services.streaming_enabled:
        streamed_text = await _try_streaming(ctx, services, tools)
        if streamed_text is not None:
            if streamed_text.strip():
                ctx.messages.append({"role": "assistant", "content": streamed_text})
                ctx.final_answer = streamed_text
                ctx.streamed = True
            return TaskState.FINALIZATION

    try:
        response = await services.gateway.complete_once(
            ctx.messages, tools, ctx.token, ctx.trace_ctx
        )
    except LLMPrematureEnd as e:
        log.warning(
            MODEL_CALL_ERROR,
            error=str(e),
            handled_as="empty_answer",
            turn=ctx.turn_count,
            **ctx.trace_ctx.log_fields(),
        )
        return TaskState.FINALIZATION

    has_text = bool(response["content"].strip())
    if response["tool_calls"] or has_text:
        ctx.messages.append(assistant_message(response))

    if response["tool_calls"]:
        ctx.pending_tool_calls = list(response["tool_calls"])
        ctx.pending_text = response["content"] if has_text else ""
        return TaskState.TOOL_EXECUTION
    if has_text:
        ctx.final_answer = response["content"]
    return TaskState.FINALIZATION


async def step_tool_execution(ctx: ExecutionContext, services: RunServices) -> TaskState:
    """Dispatch the pending tool calls sequentially, in the model's order."""
    calls, ctx.pending_tool_calls = ctx.pending_tool_calls, []
    for call in calls:
        await execute_tool_call(ctx, services, call["id"], call["name"], call["arguments"])

    if ctx.pending_text:
        ctx.final_answer, ctx.pending_text = ctx.pending_text, ""
        return TaskState.FINALIZATION
    return TaskState.LLM_CALL


async def force_final_answer(ctx: ExecutionContext, services: RunServices) -> str:
    """One tool-less completion asking for a direct answer.

    Returns:
        The model's text, or the generic completion notice when it is empty
        or the call fails.

    Raises:
        RunCancelled: If the run was cancelled.
        LLMConfigurationError: If the gateway cannot be used at all.
    """
    log.info(FORCED_FINALIZATION, turns=ctx.turn_count, **ctx.trace_ctx.log_fields())
    request = [*ctx.messages, {"role": "user", "content": FINALIZATION_DIRECTIVE}]
    text = ""
    try:
        response = await services.gateway.complete_once(request, [], ctx.token, ctx.trace_ctx)
        text = response["content"]
    except LLMConfigurationError:
        raise
    except LLMClientError as e:
        log.warning(
            MODEL_CALL_ERROR,
            error=str(e),
            error_type=type(e).__name__,
            handled_as="fallback_answer",
            **ctx.trace_ctx.log_fields(),
        )
    return text if text.strip() else FALLBACK_FINAL_ANSWER


async def step_finalize(ctx: ExecutionContext, services: RunServices) -> TaskState:
    """Make sure there is an answer, then persist the history."""
    if ctx.final_answer is None:
        ctx.token.raise_if_cancelled()
        ctx.forced = True
        ctx.final_answer = await force_final_answer(ctx, services)
        ctx.messages.append({"role": "assistant", "content": ctx.final_answer})

    await services.store.persist(ctx.session_key, ctx.messages)
    log.info(
        REPLY_READY,
        reply_length=len(ctx.final_answer),
        streamed=ctx.streamed,
        forced=ctx.forced,
        **ctx.trace_ctx.log_fields(),
    )
    return TaskState.COMPLETED


async def execute_run(ctx: ExecutionContext, services: RunServices) -> ExecutionContext:
    """Main execution loop: iterate states until terminal.

    Cancellation ends the run in CANCELLED; any other exception ends it in
    FAILED with ``ctx.error`` set. History is only persisted on COMPLETED.

    Args:
        ctx: Execution context of the run.
        services: Collaborators and limits.

    Returns:
        The same context, in a terminal state.
    """
    step_functions: dict[TaskState, StepFunction] = {
        TaskState.INIT: step_init,
        TaskState.LLM_CALL: step_llm_call,
        TaskState.TOOL_EXECUTION: step_tool_execution,
        TaskState.FINALIZATION: step_finalize,
    }

    state = ctx.state
    try:
        while state not in TERMINAL_STATES:
            log.debug(STATE_TRANSITION, from_state=state.value, **ctx.trace_ctx.log_fields())
            ctx.state = state

            step_func = step_functions.get(state)
            if step_func is None:
                log.error(UNKNOWN_STATE, state=state.value, **ctx.trace_ctx.log_fields())
                ctx.error = ValueError(f"Unknown state: {state}")
                state = TaskState.FAILED
                break

            state = await step_func(ctx, services)
    except RunCancelled as e:
        log.info(
            RUN_CANCELLED, reason=e.reason, state=ctx.state.value, **ctx.trace_ctx.log_fields()
        )
        state = TaskState.CANCELLED
    except Exception as e:
        log.error(
            ORCHESTRATOR_FATAL_ERROR,
            error=str(e),
            error_type=type(e).__name__,
            state=ctx.state.value,
            exc_info=True,
            **ctx.trace_ctx.log_fields(),
        )
        ctx.error = e
        state = TaskState.FAILED

    ctx.state = state
    if state == TaskState.COMPLETED:
        log.info(
            RUN_COMPLETED,
            turns=ctx.turn_count,
            steps_count=len(ctx.steps),
            duration_seconds=ctx.elapsed_seconds(),
            **ctx.trace_ctx.log_fields(),
        )
    elif state == TaskState.FAILED:
        log.warning(
            RUN_FAILED,
            error_type=type(ctx.error).__name__,
            turns=ctx.turn_count,
            **ctx.trace_ctx.log_fields(),
        )
    return ctx


def terminal_event(ctx: ExecutionContext) -> ProgressEvent:
    """The single terminal event for a finished run."""
    fields = event_fields(ctx)
    if ctx.state == TaskState.COMPLETED:
        answer = ctx.final_answer or FALLBACK_FINAL_ANSWER
        if ctx.streamed:
            return ProgressEvent.stream_end(
                ctx.elapsed_seconds(), list(ctx.steps), text=answer, **fields
            )
        return ProgressEvent.final_answer(answer, list(ctx.steps), ctx.elapsed_seconds(), **fields)
    if ctx.state == TaskState.CANCELLED:
        return ProgressEvent.cancelled(**fields)
    error = ctx.error if isinstance(ctx.error, Exception) else RuntimeError("run failed")
    return ProgressEvent.error(sanitize_error_message(error), **fields)
