"""Completion gateway for the OpenAI-compatible chat/completions endpoint.

Two operations share request building, authentication and error mapping:
- ``complete_once``: one non-streaming round trip
- ``complete_streaming``: a text/event-stream read that is abandoned as soon
  as the model starts a tool call

Both honour the run's CancellationToken before and during the network call.
"""

import time
from typing import Any

import httpx

from sidebar_agent.cancellation import CancellationToken, RunCancelled
from sidebar_agent.config import settings
from sidebar_agent.llm_client.adapters import (
    adapt_chat_completions_response,
    build_chat_completions_request,
)
from sidebar_agent.llm_client.sse import SSEDecoder, SSEEvent, extract_delta, parse_record
from sidebar_agent.llm_client.throttle import DeltaCoalescer
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
)
from sidebar_agent.security import redact_secrets
from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    STREAM_ABORTED_FOR_TOOLS,
    STREAM_COMPLETED,
    STREAM_STARTED,
)
from sidebar_agent.telemetry.trace import TraceContext

log = get_logger(__name__)

MISSING_API_KEY_MESSAGE = "OpenRouter API key not set in Settings"


def map_transport_error(exc: Exception, endpoint: str, timeout_s: float) -> LLMClientError:
    """Translate an httpx failure into the gateway's error hierarchy.

    Args:
        exc: Exception raised by httpx (or by decoding the body).
        endpoint: Endpoint that was called, for the message.
        timeout_s: Read timeout in effect, for the message.

    Returns:
        The matching LLMClientError subclass instance.
    """
    if isinstance(exc, LLMClientError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return LLMTimeout(f"Request to {endpoint} timed out after {timeout_s}s")
    if isinstance(exc, httpx.RemoteProtocolError):
        return LLMPrematureEnd(f"premature end of response body: {exc}")
    if isinstance(exc, httpx.ConnectError):
        return LLMConnectionError(f"Failed to connect to {endpoint}: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        detail = _error_detail(exc.response)
        if status == 429:
            return LLMRateLimit(f"Rate limit exceeded: {detail}")
        if status >= 500:
            return LLMServerError(f"Server error {status}: {detail}")
        return LLMClientError(f"HTTP error {status}: {detail}")
    if isinstance(exc, httpx.RequestError):
        return LLMConnectionError(f"Request error: {exc}")
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return LLMInvalidResponse(f"Invalid response format: {exc}")
    return LLMClientError(f"Unexpected error: {exc}")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return redact_secrets(response.text[:200])
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", error))
    return redact_secrets(str(body)[:200])


class CompletionGateway:
    """Client for the remote completion endpoint.

    Attributes:
        base_url: Base URL of the OpenAI-compatible API.
        model: Model identifier sent with every request.
        timeout_seconds: Read timeout for one call.
        delta_interval_seconds: Coalescing interval for streamed text.
        parallel_tool_calls: Whether the model may batch tool calls.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
        delta_interval_ms: int | None = None,
        parallel_tool_calls: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            api_key: Bearer key. If None, settings.openrouter_api_key is read
                at call time so a key configured later is picked up.
            base_url: API base URL. If None, uses settings.llm_base_url.
            model: Model identifier. If None, uses settings.llm_model.
            timeout_seconds: Read timeout. If None, uses settings.llm_timeout_seconds.
            delta_interval_ms: Delta coalescing interval. If None, uses
                settings.stream_delta_interval_ms.
            parallel_tool_calls: If None, uses settings.llm_parallel_tool_calls.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._api_key = api_key
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.timeout_seconds = float(timeout_seconds or settings.llm_timeout_seconds)
        interval_ms = (
            settings.stream_delta_interval_ms if delta_interval_ms is None else delta_interval_ms
        )
        self.delta_interval_seconds = interval_ms / 1000.0
        self.parallel_tool_calls = (
            settings.llm_parallel_tool_calls
            if parallel_tool_calls is None
            else parallel_tool_calls
        )
        self._transport = transport

    @property
    def endpoint(self) -> str:
        """Full chat/completions URL."""
        return f"{self.base_url}/chat/completions"

    def _require_api_key(self) -> str:
        key = self._api_key if self._api_key is not None else settings.openrouter_api_key
        if not key:
            raise LLMConfigurationError(MISSING_API_KEY_MESSAGE)
        return key

    def _headers(self, api_key: str, stream: bool) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Title": settings.project_name,
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def _client(self) -> httpx.AsyncClient:
        timeout_config = httpx.Timeout(
            connect=10.0,
            read=self.timeout_seconds,  # model generation
            write=10.0,
            pool=10.0,
        )
        if self._transport is not None:
            return httpx.AsyncClient(timeout=timeout_config, transport=self._transport)
        return httpx.AsyncClient(timeout=timeout_config)

    async def complete_once(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        cancel_token: CancellationToken,
        trace_ctx: TraceContext | None = None,
    ) -> LLMResponse:
        """Make one non-streaming completion call.

        Args:
            messages: Full conversation history.
            tools: Tool definitions; an empty list forbids tool calls.
            cancel_token: Run cancellation token.
            trace_ctx: Trace context for telemetry correlation.

        Returns:
            LLMResponse with the assistant text and tool calls.

        Raises:
            LLMConfigurationError: If no API key is configured.
            RunCancelled: If the token fired before or during the call.
            LLMClientError: For transport, status or format failures.
        """
        api_key = self._require_api_key()
        cancel_token.raise_if_cancelled()

        trace_ctx = trace_ctx or TraceContext.new_trace()
        _, span_id = trace_ctx.new_span()
        payload = build_chat_completions_request(
            messages=messages,
            model=self.model,
            tools=tools,
            parallel_tool_calls=self.parallel_tool_calls,
        )

        start_time = time.monotonic()
        log.info(
            MODEL_CALL_STARTED,
            model_id=self.model,
            endpoint=self.endpoint,
            stream=False,
            message_count=len(payload["messages"]),
            tools_count=len(tools),
            span_id=span_id,
            **trace_ctx.log_fields(),
        )

        try:
            response_data = await cancel_token.guard(self._post(payload, api_key))
            llm_response = adapt_chat_completions_response(response_data)
        except RunCancelled:
            log.info("model_call_cancelled", span_id=span_id, **trace_ctx.log_fields())
            raise
        except LLMClientError as e:
            log.error(
                MODEL_CALL_ERROR,
                model_id=self.model,
                error_type=type(e).__name__,
                error=str(e),
                latency_ms=int((time.monotonic() - start_time) * 1000),
                span_id=span_id,
                **trace_ctx.log_fields(),
            )
            raise

        log.info(
            MODEL_CALL_COMPLETED,
            model_id=self.model,
            stream=False,
            latency_ms=int((time.monotonic() - start_time) * 1000),
            tool_call_count=len(llm_response["tool_calls"]),
            content_length=len(llm_response["content"]),
            prompt_tokens=llm_response["usage"].get("prompt_tokens", 0),
            completion_tokens=llm_response["usage"].get("completion_tokens", 0),
            span_id=span_id,
            **trace_ctx.log_fields(),
        )
        return llm_response

    async def _post(self, payload: dict[str, Any], api_key: str) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(
                    self.endpoint, json=payload, headers=self._headers(api_key, stream=False)
                )
                response.raise_for_status()
                response_data = response.json()
        except Exception as e:
            raise map_transport_error(e, self.endpoint, self.timeout_seconds) from e

        if not isinstance(response_data, dict):
            raise LLMInvalidResponse("Response body is not a JSON object")

        # OpenRouter can answer 200 with an error object
        error_obj = response_data.get("error")
        if error_obj is not None:
            message = (
                error_obj.get("message", error_obj) if isinstance(error_obj, dict) else error_obj
            )
            raise LLMClientError(f"API returned error: {message}")
        return response_data

    async def complete_streaming(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        cancel_token: CancellationToken,
        listener: StreamListener,
        trace_ctx: TraceContext | None = None,
    ) -> StreamOutcome:
        """Stream a completion, abandoning it if the model starts a tool call.

        Listener callbacks: ``on_start`` once the response is accepted,
        ``on_delta`` for coalesced text, ``on_abort`` when the stream is
        abandoned (tool call, cancellation or failure after start).

        Args:
            messages: Full conversation history.
            tools: Tool definitions offered to the model.
            cancel_token: Run cancellation token.
            listener: Receives stream lifecycle callbacks.
            trace_ctx: Trace context for telemetry correlation.

        Returns:
            ``StreamOutcome.aborted_for_tools()`` or ``StreamOutcome.completed(text)``.

        Raises:
            LLMConfigurationError: If no API key is configured.
            RunCancelled: If the token fired before or during the stream.
            LLMClientError: For transport or status failures.
        """
        api_key = self._require_api_key()
        cancel_token.raise_if_cancelled()

        trace_ctx = trace_ctx or TraceContext.new_trace()
        _, span_id = trace_ctx.new_span()
        payload = build_chat_completions_request(
            messages=messages,
            model=self.model,
            tools=tools,
            parallel_tool_calls=self.parallel_tool_calls,
            stream=True,
        )
        reader = _StreamReader(
            listener, DeltaCoalescer(self.delta_interval_seconds, listener.on_delta)
        )

        start_time = time.monotonic()
        log.info(
            MODEL_CALL_STARTED,
            model_id=self.model,
            endpoint=self.endpoint,
            stream=True,
            message_count=len(payload["messages"]),
            span_id=span_id,
            **trace_ctx.log_fields(),
        )

        try:
            outcome = await cancel_token.guard(self._stream(payload, api_key, reader))
        except RunCancelled:
            reader.coalescer.cancel()
            if reader.started and not reader.finished:
                await listener.on_abort()
            log.info("stream_cancelled", span_id=span_id, **trace_ctx.log_fields())
            raise
        except LLMClientError as e:
            reader.coalescer.cancel()
            if reader.started and not reader.finished:
                await listener.on_abort()
            log.error(
                MODEL_CALL_ERROR,
                model_id=self.model,
                stream=True,
                error_type=type(e).__name__,
                error=str(e),
                latency_ms=int((time.monotonic() - start_time) * 1000),
                span_id=span_id,
                **trace_ctx.log_fields(),
            )
            raise

        latency_ms = int((time.monotonic() - start_time) * 1000)
        if outcome.aborted:
            log.info(
                STREAM_ABORTED_FOR_TOOLS,
                discarded_chars=len(reader.text),
                latency_ms=latency_ms,
                span_id=span_id,
                **trace_ctx.log_fields(),
            )
        else:
            log.info(
                STREAM_COMPLETED,
                content_length=len(outcome.text),
                deltas_delivered=reader.coalescer.delivered,
                latency_ms=latency_ms,
                span_id=span_id,
                **trace_ctx.log_fields(),
            )
        return outcome

    async def _stream(
        self, payload: dict[str, Any], api_key: str, reader: "_StreamReader"
    ) -> StreamOutcome:
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self.endpoint,
                    json=payload,
                    headers=self._headers(api_key, stream=True),
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        response.raise_for_status()
                    log.debug(STREAM_STARTED, status_code=response.status_code)
                    return await reader.read(response)
        except LLMClientError:
            raise
        except Exception as e:
            raise map_transport_error(e, self.endpoint, self.timeout_seconds) from e


class _StreamReader:
    """State of one streaming read."""

    def __init__(self, listener: StreamListener, coalescer: DeltaCoalescer) -> None:
        self.listener = listener
        self.coalescer = coalescer
        self.started = False
        self.finished = False
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def read(self, response: httpx.Response) -> StreamOutcome:
        self.started = True
        await self.listener.on_start()

        decoder = SSEDecoder()
        async for chunk in response.aiter_text():
            for event in decoder.feed(chunk):
                outcome = await self._handle(event)
                if outcome is not None:
                    return outcome
        for event in decoder.flush():
            outcome = await self._handle(event)
            if outcome is not None:
                return outcome
        return await self._complete()

    async def _handle(self, event: SSEEvent) -> StreamOutcome | None:
        if event.is_done:
            return await self._complete()
        record = parse_record(event)
        if record is None:
            return None
        if "error" in record:
            error = record["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise LLMServerError(f"Stream error: {message}")
        delta = extract_delta(record)
        if delta is None:
            return None
        if delta.get("tool_calls"):
            await self.coalescer.flush()
            self.finished = True
            await self.listener.on_abort()
            return StreamOutcome.aborted_for_tools()
        content = delta.get("content")
        if isinstance(content, str) and content:
            self._parts.append(content)
            await self.coalescer.push(content)
        return None

    async def _complete(self) -> StreamOutcome:
        await self.coalescer.flush()
        self.finished = True
        return StreamOutcome.completed(self.text)
