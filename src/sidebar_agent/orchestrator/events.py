"""Progress events and the channels that carry them to the UI.

Every run publishes into its own bounded EventChannel. Publishing never
raises: a full channel is waited on for a bounded time and the event is
dropped (and logged) after that, so a slow or absent listener can never
abort a run. Terminal events and ``status-idle`` skip the capacity bound
and are always delivered to a channel that is still open.
"""

import asyncio
from typing import Any, Literal

from pydantic import BaseModel, Field

from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import EVENT_DROPPED, EVENT_SUBSCRIBER_FAILED
from sidebar_agent.tools.types import Step

log = get_logger(__name__)

EventKind = Literal[
    "stream-start",
    "stream-delta",
    "stream-abort",
    "stream-end",
    "status-working",
    "status-idle",
    "final-answer",
    "confirmation-request",
    "error",
    "cancelled",
    "already-running",
]

TERMINAL_KINDS: frozenset[str] = frozenset(
    {"stream-end", "final-answer", "error", "cancelled", "already-running"}
)
_UNBOUNDED_KINDS = TERMINAL_KINDS | {"status-idle"}


class ProgressEvent(BaseModel):
    """One progress or result notification for the UI."""

    kind: EventKind
    session_key: str | None = None
    trace_id: str | None = None
    tab_id: int | None = None
    text: str | None = None
    step: Step | None = None
    steps: list[Step] | None = None
    duration_seconds: float | None = None
    call_id: str | None = None
    prompt_text: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict without unset fields."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def stream_start(cls, **fields: Any) -> "ProgressEvent":
        return cls(kind="stream-start", **fields)

    @classmethod
    def stream_delta(cls, text: str, **fields: Any) -> "ProgressEvent":
        return cls(kind="stream-delta", text=text, **fields)

    @classmethod
    def stream_abort(cls, **fields: Any) -> "ProgressEvent":
        return cls(kind="stream-abort", **fields)

    @classmethod
    def stream_end(
        cls, duration_seconds: float, steps: list[Step], **fields: Any
    ) -> "ProgressEvent":
        return cls(kind="stream-end", duration_seconds=duration_seconds, steps=steps, **fields)

    @classmethod
    def working(cls, text: str, step: Step | None = None, **fields: Any) -> "ProgressEvent":
        return cls(kind="status-working", text=text, step=step, **fields)

    @classmethod
    def idle(cls, **fields: Any) -> "ProgressEvent":
        return cls(kind="status-idle", **fields)

    @classmethod
    def final_answer(
        cls, text: str, steps: list[Step], duration_seconds: float, **fields: Any
    ) -> "ProgressEvent":
        return cls(
            kind="final-answer",
            text=text,
            steps=steps,
            duration_seconds=duration_seconds,
            **fields,
        )

    @classmethod
    def confirmation_request(
        cls, call_id: str, prompt_text: str, **fields: Any
    ) -> "ProgressEvent":
        return cls(kind="confirmation-request", call_id=call_id, prompt_text=prompt_text, **fields)

    @classmethod
    def error(cls, text: str, **fields: Any) -> "ProgressEvent":
        return cls(kind="error", text=text, **fields)

    @classmethod
    def cancelled(cls, text: str = "Cancelled.", **fields: Any) -> "ProgressEvent":
        return cls(kind="cancelled", text=text, **fields)

    @classmethod
    def already_running(cls, **fields: Any) -> "ProgressEvent":
        return cls(
            kind="already-running",
            text="A request is already running for this conversation.",
            **fields,
        )


_CLOSED = object()


class EventChannel:
    """Bounded, single-consumer queue of progress events.

    Capacity is tracked with a semaphore so that ``close`` and unbounded
    kinds can always enqueue without waiting.
    """

    def __init__(self, maxsize: int = 256, publish_timeout: float = 5.0, name: str = "") -> None:
        """Initialize the channel.

        Args:
            maxsize: Bounded events buffered before publishers wait.
            publish_timeout: Seconds a publisher waits for room.
            name: Label used in logs (usually the session key).
        """
        self.name = name
        self.publish_timeout = publish_timeout
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._slots = asyncio.Semaphore(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: ProgressEvent) -> bool:
        """Enqueue an event.

        Args:
            event: Event to deliver.

        Returns:
            True if enqueued, False if dropped (closed channel or timeout).
        """
        if self._closed:
            log.debug(EVENT_DROPPED, channel=self.name, kind=event.kind, reason="closed")
            return False
        if event.kind in _UNBOUNDED_KINDS:
            self._queue.put_nowait((event, False))
            return True
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.publish_timeout)
        except asyncio.TimeoutError:
            log.warning(EVENT_DROPPED, channel=self.name, kind=event.kind, reason="full")
            return False
        if self._closed:
            self._slots.release()
            return False
        self._queue.put_nowait((event, True))
        return True

    def close(self) -> None:
        """Stop accepting events; readers finish after draining what is queued."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other reader
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        event, bounded = item
        if bounded:
            self._slots.release()
        return event


class EventHub:
    """Routes events to live run channels and global subscribers.

    Run channels are keyed by session key (at most one live run each).
    Global subscribers receive everything passed to ``broadcast``, which
    is how confirmation requests reach a UI that is not consuming a run.
    """

    def __init__(self, channel_size: int = 256, publish_timeout: float = 5.0) -> None:
        """Initialize the hub.

        Args:
            channel_size: Capacity of each channel created by the hub.
            publish_timeout: Publish wait applied by each channel.
        """
        self.channel_size = channel_size
        self.publish_timeout = publish_timeout
        self._sessions: dict[str, EventChannel] = {}
        self._subscribers: list[EventChannel] = []

    def attach(self, session_key: str) -> EventChannel:
        """Create the channel of a new run for a session."""
        channel = EventChannel(self.channel_size, self.publish_timeout, name=session_key)
        self._sessions[session_key] = channel
        return channel

    def detach(self, session_key: str, channel: EventChannel) -> None:
        """Close and forget a run channel."""
        channel.close()
        if self._sessions.get(session_key) is channel:
            del self._sessions[session_key]

    def channel_for(self, session_key: str) -> EventChannel | None:
        return self._sessions.get(session_key)

    def subscribe(self) -> EventChannel:
        """Open a global subscription."""
        channel = EventChannel(self.channel_size, self.publish_timeout, name="global")
        self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: EventChannel) -> None:
        """Close a global subscription."""
        channel.close()
        if channel in self._subscribers:
            self._subscribers.remove(channel)

    async def publish(self, session_key: str, event: ProgressEvent) -> bool:
        """Send an event to the live run channel of a session, if any."""
        channel = self._sessions.get(session_key)
        if channel is None:
            return False
        return await channel.publish(event)

    async def broadcast(self, event: ProgressEvent) -> int:
        """Send an event to every live run channel and global subscriber.

        Returns:
            Number of channels that accepted the event.
        """
        delivered = 0
        for channel in [*self._sessions.values(), *self._subscribers]:
            if await channel.publish(event):
                delivered += 1
            elif channel.closed and channel in self._subscribers:
                log.info(EVENT_SUBSCRIBER_FAILED, channel=channel.name, kind=event.kind)
                self._subscribers.remove(channel)
        return delivered
