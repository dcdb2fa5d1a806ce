"""Delta coalescing for streamed assistant text."""

import asyncio
import time
from collections.abc import Awaitable, Callable


class DeltaCoalescer:
    """Batches text fragments so listeners see at most one delta per interval.

    The first fragment is delivered immediately. Later fragments are held
    until the interval since the previous delivery has elapsed; a timer
    delivers them then even if no further fragment arrives. ``flush``
    delivers whatever is pending (at stream end or before an abort) and
    ``cancel`` stops the timer without delivering. Concatenating every
    delivered delta always reproduces the pushed text.

    Args:
        interval_seconds: Minimum spacing between deliveries.
        emit: Async callback receiving the coalesced text.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        interval_seconds: float,
        emit: Callable[[str], Awaitable[None]],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:  # noqa: D107
        self.interval_seconds = interval_seconds
        self._emit = emit
        self._clock = clock
        self._pending: list[str] = []
        self._last_emit: float | None = None
        self._timer: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self.delivered = 0

    @property
    def pending_text(self) -> str:
        """Text pushed but not yet delivered."""
        return "".join(self._pending)

    async def push(self, text: str) -> None:
        """Add a fragment and deliver it now or schedule its delivery.

        Args:
            text: Non-empty fragment of assistant text.
        """
        if not text:
            return
        self._pending.append(text)
        if self._last_emit is None:
            await self.flush()
            return
        wait = self._last_emit + self.interval_seconds - self._clock()
        if wait <= 0:
            await self.flush()
        elif self._timer is None:
            self._timer = asyncio.create_task(self._flush_after(wait))

    async def flush(self) -> None:
        """Deliver all pending text as one delta."""
        self.cancel()
        await self._deliver()

    def cancel(self) -> None:
        """Stop a scheduled delivery. Pending text stays pending."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _flush_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timer = None
        await self._deliver()

    async def _deliver(self) -> None:
        # Serialized so a timer delivery and a flush keep fragment order
        async with self._lock:
            if not self._pending:
                return
            text = "".join(self._pending)
            self._pending.clear()
            self._last_emit = self._clock()
            self.delivered += 1
            await self._emit(text)
