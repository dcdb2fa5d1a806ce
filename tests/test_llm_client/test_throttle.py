"""Tests for delta coalescing."""

import asyncio

import pytest

from sidebar_agent.llm_client.throttle import DeltaCoalescer


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """A clock starting at zero."""
    return FakeClock()


class TestDeltaCoalescer:
    """Test DeltaCoalescer batching."""

    @pytest.mark.asyncio
    async def test_first_fragment_is_immediate(self, clock: FakeClock) -> None:
        """Test the first push is delivered without waiting."""
        emitted: list[str] = []

        async def emit(text: str) -> None:
            emitted.append(text)

        coalescer = DeltaCoalescer(0.1, emit, clock=clock)
        await coalescer.push("Hel")

        assert emitted == ["Hel"]

    @pytest.mark.asyncio
    async def test_fragments_within_interval_are_batched(self, clock: FakeClock) -> None:
        """Test pushes inside the interval wait for the next delivery."""
        emitted: list[str] = []

        async def emit(text: str) -> None:
            emitted.append(text)

        coalescer = DeltaCoalescer(0.1, emit, clock=clock)
        await coalescer.push("a")
        clock.now = 0.03
        await coalescer.push("b")
        clock.now = 0.06
        await coalescer.push("c")

        assert emitted == ["a"]
        assert coalescer.pending_text == "bc"

        clock.now = 0.12
        await coalescer.push("d")

        assert emitted == ["a", "bcd"]
        assert coalescer.delivered == 2

    @pytest.mark.asyncio
    async def test_flush_delivers_remainder(self, clock: FakeClock) -> None:
        """Test concatenated deliveries reproduce every pushed fragment."""
        emitted: list[str] = []

        async def emit(text: str) -> None:
            emitted.append(text)

        coalescer = DeltaCoalescer(1.0, emit, clock=clock)
        for fragment in ["The ", "answer ", "is ", "42."]:
            await coalescer.push(fragment)
        await coalescer.flush()
        await coalescer.flush()

        assert "".join(emitted) == "The answer is 42."
        assert emitted == ["The ", "answer is 42."]

    @pytest.mark.asyncio
    async def test_empty_fragments_are_ignored(self, clock: FakeClock) -> None:
        """Test empty pushes never produce a delivery."""
        emitted: list[str] = []

        async def emit(text: str) -> None:
            emitted.append(text)

        coalescer = DeltaCoalescer(0.0, emit, clock=clock)
        await coalescer.push("")
        await coalescer.flush()

        assert emitted == []

    @pytest.mark.asyncio
    async def test_held_text_is_delivered_during_a_pause(self) -> None:
        """Test held text goes out one interval later without another fragment."""
        emitted: list[str] = []

        async def emit(text: str) -> None:
            emitted.append(text)

        coalescer = DeltaCoalescer(0.05, emit)
        await coalescer.push("Hel")
        await coalescer.push("lo")

        assert emitted == ["Hel"]

        await asyncio.sleep(0.2)

        assert emitted == ["Hel", "lo"]
        assert coalescer.pending_text == ""
        assert coalescer.delivered == 2

    @pytest.mark.asyncio
    async def test_cancel_stops_scheduled_delivery(self) -> None:
        """Test cancel keeps held text undelivered."""
        emitted: list[str] = []

        async def emit(text: str) -> None:
            emitted.append(text)

        coalescer = DeltaCoalescer(0.05, emit)
        await coalescer.push("Hel")
        await coalescer.push("lo")
        coalescer.cancel()
        await asyncio.sleep(0.2)

        assert emitted == ["Hel"]
        assert coalescer.pending_text == "lo"
