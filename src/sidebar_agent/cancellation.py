"""Cooperative cancellation for agent runs.

A CancellationToken is created per run by the RunManager and handed to
every suspension point: loop boundaries poll it, network calls race it.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class RunCancelled(Exception):
    """Raised at a checked boundary once the run's token has fired."""

    def __init__(self, reason: str = "run cancelled") -> None:  # noqa: D107
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """One-shot cancellation signal shared by a run and its callers.

    Cancelling is idempotent. The token never raises on its own; callers
    decide where to check it (``raise_if_cancelled``) or race it against
    in-flight work (``guard``).
    """

    def __init__(self) -> None:  # noqa: D107
        self._event = asyncio.Event()
        self._reason = "run cancelled"

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    @property
    def reason(self) -> str:
        """Reason given to the first ``cancel`` call."""
        return self._reason

    def cancel(self, reason: str = "run cancelled") -> None:
        """Request cancellation.

        Args:
            reason: Human-readable reason, kept from the first call only.
        """
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise RunCancelled when the token has fired.

        Raises:
            RunCancelled: If cancellation was requested.
        """
        if self._event.is_set():
            raise RunCancelled(self._reason)

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Run an awaitable, aborting it as soon as the token fires.

        The awaitable runs as its own task. If the token fires first the
        task is cancelled (closing any open connection) and RunCancelled
        is raised instead of waiting for the result.

        Args:
            awaitable: Coroutine or future to run.

        Returns:
            The awaitable's result.

        Raises:
            RunCancelled: If the token fired before the awaitable finished,
                including when it had already fired on entry.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelled(self._reason)

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise RunCancelled(self._reason)
