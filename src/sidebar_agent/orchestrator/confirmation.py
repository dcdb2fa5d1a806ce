"""Confirmation broker: correlates approval requests with user decisions.

The automation side raises a request and waits on it; the UI resolves it
later from an unrelated call. The two meet only through the call id, which
keys a future in the pending map. Each future resolves once: by the first
decision or by the timeout (denied). A request nobody waits on is dropped
when its timeout expires.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from sidebar_agent.orchestrator.events import ProgressEvent
from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import (
    APPROVAL_DENIED,
    APPROVAL_GRANTED,
    APPROVAL_IGNORED,
    APPROVAL_REQUIRED,
    APPROVAL_TIMEOUT,
)

log = get_logger(__name__)

DEFAULT_PROMPT = "Proceed?"

Notifier = Callable[[ProgressEvent], Awaitable[object]]


@dataclass
class ConfirmationRequest:
    """One outstanding approval request."""

    call_id: str
    prompt_text: str
    tab_id: int | None = None
    created_at: float = field(default_factory=time.time)
    future: "asyncio.Future[bool]" = field(
        default_factory=lambda: asyncio.get_running_loop().create_future(), repr=False
    )
    expiry: asyncio.TimerHandle | None = field(default=None, repr=False)


class ConfirmationBroker:
    """Pending-request map with resolve-once semantics."""

    def __init__(self, notify: Notifier | None = None, timeout_seconds: float = 10.0) -> None:
        """Initialize the broker.

        Args:
            notify: Delivers the confirmation-request event to the UI.
            timeout_seconds: Default wait before a request counts as denied.
        """
        self._notify = notify
        self.timeout_seconds = timeout_seconds
        self._pending: dict[str, ConfirmationRequest] = {}

    async def request(
        self,
        prompt_text: str = DEFAULT_PROMPT,
        tab_id: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """Register a request and forward its prompt to the UI.

        Args:
            prompt_text: Question shown to the user.
            tab_id: Tab that raised the request.
            timeout: Seconds until the request expires as denied; defaults
                to the broker's timeout.

        Returns:
            The new call id.
        """
        call_id = uuid.uuid4().hex
        request = ConfirmationRequest(
            call_id=call_id, prompt_text=prompt_text or DEFAULT_PROMPT, tab_id=tab_id
        )
        wait = self.timeout_seconds if timeout is None else timeout
        request.expiry = asyncio.get_running_loop().call_later(wait, self._expire, call_id, wait)
        self._pending[call_id] = request
        log.info(APPROVAL_REQUIRED, call_id=call_id, tab_id=tab_id)
        if self._notify is not None:
            await self._notify(
                ProgressEvent.confirmation_request(
                    call_id=call_id, prompt_text=request.prompt_text, tab_id=tab_id
                )
            )
        return call_id

    async def await_decision(self, call_id: str, timeout: float | None = None) -> bool:
        """Wait for the decision on a request.

        Args:
            call_id: Id returned by ``request``.
            timeout: Seconds to wait; defaults to the broker's timeout.

        Returns:
            True only if the user approved in time. Unknown ids and timeouts
            count as denied.
        """
        request = self._pending.get(call_id)
        if request is None:
            return False
        wait = self.timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(asyncio.shield(request.future), timeout=wait)
        except asyncio.TimeoutError:
            if not request.future.done():
                request.future.set_result(False)
            log.info(APPROVAL_TIMEOUT, call_id=call_id, timeout_seconds=wait)
            return False
        finally:
            self._discard(call_id)

    async def confirm(
        self,
        prompt_text: str = DEFAULT_PROMPT,
        tab_id: int | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Request a decision and wait for it."""
        call_id = await self.request(prompt_text, tab_id, timeout)
        return await self.await_decision(call_id, timeout)

    def resolve(self, call_id: str, approved: bool) -> bool:
        """Record the user's decision.

        Args:
            call_id: Id from the confirmation-request event.
            approved: The decision.

        Returns:
            True if the decision was applied; False (no effect) for unknown,
            expired or already resolved ids.
        """
        request = self._pending.get(call_id)
        if request is None or request.future.done():
            log.info(APPROVAL_IGNORED, call_id=call_id)
            return False
        request.future.set_result(bool(approved))
        log.info(APPROVAL_GRANTED if approved else APPROVAL_DENIED, call_id=call_id)
        return True

    def pending(self) -> list[ConfirmationRequest]:
        """Requests still awaiting a decision."""
        return [request for request in self._pending.values() if not request.future.done()]

    def _expire(self, call_id: str, wait: float) -> None:
        request = self._pending.get(call_id)
        if request is None:
            return
        if not request.future.done():
            request.future.set_result(False)
            log.info(APPROVAL_TIMEOUT, call_id=call_id, timeout_seconds=wait)
        self._discard(call_id)

    def _discard(self, call_id: str) -> None:
        request = self._pending.pop(call_id, None)
        if request is not None and request.expiry is not None:
            request.expiry.cancel()
