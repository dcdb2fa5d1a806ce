"""Run manager: at most one live run per session key."""

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from sidebar_agent.cancellation import CancellationToken
from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import (
    CANCEL_REQUESTED,
    RUN_REJECTED,
    RUN_RELEASED,
    RUN_STARTED,
)

log = get_logger(__name__)


class AlreadyRunningError(Exception):
    """A run is already live for the session key."""

    def __init__(self, session_key: str) -> None:  # noqa: D107
        super().__init__(f"A run is already in progress for session '{session_key}'")
        self.session_key = session_key


@dataclass
class Run:
    """One live run.

    Attributes:
        session_key: Session the run belongs to.
        token: Cancellation token handed to every suspension point.
        started_at: Wall-clock start time (epoch seconds).
        turn_count: Model turns taken so far.
        run_id: Unique id of the run.
    """

    session_key: str
    token: CancellationToken = field(default_factory=CancellationToken)
    started_at: float = field(default_factory=time.time)
    turn_count: int = 0
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class RunManager:
    """Owns the map of live runs.

    Starting a second run for a busy session is rejected rather than
    cancelling the first.
    """

    def __init__(self) -> None:  # noqa: D107
        self._runs: dict[str, Run] = {}

    def start(self, session_key: str) -> Run:
        """Register a new run.

        Args:
            session_key: Session to run in.

        Returns:
            The new Run with a fresh token.

        Raises:
            AlreadyRunningError: If the session already has a live run.
        """
        if session_key in self._runs:
            log.warning(RUN_REJECTED, session_key=session_key)
            raise AlreadyRunningError(session_key)
        run = Run(session_key=session_key)
        self._runs[session_key] = run
        log.info(RUN_STARTED, session_key=session_key, run_id=run.run_id)
        return run

    def get(self, session_key: str) -> Run | None:
        return self._runs.get(session_key)

    def is_running(self, session_key: str) -> bool:
        return session_key in self._runs

    def active_sessions(self) -> list[str]:
        """Session keys with a live run."""
        return list(self._runs)

    def cancel(self, session_key: str, reason: str = "cancelled by user") -> bool:
        """Fire the token of a session's live run.

        Returns:
            True if a run was live.
        """
        run = self._runs.get(session_key)
        if run is None:
            return False
        log.info(CANCEL_REQUESTED, session_key=session_key, run_id=run.run_id, reason=reason)
        run.token.cancel(reason)
        return True

    def finish(self, session_key: str, run: Run | None = None) -> None:
        """Release a session's slot.

        Safe to call more than once. When ``run`` is given, the slot is only
        released if it still belongs to that run.
        """
        current = self._runs.get(session_key)
        if current is None or (run is not None and current is not run):
            return
        del self._runs[session_key]
        log.info(
            RUN_RELEASED,
            session_key=session_key,
            run_id=current.run_id,
            turn_count=current.turn_count,
            duration_seconds=round(time.time() - current.started_at, 2),
        )

    @asynccontextmanager
    async def active(self, run: Run) -> AsyncIterator[Run]:
        """Hold a started run's slot for the duration of the block.

        The slot is released on every exit path.
        """
        try:
            yield run
        finally:
            self.finish(run.session_key, run)
