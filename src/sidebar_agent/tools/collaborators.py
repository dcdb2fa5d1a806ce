"""Interfaces of the external collaborators the dispatcher routes to.

The browser itself (tabs, capture, in-page automation) lives outside this
process; these protocols are what a bridge has to provide. The in-memory
key-value store is the default backing for the ``mcp.fs`` and
``mcp.rag`` utilities.
"""

import asyncio
import copy
from typing import Any, Protocol

from sidebar_agent.tools.types import TabInfo


class CollaboratorUnavailable(Exception):
    """The collaborator could not be reached or did not answer in time.

    Distinct from a collaborator that answered with ``ok: false``.
    """


class BrowserController(Protocol):
    """Tab and window operations."""

    async def list_tabs(self) -> list[TabInfo]:
        """All open tabs."""
        ...

    async def get_tab(self, tab_id: int) -> TabInfo | None:
        """One tab, or None if it no longer exists."""
        ...

    async def open_tab(self, url: str) -> TabInfo:
        """Open and activate a new tab."""
        ...

    async def activate_tab(self, tab_id: int) -> TabInfo:
        """Bring a tab to the front."""
        ...

    async def close_tab(self, tab_id: int) -> None:
        """Close a tab."""
        ...

    async def capture_visible_tab(self, tab_id: int) -> str:
        """Image of the visible area as a ``data:`` URL."""
        ...


class AutomationTransport(Protocol):
    """Message channel to the automation script running inside a tab."""

    async def send(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]:
        """Deliver a request and return the script's response.

        Raises:
            CollaboratorUnavailable: If no receiver exists in the tab.
        """
        ...

    async def inject(self, tab_id: int) -> None:
        """(Re-)install the automation script in a tab."""
        ...


class FetchProxy(Protocol):
    """Network GET performed outside the page."""

    async def get(self, url: str, headers: dict[str, str] | None = None) -> dict[str, Any]:
        """Return ``{status, headers, body}``."""
        ...


class KeyValueStore(Protocol):
    """Persistent key-value storage."""

    async def get(self, key: str, default: Any = None) -> Any:
        """Value stored under a key."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Replace the value under a key."""
        ...


class InMemoryKeyValueStore:
    """Process-local KeyValueStore.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        """Initialize the store.

        Args:
            initial: Optional starting contents (e.g. a ``notes`` corpus).
        """
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = asyncio.Lock()

    async def get(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)
