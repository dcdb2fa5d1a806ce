"""Conversation history store with compaction at persist time."""

import asyncio
import copy
from typing import Any

from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import (
    HISTORY_CLEARED,
    HISTORY_COMPACTED,
    HISTORY_LOADED,
    HISTORY_PERSISTED,
)

log = get_logger(__name__)

TRUNCATION_MARKER = "…[truncated]"

DEFAULT_MAX_MESSAGES = 40
DEFAULT_TOOL_CONTENT_LIMIT = 4000
DEFAULT_CONTENT_LIMIT = 16000


def truncate_content(content: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters, ending with the marker.

    The result (marker included) never exceeds ``limit``, so truncating an
    already-truncated text is a no-op.
    """
    if len(content) <= limit:
        return content
    keep = max(0, limit - len(TRUNCATION_MARKER))
    return content[:keep] + TRUNCATION_MARKER


def compact_history(
    messages: list[dict[str, Any]],
    max_messages: int = DEFAULT_MAX_MESSAGES,
    tool_content_limit: int = DEFAULT_TOOL_CONTENT_LIMIT,
    content_limit: int = DEFAULT_CONTENT_LIMIT,
) -> list[dict[str, Any]]:
    """Bound a history for storage.

    Keeps the most recent ``max_messages`` messages, then truncates tool
    message content beyond ``tool_content_limit`` and any other content
    beyond ``content_limit``. Idempotent.

    Args:
        messages: History in chat-completions message format.
        max_messages: Messages retained.
        tool_content_limit: Characters kept of one tool message.
        content_limit: Characters kept of any message.

    Returns:
        A new list; input messages are not modified.
    """
    window = messages[-max_messages:] if max_messages > 0 else []
    compacted = []
    for message in window:
        content = message.get("content")
        if isinstance(content, str):
            limit = content_limit
            if message.get("role") == "tool":
                limit = min(tool_content_limit, content_limit)
            if len(content) > limit:
                message = {**message, "content": truncate_content(content, limit)}
        compacted.append(message)
    return compacted


class ConversationStore:
    """Per-session message history.

    The active run is the only writer for a session; readers get deep
    copies of fully persisted snapshots.
    """

    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        tool_content_limit: int = DEFAULT_TOOL_CONTENT_LIMIT,
        content_limit: int = DEFAULT_CONTENT_LIMIT,
    ) -> None:
        """Initialize the store.

        Args:
            max_messages: Messages retained per session.
            tool_content_limit: Characters kept of one tool message.
            content_limit: Characters kept of any message.
        """
        self.max_messages = max_messages
        self.tool_content_limit = tool_content_limit
        self.content_limit = content_limit
        self._sessions: dict[str, list[dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def compact(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Apply this store's compaction policy."""
        return compact_history(
            messages,
            max_messages=self.max_messages,
            tool_content_limit=self.tool_content_limit,
            content_limit=self.content_limit,
        )

    async def load(self, session_key: str) -> list[dict[str, Any]]:
        """Stored history of a session (empty if none).

        Args:
            session_key: Conversation identifier.

        Returns:
            A private copy of the messages.
        """
        async with self._lock:
            messages = copy.deepcopy(self._sessions.get(session_key, []))
        log.debug(HISTORY_LOADED, session_key=session_key, message_count=len(messages))
        return messages

    async def persist(
        self, session_key: str, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Compact and store a session's history.

        Args:
            session_key: Conversation identifier.
            messages: Full working history of the finished run.

        Returns:
            Copy of what was stored.
        """
        compacted = self.compact(copy.deepcopy(messages))
        if compacted != messages:
            log.info(
                HISTORY_COMPACTED,
                session_key=session_key,
                before=len(messages),
                after=len(compacted),
            )
        async with self._lock:
            self._sessions[session_key] = compacted
        log.info(HISTORY_PERSISTED, session_key=session_key, message_count=len(compacted))
        return copy.deepcopy(compacted)

    async def clear(self, session_key: str) -> bool:
        """Delete a session's history.

        Returns:
            True if there was history to delete.
        """
        async with self._lock:
            existed = self._sessions.pop(session_key, None) is not None
        log.info(HISTORY_CLEARED, session_key=session_key, existed=existed)
        return existed

    async def list_sessions(self) -> list[str]:
        """Keys of sessions with stored history."""
        async with self._lock:
            return sorted(self._sessions)
