"""Request/response client for the in-page automation script."""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from sidebar_agent.telemetry import get_logger
from sidebar_agent.telemetry.events import APPROVAL_DENIED, AUTOMATION_REINJECTED
from sidebar_agent.tools.collaborators import AutomationTransport, CollaboratorUnavailable
from sidebar_agent.tools.types import ToolResult

log = get_logger(__name__)

NO_RECEIVER_MARKER = "Receiving end does not exist"
REQUEST_TYPE = "EXT_TOOL"
CONFIRM_REQUEST_TYPE = "CONFIRM_REQUEST"
CONFIRM_RESPONSE_TYPE = "CONFIRM_RESPONSE"

# (prompt_text, tab_id) -> approved
Confirmer = Callable[[str, int | None], Awaitable[bool]]


def _is_missing_receiver(response: dict[str, Any] | None, error: Exception | None) -> bool:
    if error is not None:
        return NO_RECEIVER_MARKER in str(error)
    if response is None or response.get("ok"):
        return False
    return NO_RECEIVER_MARKER in str(response.get("error") or "")


class AutomationClient:
    """Calls a page tool in a tab and normalizes the reply to a ToolResult.

    Two failure families are kept apart: the script never answered
    ("collaborator unavailable: ...") versus the script answered with
    ``ok: false`` (its own error text is passed through).
    """

    def __init__(
        self,
        transport: AutomationTransport,
        timeout_seconds: float = 30.0,
        confirmer: Confirmer | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            transport: Channel to the tab's automation script.
            timeout_seconds: Bounded wait for each response.
            confirmer: Asks the user to approve an action the script is about
                to take. Without one, every such request is denied.
        """
        self.transport = transport
        self.timeout_seconds = timeout_seconds
        self.confirmer = confirmer

    async def answer_confirmation(self, tab_id: int, request: dict[str, Any]) -> dict[str, Any]:
        """Get the user's decision on a ``CONFIRM_REQUEST`` from the page script.

        Bridges that receive the request outside a tool call can use this
        directly and forward the returned message to the script.

        Args:
            tab_id: Tab whose script asked.
            request: The script's message (``promptText``, optional ``callId``).

        Returns:
            The ``CONFIRM_RESPONSE`` message carrying ``ok: <approved>``.
        """
        prompt_text = str(request.get("promptText") or "")
        if self.confirmer is None:
            log.info(APPROVAL_DENIED, tab_id=tab_id, reason="no confirmer")
            approved = False
        else:
            approved = await self.confirmer(prompt_text, tab_id)
        return {"type": CONFIRM_RESPONSE_TYPE, "callId": request.get("callId"), "ok": approved}

    async def _send_once(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await asyncio.wait_for(
                self.transport.send(tab_id, message), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise CollaboratorUnavailable(
                f"no response from tab {tab_id} within {self.timeout_seconds}s"
            ) from e
        if not isinstance(response, dict):
            raise CollaboratorUnavailable(f"empty response from tab {tab_id}")
        return response

    async def _send(self, tab_id: int, message: dict[str, Any]) -> dict[str, Any]:
        response: dict[str, Any] | None = None
        error: CollaboratorUnavailable | None = None
        try:
            response = await self._send_once(tab_id, message)
        except CollaboratorUnavailable as e:
            error = e

        if not _is_missing_receiver(response, error):
            if response is None:
                raise error or CollaboratorUnavailable(f"empty response from tab {tab_id}")
            return response

        log.info(AUTOMATION_REINJECTED, tab_id=tab_id, tool_name=message.get("name"))
        try:
            await self.transport.inject(tab_id)
        except Exception as e:
            return {"ok": False, "error": f"Injection failed: {e}"}
        return await self._send_once(tab_id, message)

    async def call(self, tab_id: int, name: str, args: dict[str, Any]) -> ToolResult:
        """Run one page tool in a tab.

        Args:
            tab_id: Target tab.
            name: Page tool name (e.g. ``read_page``).
            args: Validated arguments.

        Side-effecting page tools may answer with a ``CONFIRM_REQUEST``
        first; the user's decision is sent back and the script's next reply
        is the tool's response.

        Returns:
            ToolResult. A user-declined confirmation (``{cancelled: true}``)
            is a successful result that says so.
        """
        message = {
            "type": REQUEST_TYPE,
            "name": name,
            "args": args,
            "callId": uuid.uuid4().hex,
        }
        try:
            response = await self._send(tab_id, message)
            while response.get("type") == CONFIRM_REQUEST_TYPE:
                reply = await self.answer_confirmation(tab_id, response)
                response = await self._send_once(tab_id, reply)
        except CollaboratorUnavailable as e:
            return ToolResult.failure(f"collaborator unavailable: {e}")

        if not response.get("ok"):
            return ToolResult.failure(str(response.get("error") or "automation failed"))
        if "result" in response:
            return ToolResult.success(response["result"])
        return ToolResult.success({k: v for k, v in response.items() if k != "ok"})
