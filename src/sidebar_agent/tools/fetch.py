"""HTTP GET proxy backing ``mcp.fetch.get``."""

from typing import Any

import httpx

from sidebar_agent.tools.collaborators import CollaboratorUnavailable


class HttpFetchProxy:
    """Fetches URLs with httpx and caps the returned body.

    Policy (scheme and domain allowlist) is checked by the dispatcher before
    this is called.
    """

    def __init__(
        self,
        max_body_chars: int = 500_000,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the proxy.

        Args:
            max_body_chars: Characters of the body returned.
            timeout_seconds: Overall request timeout.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.max_body_chars = max_body_chars
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def get(self, url: str, headers: dict[str, str] | None = None) -> dict[str, Any]:
        """GET a URL.

        Args:
            url: http(s) URL.
            headers: Extra request headers.

        Returns:
            ``{status, headers, body}`` with the body truncated.

        Raises:
            CollaboratorUnavailable: On timeout or connection failure.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, headers=headers or {})
        except httpx.TimeoutException as e:
            raise CollaboratorUnavailable(f"fetch timed out: {url}") from e
        except httpx.TransportError as e:
            raise CollaboratorUnavailable(f"fetch failed: {type(e).__name__}") from e

        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "body": response.text[: self.max_body_chars],
        }
