"""Precondition checks applied before a tool is dispatched."""

from urllib.parse import urlsplit

from sidebar_agent.tools.types import TabInfo

RESTRICTED_CONTEXT = "restricted context"
DOMAIN_NOT_ALLOWED = "Domain not allowed by policy"
NO_ACTIVE_TAB = "no active tab"


class PermissionResult:
    """Result of a permission check."""

    def __init__(self, allowed: bool, reason: str = "") -> None:
        """Initialize permission result.

        Args:
            allowed: Whether permission is granted.
            reason: Reason for denial (if not allowed).
        """
        self.allowed = allowed
        self.reason = reason

    def __bool__(self) -> bool:
        return self.allowed

    def __repr__(self) -> str:
        return f"PermissionResult(allowed={self.allowed!r}, reason={self.reason!r})"


ALLOWED = PermissionResult(allowed=True)


def is_restricted_url(url: str, restricted_prefixes: list[str]) -> bool:
    """Whether a URL belongs to an internal page tools must not touch.

    Args:
        url: URL to check.
        restricted_prefixes: Lowercase URL prefixes (e.g. ``chrome://``).

    Returns:
        True if the URL starts with any restricted prefix.
    """
    lowered = url.strip().lower()
    return any(lowered.startswith(prefix) for prefix in restricted_prefixes)


def check_tab_context(tab: TabInfo | None, restricted_prefixes: list[str]) -> PermissionResult:
    """Check that a page or capture tool may act on a tab.

    Args:
        tab: The session tab, or None if it no longer exists.
        restricted_prefixes: Restricted URL prefixes.

    Returns:
        Denied with "no active tab" or "restricted context", else allowed.
    """
    if tab is None:
        return PermissionResult(allowed=False, reason=NO_ACTIVE_TAB)
    if is_restricted_url(tab.url, restricted_prefixes):
        return PermissionResult(allowed=False, reason=RESTRICTED_CONTEXT)
    return ALLOWED


def check_navigation(url: str, restricted_prefixes: list[str]) -> PermissionResult:
    """Check that a tab may be opened on a URL.

    Args:
        url: Target URL.
        restricted_prefixes: Restricted URL prefixes.

    Returns:
        Denied with "restricted context" for internal pages, else allowed.
    """
    if is_restricted_url(url, restricted_prefixes):
        return PermissionResult(allowed=False, reason=RESTRICTED_CONTEXT)
    return ALLOWED


def is_domain_allowed(host: str, allowlist: list[str]) -> bool:
    """Whether a host is covered by the allowlist.

    An empty allowlist allows every host. Otherwise the host must equal an
    entry or be a subdomain of one.

    Args:
        host: Lowercase hostname.
        allowlist: Normalized domain entries.

    Returns:
        True if the host may be fetched.
    """
    if not allowlist:
        return True
    return any(host == domain or host.endswith(f".{domain}") for domain in allowlist)


def check_fetch(url: str, allowlist: list[str]) -> PermissionResult:
    """Check that the fetch proxy may GET a URL.

    Args:
        url: Target URL.
        allowlist: Normalized domain allowlist (empty = all domains).

    Returns:
        Denied with "restricted context" for non-http(s) URLs, with
        "Domain not allowed by policy" outside the allowlist, else allowed.
    """
    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        return PermissionResult(allowed=False, reason=RESTRICTED_CONTEXT)
    if not is_domain_allowed(parts.hostname.lower(), allowlist):
        return PermissionResult(allowed=False, reason=DOMAIN_NOT_ALLOWED)
    return ALLOWED
