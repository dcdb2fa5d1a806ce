"""Fuzzy tab lookup for switch_tab and close_tab.

Exact substring on title or URL wins outright. Otherwise every tab is scored
by token overlap with the needle over its title, URL and hostname, and the
best tab is accepted when it clears the threshold.
"""

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from sidebar_agent.tools.types import TabInfo

NO_TAB_MATCHED = "No tab matched"

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_MIN_PARTIAL_LEN = 3
_PARTIAL_WEIGHT = 0.75


@dataclass(frozen=True)
class TabMatch:
    """A tab selected by ``find_tab``.

    Attributes:
        tab: The matched tab.
        score: 1.0 for an exact substring match, else the similarity.
        exact: Whether the substring rule matched.
    """

    tab: TabInfo
    score: float
    exact: bool


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens of a string."""
    return _TOKEN_RE.findall(text.lower())


def hostname_of(url: str) -> str:
    """Hostname of a URL, or an empty string if it has none."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def token_overlap(needle: str, haystack: str) -> float:
    """Share of needle tokens found in a haystack, in [0, 1].

    A token present verbatim counts 1. A token of at least three characters
    that is a prefix or substring of a haystack token (or the reverse)
    counts 0.75.

    Args:
        needle: Text the model asked for.
        haystack: Title, URL or hostname of a tab.

    Returns:
        Similarity score; 0.0 when either side has no tokens.
    """
    needle_tokens = tokenize(needle)
    hay_tokens = set(tokenize(haystack))
    if not needle_tokens or not hay_tokens:
        return 0.0

    total = 0.0
    for token in needle_tokens:
        if token in hay_tokens:
            total += 1.0
        elif len(token) >= _MIN_PARTIAL_LEN and any(
            token in other or (len(other) >= _MIN_PARTIAL_LEN and other in token)
            for other in hay_tokens
        ):
            total += _PARTIAL_WEIGHT
    return total / len(needle_tokens)


def tab_similarity(needle: str, tab: TabInfo) -> float:
    """Best token overlap of a needle against a tab's title, URL and hostname."""
    return max(
        token_overlap(needle, tab.title),
        token_overlap(needle, tab.url),
        token_overlap(needle, hostname_of(tab.url)),
    )


def find_tab(
    tabs: list[TabInfo],
    match: str,
    threshold: float = 0.55,
    early_exit: float = 0.9,
) -> TabMatch | None:
    """Locate the tab a free-text description refers to.

    Args:
        tabs: Candidate tabs, in browser order.
        match: Free text from the model (title fragment, URL, site name).
        threshold: Minimum similarity for a fuzzy match.
        early_exit: Similarity at which scanning stops.

    Returns:
        The matched tab, or None when nothing qualifies.
    """
    needle = match.strip().lower()
    if not needle:
        return None

    for tab in tabs:
        if needle in tab.title.lower() or needle in tab.url.lower():
            return TabMatch(tab=tab, score=1.0, exact=True)

    best: TabInfo | None = None
    best_score = 0.0
    for tab in tabs:
        score = tab_similarity(needle, tab)
        if score > best_score:
            best, best_score = tab, score
            if score >= early_exit:
                break

    if best is None or best_score < threshold:
        return None
    return TabMatch(tab=best, score=best_score, exact=False)
