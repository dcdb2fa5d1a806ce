"""Security utilities for preventing information disclosure."""

import re

from sidebar_agent.llm_client.types import LLMConfigurationError

_API_KEY_PATTERN = re.compile(r"(sk-[A-Za-z0-9_\-]{6})[A-Za-z0-9_\-]+")
_BEARER_PATTERN = re.compile(r"(Bearer\s+)[^\s'\"]+", re.IGNORECASE)


def redact_secrets(text: str) -> str:
    """Mask API keys and bearer tokens inside free text.

    Args:
        text: Text that may contain credentials (e.g. an httpx error string).

    Returns:
        The text with credential bodies replaced by ``***``.
    """
    text = _BEARER_PATTERN.sub(r"\1***", text)
    return _API_KEY_PATTERN.sub(r"\1***", text)


def sanitize_error_message(error: Exception) -> str:
    """Create a user-friendly error message without exposing sensitive details.

    Configuration errors are returned verbatim because they tell the user
    what to fix. Everything else is categorised into a short, generic
    message with paths, addresses and credentials stripped.

    Args:
        error: The exception that occurred.

    Returns:
        A sanitized, user-facing error message.
    """
    if isinstance(error, LLMConfigurationError):
        return str(error)

    error_type = type(error).__name__
    error_str = redact_secrets(str(error))
    error_str = re.sub(r"(?<![:/])/[^\s]+", "[path]", error_str)
    error_str = re.sub(r"0x[0-9a-fA-F]+", "[address]", error_str)
    error_str = re.sub(r"line \d+", "[line]", error_str)
    lowered = error_str.lower()

    if "RateLimit" in error_type or "rate limit" in lowered:
        return "Too many requests to the completion service. Please wait a moment and try again."
    if "Timeout" in error_type or "timed out" in lowered or "timeout" in lowered:
        return "The completion service took too long to respond. Please try again."
    if "Connection" in error_type or "connect" in lowered:
        return "Unable to reach the completion service. Check your network and try again."
    if "ServerError" in error_type:
        return "The completion service returned an error. Please try again in a moment."
    if "InvalidResponse" in error_type:
        return "The completion service returned a response that could not be understood."
    if "401" in error_str or "unauthorized" in lowered:
        return "The completion service rejected the API key. Check it in Settings."
    if "Validation" in error_type or "validation" in lowered:
        return "Invalid request format. Please check your input and try again."
    return "An error occurred while processing your request. Please try again."
