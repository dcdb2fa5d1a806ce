"""Reusable validators for configuration fields."""

import json
from pathlib import Path


def validate_log_level(value: str) -> str:
    """Validate log level is one of the standard levels.

    Args:
        value: Log level string.

    Returns:
        Uppercased log level.

    Raises:
        ValueError: If log level is not valid.
    """
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if value.upper() not in valid_levels:
        raise ValueError(f"log_level must be one of {valid_levels}, got {value}")
    return value.upper()


def validate_log_format(value: str) -> str:
    """Validate log format is 'json' or 'console'.

    Args:
        value: Log format string.

    Returns:
        Lowercased log format.

    Raises:
        ValueError: If log format is not valid.
    """
    valid_formats = {"json", "console"}
    if value.lower() not in valid_formats:
        raise ValueError(f"log_format must be one of {valid_formats}, got {value}")
    return value.lower()


def resolve_path(value: Path | str) -> Path:
    """Resolve relative paths against the project root.

    Args:
        value: Path value (string or Path).

    Returns:
        Absolute Path.
    """
    path = Path(value) if isinstance(value, str) else value
    if not path.is_absolute():
        # src/sidebar_agent/config -> project root
        project_root = Path(__file__).parent.parent.parent.parent
        return (project_root / path).resolve()
    return path.resolve()


def parse_string_list(value: str | list[str] | tuple[str, ...] | None) -> list[str]:
    """Parse a list setting given as JSON, comma-separated text or a list.

    Handles:
    - JSON array: '["example.com", "docs.example.org"]'
    - Comma-separated: "example.com, docs.example.org"
    - Already a list

    Args:
        value: Raw setting value.

    Returns:
        List of stripped, non-empty strings.

    Raises:
        ValueError: If the value is not a supported type.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [part.strip() for part in text.split(",") if part.strip()]
    raise ValueError(f"Invalid list value type: {type(value)}")


def normalize_domain(value: str) -> str:
    """Normalize an allowlist entry to a bare lowercase hostname.

    Accepts entries written as URLs or with a leading wildcard, e.g.
    ``https://Example.com/`` or ``*.example.com`` both become
    ``example.com``.

    Args:
        value: Raw allowlist entry.

    Returns:
        Normalized hostname.
    """
    domain = value.strip().lower()
    if "://" in domain:
        domain = domain.split("://", 1)[1]
    domain = domain.split("/", 1)[0]
    if domain.startswith("*."):
        domain = domain[2:]
    return domain.strip(".")


def validate_unit_interval(value: float) -> float:
    """Validate a score threshold lies within [0, 1].

    Args:
        value: Threshold value.

    Returns:
        The same value.

    Raises:
        ValueError: If the value is outside [0, 1].
    """
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"threshold must be between 0 and 1, got {value}")
    return value
