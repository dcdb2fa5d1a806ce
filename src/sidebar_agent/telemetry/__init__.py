"""Telemetry module for structured logging and trace correlation.

This module provides:
- TraceContext for run correlation
- Structured logging via structlog
- Semantic event constants (see ``events``)
"""

from sidebar_agent.telemetry.logger import configure_logging, get_logger
from sidebar_agent.telemetry.trace import TraceContext

__all__ = [
    "TraceContext",
    "configure_logging",
    "get_logger",
]
