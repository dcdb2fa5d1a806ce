"""Orchestrator module: the agent loop and its run control.

This module provides the bounded tool-calling loop, progress events, run
slots with cancellation, the confirmation broker and history compaction.
"""

from sidebar_agent.orchestrator.confirmation import ConfirmationBroker
from sidebar_agent.orchestrator.events import EventChannel, EventHub, ProgressEvent
from sidebar_agent.orchestrator.executor import execute_run
from sidebar_agent.orchestrator.history import ConversationStore, compact_history
from sidebar_agent.orchestrator.orchestrator import Orchestrator
from sidebar_agent.orchestrator.runs import AlreadyRunningError, Run, RunManager
from sidebar_agent.orchestrator.types import ExecutionContext, RunServices, TaskState

__all__ = [
    # Public API
    "Orchestrator",
    "execute_run",
    # Types
    "ExecutionContext",
    "RunServices",
    "TaskState",
    # Events
    "EventChannel",
    "EventHub",
    "ProgressEvent",
    # Run control
    "AlreadyRunningError",
    "ConfirmationBroker",
    "Run",
    "RunManager",
    # History
    "ConversationStore",
    "compact_history",
]
