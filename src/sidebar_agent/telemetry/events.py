"""Semantic event constants for structured logging.

All log events use these constants rather than magic strings so that runs
can be reconstructed reliably from the JSONL log.
"""

# Run lifecycle
REQUEST_RECEIVED = "request_received"
RUN_STARTED = "run_started"
RUN_COMPLETED = "run_completed"
RUN_FAILED = "run_failed"
RUN_CANCELLED = "run_cancelled"
RUN_REJECTED = "run_rejected"
RUN_RELEASED = "run_released"
CANCEL_REQUESTED = "cancel_requested"
STATE_TRANSITION = "state_transition"
TURN_STARTED = "turn_started"
TURN_BUDGET_EXHAUSTED = "turn_budget_exhausted"
FORCED_FINALIZATION = "forced_finalization"
CONTEXT_SEEDED = "context_seeded"
REPLY_READY = "reply_ready"
ORCHESTRATOR_FATAL_ERROR = "orchestrator_fatal_error"
UNKNOWN_STATE = "unknown_state"

# Completion gateway
MODEL_CALL_STARTED = "model_call_started"
MODEL_CALL_COMPLETED = "model_call_completed"
MODEL_CALL_ERROR = "model_call_error"
STREAM_STARTED = "stream_started"
STREAM_COMPLETED = "stream_completed"
STREAM_ABORTED_FOR_TOOLS = "stream_aborted_for_tools"
STREAM_FALLBACK = "stream_fallback"
STREAM_RECORD_SKIPPED = "stream_record_skipped"

# Tool dispatch
TOOL_CALL_STARTED = "tool_call_started"
TOOL_CALL_COMPLETED = "tool_call_completed"
TOOL_CALL_FAILED = "tool_call_failed"
POLICY_VIOLATION = "policy_violation"
TAB_REASSIGNED = "tab_reassigned"
AUTOMATION_REINJECTED = "automation_reinjected"

# Confirmation handshake
APPROVAL_REQUIRED = "approval_required"
APPROVAL_GRANTED = "approval_granted"
APPROVAL_DENIED = "approval_denied"
APPROVAL_TIMEOUT = "approval_timeout"
APPROVAL_IGNORED = "approval_ignored"

# Conversation history
HISTORY_LOADED = "history_loaded"
HISTORY_PERSISTED = "history_persisted"
HISTORY_COMPACTED = "history_compacted"
HISTORY_CLEARED = "history_cleared"

# Progress event channel
EVENT_DROPPED = "event_dropped"
EVENT_SUBSCRIBER_FAILED = "event_subscriber_failed"
