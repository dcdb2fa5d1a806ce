"""Trace context for run correlation.

One trace is opened per run; every model call and tool dispatch inside the
run opens a child span so log lines can be stitched back together.
"""

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TraceContext:
    """Lightweight, immutable trace context.

    Attributes:
        trace_id: Identifier shared by every log line of one run.
        session_key: Session the run belongs to, if known.
        parent_span_id: Span that created this context, if any.
    """

    trace_id: str
    session_key: str | None = None
    parent_span_id: str | None = None

    @classmethod
    def new_trace(cls, session_key: str | None = None) -> "TraceContext":
        """Start a new trace.

        Args:
            session_key: Optional session the trace belongs to.

        Returns:
            A TraceContext with a fresh trace_id and no parent span.
        """
        return cls(trace_id=str(uuid.uuid4()), session_key=session_key)

    def new_span(self) -> tuple["TraceContext", str]:
        """Create a child span within this trace.

        Returns:
            Tuple of (child context whose parent is the new span, new span_id).
        """
        span_id = uuid.uuid4().hex[:16]
        return (
            TraceContext(
                trace_id=self.trace_id,
                session_key=self.session_key,
                parent_span_id=span_id,
            ),
            span_id,
        )

    def log_fields(self) -> dict[str, str]:
        """Keyword fields to attach to a log call."""
        fields = {"trace_id": self.trace_id}
        if self.session_key is not None:
            fields["session_key"] = self.session_key
        return fields
