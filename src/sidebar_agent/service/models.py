"""Request and response models for the HTTP service."""

from typing import Any

from pydantic import BaseModel, Field


class MessageRequest(BaseModel):
    """A user message for a session."""

    text: str = Field(..., min_length=1, description="The user's request")
    tab_id: int | None = Field(None, description="Tab the user is looking at")
    stream: bool = Field(True, description="Stream progress events (text/event-stream)")


class ConfirmationDecision(BaseModel):
    """The user's answer to a confirmation request."""

    approved: bool


class ConfirmationResponse(BaseModel):
    """Outcome of a confirmation decision."""

    call_id: str
    applied: bool = Field(..., description="False when the call id was unknown or expired")


class CancelResponse(BaseModel):
    """Outcome of a cancel request."""

    session_key: str
    cancelled: bool = Field(..., description="Whether a run was live")


class ClearHistoryResponse(BaseModel):
    """Outcome of clearing a session's history."""

    session_key: str
    cleared: bool


class HealthResponse(BaseModel):
    """Service health."""

    status: str = "healthy"
    components: dict[str, Any] = Field(default_factory=dict)
