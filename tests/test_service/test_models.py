"""Tests for service request/response models."""

import pytest
from pydantic import ValidationError

from sidebar_agent.service.models import ConfirmationDecision, HealthResponse, MessageRequest


def test_message_request_defaults() -> None:
    """MessageRequest streams by default and has no tab."""
    request = MessageRequest(text="hello")

    assert request.stream is True
    assert request.tab_id is None


def test_message_request_requires_text() -> None:
    """An empty message is rejected."""
    with pytest.raises(ValidationError):
        MessageRequest(text="")


def test_confirmation_decision_requires_approved() -> None:
    """The decision field is mandatory."""
    with pytest.raises(ValidationError):
        ConfirmationDecision.model_validate({})
    assert ConfirmationDecision(approved=False).approved is False


def test_health_response_defaults() -> None:
    """HealthResponse defaults to healthy with no components."""
    assert HealthResponse().model_dump() == {"status": "healthy", "components": {}}
