"""Tests for step summaries and history payloads."""

import json

from conftest import PNG_DATA_URL

from sidebar_agent.tools.feedback import (
    build_step,
    history_content,
    human_summary,
    stub_large_payloads,
)
from sidebar_agent.tools.types import ToolResult


class TestHumanSummary:
    """Test the UI text of a step."""

    def test_failure(self) -> None:
        """Test failures name the tool and the error."""
        result = ToolResult.failure("no active tab")
        assert human_summary("read_page", result) == "Tool error (read_page): no active tab"

    def test_switch_tab_failure(self) -> None:
        """Test switch_tab has its own failure wording."""
        result = ToolResult.failure("No tab matched")
        assert human_summary("switch_tab", result) == "Could not switch tab: No tab matched"

    def test_get_tabs_marks_active(self) -> None:
        """Test the active tab is bolded in the list."""
        result = ToolResult.success(
            [
                {"id": 1, "title": "Mail", "url": "https://mail", "active": True},
                {"id": 2, "title": "", "url": "https://docs", "active": False},
            ]
        )
        assert human_summary("get_tabs", result) == "Open tabs:\n- **Mail**\n- https://docs"

    def test_get_tabs_is_capped(self) -> None:
        """Test long tab lists are cut after ten entries."""
        tabs = [{"id": i, "title": f"Tab {i}", "active": False} for i in range(12)]
        summary = human_summary("get_tabs", ToolResult.success(tabs))

        assert summary.count("\n- ") == 10
        assert summary.endswith("\n…")

    def test_tab_changes(self) -> None:
        """Test switch and open summaries show the tab."""
        tab = {"id": 2, "title": "Docs", "url": "https://docs"}

        assert human_summary("switch_tab", ToolResult.success(tab)) == "Switched to: **Docs**"
        assert human_summary("open_tab", ToolResult.success(tab)) == "Opened: Docs"

    def test_other_tools(self) -> None:
        """Test the remaining fixed phrases."""
        ok = ToolResult.success({})

        assert human_summary("screenshot", ok) == "Screenshot captured."
        assert human_summary("click_text", ok) == "Clicked element."
        assert human_summary("mcp.fs.write", ok) == "Executed tool: mcp.fs.write"


def test_build_step_for_screenshot() -> None:
    """Test successful screenshots are flagged as images and keep the data."""
    result = ToolResult.success({"dataUrl": PNG_DATA_URL})
    step = build_step("call_1", "screenshot", {}, result)

    assert step.title == "Action: screenshot"
    assert step.is_image is True
    assert step.raw_result.result["dataUrl"] == PNG_DATA_URL


def test_build_step_failed_screenshot_is_not_image() -> None:
    """Test a failed capture is not rendered as an image."""
    step = build_step("call_1", "screenshot", {}, ToolResult.failure("no active tab"))
    assert step.is_image is False


def test_stub_large_payloads_is_recursive() -> None:
    """Test image data is replaced anywhere in the structure."""
    payload = {"shots": [PNG_DATA_URL, b"\x89PNG"], "text": "keep me"}

    stubbed = stub_large_payloads(payload)

    assert stubbed["shots"][0] == f"[image data omitted: {len(PNG_DATA_URL)} chars]"
    assert stubbed["shots"][1] == "[image data omitted: 4 chars]"
    assert stubbed["text"] == "keep me"
    assert payload["shots"][0] == PNG_DATA_URL


def test_history_content_wire_shape() -> None:
    """Test tool messages carry {ok, result} or {ok, error} as JSON."""
    ok = json.loads(history_content(ToolResult.success({"dataUrl": PNG_DATA_URL})))
    failed = json.loads(history_content(ToolResult.failure("boom")))

    assert ok == {"ok": True, "result": {"dataUrl": ok["result"]["dataUrl"]}}
    assert ok["result"]["dataUrl"].startswith("[image data omitted")
    assert failed == {"ok": False, "error": "boom"}
