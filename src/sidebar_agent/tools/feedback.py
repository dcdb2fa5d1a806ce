"""Human-readable step summaries and history payload stubs."""

import json
from typing import Any

from sidebar_agent.tools.types import Step, ToolResult

MAX_LISTED_TABS = 10


def human_summary(tool_name: str, result: ToolResult) -> str:
    """One-line (or short list) description of a tool outcome for the UI.

    Args:
        tool_name: Tool the model called.
        result: Outcome of the dispatch.

    Returns:
        Markdown text.
    """
    if not result.ok:
        if tool_name == "switch_tab":
            return f"Could not switch tab: {result.error}"
        return f"Tool error ({tool_name}): {result.error}"

    payload = result.result
    if tool_name == "screenshot":
        return "Screenshot captured."
    if tool_name == "get_tabs":
        tabs = payload if isinstance(payload, list) else []
        lines = []
        for tab in tabs[:MAX_LISTED_TABS]:
            label = tab.get("title") or tab.get("url") or ""
            lines.append(f"- **{label}**" if tab.get("active") else f"- {label}")
        more = "\n…" if len(tabs) > MAX_LISTED_TABS else ""
        return "Open tabs:\n" + "\n".join(lines) + more
    if tool_name == "switch_tab":
        title = payload.get("title", "") if isinstance(payload, dict) else ""
        return f"Switched to: **{title}**"
    if tool_name == "open_tab":
        target = ""
        if isinstance(payload, dict):
            target = payload.get("title") or payload.get("url") or ""
        return f"Opened: {target}"
    if tool_name in ("click", "click_text"):
        return "Clicked element."
    return f"Executed tool: {tool_name}"


def build_step(
    call_id: str, tool_name: str, arguments: dict[str, Any], result: ToolResult
) -> Step:
    """UI record of one executed tool call; keeps the full payload."""
    return Step(
        call_id=call_id,
        tool_name=tool_name,
        title=f"Action: {tool_name}",
        human_readable=human_summary(tool_name, result),
        raw_result=result,
        is_image=tool_name == "screenshot" and result.ok,
        input_args=arguments,
    )


def stub_large_payloads(value: Any) -> Any:
    """Replace image data (data: URLs, raw bytes) with a compact marker.

    Args:
        value: Tool result payload (any JSON-like structure).

    Returns:
        A new structure safe to send back to the model.
    """
    if isinstance(value, str):
        if value.startswith("data:"):
            return f"[image data omitted: {len(value)} chars]"
        return value
    if isinstance(value, bytes | bytearray):
        return f"[image data omitted: {len(value)} chars]"
    if isinstance(value, dict):
        return {key: stub_large_payloads(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [stub_large_payloads(item) for item in value]
    return value


def history_content(result: ToolResult) -> str:
    """Serialized tool message content for the conversation history."""
    return json.dumps(stub_large_payloads(result.to_payload()), ensure_ascii=False, default=str)
