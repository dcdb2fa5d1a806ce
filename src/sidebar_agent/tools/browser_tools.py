"""Definitions of the agent's tools.

Page tools run inside the page through the automation collaborator, browser
tools go to the tab controller, and the ``mcp.*`` utilities are served
locally (network fetch proxy and key-value store).
"""

from sidebar_agent.tools.types import (
    ClickTextArgs,
    FetchGetArgs,
    FsReadArgs,
    FsWriteArgs,
    NoArgs,
    OpenTabArgs,
    RagQueryArgs,
    ScrollArgs,
    SelectorArgs,
    TabMatchArgs,
    ToolDefinition,
    TypeTextArgs,
)

# Page automation (executed in the session tab)
read_page_tool = ToolDefinition(
    name="read_page",
    description="Read the current page: URL, title, selected text and HTML.",
    category="page",
    label="Reading Page",
    args_model=NoArgs,
    requires_tab=True,
)

click_tool = ToolDefinition(
    name="click",
    description="Click the element matching a CSS selector. The user is asked to confirm.",
    category="page",
    label="Clicking Element",
    args_model=SelectorArgs,
    requires_tab=True,
    side_effecting=True,
)

click_text_tool = ToolDefinition(
    name="click_text",
    description=(
        "Click the first clickable element (button, link, submit) whose text contains "
        "the given text. The user is asked to confirm."
    ),
    category="page",
    label="Clicking Text",
    args_model=ClickTextArgs,
    requires_tab=True,
    side_effecting=True,
)

type_tool = ToolDefinition(
    name="type",
    description="Type text into the element matching a CSS selector. The user is asked to confirm.",
    category="page",
    label="Typing Text",
    args_model=TypeTextArgs,
    requires_tab=True,
    side_effecting=True,
)

scroll_tool = ToolDefinition(
    name="scroll",
    description="Scroll the page to a vertical offset.",
    category="page",
    label="Scrolling",
    args_model=ScrollArgs,
    requires_tab=True,
)

extract_table_tool = ToolDefinition(
    name="extract_table",
    description="Extract the rows of the table at a CSS selector as lists of cell texts.",
    category="page",
    label="Extracting Table",
    args_model=SelectorArgs,
    requires_tab=True,
)

# Tab and browser management
screenshot_tool = ToolDefinition(
    name="screenshot",
    description="Capture an image of the visible part of the session tab.",
    category="browser",
    label="Taking Screenshot",
    args_model=NoArgs,
    requires_tab=True,
)

get_tabs_tool = ToolDefinition(
    name="get_tabs",
    description="List open tabs with their id, title, URL and whether they are active.",
    category="browser",
    label="Listing Tabs",
    args_model=NoArgs,
)

open_tab_tool = ToolDefinition(
    name="open_tab",
    description="Open a URL in a new active tab; later page tools act on that tab.",
    category="browser",
    label="Opening Link",
    args_model=OpenTabArgs,
    side_effecting=True,
)

switch_tab_tool = ToolDefinition(
    name="switch_tab",
    description="Activate the tab whose title or URL best matches the text.",
    category="browser",
    label="Switching Tab",
    args_model=TabMatchArgs,
    side_effecting=True,
)

close_tab_tool = ToolDefinition(
    name="close_tab",
    description="Close the tab whose title or URL best matches the text.",
    category="browser",
    label="Closing Tab",
    args_model=TabMatchArgs,
    side_effecting=True,
)

# Local utilities
fetch_get_tool = ToolDefinition(
    name="mcp.fetch.get",
    description="HTTP GET a URL outside the browser (subject to the domain allowlist).",
    category="utility",
    label="Fetching URL",
    args_model=FetchGetArgs,
)

fs_read_tool = ToolDefinition(
    name="mcp.fs.read",
    description="Read a file from the agent's virtual file store.",
    category="utility",
    label="Reading File",
    args_model=FsReadArgs,
)

fs_write_tool = ToolDefinition(
    name="mcp.fs.write",
    description="Write a file to the agent's virtual file store, replacing its content.",
    category="utility",
    label="Writing File",
    args_model=FsWriteArgs,
    side_effecting=True,
)

rag_query_tool = ToolDefinition(
    name="mcp.rag.query",
    description="Search the user's saved notes for text.",
    category="utility",
    label="Searching Notes",
    args_model=RagQueryArgs,
)

ALL_TOOLS: tuple[ToolDefinition, ...] = (
    read_page_tool,
    click_tool,
    click_text_tool,
    type_tool,
    scroll_tool,
    extract_table_tool,
    open_tab_tool,
    switch_tab_tool,
    close_tab_tool,
    get_tabs_tool,
    screenshot_tool,
    fetch_get_tool,
    fs_read_tool,
    fs_write_tool,
    rag_query_tool,
)
