"""CLI interface for the agent.

This module provides a Typer-based command-line interface for running the
agent loop, listing its tools and serving the HTTP API.
"""

import asyncio
import uuid
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from sidebar_agent.orchestrator import Orchestrator, ProgressEvent
from sidebar_agent.tools import get_default_registry

app = typer.Typer(help="Agent Sidebar - in-browser AI agent orchestration core")
console = Console()


class EventRenderer:
    """Prints progress events to the console as they arrive."""

    def __init__(self, console: Console, stream_render: bool = True) -> None:  # noqa: D107
        self.console = console
        self.stream_render = stream_render
        self._streaming = False

    def _end_stream_line(self) -> None:
        if self._streaming:
            self.console.print()
            self._streaming = False

    async def __call__(self, event: ProgressEvent) -> None:
        self.render(event)

    def render(self, event: ProgressEvent) -> None:
        """Render one event."""
        kind = event.kind
        if kind == "stream-start":
            if self.stream_render:
                self.console.print("\n[bold blue]Agent:[/bold blue]")
        elif kind == "stream-delta":
            if self.stream_render and event.text:
                self._streaming = True
                self.console.print(event.text, end="", markup=False, highlight=False)
        elif kind == "stream-abort":
            self._end_stream_line()
            if self.stream_render:
                self.console.print("[dim](partial answer discarded)[/dim]")
        elif kind == "status-working":
            self._end_stream_line()
            if event.step is not None:
                self.console.print(f"[green]✓[/green] [bold]{event.step.title}[/bold]")
                self.console.print(Markdown(event.step.human_readable))
            elif event.text:
                self.console.print(f"[dim]{event.text}[/dim]")
        elif kind == "confirmation-request":
            self._end_stream_line()
            self.console.print(
                f"[yellow]Confirmation requested:[/yellow] {event.prompt_text} "
                f"[dim](call {event.call_id})[/dim]"
            )
        elif kind == "stream-end":
            self._end_stream_line()
            if not self.stream_render and event.text:
                self.console.print("\n[bold blue]Agent:[/bold blue]")
                self.console.print(Markdown(event.text))
            self._print_footer(event)
        elif kind == "final-answer":
            self._end_stream_line()
            self.console.print("\n[bold blue]Agent:[/bold blue]")
            self.console.print(Markdown(event.text or ""))
            self._print_footer(event)
        elif kind == "cancelled":
            self._end_stream_line()
            self.console.print(f"[yellow]{event.text}[/yellow]")
        elif kind == "already-running":
            self.console.print(f"[yellow]{event.text}[/yellow]")
        elif kind == "error":
            self._end_stream_line()
            self.console.print(f"[red]Error: {event.text}[/red]")

    def _print_footer(self, event: ProgressEvent) -> None:
        steps = len(event.steps or [])
        duration = event.duration_seconds or 0
        self.console.print(f"\n[dim]{steps} step(s) in {duration:.1f}s[/dim]")
        if event.trace_id:
            self.console.print(f"[dim]Trace ID: {event.trace_id}[/dim]")


@app.command(name="chat")
def chat_command(
    message: str = typer.Argument(..., help="User message to send to the agent"),
    session_key: Optional[str] = typer.Option(
        None, "--session-key", help="Session key for multi-turn conversations"
    ),
    no_stream_render: bool = typer.Option(
        False, "--no-stream-render", help="Print only the final answer, not live deltas"
    ),
) -> None:
    """Run one request through the agent loop.

    Browser tools are unavailable here; fetch and the note/file store work.

    Examples:
        agent-sidebar chat "Fetch https://example.com and summarize it"
        agent-sidebar chat "Hello" --session-key my-session
    """
    if not session_key:
        session_key = str(uuid.uuid4())

    renderer = EventRenderer(console, stream_render=not no_stream_render)
    terminal = asyncio.run(_handle_request(message, session_key, renderer))
    if terminal.kind not in ("final-answer", "stream-end"):
        raise typer.Exit(1)


async def _handle_request(
    user_message: str, session_key: str, renderer: EventRenderer
) -> ProgressEvent:
    """Run a request and render its events.

    Args:
        user_message: The user's message.
        session_key: Session identifier.
        renderer: Event renderer.

    Returns:
        The terminal event.
    """
    orchestrator = Orchestrator()
    return await orchestrator.submit(session_key, user_message, on_event=renderer)


@app.command(name="tools")
def tools_command() -> None:
    """List the tools offered to the model."""
    registry = get_default_registry()
    table = Table(title=f"Registered Tools ({len(registry.list_tool_names())})")
    table.add_column("Name", style="cyan")
    table.add_column("Category", style="blue")
    table.add_column("Label", style="green")
    table.add_column("Side effects", style="magenta")
    table.add_column("Description", style="white", overflow="fold")

    for tool_def in registry.list_tools():
        table.add_row(
            tool_def.name,
            tool_def.category,
            tool_def.label,
            "yes" if tool_def.side_effecting else "no",
            tool_def.description,
        )
    console.print(table)


@app.command(name="serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Port"),
) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from sidebar_agent.config import settings

    uvicorn.run(
        "sidebar_agent.service.app:create_app",
        factory=True,
        host=host or settings.service_host,
        port=port or settings.service_port,
    )


if __name__ == "__main__":
    app()
