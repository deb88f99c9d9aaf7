"""Rich terminal output helpers for the CLI."""

import io

from rich.console import Console
from rich.rule import Rule
from rich.text import Text

from code_scout.core.events import (
    CitationEvent,
    ContentEvent,
    RetryEvent,
    StreamEvent,
    ThoughtEvent,
    ToolCallRequest,
)
from code_scout.core.tool_result import ToolResult
from code_scout.session import AnalysisResult
from code_scout.utils import format_tokens


class Renderer:
    """Renders analysis progress and results with Rich formatting."""

    def __init__(self, output_file: io.TextIOBase | None = None, show_thoughts: bool = False) -> None:
        if output_file is not None:
            self.console = Console(file=output_file, highlight=False, soft_wrap=True)
        else:
            self.console = Console(highlight=False, soft_wrap=True)
        self.show_thoughts = show_thoughts
        self._mid_line = False

    def print_error(self, message: str) -> None:
        """Print a styled error message."""
        self._end_line()
        self.console.print(f"[red]{message}[/red]", highlight=False)

    def print_info(self, message: str) -> None:
        """Print a styled informational message."""
        self._end_line()
        self.console.print(f"[dim]{message}[/dim]", highlight=False)

    def print_warning(self, message: str) -> None:
        """Print a styled warning message."""
        self._end_line()
        self.console.print(f"[yellow]{message}[/yellow]", highlight=False)

    def render_event(self, event: StreamEvent) -> None:
        """Show one turn event as it arrives; content is streamed as plain text."""
        if isinstance(event, ContentEvent):
            self.console.print(Text(event.text), end="")
            self._mid_line = not event.text.endswith("\n")
        elif isinstance(event, ThoughtEvent) and self.show_thoughts:
            self.print_info(f"thinking: {event.summary}")
        elif isinstance(event, ToolCallRequest):
            self.render_tool_call(event)
        elif isinstance(event, CitationEvent):
            self.print_info(event.text)
        elif isinstance(event, RetryEvent):
            self.print_warning(f"Transient provider error, retrying (attempt {event.attempt})...")

    def render_tool_call(self, call: ToolCallRequest) -> None:
        """Render a compact inline line for a requested tool call."""
        self._end_line()
        self.console.print(f"[bold cyan]◆[/bold cyan] [cyan]{call.name}[/cyan]")
        for key, value in call.args.items():
            value_str = str(value)
            if len(value_str) > 50:
                value_str = value_str[:47] + "..."
            self.console.print(f"  [dim]{key}[/dim]: {value_str}", highlight=False)

    def render_tool_result(self, call: ToolCallRequest, result: ToolResult) -> None:
        if result.ok:
            note = " (truncated)" if result.truncated else ""
            self.console.print(f"  [green]✓[/green] [dim]{call.name} done{note}[/dim]")
        elif result.is_cancelled:
            self.console.print(f"  [dim]{call.name} cancelled[/dim]")
        else:
            self.console.print(f"  [red]✗ {call.name}: {result.error}[/red]", highlight=False)

    def render_summary(self, result: AnalysisResult) -> None:
        """Render the usage footer after an analysis."""
        self._end_line()
        for warning in result.warnings:
            self.print_warning(f"warning: {warning}")
        parts = [
            result.model,
            f"{format_tokens(result.total_tokens)} tokens",
            f"{result.tool_calls} tool calls",
            f"{result.rounds} rounds",
            f"{result.duration_seconds:.1f}s",
        ]
        if result.cancelled:
            parts.append("cancelled")
        self.console.print(Rule(style="dim"))
        self.console.print(Text(" | ".join(parts), style="dim"))

    def _end_line(self) -> None:
        if self._mid_line:
            self.console.print()
            self._mid_line = False
