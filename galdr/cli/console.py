from typing import Any, Dict, Optional

from rich.console import Console

from galdr.providers.sink import StreamSink

console = Console()


class ConsoleSink(StreamSink):
    """Writes a streaming response to the terminal"""

    def __init__(self, out: Optional[Console] = None):
        super().__init__()
        self.out = out or console
        self.wrote_text = False

    def write_text(self, text: str) -> None:
        if self.active and text:
            self.wrote_text = True
            self.out.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def show_tool(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        if not self.active:
            return
        detail = ""
        if parameters:
            first = next(iter(parameters.values()))
            detail = f" [dim]{str(first)[:60]}[/dim]"
        self.out.print(f"\n[cyan]⏺ {name}[/cyan]{detail}")

    def complete_tool(self, success: bool) -> None:
        if self.active:
            self.out.print("  [green]✓[/green]" if success else "  [red]✗[/red]")

    def show_info(self, message: str) -> None:
        if self.active:
            self.out.print(f"\n[yellow]{message}[/yellow]")
