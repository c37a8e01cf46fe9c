import asyncio
import logging
import sys
from datetime import datetime

import click
from rich.panel import Panel

from galdr.cli.console import console
from galdr.core.app import GaldrApp
from galdr.utils.errors import GaldrError
from galdr.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def get_app(ctx: click.Context) -> GaldrApp:
    """Build the GaldrApp once per invocation, from the root group's options"""
    root = ctx.find_root()
    root.ensure_object(dict)
    if "app" not in root.obj:
        app = GaldrApp(root.obj.get("config_path"), verbose=root.obj.get("verbose"))
        level = logging.DEBUG if root.obj.get("debug") else logging.WARNING
        setup_logging(level, log_file=app.config_manager.config.logging.log_file, verbose=app.verbose)
        root.obj["app"] = app
    return root.obj["app"]


def format_timestamp(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def handle_exception(e: BaseException, debug_mode: bool = False) -> None:
    """Handle exceptions with clean output."""
    exit_code = 1

    if isinstance(e, GaldrError):
        exit_code = getattr(e, "exit_code", 1)
        notes = getattr(e, "__notes__", [])
        hint_text = "\n".join([f"[dim]💡 {note}[/dim]" for note in notes])
        body = f"[red]Error[/red]: {e}"
        if hint_text:
            body += f"\n\n{hint_text}"
        console.print(Panel(body, title="[bold]Galdr Error[/bold]", border_style="red"))
    elif isinstance(e, KeyboardInterrupt):
        console.print("[yellow]Interrupted[/yellow]")
        exit_code = 130
    else:
        console.print(
            Panel(
                f"[red]Unexpected Error[/red]: {e}",
                title="[bold]Galdr Error[/bold]",
                border_style="red",
            )
        )

    if debug_mode:
        logger.exception(f"Unhandled exception: {e}")
        console.print_exception(show_locals=True)

    sys.exit(exit_code)


def run_async(coro):
    """Run a coroutine to completion from a synchronous click command"""
    return asyncio.run(coro)
