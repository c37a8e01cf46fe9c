import asyncio
import signal
import sys
import threading
from typing import Optional

import click
import yaml
from rich.syntax import Syntax
from rich.table import Table

from galdr.cli.commands import context_group, sessions_group
from galdr.cli.console import ConsoleSink, console
from galdr.cli.utils import get_app, handle_exception, run_async
from galdr.core.app import GaldrApp
from galdr.core.completion_handler import TurnOutcome
from galdr.providers.events import ErrorKind
from galdr.providers.ids import ProviderId, SwitchMode
from galdr.utils.cancellation import CancellationToken
from galdr.utils.errors import ConfigError, ProviderError, ProviderUnavailableError, UsageError
from galdr.utils.logging import get_logger

logger = get_logger(__name__)

_debug_mode = False


def excepthook(exc_type, exc_value, exc_traceback) -> None:
    """Global exception handler."""
    if exc_type is KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(130)
    handle_exception(exc_value, debug_mode=_debug_mode)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="Config file to use")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log provider requests and process details")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx, config_path, verbose, debug):
    """galdr - one conversation across Claude, Gemini, Copilot, Cursor and DeepSeek

    \b
    Examples:
      galdr ask "your prompt"             # Use the session's current provider
      galdr ask -p gemini "your prompt"   # Switch provider for this and later turns
      galdr ask -s myproject "prompt"     # Talk in another session
      galdr sessions                      # List sessions
      galdr context compact --keep 10     # Summarize older messages
      galdr status                        # Provider availability
    """
    global _debug_mode
    _debug_mode = debug
    sys.excepthook = excepthook

    ctx.ensure_object(dict)
    ctx.obj.update({"config_path": config_path, "verbose": verbose or None, "debug": debug})


async def _run_turn(app: GaldrApp, prompt: str, provider: Optional[str]) -> tuple:
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    handler_installed = False
    if sys.platform != "win32" and threading.current_thread() is threading.main_thread():
        # Ctrl+C cancels the turn instead of killing galdr; the child process tree goes with it
        loop.add_signal_handler(signal.SIGINT, cancel.cancel)
        handler_installed = True

    sink = ConsoleSink()
    try:
        outcome = await app.completion_handler.run_turn(prompt, sink=sink, cancel=cancel, provider=provider)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
    return outcome, sink


def _report(outcome: TurnOutcome, sink: ConsoleSink) -> None:
    if sink.wrote_text:
        console.print()

    compaction = outcome.compaction
    if compaction is not None and compaction.compacted:
        console.print(f"[dim]Auto-compacted history: {compaction.removed} messages summarized[/dim]")
    elif compaction is not None and compaction.error:
        console.print(f"[yellow]Auto-compaction skipped:[/yellow] {compaction.error}")

    result = outcome.result
    if result.success:
        if outcome.notice:
            console.print(f"[dim]{outcome.notice}[/dim]")
        return

    if result.was_cancelled:
        console.print("[yellow]Cancelled[/yellow]")
        sys.exit(130)
    if result.error_kind == ErrorKind.UNAVAILABLE:
        handle_exception(ProviderUnavailableError(outcome.provider.value, hint=outcome.notice), _debug_mode)
    handle_exception(ProviderError(result.error or "Unknown error occurred", hint=outcome.notice), _debug_mode)


@cli.command(name="ask")
@click.argument("prompt", nargs=-1, required=True)
@click.option("-p", "--provider", default=None, type=click.Choice([p.value for p in ProviderId]), help="Provider to use")
@click.option("-s", "--session", "session_name", default=None, help="Session to use (created if missing)")
@click.pass_context
def ask_command(ctx, prompt, provider, session_name):
    """Send one prompt and stream the answer (Ctrl+C cancels)"""
    app = get_app(ctx)
    context = app.context_manager
    text = " ".join(prompt)

    if session_name and session_name != context.session_name:
        if not context.sessions.session_exists(session_name) and not context.create_session(session_name):
            handle_exception(UsageError(f"Invalid session name '{session_name}'"))
        context.switch_session(session_name)

    if provider:
        context.set_current_provider(provider)

    try:
        outcome, sink = run_async(_run_turn(app, text, provider))
    finally:
        app.close()
    _report(outcome, sink)


@cli.command(name="status")
@click.pass_context
def status_command(ctx):
    """Show provider availability and usage statistics"""
    app = get_app(ctx)
    context = app.context_manager
    availability = run_async(app.provider_manager.check_all_availability())

    console.print("[bold]Configuration:[/bold]")
    console.print(f"  Default provider: {app.config_manager.get_default_provider()}")
    console.print(f"  Session: {context.session_name}")
    console.print(f"  Current provider: {context.current_provider}")
    console.print(f"  Switch mode: {context.switch_mode}")
    console.print(f"  Messages: {len(context.messages)}\n")

    table = Table(show_header=True, title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Model")
    table.add_column("Requests", justify="right")
    for provider_id, available in availability.items():
        if not app.provider_manager.is_enabled(provider_id):
            status = "[dim]disabled[/dim]"
        else:
            status = "[green]✓ Available[/green]" if available else "[red]✗ Not found[/red]"
        table.add_row(
            provider_id.value,
            status,
            context.get_model(provider_id),
            str(context.context.provider_usage.get(provider_id.value, 0)),
        )
    console.print(table)


@cli.command(name="config")
@click.option("-p", "--provider", default=None, type=click.Choice([p.value for p in ProviderId]), help="Set default provider")
@click.option("-m", "--mode", default=None, type=click.Choice([m.value for m in SwitchMode]), help="Set switch mode")
@click.option("--model", "model_setting", default=None, metavar="PROVIDER=MODEL", help="Set a provider's model")
@click.option("-s", "--show", is_flag=True, help="Show current configuration")
@click.pass_context
def config_command(ctx, provider, mode, model_setting, show):
    """Configure galdr settings

    Changes apply to the config file and to the current session.
    """
    app = get_app(ctx)
    cfg = app.config_manager
    context = app.context_manager

    if show:
        dumped = yaml.dump(cfg.config.model_dump(), default_flow_style=False, sort_keys=False)
        console.print(f"[dim]{cfg.config_path}[/dim]")
        console.print(Syntax(dumped, "yaml"))
        return

    if not (provider or mode or model_setting):
        click.echo(ctx.get_help())
        return

    if provider:
        cfg.set_default_provider(provider)
        context.set_current_provider(provider)
        console.print(f"[green]✓[/green] Default provider set to: {provider}")

    if mode:
        cfg.set_default_switch_mode(mode)
        context.set_switch_mode(mode)
        console.print(f"[green]✓[/green] Switch mode set to: {mode}")

    if model_setting:
        name, sep, model = model_setting.partition("=")
        if not sep or not model:
            handle_exception(UsageError("Expected --model PROVIDER=MODEL", hint="e.g. --model claude=opus"))
        try:
            provider_id = app.provider_manager.resolve_id(name.strip())
        except ConfigError as e:
            handle_exception(e, _debug_mode)
        cfg.set_default_model(provider_id.value, model.strip())
        context.set_model(provider_id, model.strip())
        console.print(f"[green]✓[/green] Model for {provider_id} set to: {model.strip()}")

    app.close()


cli.add_command(sessions_group, "sessions")
cli.add_command(context_group, "context")


def main():
    cli()


if __name__ == "__main__":
    main()
