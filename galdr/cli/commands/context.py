import click
from rich.markdown import Markdown

from galdr.cli.console import console
from galdr.cli.utils import format_timestamp, get_app, handle_exception, run_async
from galdr.utils.errors import PersistenceError


@click.group(name="context", invoke_without_command=True)
@click.pass_context
def context_group(ctx):
    """Manage the conversation of the current session"""
    if ctx.invoked_subcommand is None:
        ctx.invoke(context_stats)


@context_group.command(name="show")
@click.option("--raw", is_flag=True, help="Print the plain transcript")
@click.pass_context
def context_show(ctx, raw: bool):
    """Show conversation history"""
    context = get_app(ctx).context_manager
    if not context.messages:
        console.print("[yellow]No messages yet[/yellow]")
        return

    if raw:
        click.echo(context.conversation_history())
        return

    for message in context.messages:
        if message.role == "user":
            console.print("[bold cyan]You:[/bold cyan]")
        else:
            label = f" ({message.provider})" if message.provider else ""
            console.print(f"[bold green]Assistant{label}:[/bold green]")
        console.print(Markdown(message.content))
        click.echo()


@context_group.command(name="stats")
@click.pass_context
def context_stats(ctx):
    """Show history statistics"""
    context = get_app(ctx).context_manager
    stats = context.history_stats()
    console.print(f"[bold]Session:[/bold] {context.session_name}")
    console.print(f"  Messages: {stats.message_count}")
    console.print(f"  Characters: {stats.total_chars}")
    if stats.oldest_timestamp is not None:
        console.print(f"  Oldest: {format_timestamp(stats.oldest_timestamp)}")
        console.print(f"  Newest: {format_timestamp(stats.newest_timestamp)}")
    state = "on" if context.auto_compact_enabled else "off"
    console.print(f"  Auto-compact: {state} (above {context.threshold} messages, keeps {context.keep})")


@context_group.command(name="clear")
@click.pass_context
def context_clear(ctx):
    """Clear conversation context"""
    context = get_app(ctx).context_manager
    context.clear()
    context.flush()
    console.print("[green]✓[/green] Context cleared")


@context_group.command(name="compact")
@click.option("--keep", "-k", type=int, default=None, help="Messages to keep (default from config)")
@click.pass_context
def context_compact(ctx, keep):
    """Summarize older messages, keeping the newest ones"""
    app = get_app(ctx)
    keep = keep if keep is not None else app.config_manager.config.compaction.manual_keep
    if keep < 1:
        raise click.exceptions.BadParameter("must be at least 1", param_hint="--keep")

    with console.status("Summarizing..."):
        result = run_async(app.context_manager.compact(keep))
    app.close()

    if result.error:
        handle_exception(PersistenceError(f"Compaction failed: {result.error}"))
    if not result.compacted:
        console.print(f"[yellow]Nothing to compact ({len(app.context_manager.messages)} messages)[/yellow]")
        return
    console.print(f"[green]✓[/green] Compacted {result.removed} messages, kept last {keep}")
