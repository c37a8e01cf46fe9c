import click
from rich.table import Table

from galdr.cli.console import console
from galdr.cli.utils import format_timestamp, get_app, handle_exception
from galdr.utils.errors import SessionError


@click.group(name="sessions", invoke_without_command=True)
@click.pass_context
def sessions_group(ctx):
    """Manage conversation sessions

    \b
    Commands:
      galdr sessions                        List all sessions
      galdr sessions create <name>          Create a session
      galdr sessions switch <name>          Make a session current
      galdr sessions rename <old> <new>     Rename a session
      galdr sessions describe <name> [text] Set or clear a description
      galdr sessions delete <name>          Delete a session
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(sessions_list)


@sessions_group.command(name="list")
@click.option("--recent", "-r", type=int, help="Show N most recent sessions")
@click.pass_context
def sessions_list(ctx, recent: int):
    """List all sessions"""
    context = get_app(ctx).context_manager
    sessions = context.list_sessions()

    if not sessions:
        console.print("[yellow]No sessions found[/yellow]")
        return

    if recent:
        sessions = sessions[:recent]

    table = Table(show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Messages", justify="right")
    table.add_column("Last used", style="dim")
    table.add_column("Description")

    for s in sessions:
        marker = " [green]●[/green]" if s.name == context.session_name else ""
        table.add_row(f"{s.name}{marker}", str(s.message_count), format_timestamp(s.last_accessed), s.description or "")

    console.print(table)


@sessions_group.command(name="create")
@click.argument("name")
@click.option("--description", "-d", default=None, help="Describe what the session is for")
@click.option("--switch", "switch_to", is_flag=True, help="Make the new session current")
@click.pass_context
def sessions_create(ctx, name: str, description: str, switch_to: bool):
    """Create a new session"""
    context = get_app(ctx).context_manager
    if not context.create_session(name, description):
        handle_exception(SessionError(f"Session '{name}' already exists or the name is invalid"))
    console.print(f"[green]✓[/green] Created session '{name}'")
    if switch_to:
        context.switch_session(name)
        console.print(f"[green]✓[/green] Switched to '{name}'")


@sessions_group.command(name="switch")
@click.argument("name")
@click.pass_context
def sessions_switch(ctx, name: str):
    """Make another session current"""
    context = get_app(ctx).context_manager
    if not context.switch_session(name):
        handle_exception(SessionError(f"Session '{name}' not found", hint="List sessions with: galdr sessions"))
    console.print(f"[green]✓[/green] Switched to '{name}' ({len(context.messages)} messages)")


@sessions_group.command(name="rename")
@click.argument("old_name")
@click.argument("new_name")
@click.pass_context
def sessions_rename(ctx, old_name: str, new_name: str):
    """Rename a session"""
    context = get_app(ctx).context_manager
    if not context.rename_session(old_name, new_name):
        handle_exception(SessionError(f"Could not rename '{old_name}' to '{new_name}'"))
    console.print(f"[green]✓[/green] Renamed '{old_name}' → '{new_name}'")


@sessions_group.command(name="describe")
@click.argument("name")
@click.argument("description", required=False, default="")
@click.pass_context
def sessions_describe(ctx, name: str, description: str):
    """Set a session's description (omit the text to clear it)"""
    context = get_app(ctx).context_manager
    if not context.update_session_description(name, description):
        handle_exception(SessionError(f"Session '{name}' not found"))
    console.print(f"[green]✓[/green] Updated description of '{name}'")


@sessions_group.command(name="delete")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def sessions_delete(ctx, name: str, yes: bool):
    """Delete a session (not the current one)"""
    context = get_app(ctx).context_manager
    if name == context.session_name:
        handle_exception(SessionError("Cannot delete the current session", hint="Switch to another session first"))
    if not yes and not click.confirm(f"Delete session '{name}'?"):
        console.print("[yellow]Cancelled[/yellow]")
        return
    if not context.delete_session(name):
        handle_exception(SessionError(f"Session '{name}' not found"))
    console.print(f"[green]✓[/green] Deleted session '{name}'")
