"""
Inspection Commands

Rich tables for the ``sessions`` and ``config`` subcommands.
This module is lazy-loaded only when those commands are used.
"""

from rich.console import Console
from rich.table import Table

from impolite.core.configs import CONFIG_PATH, GreeterConfig
from impolite.core.sessions import get_data_dirs, list_sessions

console = Console()


def show_sessions(config: GreeterConfig) -> None:
    """Print discovered desktop sessions."""
    dirs = config.session_dirs or get_data_dirs()
    entries = list_sessions(dirs)

    if not entries:
        console.print("[yellow]No desktop sessions found in:[/yellow]")
        for d in dirs:
            console.print(f"  {d}")
        return

    table = Table(title="Desktop sessions")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Command", style="cyan")
    table.add_column("File", style="dim")

    for i, entry in enumerate(entries, start=1):
        table.add_row(
            str(i),
            entry.name,
            entry.session_type,
            " ".join(entry.command),
            str(entry.desktop_file),
        )

    console.print(table)


def show_config(config: GreeterConfig) -> None:
    """Print the effective configuration."""
    table = Table(title=f"Configuration ({CONFIG_PATH})")
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("socket", config.socket_address or "[red]not set[/red]")
    table.add_row("debug", str(config.debug))
    table.add_row("command", " ".join(config.default_command) or "[dim]-[/dim]")
    table.add_row("env", " ".join(config.default_env) or "[dim]-[/dim]")
    table.add_row("log_level", config.log_level)
    table.add_row("log_file", str(config.log_file) if config.log_file else "[dim]stderr[/dim]")
    table.add_row(
        "session_dirs",
        ":".join(str(d) for d in config.session_dirs) if config.session_dirs else "[dim]$XDG_DATA_DIRS[/dim]",
    )
    table.add_row("max_attempts", str(config.max_attempts))

    console.print(table)
