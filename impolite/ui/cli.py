"""Main CLI entry point - greeter and inspection subcommands."""

import asyncio
import logging
import sys
from typing import Optional

import typer

from impolite.core.configs import CONFIG_PATH, GreeterConfig, get_greeter_config, load_raw_config
from impolite.greetd.errors import (
    AuthenticationFailure,
    ConnectionUnavailable,
    DaemonConnectionError,
    GreetdError,
)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Impolite - a greetd login front-end for the terminal.",
)

CONNECTION_HINT = (
    "greetd must be running for Impolite to work. You might already be logged in."
)


# ============================================================================
# Shared setup
# ============================================================================

def setup_logging(config: GreeterConfig) -> None:
    """
    Configure root logging once per process.

    Logs go to the configured file when there is one, since the greeter
    owns the terminal; otherwise to stderr.
    """
    handler_args = {}
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handler_args["filename"] = str(config.log_file)
    else:
        handler_args["stream"] = sys.stderr

    logging.basicConfig(
        level=logging.DEBUG if config.debug else config.log_level_number,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
        **handler_args,
    )


def _load_config(**overrides) -> GreeterConfig:
    """Load config and exit on error."""
    try:
        return get_greeter_config(load_raw_config(), **overrides)
    except ValueError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        typer.echo(f"Check {CONFIG_PATH}", err=True)
        raise typer.Exit(1)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def login(
    socket: Optional[str] = typer.Option(
        None, "--socket", "-s", help="greetd socket path or host:port (default: $GREETD_SOCK)"
    ),
    debug: Optional[bool] = typer.Option(
        None, "--debug/--no-debug", help="Run without greetd when it is unreachable"
    ),
    cmd: Optional[str] = typer.Option(
        None, "--cmd", help="Default command offered after authentication"
    ),
) -> None:
    """
    Authenticate with greetd and start a session.

    Example: impolite login --cmd sway
    """
    import shlex

    from impolite.core.greeter import Greeter
    from impolite.ui.output import UIManager
    from impolite.ui.prompts import PromptManager

    try:
        default_command = shlex.split(cmd) if cmd else None
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--cmd")

    config = _load_config(
        socket_address=socket,
        debug=debug,
        default_command=default_command,
    )
    setup_logging(config)

    ui = UIManager()
    greeter = Greeter(config, PromptManager(), ui)
    try:
        asyncio.run(greeter.run())
    except (KeyboardInterrupt, EOFError):
        typer.echo("", err=True)
        raise typer.Exit(130)
    except ConnectionUnavailable as e:
        ui.error(f"Error: {DaemonConnectionError.user_message} ({e})")
        ui.dim(CONNECTION_HINT)
        raise typer.Exit(1)
    except DaemonConnectionError as e:
        ui.error(f"Error: {e.user_message} ({e})")
        raise typer.Exit(1)
    except AuthenticationFailure as e:
        ui.error(str(e))
        raise typer.Exit(1)
    except GreetdError as e:
        ui.error(f"Protocol error talking to greetd: {e}")
        raise typer.Exit(1)


@app.command()
def sessions() -> None:
    """List the desktop sessions offered after login."""
    from impolite.ui.session_commands import show_sessions

    show_sessions(_load_config())


@app.command()
def config() -> None:
    """Show the effective configuration."""
    from impolite.ui.session_commands import show_config

    show_config(_load_config())


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
