"""turnwatch command line interface."""

from __future__ import annotations

from typing import Annotated, Optional

import typer

from . import __version__

app = typer.Typer(
    name="turnwatch",
    help="Watch Codex session logs and get reminded when a conversation is waiting on you.",
    no_args_is_help=True,
    add_completion=False,
)
settings_app = typer.Typer(help="Show or change reminder settings.", no_args_is_help=True)
app.add_typer(settings_app, name="settings")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"turnwatch {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = None,
) -> None:
    pass


@app.command("status")
def status(
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List every session per project"),
):
    """Scan once and show whose turn it is in each recent project."""
    from .commands.status import status_command

    raise typer.Exit(code=status_command(as_json=as_json, verbose=verbose))


@app.command("watch")
def watch(
    once: bool = typer.Option(False, "--once", help="Run a single refresh and exit"),
):
    """Keep polling and remind you when a reply is overdue."""
    from .commands.watch import watch_command

    raise typer.Exit(code=watch_command(once=once))


@settings_app.command("show")
def settings_show():
    """Show the current settings."""
    from .commands.settings import settings_show_command

    raise typer.Exit(code=settings_show_command())


@settings_app.command("set")
def settings_set(
    idle_minutes: Optional[float] = typer.Option(None, "--idle-minutes", help="Minutes before your turn is overdue (1-120)"),
    poll_seconds: Optional[float] = typer.Option(None, "--poll-seconds", help="Seconds between scans (10-600)"),
    recency_hours: Optional[float] = typer.Option(None, "--recency-hours", help="Hours of history to track (1-24)"),
    reminder_minutes: Optional[float] = typer.Option(None, "--reminder-minutes", help="Minutes between repeated reminders (5-120)"),
    use_repo_root: Annotated[
        Optional[bool],
        typer.Option("--repo-root/--no-repo-root", help="Group sessions by git repository root"),
    ] = None,
    codex_home: Optional[str] = typer.Option(None, "--codex-home", help="Codex home directory (empty string resets)"),
):
    """Change one or more settings."""
    from .commands.settings import settings_set_command

    raise typer.Exit(
        code=settings_set_command(
            idle_minutes=idle_minutes,
            poll_seconds=poll_seconds,
            recency_hours=recency_hours,
            reminder_minutes=reminder_minutes,
            use_repo_root=use_repo_root,
            codex_home=codex_home,
        )
    )


@app.command("notify-test")
def notify_test():
    """Send a test notification."""
    from .commands.notify import notify_test_command

    raise typer.Exit(code=notify_test_command())


@app.command("init")
def init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config with defaults"),
):
    """Write the default config to ~/.turnwatch/config.yaml."""
    from .commands.init import init_command

    raise typer.Exit(code=init_command(force=force))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
