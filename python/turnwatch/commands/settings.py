"""Settings commands: show and update the persisted reminder settings."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table

from ..monitor import SessionMonitor
from ..notifier import ConsoleNotifier

console = Console()


def _print_settings(monitor: SessionMonitor) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Idle threshold", f"{monitor.idle_minutes:g} min")
    table.add_row("Poll interval", f"{monitor.poll_seconds:g} s")
    table.add_row("Recency window", f"{monitor.recency_window_hours:g} h")
    table.add_row("Reminder repeat", f"{monitor.reminder_minutes:g} min")
    table.add_row("Group by repo root", "yes" if monitor.use_repo_root else "no")
    table.add_row("Codex home", str(monitor.codex_home))
    table.add_row("State file", str(monitor.state_store.file_path))
    console.print(table)


def settings_show_command() -> int:
    monitor = SessionMonitor(ConsoleNotifier())
    _print_settings(monitor)
    return 0


def settings_set_command(
    idle_minutes: Optional[float] = None,
    poll_seconds: Optional[float] = None,
    recency_hours: Optional[float] = None,
    reminder_minutes: Optional[float] = None,
    use_repo_root: Optional[bool] = None,
    codex_home: Optional[str] = None,
) -> int:
    """Apply any given values; out-of-range numbers are clamped to their bounds."""
    monitor = SessionMonitor(ConsoleNotifier())

    if idle_minutes is not None:
        monitor.set_idle_minutes(idle_minutes)
    if poll_seconds is not None:
        monitor.set_poll_seconds(poll_seconds)
    if recency_hours is not None:
        monitor.set_recency_window_hours(recency_hours)
    if reminder_minutes is not None:
        monitor.set_reminder_minutes(reminder_minutes)
    if use_repo_root is not None:
        monitor.set_use_repo_root(use_repo_root)
    if codex_home is not None:
        monitor.set_codex_home_path(codex_home)

    console.print("[green]Settings saved[/green]")
    _print_settings(monitor)
    return 0
