"""Notify-test command."""

from __future__ import annotations

import asyncio

from rich.console import Console

from ..monitor import SessionMonitor
from ..notifier import ConsoleNotifier

console = Console()


def notify_test_command() -> int:
    monitor = SessionMonitor(ConsoleNotifier(console=console))
    asyncio.run(monitor.send_test_notification())
    if not monitor.has_permission:
        console.print(f"[red]{monitor.status_text}[/red]")
        return 1
    console.print(f"[green]{monitor.status_text}[/green]")
    return 0
