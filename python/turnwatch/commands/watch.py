"""Watch command: run the monitor loop until interrupted."""

from __future__ import annotations

import asyncio

from rich.console import Console

from ..logging_config import setup_logger
from ..monitor import SessionMonitor
from ..notifier import ConsoleNotifier

logger = setup_logger("turnwatch.commands.watch", "turnwatch.log")
console = Console()


async def _run(monitor: SessionMonitor, once: bool) -> None:
    await monitor.request_notification_permission()
    if once:
        await monitor.refresh()
        console.print(f"[dim]{monitor.status_text}[/dim]")
        return

    monitor.start_polling()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        monitor.stop_polling()


def watch_command(once: bool = False) -> int:
    """Poll Codex sessions and print a reminder whenever a reply is overdue."""
    try:
        monitor = SessionMonitor(ConsoleNotifier(console=console))
    except Exception as e:
        console.print(f"[red]Failed to start monitor:[/red] {e}")
        return 1

    if not once:
        console.print(
            f"[bold]Watching[/bold] {monitor.sessions_directory} "
            f"[dim](every {int(monitor.poll_seconds)}s, overdue after {int(monitor.idle_minutes)}m)[/dim]"
        )
    try:
        asyncio.run(_run(monitor, once))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")
    except Exception as e:
        logger.error(f"Watch loop failed: {e}", exc_info=True)
        console.print(f"[red]Watch failed:[/red] {e}")
        return 1
    return 0
