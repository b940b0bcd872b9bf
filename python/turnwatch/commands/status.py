"""Status command: one scan, printed as a table or JSON."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from ..monitor import SessionMonitor
from ..notifier import ConsoleNotifier
from ..presentation import sessions_newest_first

console = Console()


def _project_payload(monitor: SessionMonitor, now: datetime) -> list[dict]:
    payload = []
    for project in monitor.projects:
        data = project.to_dict(now)
        data["stateText"] = monitor.project_state_text(project, now)
        data["lastActive"] = monitor.project_last_active_text(project, now)
        payload.append(data)
    return payload


def status_command(as_json: bool = False, verbose: bool = False) -> int:
    """Scan once with the persisted settings and report every recent project."""
    try:
        monitor = SessionMonitor(ConsoleNotifier(bell=False))
        now = datetime.now(timezone.utc)
        asyncio.run(monitor.refresh(now, notify=False))
    except Exception as e:
        console.print(f"[red]Status failed:[/red] {e}")
        return 1

    if as_json:
        console.out(
            json.dumps(
                {
                    "status": monitor.status_text,
                    "sessionsDirectory": str(monitor.sessions_directory),
                    "projects": _project_payload(monitor, now),
                },
                indent=2,
                ensure_ascii=False,
            ),
            highlight=False,
        )
        return 0

    console.print(f"[bold]{monitor.status_text}[/bold] [dim]({monitor.sessions_directory})[/dim]")
    if not monitor.projects:
        return 0

    table = Table(show_header=True, header_style="bold")
    table.add_column("Project")
    table.add_column("State")
    table.add_column("Last active", style="dim")
    table.add_column("Sessions", justify="right")
    for project in monitor.projects:
        state_text = monitor.project_state_text(project, now)
        style = "yellow" if "overdue" in state_text else None
        table.add_row(
            project.display_name,
            state_text,
            monitor.project_last_active_text(project, now),
            str(len(project.sessions)),
            style=style,
        )
    console.print(table)

    if verbose:
        for project in monitor.projects:
            console.print(f"\n[bold]{project.display_name}[/bold] [dim]{project.project_path}[/dim]")
            for session in sessions_newest_first(project):
                badge = monitor.session_badge_text(session, now)
                console.print(f"  [{badge}] {monitor.session_title(session)}")
                console.print(f"    [dim]{monitor.session_context_line(session, now)}[/dim]")
    return 0
