"""Notification delivery seam.

The monitor only talks to the :class:`ProjectNotifier` protocol. The console
implementation below is what the CLI uses; tests plug in their own fakes.
"""

from __future__ import annotations

from typing import Protocol

from rich.console import Console

from .logging_config import setup_logger

logger = setup_logger("turnwatch.notifier", "turnwatch.log")


class NotifierError(Exception):
    """Base class for notifier failures."""


class NotificationPermissionError(NotifierError):
    """The user (or the platform) has not allowed notifications."""


class NotificationDeliveryError(NotifierError):
    """A notification could not be delivered."""


class ProjectNotifier(Protocol):
    async def request_permission(self) -> None: ...

    async def notify(self, title: str, body: str) -> None: ...

    def open_system_settings(self) -> None: ...


class ConsoleNotifier:
    """Prints reminders to the terminal and rings the bell."""

    def __init__(self, console: Console | None = None, bell: bool = True):
        self.console = console or Console(stderr=True)
        self.bell = bell

    async def request_permission(self) -> None:
        # A console needs no grant.
        return None

    async def notify(self, title: str, body: str) -> None:
        try:
            if self.bell:
                self.console.bell()
            self.console.print(f"[bold yellow]{title}[/bold yellow]\n  {body}")
        except OSError as e:
            raise NotificationDeliveryError(str(e)) from e
        logger.info(f"Delivered notification: {title}")

    def open_system_settings(self) -> None:
        self.console.print(
            "[dim]Console notifications need no system permission; check your terminal bell settings.[/dim]"
        )
