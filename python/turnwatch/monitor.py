"""Session monitor: periodic scans, project ordering and overdue reminders.

``SessionMonitor`` owns the user settings, a scan worker and the reminder
state store. Each :meth:`SessionMonitor.refresh` scans on a worker thread,
publishes the ordered project list plus a status line, and then evaluates
every project against the reminder policy.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .config import TurnwatchConfig
from .logging_config import setup_logger
from .models import ProjectGroup, ProjectState, SessionSnapshot, state_fingerprint
from .notifier import ProjectNotifier
from .presentation import (
    project_last_active_text,
    project_state_text,
    session_badge_text,
    session_context_line,
    session_title,
    waiting_duration_display,
)
from .scanner import CodexHistoryScanner, SessionScanWorker
from .scheduler import RefreshScheduler
from .state_store import ReminderSettings, ReminderStateStore
from .turn_resolver import ConversationTurn, project_sort_priority

logger = setup_logger("turnwatch.monitor", "turnwatch.log")

APP_TITLE = "turnwatch"
INITIAL_STATUS = "Monitoring Codex sessions"
PERMISSION_REQUIRED_STATUS = "Notification permission required"


def normalize_codex_home_path(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return os.path.expanduser(trimmed)


class SessionMonitor:
    def __init__(
        self,
        notifier: ProjectNotifier,
        state_store: Optional[ReminderStateStore] = None,
        scanner: Optional[CodexHistoryScanner] = None,
        config: Optional[TurnwatchConfig] = None,
        autostart: bool = False,
    ):
        self.notifier = notifier
        self.config = config or TurnwatchConfig.load()
        self.state_store = state_store or ReminderStateStore(self.config.state_file)
        self.settings: ReminderSettings = self.state_store.load_settings()

        self.projects: list[ProjectGroup] = []
        self.status_text = INITIAL_STATUS
        self.has_permission = False

        if scanner is not None:
            self.manages_scanner_directory = False
        else:
            scanner = CodexHistoryScanner(
                self.sessions_directory,
                self.state_store.all_file_cursors(),
                max_scan_tail_bytes=self.config.max_scan_tail_bytes,
                snapshot_retention_hours=self.config.snapshot_retention_hours,
                rehydrate_scan_bytes=self.config.rehydrate_scan_bytes,
            )
            self.manages_scanner_directory = True
        self._worker = SessionScanWorker(scanner)

        self._scheduler = RefreshScheduler()
        self._is_refreshing = False
        self._pending_refresh: Optional[asyncio.Task] = None

        if autostart:
            self.start_polling()

    # -- settings ------------------------------------------------------------

    @property
    def idle_minutes(self) -> float:
        return self.settings.idle_minutes

    @property
    def poll_seconds(self) -> float:
        return self.settings.poll_seconds

    @property
    def recency_window_hours(self) -> float:
        return self.settings.recency_window_hours

    @property
    def reminder_minutes(self) -> float:
        return self.settings.reminder_minutes

    @property
    def use_repo_root(self) -> bool:
        return self.settings.use_repo_root

    @property
    def codex_home(self) -> Path:
        configured = normalize_codex_home_path(self.settings.codex_home_path)
        if configured:
            return Path(configured)
        return self.config.codex_home

    @property
    def sessions_directory(self) -> Path:
        return self.codex_home / "sessions"

    def ignored_prefixes(self) -> list[str]:
        return self.config.ignored_prefixes(self.codex_home)

    def set_idle_minutes(self, value: float) -> None:
        self._apply_settings(replace(self.settings, idle_minutes=float(value)))

    def set_recency_window_hours(self, value: float) -> None:
        self._apply_settings(replace(self.settings, recency_window_hours=float(value)))

    def set_reminder_minutes(self, value: float) -> None:
        self._apply_settings(replace(self.settings, reminder_minutes=float(value)))

    def set_use_repo_root(self, value: bool) -> None:
        self._apply_settings(replace(self.settings, use_repo_root=bool(value)))

    def set_codex_home_path(self, value: Optional[str]) -> None:
        self._apply_settings(replace(self.settings, codex_home_path=normalize_codex_home_path(value)))

    def set_poll_seconds(self, value: float) -> None:
        self._apply_settings(replace(self.settings, poll_seconds=float(value)), restart_polling=True)

    def _apply_settings(self, updated: ReminderSettings, restart_polling: bool = False) -> None:
        updated = updated.clamped()
        if updated == self.settings:
            return
        self.settings = updated
        self.state_store.save_settings(updated)
        logger.info(f"Settings changed: {updated.to_dict()}")
        if restart_polling:
            if self._scheduler.running:
                self.start_polling()
        else:
            self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the next explicit refresh picks the new settings up.
            return
        self._pending_refresh = loop.create_task(self.refresh())

    # -- polling -------------------------------------------------------------

    def start_polling(self) -> None:
        self._scheduler.configure(self.poll_seconds, self.refresh)

    def stop_polling(self) -> None:
        self._scheduler.stop()

    # -- notifications -------------------------------------------------------

    async def request_notification_permission(self) -> None:
        try:
            await self.notifier.request_permission()
        except Exception as e:
            logger.warning(f"Notification permission denied: {e}")
            self.has_permission = False
            self.status_text = PERMISSION_REQUIRED_STATUS
            return

        self.has_permission = True
        self.status_text = "Notifications enabled"
        try:
            await self.notifier.notify(APP_TITLE, "Notifications are enabled.")
        except Exception as e:
            logger.warning(f"Notification delivery check failed: {e}")
            self.status_text = "Notifications enabled (delivery check failed)"

    async def send_test_notification(self) -> None:
        try:
            await self.notifier.request_permission()
            self.has_permission = True
            await self.notifier.notify(APP_TITLE, "Test notification delivered successfully.")
            self.status_text = "Sent test notification"
        except Exception as e:
            logger.warning(f"Test notification failed: {e}")
            self.has_permission = False
            self.status_text = PERMISSION_REQUIRED_STATUS
            self.notifier.open_system_settings()

    def open_system_notification_settings(self) -> None:
        self.notifier.open_system_settings()

    # -- refresh -------------------------------------------------------------

    async def refresh(self, now: Optional[datetime] = None, notify: bool = True) -> None:
        """Scan, publish the ordered projects and, unless ``notify`` is False, send due reminders."""
        if self._is_refreshing:
            logger.debug("Refresh already running; dropping tick")
            return
        self._is_refreshing = True
        try:
            await self._refresh(now or datetime.now(timezone.utc), notify)
        finally:
            self._is_refreshing = False

    async def _refresh(self, now: datetime, notify: bool) -> None:
        cutoff = now - timedelta(hours=self.recency_window_hours)

        if self.manages_scanner_directory:
            if self._worker.set_sessions_directory(self.sessions_directory):
                self.state_store.update_file_cursors({})

        scan = await asyncio.to_thread(
            self._worker.scan, cutoff, self.use_repo_root, self.ignored_prefixes()
        )
        self.state_store.update_file_cursors(scan.file_cursors)

        grouped = [
            group
            for group in scan.result.project_groups.values()
            if group.project_path and group.sessions
        ]
        grouped.sort(key=lambda g: g.last_seen, reverse=True)
        grouped.sort(key=lambda g: project_sort_priority(g, self.idle_minutes, now))

        self.projects = grouped
        if grouped:
            self.status_text = f"Tracking {len(grouped)} project(s)"
        else:
            self.status_text = f"No recent projects in last {int(self.recency_window_hours)}h"
        logger.info(
            f"Refresh complete: projects={len(grouped)} sessions={scan.result.total_sessions}"
        )

        if not notify:
            return
        for project in grouped:
            await self.evaluate(project, now)

    async def evaluate(self, project: ProjectGroup, now: datetime) -> None:
        latest = project.latest_session
        if latest is None:
            self.state_store.clear_project(project.project_path)
            return

        turn = ConversationTurn.for_session(latest, self.idle_minutes, now)
        if not turn.is_overdue_your_turn:
            self.state_store.clear_project(project.project_path)
            return

        waiting_since = latest.latest_assistant_event or latest.latest_event
        fingerprint = state_fingerprint(waiting_since, latest.latest_event)
        if not self.state_store.should_notify(
            project.project_path, fingerprint, self.reminder_minutes * 60, now
        ):
            return

        waiting_duration = waiting_duration_display(waiting_since, now)
        try:
            await self.notifier.notify(
                f"{project.display_name} is waiting on you",
                f"Your reply is overdue by {waiting_duration}.",
            )
        except Exception as e:
            logger.warning(f"Reminder for {project.project_path} failed: {e}")
            self.status_text = PERMISSION_REQUIRED_STATUS
            self.has_permission = False
            return

        self.state_store.record_notification(
            project.project_path, ProjectState.WAITING.value, fingerprint, now
        )

    # -- presentation --------------------------------------------------------

    def project_state_text(self, project: ProjectGroup, now: Optional[datetime] = None) -> str:
        return project_state_text(project, self.idle_minutes, now)

    def project_last_active_text(self, project: ProjectGroup, now: Optional[datetime] = None) -> str:
        return project_last_active_text(project, now)

    def session_title(self, session: SessionSnapshot) -> str:
        return session_title(session)

    def session_badge_text(self, session: SessionSnapshot, now: Optional[datetime] = None) -> str:
        return session_badge_text(session, self.idle_minutes, now)

    def session_context_line(self, session: SessionSnapshot, now: Optional[datetime] = None) -> str:
        return session_context_line(session, self.idle_minutes, now)
