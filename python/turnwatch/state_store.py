"""Persisted reminder state: per-project notification records, file cursors and settings.

Everything lives in one JSON document that is rewritten in full (write to a
temporary sibling, then replace) on every mutation. Persistence is
best-effort: a failed write is logged and the in-memory state stays
authoritative until the next successful save.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .config import (
    DEFAULT_IDLE_MINUTES,
    DEFAULT_POLL_SECONDS,
    DEFAULT_RECENCY_WINDOW_HOURS,
    DEFAULT_REMINDER_MINUTES,
    TurnwatchConfig,
)
from .logging_config import setup_logger
from .models import FileScanCursor, ProjectState

logger = setup_logger("turnwatch.state_store", "turnwatch.log")

IDLE_MINUTES_BOUNDS = (1.0, 120.0)
POLL_SECONDS_BOUNDS = (10.0, 600.0)
RECENCY_WINDOW_HOURS_BOUNDS = (1.0, 24.0)
REMINDER_MINUTES_BOUNDS = (5.0, 120.0)


def _clamp(value: float, bounds: tuple[float, float], default: float) -> float:
    if math.isnan(value):
        return default
    lower, upper = bounds
    return min(max(value, lower), upper)


@dataclass
class ProjectReminderState:
    project_path: str
    state: str
    last_notified_at: datetime
    last_state_fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectPath": self.project_path,
            "state": self.state,
            "lastNotifiedAt": self.last_notified_at.isoformat(),
            "lastStateFingerprint": self.last_state_fingerprint,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["ProjectReminderState"]:
        if not isinstance(raw, dict):
            return None
        try:
            notified_at = datetime.fromisoformat(raw["lastNotifiedAt"])
            if notified_at.tzinfo is None:
                notified_at = notified_at.replace(tzinfo=timezone.utc)
            return cls(
                project_path=str(raw["projectPath"]),
                state=str(raw["state"]),
                last_notified_at=notified_at,
                last_state_fingerprint=str(raw["lastStateFingerprint"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class ReminderSettings:
    idle_minutes: float = DEFAULT_IDLE_MINUTES
    poll_seconds: float = DEFAULT_POLL_SECONDS
    recency_window_hours: float = DEFAULT_RECENCY_WINDOW_HOURS
    reminder_minutes: float = DEFAULT_REMINDER_MINUTES
    use_repo_root: bool = True
    codex_home_path: Optional[str] = None

    def clamped(self) -> "ReminderSettings":
        return replace(
            self,
            idle_minutes=_clamp(self.idle_minutes, IDLE_MINUTES_BOUNDS, DEFAULT_IDLE_MINUTES),
            poll_seconds=_clamp(self.poll_seconds, POLL_SECONDS_BOUNDS, DEFAULT_POLL_SECONDS),
            recency_window_hours=_clamp(self.recency_window_hours, RECENCY_WINDOW_HOURS_BOUNDS, DEFAULT_RECENCY_WINDOW_HOURS),
            reminder_minutes=_clamp(self.reminder_minutes, REMINDER_MINUTES_BOUNDS, DEFAULT_REMINDER_MINUTES),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "idleMinutes": self.idle_minutes,
            "pollSeconds": self.poll_seconds,
            "recencyWindowHours": self.recency_window_hours,
            "reminderMinutes": self.reminder_minutes,
            "useRepoRoot": self.use_repo_root,
            "codexHomePath": self.codex_home_path,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["ReminderSettings"]:
        if not isinstance(raw, dict):
            return None
        defaults = cls()
        try:
            codex_home_path = raw.get("codexHomePath")
            use_repo_root = raw.get("useRepoRoot")
            return cls(
                idle_minutes=float(raw.get("idleMinutes", defaults.idle_minutes)),
                poll_seconds=float(raw.get("pollSeconds", defaults.poll_seconds)),
                recency_window_hours=float(raw.get("recencyWindowHours", defaults.recency_window_hours)),
                reminder_minutes=float(raw.get("reminderMinutes", defaults.reminder_minutes)),
                use_repo_root=use_repo_root if isinstance(use_repo_root, bool) else defaults.use_repo_root,
                codex_home_path=codex_home_path if isinstance(codex_home_path, str) else None,
            )
        except (TypeError, ValueError):
            return None


@dataclass
class ReminderStorage:
    states: dict[str, ProjectReminderState] = field(default_factory=dict)
    file_cursors: dict[str, FileScanCursor] = field(default_factory=dict)
    settings: Optional[ReminderSettings] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "states": {path: state.to_dict() for path, state in self.states.items()},
            "fileCursors": {path: cursor.to_dict() for path, cursor in self.file_cursors.items()},
            "settings": self.settings.to_dict() if self.settings else None,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "ReminderStorage":
        storage = cls()
        if not isinstance(raw, dict):
            return storage

        states = raw.get("states")
        if isinstance(states, dict):
            for path, value in states.items():
                state = ProjectReminderState.from_dict(value)
                if state is not None:
                    storage.states[str(path)] = state

        cursors = raw.get("fileCursors")
        if isinstance(cursors, dict):
            for path, value in cursors.items():
                cursor = FileScanCursor.from_dict(value)
                if cursor is not None:
                    storage.file_cursors[str(path)] = cursor

        storage.settings = ReminderSettings.from_dict(raw.get("settings"))
        return storage


class ReminderStateStore:
    def __init__(self, file_path: Optional[Path] = None):
        self.file_path = Path(file_path) if file_path else TurnwatchConfig.load().state_file
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create state directory {self.file_path.parent}: {e}")
        self._storage = ReminderStorage()
        self._load()

    # -- reminder records ----------------------------------------------------

    def should_notify(
        self, project_path: str, state_fingerprint: str, interval_seconds: float, now: datetime
    ) -> bool:
        existing = self._storage.states.get(project_path)
        if existing is None:
            return True
        if existing.state != ProjectState.WAITING.value:
            return True
        if existing.last_state_fingerprint != state_fingerprint:
            return True
        return (now - existing.last_notified_at).total_seconds() >= interval_seconds

    def record_notification(self, project_path: str, state: str, state_fingerprint: str, now: datetime) -> None:
        self._storage.states[project_path] = ProjectReminderState(
            project_path=project_path,
            state=state,
            last_notified_at=now,
            last_state_fingerprint=state_fingerprint,
        )
        self._save()

    def clear_project(self, project_path: str) -> None:
        if self._storage.states.pop(project_path, None) is not None:
            self._save()

    def reminder_state(self, project_path: str) -> Optional[ProjectReminderState]:
        return self._storage.states.get(project_path)

    # -- cursors -------------------------------------------------------------

    def all_file_cursors(self) -> dict[str, FileScanCursor]:
        return dict(self._storage.file_cursors)

    def update_file_cursors(self, updated: dict[str, FileScanCursor]) -> None:
        self._storage.file_cursors = dict(updated)
        self._save()

    # -- settings ------------------------------------------------------------

    def load_settings(self) -> ReminderSettings:
        stored = self._storage.settings
        if stored is None:
            return ReminderSettings()
        normalized = stored.clamped()
        if normalized != stored:
            logger.info("Stored settings were out of bounds; saving clamped values")
            self._storage.settings = normalized
            self._save()
        return normalized

    def save_settings(self, settings: ReminderSettings) -> None:
        normalized = settings.clamped()
        if self._storage.settings == normalized:
            return
        self._storage.settings = normalized
        self._save()

    # -- persistence ---------------------------------------------------------

    def _load(self) -> None:
        if not self.file_path.exists():
            return
        try:
            raw = json.loads(self.file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.file_path}: {e}")
            return
        self._storage = ReminderStorage.from_dict(raw)

    def _save(self) -> None:
        tmp = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        try:
            payload = json.dumps(self._storage.to_dict(), ensure_ascii=False, indent=2)
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(self.file_path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to save reminder state to {self.file_path}: {e}")
