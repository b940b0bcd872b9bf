"""Data model shared by the scanner, the monitor and the state store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

DISTANT_PAST = datetime.min.replace(tzinfo=timezone.utc)


class ProjectState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    IDLE = "idle"


@dataclass
class FileScanCursor:
    """How far a session log has been consumed, plus the (size, mtime) it had then."""

    offset: int
    file_size: int
    modified_at: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {"offset": self.offset, "fileSize": self.file_size, "modifiedAt": self.modified_at}

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["FileScanCursor"]:
        if not isinstance(raw, dict):
            return None
        try:
            offset = int(raw.get("offset", 0))
            file_size = int(raw.get("fileSize", 0))
        except (TypeError, ValueError):
            return None
        modified_at = raw.get("modifiedAt")
        if not isinstance(modified_at, (int, float)) or isinstance(modified_at, bool):
            modified_at = None
        return cls(offset=max(0, offset), file_size=max(0, file_size), modified_at=modified_at)


@dataclass
class SessionSnapshot:
    session_id: str
    cwd: str
    first_seen: datetime
    latest_event: datetime
    latest_user_event: Optional[datetime] = None
    latest_assistant_event: Optional[datetime] = None
    latest_user_summary: Optional[str] = None
    latest_assistant_summary: Optional[str] = None
    git_branch: Optional[str] = None
    originator: Optional[str] = None
    session_log_path: Optional[str] = None
    source: Optional[str] = None

    @property
    def state(self) -> ProjectState:
        if self.latest_user_event is None:
            return ProjectState.ACTIVE
        if self.latest_assistant_event is not None and self.latest_assistant_event >= self.latest_user_event:
            return ProjectState.ACTIVE
        return ProjectState.WAITING

    def waiting_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds since the latest user event, only while the session is waiting."""
        if self.state is not ProjectState.WAITING or self.latest_user_event is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.latest_user_event).total_seconds()

    def to_dict(self, now: Optional[datetime] = None) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        data["state"] = self.state.value
        data["waiting_seconds"] = self.waiting_seconds(now)
        return data


@dataclass
class ProjectGroup:
    id: str
    display_name: str
    project_path: str
    sessions: list[SessionSnapshot] = field(default_factory=list)

    @property
    def latest_session(self) -> Optional[SessionSnapshot]:
        if not self.sessions:
            return None
        return max(self.sessions, key=lambda s: s.latest_event)

    @property
    def state(self) -> ProjectState:
        latest = self.latest_session
        return latest.state if latest else ProjectState.IDLE

    @property
    def last_seen(self) -> datetime:
        latest = self.latest_session
        return latest.latest_event if latest else DISTANT_PAST

    def to_dict(self, now: Optional[datetime] = None) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "projectPath": self.project_path,
            "state": self.state.value,
            "sessions": [s.to_dict(now) for s in self.sessions],
        }


@dataclass
class ScanResult:
    project_groups: dict[str, ProjectGroup]
    total_sessions: int


def state_fingerprint(waiting_since: Optional[datetime], latest_event: datetime) -> str:
    """Token identifying one waiting episode; a new episode resets reminder cooldowns."""
    if waiting_since is None:
        return f"active-{latest_event.timestamp()}"
    return f"waiting-{int(waiting_since.timestamp())}"
