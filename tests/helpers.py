"""Fixture-writing helpers shared by the test modules."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from turnwatch.models import SessionSnapshot
from turnwatch.notifier import NotificationDeliveryError, NotificationPermissionError

NOW = datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ago(seconds: float, now: datetime = NOW) -> datetime:
    return now - timedelta(seconds=seconds)


def json_line(obj: dict[str, Any]) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def write_json_lines(objects: Iterable[dict[str, Any]], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json_line(o) + "\n" for o in objects), encoding="utf-8")


def append_json_lines(objects: Iterable[dict[str, Any]], path: Path) -> None:
    with path.open("a", encoding="utf-8") as fh:
        for obj in objects:
            fh.write(json_line(obj) + "\n")


def session_meta(moment: datetime, cwd: str, **payload: Any) -> dict[str, Any]:
    return {"type": "session_meta", "timestamp": iso(moment), "payload": {"cwd": cwd, **payload}}


def response_item(moment: datetime, role: str, text: Optional[str] = None, **payload: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"role": role, **payload}
    if text is not None:
        body["content"] = [{"text": text, "type": "input_text"}]
    return {"type": "response_item", "timestamp": iso(moment), "payload": body}


def snapshot(
    session_id: str = "s1",
    cwd: str = "/Users/me/repo",
    *,
    latest_event: datetime,
    first_seen: Optional[datetime] = None,
    user: Optional[datetime] = None,
    assistant: Optional[datetime] = None,
    **fields: Any,
) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        cwd=cwd,
        first_seen=first_seen or latest_event,
        latest_event=latest_event,
        latest_user_event=user,
        latest_assistant_event=assistant,
        **fields,
    )


class FakeNotifier:
    def __init__(self):
        self.notifications: list[tuple[str, str]] = []
        self.request_permission_calls = 0
        self.open_settings_calls = 0

    async def request_permission(self) -> None:
        self.request_permission_calls += 1

    async def notify(self, title: str, body: str) -> None:
        self.notifications.append((title, body))

    def open_system_settings(self) -> None:
        self.open_settings_calls += 1


class WarmupFailingNotifier(FakeNotifier):
    async def notify(self, title: str, body: str) -> None:
        raise NotificationDeliveryError("delivery failed")


class FailingNotifier(FakeNotifier):
    async def request_permission(self) -> None:
        self.request_permission_calls += 1
        raise NotificationPermissionError("denied")

    async def notify(self, title: str, body: str) -> None:
        raise NotificationDeliveryError("delivery failed")
