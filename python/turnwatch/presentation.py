"""Human-readable text for projects and sessions (status table, reminders)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .models import ProjectGroup, SessionSnapshot
from .turn_resolver import ConversationTurn, TurnKind, session_turn_elapsed

SEPARATOR = " • "


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def time_ago_display(moment: datetime, now: Optional[datetime] = None) -> str:
    seconds = int((_now(now) - moment).total_seconds())
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def waiting_duration_display(moment: datetime, now: Optional[datetime] = None) -> str:
    now = _now(now)
    if now < moment:
        return "0m"
    minutes = int((now - moment).total_seconds() / 60)
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"


def project_state_text(project: ProjectGroup, idle_minutes: float, now: Optional[datetime] = None) -> str:
    latest = project.latest_session
    if latest is None:
        return "Dormant"

    now = _now(now)
    turn = ConversationTurn.for_session(latest, idle_minutes, now)
    elapsed = waiting_duration_display(session_turn_elapsed(latest), now)
    if turn.kind is TurnKind.YOUR_TURN:
        return f"Your turn • overdue {elapsed}" if turn.overdue else f"Your turn • {elapsed}"
    if turn.kind is TurnKind.ASSISTANT_TURN:
        return f"Assistant turn • {elapsed}"
    return "Dormant"


def project_last_active_text(project: ProjectGroup, now: Optional[datetime] = None) -> str:
    latest = project.latest_session
    if latest is None:
        return "unknown"
    return time_ago_display(latest.latest_event, now)


def sessions_newest_first(project: ProjectGroup) -> list[SessionSnapshot]:
    return sorted(project.sessions, key=lambda s: s.latest_event, reverse=True)


def _normalized(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def _latest_summary(session: SessionSnapshot) -> Optional[str]:
    user = _normalized(session.latest_user_summary)
    assistant = _normalized(session.latest_assistant_summary)
    user_at, assistant_at = session.latest_user_event, session.latest_assistant_event

    assistant_spoke_last = assistant_at is not None and (user_at is None or assistant_at >= user_at)
    if assistant_spoke_last:
        return assistant or user
    return user or assistant


def session_title(session: SessionSnapshot) -> str:
    summary = _latest_summary(session)
    if summary:
        return summary
    return f"Thread {session.session_id[-8:]}"


def session_badge_text(session: SessionSnapshot, idle_minutes: float, now: Optional[datetime] = None) -> str:
    turn = ConversationTurn.for_session(session, idle_minutes, now)
    if turn.kind is TurnKind.YOUR_TURN:
        return "overdue" if turn.overdue else "your turn"
    if turn.kind is TurnKind.ASSISTANT_TURN:
        return "assistant turn"
    return "dormant"


def session_time_text(session: SessionSnapshot, idle_minutes: float, now: Optional[datetime] = None) -> str:
    turn = ConversationTurn.for_session(session, idle_minutes, now)
    if turn.kind is TurnKind.DORMANT:
        return time_ago_display(session.latest_event, now)
    return waiting_duration_display(session_turn_elapsed(session), now)


def _originator_source_text(session: SessionSnapshot) -> Optional[str]:
    originator = _normalized(session.originator)
    source = _normalized(session.source)
    if originator and source:
        return f"{originator}({source})"
    return originator or source


def session_context_line(session: SessionSnapshot, idle_minutes: float, now: Optional[datetime] = None) -> str:
    parts: list[str] = []
    branch = _normalized(session.git_branch)
    if branch:
        parts.append(branch)
    originator_source = _originator_source_text(session)
    if originator_source:
        parts.append(originator_source)
    parts.append(session_time_text(session, idle_minutes, now))
    return SEPARATOR.join(parts)
