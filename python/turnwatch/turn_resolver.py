"""Whose move is it: classification of a session from its two role timestamps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .models import ProjectGroup, SessionSnapshot


class TurnKind(str, Enum):
    DORMANT = "dormant"
    ASSISTANT_TURN = "assistant_turn"
    YOUR_TURN = "your_turn"


@dataclass(frozen=True)
class ConversationTurn:
    kind: TurnKind
    overdue: bool = False

    @property
    def is_your_turn(self) -> bool:
        return self.kind is TurnKind.YOUR_TURN

    @property
    def is_overdue_your_turn(self) -> bool:
        return self.kind is TurnKind.YOUR_TURN and self.overdue

    @property
    def sort_priority(self) -> int:
        if self.kind is TurnKind.YOUR_TURN:
            return 0 if self.overdue else 1
        if self.kind is TurnKind.ASSISTANT_TURN:
            return 2
        return 3

    @classmethod
    def resolve(
        cls,
        latest_user_event: Optional[datetime],
        latest_assistant_event: Optional[datetime],
        idle_threshold_minutes: float,
        now: Optional[datetime] = None,
    ) -> "ConversationTurn":
        now = now or datetime.now(timezone.utc)
        idle_seconds = idle_threshold_minutes * 60

        def your_turn(since: datetime) -> "ConversationTurn":
            return cls(TurnKind.YOUR_TURN, overdue=(now - since).total_seconds() >= idle_seconds)

        if latest_user_event is None and latest_assistant_event is None:
            return cls(TurnKind.DORMANT)
        if latest_user_event is None:
            return your_turn(latest_assistant_event)
        if latest_assistant_event is None:
            return cls(TurnKind.ASSISTANT_TURN)
        if latest_assistant_event >= latest_user_event:
            return your_turn(latest_assistant_event)
        return cls(TurnKind.ASSISTANT_TURN)

    @classmethod
    def for_session(
        cls, session: SessionSnapshot, idle_threshold_minutes: float, now: Optional[datetime] = None
    ) -> "ConversationTurn":
        return cls.resolve(
            session.latest_user_event,
            session.latest_assistant_event,
            idle_threshold_minutes,
            now,
        )


def project_turn(
    project: ProjectGroup, idle_threshold_minutes: float, now: Optional[datetime] = None
) -> ConversationTurn:
    """Turn of the project's most recent session; dormant when it has none."""
    latest = project.latest_session
    if latest is None:
        return ConversationTurn(TurnKind.DORMANT)
    return ConversationTurn.for_session(latest, idle_threshold_minutes, now)


def project_sort_priority(
    project: ProjectGroup, idle_threshold_minutes: float, now: Optional[datetime] = None
) -> int:
    return project_turn(project, idle_threshold_minutes, now).sort_priority


def session_turn_elapsed(session: SessionSnapshot) -> datetime:
    """Moment the current turn started: the later role event, else the latest event."""
    user, assistant = session.latest_user_event, session.latest_assistant_event
    if user is not None and assistant is not None:
        return max(user, assistant)
    if assistant is not None:
        return assistant
    if user is not None:
        return user
    return session.latest_event
