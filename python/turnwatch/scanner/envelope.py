"""Decoding of Codex session log lines into normalized envelopes.

Only two envelope types matter to the scanner: ``session_meta`` (identity,
working directory, branch) and ``response_item`` (a user or assistant turn).
Everything here is tolerant: a line that cannot be understood yields ``None``
rather than an exception, and missing fields simply stay empty.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

SESSION_META = "session_meta"
RESPONSE_ITEM = "response_item"

SUMMARY_MAX_LENGTH = 72

_ISO_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|z|[+-]\d{2}:?\d{2})?$"
)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_UUID_PART_LENGTHS = (8, 4, 4, 4, 12)
_WORKSPACE_ROOT_MARKERS = (
    "Workspace root: `",
    'Workspace root: "',
    "Workspace root: '",
)


@dataclass(frozen=True)
class JsonEnvelope:
    type: str
    timestamp: Optional[datetime]
    session_id: Optional[str]
    cwd: Optional[str]
    git_branch: Optional[str]
    originator: Optional[str]
    role: Optional[str]
    message_text: Optional[str]
    source: Optional[str]


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _first_non_empty(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


def parse_date(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp with or without fractional seconds."""
    token = (value or "").strip()
    if not _ISO_TIMESTAMP_RE.match(token):
        return None
    if token[-1] in "Zz":
        token = token[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(token)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def derive_session_id(file_name: str) -> str:
    """Fallback session id from a log file name.

    ``rollout-2026-02-25T13-23-16-019c9641-6eb7-7652-9f6d-45d514962eec.jsonl``
    yields the trailing UUID; names without a UUID tail yield the whole stem.
    """
    stem = os.path.splitext(file_name)[0]
    components = [part for part in stem.split("-") if part]
    if len(components) >= 5:
        tail = components[-5:]
        looks_like_uuid = all(
            len(part) == expected and all(ch in _HEX_DIGITS for ch in part)
            for part, expected in zip(tail, _UUID_PART_LENGTHS)
        )
        if looks_like_uuid:
            return "-".join(tail)
    return stem


def extract_message_text(content: Any) -> Optional[str]:
    if not isinstance(content, list) or not content:
        return None
    for item in content:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if isinstance(text, str) and text.strip():
            return text
    return None


def extract_workspace_root(text: Optional[str]) -> Optional[str]:
    """Recover ``Workspace root: `<path>``` from free-text instructions."""
    if not text:
        return None
    for marker in _WORKSPACE_ROOT_MARKERS:
        start = text.find(marker)
        if start < 0:
            continue
        suffix = text[start + len(marker):]
        closing = suffix.find(marker[-1])
        if closing < 0:
            continue
        value = suffix[:closing].strip()
        if value:
            return os.path.expanduser(value)
    return None


def _standalone_environment_context(text: str) -> Optional[tuple[int, int]]:
    open_tag, close_tag = "<environment_context>", "</environment_context>"
    start = text.find(open_tag)
    if start < 0:
        return None
    end = text.find(close_tag, start + len(open_tag))
    if end < 0:
        return None
    if text[:start].strip() or text[end + len(close_tag):].strip():
        return None
    return start + len(open_tag), end


def _extract_cwd_value(text: str, lower: int, upper: int) -> Optional[str]:
    start = text.find("<cwd>", lower, upper)
    if start < 0:
        return None
    end = text.find("</cwd>", start + len("<cwd>"), upper)
    if end < 0:
        return None
    value = text[start + len("<cwd>"):end].strip()
    return value or None


def _is_likely_filesystem_path(value: str) -> bool:
    trimmed = value.strip()
    if not trimmed:
        return False
    if any(marker in trimmed for marker in ("<", ">", "\n", "\r")):
        return False
    return trimmed.startswith("/") or trimmed == "~" or trimmed.startswith("~/")


def _standardize(path: str) -> str:
    return os.path.normpath(os.path.expanduser(path))


def extract_environment_cwd(text: Optional[str]) -> Optional[str]:
    """Recover a cwd from a message that is *only* an environment context block.

    Accepted shapes are a lone ``<environment_context>...</environment_context>``
    pair containing ``<cwd>``, or a lone ``<cwd>...</cwd>`` tag. Context blocks
    quoted inside other text are rejected.
    """
    if not text:
        return None

    bounds = _standalone_environment_context(text)
    if bounds is not None:
        cwd = _extract_cwd_value(text, *bounds)
        if cwd and _is_likely_filesystem_path(cwd):
            return _standardize(cwd)

    trimmed = text.strip()
    if trimmed.startswith("<cwd>") and trimmed.endswith("</cwd>"):
        cwd = _extract_cwd_value(trimmed, 0, len(trimmed))
        if cwd and _is_likely_filesystem_path(cwd):
            return _standardize(cwd)

    return None


def summarize_message(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    collapsed = " ".join(text.split())
    if not collapsed:
        return None
    if len(collapsed) <= SUMMARY_MAX_LENGTH:
        return collapsed
    return collapsed[:SUMMARY_MAX_LENGTH].strip() + "..."


def should_ignore(path: str, ignored_prefixes: list[str] | tuple[str, ...]) -> bool:
    if not path or not path.strip():
        return True
    standardized = os.path.normpath(path)
    if standardized in ("/", "."):
        return True
    return any(standardized.startswith(prefix) for prefix in ignored_prefixes)


def parse_envelope(line: str, fallback_session_id: str) -> Optional[JsonEnvelope]:
    """Decode one log line; None when it is not a JSON object with a ``type``."""
    try:
        raw = json.loads(line)
    except ValueError:
        return None
    if not isinstance(raw, dict):
        return None
    event_type = raw.get("type")
    if not isinstance(event_type, str):
        return None

    payload = raw.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    item = payload.get("item")
    if not isinstance(item, dict):
        item = {}

    timestamp: Optional[datetime] = None
    if isinstance(raw.get("timestamp"), str):
        timestamp = parse_date(raw["timestamp"])
    elif isinstance(payload.get("timestamp"), str):
        timestamp = parse_date(payload["timestamp"])

    if event_type == SESSION_META:
        session_id = _first_non_empty(raw.get("session_id"), payload.get("session_id"), payload.get("id"))
    else:
        session_id = _first_non_empty(raw.get("session_id"), payload.get("session_id"))

    base_instructions = payload.get("base_instructions")
    if isinstance(base_instructions, dict):
        instructions_text = _str_or_none(base_instructions.get("text"))
    else:
        instructions_text = _str_or_none(base_instructions)

    cwd = _str_or_none(payload.get("cwd"))
    if cwd is None or cwd == "/" or not cwd.strip():
        workspace_root = extract_workspace_root(instructions_text)
        if workspace_root:
            cwd = workspace_root

    git = payload.get("git")
    git_branch = _str_or_none(git.get("branch")) if isinstance(git, dict) else None

    message_text: Optional[str] = None
    if event_type == RESPONSE_ITEM:
        message_text = (
            extract_message_text(payload.get("content"))
            or extract_message_text(item.get("content"))
            or _str_or_none(payload.get("text"))
            or _str_or_none(item.get("text"))
        )

    return JsonEnvelope(
        type=event_type,
        timestamp=timestamp,
        session_id=session_id or fallback_session_id,
        cwd=cwd,
        git_branch=git_branch,
        originator=_str_or_none(payload.get("originator")),
        role=_str_or_none(payload.get("role")) or _str_or_none(item.get("role")),
        message_text=message_text,
        source=_str_or_none(payload.get("source")),
    )
