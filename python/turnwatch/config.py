"""Static turnwatch configuration (~/.turnwatch/config.yaml) and constants."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .logging_config import setup_logger

logger = setup_logger("turnwatch.config", "turnwatch.log")

SESSION_FILE_EXTENSIONS = frozenset({"jsonl"})

DEFAULT_RECENCY_WINDOW_HOURS = 4.0
DEFAULT_IDLE_MINUTES = 20.0
DEFAULT_REMINDER_MINUTES = 30.0
DEFAULT_POLL_SECONDS = 60.0
DEFAULT_MAX_SCAN_TAIL_BYTES = 2 * 1024 * 1024
DEFAULT_SNAPSHOT_RETENTION_HOURS = 48.0
DEFAULT_REHYDRATE_SCAN_BYTES = 64 * 1024


def turnwatch_home() -> Path:
    # Compute at call time so tests that monkeypatch HOME behave correctly.
    return Path.home() / ".turnwatch"


def default_config_path() -> Path:
    raw = os.getenv("TURNWATCH_CONFIG")
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return turnwatch_home() / "config.yaml"


def default_codex_home() -> Path:
    """CODEX_HOME when exported, otherwise ~/.codex."""
    raw = os.environ.get("CODEX_HOME", "")
    if raw.strip():
        return Path(raw.strip()).expanduser()
    return Path.home() / ".codex"


def default_ignored_prefixes() -> list[str]:
    home = str(Path.home())
    return [
        home + "/Library/Caches",
        home + "/Library/Logs",
        "/private/var/folders",
        "/tmp",
    ]


def _as_int(value: Any, default: int, *, minimum: int = 0) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float, *, minimum: float = 0.0) -> float:
    try:
        return max(minimum, float(value))
    except (TypeError, ValueError):
        return default


@dataclass
class TurnwatchConfig:
    state_file: Path = field(default_factory=lambda: turnwatch_home() / "reminder_state.json")
    codex_home: Path = field(default_factory=default_codex_home)
    max_scan_tail_bytes: int = DEFAULT_MAX_SCAN_TAIL_BYTES
    snapshot_retention_hours: float = DEFAULT_SNAPSHOT_RETENTION_HOURS
    rehydrate_scan_bytes: int = DEFAULT_REHYDRATE_SCAN_BYTES
    extra_ignored_prefixes: list[str] = field(default_factory=list)

    @property
    def sessions_directory(self) -> Path:
        return self.codex_home / "sessions"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "TurnwatchConfig":
        """Load config from YAML, falling back to defaults for anything missing or invalid."""
        path = config_path or default_config_path()
        data: dict[str, Any] = {}
        if path.exists():
            try:
                loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring unreadable config {path}: {e}")
                loaded = {}
            if isinstance(loaded, dict):
                data = loaded

        config = cls()

        state_file = os.getenv("TURNWATCH_STATE_FILE") or data.get("state_file")
        if isinstance(state_file, str) and state_file.strip():
            config.state_file = Path(state_file.strip()).expanduser()

        codex_home = data.get("codex_home")
        if isinstance(codex_home, str) and codex_home.strip():
            config.codex_home = Path(codex_home.strip()).expanduser()

        config.max_scan_tail_bytes = _as_int(
            data.get("max_scan_tail_bytes"), DEFAULT_MAX_SCAN_TAIL_BYTES, minimum=1
        )
        config.snapshot_retention_hours = _as_float(
            data.get("snapshot_retention_hours"), DEFAULT_SNAPSHOT_RETENTION_HOURS
        )
        config.rehydrate_scan_bytes = _as_int(
            data.get("rehydrate_scan_bytes"), DEFAULT_REHYDRATE_SCAN_BYTES, minimum=1
        )

        extra = data.get("extra_ignored_prefixes")
        if isinstance(extra, list):
            config.extra_ignored_prefixes = [
                str(Path(p).expanduser()) for p in extra if isinstance(p, str) and p.strip()
            ]

        return config

    def ignored_prefixes(self, codex_home: Optional[Path] = None) -> list[str]:
        """Default prefixes plus configured extras plus the Codex memories folder."""
        home = codex_home or self.codex_home
        memories = os.path.normpath(str(home.expanduser() / "memories"))
        prefixes = default_ignored_prefixes() + list(self.extra_ignored_prefixes) + [memories]
        return sorted(set(prefixes))


def get_default_config_content() -> str:
    defaults = {
        "state_file": str(turnwatch_home() / "reminder_state.json"),
        "codex_home": str(default_codex_home()),
        "max_scan_tail_bytes": DEFAULT_MAX_SCAN_TAIL_BYTES,
        "snapshot_retention_hours": DEFAULT_SNAPSHOT_RETENTION_HOURS,
        "rehydrate_scan_bytes": DEFAULT_REHYDRATE_SCAN_BYTES,
        "extra_ignored_prefixes": [],
    }
    header = "# turnwatch configuration\n# Session logs are read from <codex_home>/sessions.\n"
    return header + yaml.safe_dump(defaults, sort_keys=False)
