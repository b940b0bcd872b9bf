import os
import tempfile
from pathlib import Path

import pytest

# Keep log files out of the real home directory before any turnwatch import.
os.environ.setdefault("TURNWATCH_LOG_DIR", tempfile.mkdtemp(prefix="turnwatch-test-logs-"))

from turnwatch import config as config_module  # noqa: E402
from turnwatch.config import TurnwatchConfig  # noqa: E402
from turnwatch.state_store import ReminderStateStore  # noqa: E402


@pytest.fixture
def sessions_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "sessions"
    directory.mkdir()
    return directory


@pytest.fixture
def state_store(tmp_path: Path) -> ReminderStateStore:
    return ReminderStateStore(tmp_path / "state.json")


@pytest.fixture
def turnwatch_config(tmp_path: Path) -> TurnwatchConfig:
    return TurnwatchConfig(state_file=tmp_path / "state.json", codex_home=tmp_path / "codex")


@pytest.fixture
def no_default_ignores(monkeypatch):
    """Drop the built-in ignored prefixes (they include /tmp, where tmp_path lives)."""
    monkeypatch.setattr(config_module, "default_ignored_prefixes", lambda: [])
