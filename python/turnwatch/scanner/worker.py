"""Single-flight wrapper around the history scanner.

The monitor hands scans to a background thread; the lock guarantees that at
most one scan touches the scanner's cursor and snapshot maps at a time.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from ..models import FileScanCursor, ScanResult
from .history import CodexHistoryScanner


@dataclass
class SessionScanResult:
    file_cursors: dict[str, FileScanCursor]
    result: ScanResult


class SessionScanWorker:
    def __init__(self, scanner: CodexHistoryScanner):
        self._scanner = scanner
        self._lock = threading.Lock()

    @property
    def sessions_directory(self) -> Path:
        return self._scanner.sessions_directory

    def set_sessions_directory(self, directory: Path) -> bool:
        with self._lock:
            return self._scanner.set_sessions_directory(directory)

    def scan(
        self,
        cutoff: datetime,
        use_repo_root: bool,
        ignored_prefixes: Optional[Sequence[str]] = None,
    ) -> SessionScanResult:
        with self._lock:
            result = self._scanner.scan_recent_sessions(cutoff, use_repo_root, ignored_prefixes)
            return SessionScanResult(
                file_cursors=self._scanner.current_file_cursors(),
                result=result,
            )
