"""Codex session log scanning."""

from .history import CodexHistoryScanner
from .worker import SessionScanResult, SessionScanWorker

__all__ = ["CodexHistoryScanner", "SessionScanResult", "SessionScanWorker"]
