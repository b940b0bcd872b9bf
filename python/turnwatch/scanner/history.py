"""Incremental scanner over Codex session logs.

The scanner owns two maps for its sessions directory: per-file cursors
(how far each log has been consumed) and per-session snapshots (what has been
learned from those logs). Each call to :meth:`CodexHistoryScanner.scan_recent_sessions`
resumes every candidate file from its cursor, folds new events into the
snapshots, drops state for vanished or stale sessions and finally groups the
recent snapshots into projects.

Every per-line and per-file failure is contained here: unreadable files are
skipped, unparsable lines are ignored.
"""

from __future__ import annotations

import os
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Sequence

from ..config import (
    DEFAULT_MAX_SCAN_TAIL_BYTES,
    DEFAULT_REHYDRATE_SCAN_BYTES,
    DEFAULT_SNAPSHOT_RETENTION_HOURS,
    SESSION_FILE_EXTENSIONS,
    default_ignored_prefixes,
)
from ..logging_config import setup_logger
from ..models import FileScanCursor, ProjectGroup, ScanResult, SessionSnapshot
from ..project_resolver import display_name, normalize_project_path
from .envelope import (
    RESPONSE_ITEM,
    SESSION_META,
    JsonEnvelope,
    derive_session_id,
    extract_environment_cwd,
    parse_envelope,
    should_ignore,
    summarize_message,
)
from .line_reader import iter_lines, read_line

logger = setup_logger("turnwatch.scanner", "turnwatch.log")

_SESSION_META_MARKER = '"session_meta"'
_RESPONSE_ITEM_MARKER = '"response_item"'
_ROLE_MARKERS = (
    '"role":"assistant"',
    '"role":"user"',
    '"role": "assistant"',
    '"role": "user"',
)


def _max_date(current: Optional[datetime], candidate: datetime) -> datetime:
    if current is None:
        return candidate
    return max(current, candidate)


def _is_user_or_assistant_role_line(line: str) -> bool:
    return any(marker in line for marker in _ROLE_MARKERS)


class CodexHistoryScanner:
    """Stateful reader of ``<codex_home>/sessions/**/*.jsonl``."""

    def __init__(
        self,
        sessions_directory: Path,
        initial_file_cursors: Optional[dict[str, FileScanCursor]] = None,
        *,
        max_scan_tail_bytes: int = DEFAULT_MAX_SCAN_TAIL_BYTES,
        snapshot_retention_hours: float = DEFAULT_SNAPSHOT_RETENTION_HOURS,
        rehydrate_scan_bytes: int = DEFAULT_REHYDRATE_SCAN_BYTES,
    ):
        self.sessions_directory = Path(os.path.normpath(os.path.expanduser(str(sessions_directory))))
        self.file_cursors: dict[str, FileScanCursor] = dict(initial_file_cursors or {})
        self.session_snapshots: dict[str, SessionSnapshot] = {}
        self.max_scan_tail_bytes = max_scan_tail_bytes
        self.snapshot_retention_hours = snapshot_retention_hours
        self.rehydrate_scan_bytes = rehydrate_scan_bytes

    def set_sessions_directory(self, directory: Path) -> bool:
        """Point the scanner at another root; returns True (and forgets all state) on change."""
        normalized = Path(os.path.normpath(os.path.expanduser(str(directory))))
        if normalized == self.sessions_directory:
            return False
        logger.info(f"Sessions directory changed: {self.sessions_directory} -> {normalized}")
        self.sessions_directory = normalized
        self.file_cursors.clear()
        self.session_snapshots.clear()
        return True

    def current_file_cursors(self) -> dict[str, FileScanCursor]:
        return dict(self.file_cursors)

    def scan_recent_sessions(
        self,
        cutoff: datetime,
        use_repo_root: bool,
        ignored_prefixes: Optional[Sequence[str]] = None,
    ) -> ScanResult:
        if ignored_prefixes is None:
            ignored_prefixes = default_ignored_prefixes()
        prefixes = tuple(ignored_prefixes)

        discovered: set[str] = set()
        for path in self.candidate_session_files(cutoff):
            discovered.add(str(path))
            self.process_file(path, cutoff, prefixes)

        self.cleanup_stale_file_cursors(discovered)
        self.cleanup_orphan_snapshots(discovered)
        self.cleanup_stale_snapshots(cutoff)

        recent = [s for s in self.session_snapshots.values() if s.latest_event >= cutoff]
        groups = self.build_project_groups(recent, use_repo_root)
        logger.debug(
            f"Scan finished: files={len(discovered)} sessions={len(recent)} projects={len(groups)}"
        )
        return ScanResult(project_groups=groups, total_sessions=len(recent))

    # -- discovery -----------------------------------------------------------

    def _iter_session_files(self) -> Iterator[Path]:
        root = self.sessions_directory
        if not root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                extension = os.path.splitext(name)[1].lstrip(".")
                if extension in SESSION_FILE_EXTENSIONS:
                    yield Path(dirpath) / name

    def candidate_session_files(self, cutoff: datetime) -> list[Path]:
        cutoff_ts = cutoff.timestamp()
        files: list[Path] = []
        for path in self._iter_session_files():
            fallback_session_id = derive_session_id(path.name)
            try:
                modified_at: Optional[float] = path.stat().st_mtime
            except OSError:
                modified_at = None

            cursor = self.file_cursors.get(str(path))
            has_recent_cursor = (
                cursor is not None and cursor.modified_at is not None and cursor.modified_at >= cutoff_ts
            )
            is_recently_modified = modified_at is not None and modified_at >= cutoff_ts
            has_snapshot_context = fallback_session_id in self.session_snapshots

            if is_recently_modified or has_recent_cursor or has_snapshot_context:
                files.append(path)
        return files

    # -- per-file processing -------------------------------------------------

    @staticmethod
    def _file_metadata(path: Path) -> tuple[int, Optional[float]]:
        try:
            stat = path.stat()
        except OSError:
            return 0, None
        return stat.st_size, stat.st_mtime

    def process_file(self, path: Path, cutoff: datetime, ignored_prefixes: Sequence[str]) -> None:
        file_path = str(path)
        fallback_session_id = derive_session_id(path.name)
        file_size, modified_at = self._file_metadata(path)

        self.rehydrate_session_meta_if_needed(path, fallback_session_id, ignored_prefixes)
        if self.should_skip_stale_file(file_path, modified_at, cutoff, fallback_session_id):
            logger.debug(f"Skipping unchanged stale file {file_path}")
            return

        start_offset = self.scan_start_offset(file_path, file_size, modified_at, fallback_session_id)

        try:
            stream = path.open("rb")
        except OSError as e:
            logger.debug(f"Cannot open {file_path}: {e}")
            return

        with stream:
            if start_offset > 0:
                stream.seek(start_offset)
            unread_tail_bytes = self.read_events(
                stream, file_path, cutoff, fallback_session_id, ignored_prefixes
            )
            safe_offset = max(0, stream.tell() - unread_tail_bytes)

        self.file_cursors[file_path] = FileScanCursor(
            offset=safe_offset,
            file_size=file_size,
            modified_at=modified_at,
        )

    def _tail_start_offset(self, file_size: int) -> int:
        if file_size > self.max_scan_tail_bytes:
            return file_size - self.max_scan_tail_bytes
        return 0

    def scan_start_offset(
        self,
        file_path: str,
        file_size: int,
        modified_at: Optional[float],
        fallback_session_id: str,
    ) -> int:
        tail_start = self._tail_start_offset(file_size)

        previous = self.file_cursors.get(file_path)
        if previous is None:
            return tail_start

        has_snapshot_context = fallback_session_id in self.session_snapshots
        if (
            previous.file_size == file_size
            and previous.modified_at == modified_at
            and has_snapshot_context
        ):
            if self.snapshot_needs_event_rebuild(fallback_session_id):
                logger.debug(f"Rebuilding events for {file_path} from offset {tail_start}")
                return tail_start
            return file_size

        if previous.file_size > file_size or previous.offset > file_size:
            logger.debug(f"{file_path} shrank or was replaced; rescanning from start")
            return 0

        lag = file_size - previous.offset
        if previous.offset == 0 and tail_start > 0:
            return tail_start
        if lag > self.max_scan_tail_bytes:
            return max(previous.offset, tail_start)
        if previous.offset > 0 and not has_snapshot_context:
            return tail_start

        return previous.offset

    def snapshot_needs_event_rebuild(self, session_id: str) -> bool:
        snapshot = self.session_snapshots.get(session_id)
        if snapshot is None:
            return True
        return snapshot.latest_assistant_event is None and snapshot.latest_user_event is None

    def should_skip_stale_file(
        self,
        file_path: str,
        modified_at: Optional[float],
        cutoff: datetime,
        fallback_session_id: str,
    ) -> bool:
        if fallback_session_id in self.session_snapshots:
            return False
        if modified_at is None or modified_at >= cutoff.timestamp():
            return False
        cursor = self.file_cursors.get(file_path)
        if cursor is not None:
            return cursor.modified_at == modified_at
        return True

    def rehydrate_session_meta_if_needed(
        self,
        path: Path,
        fallback_session_id: str,
        ignored_prefixes: Sequence[str],
    ) -> None:
        """Recover ``session_meta`` from the head of a file that will be resumed mid-stream."""
        if fallback_session_id in self.session_snapshots:
            return
        cursor = self.file_cursors.get(str(path))
        if cursor is not None and cursor.offset == 0:
            return

        try:
            stream = path.open("rb")
        except OSError:
            return

        with stream:
            buffer = bytearray()
            bytes_scanned = 0
            while bytes_scanned < self.rehydrate_scan_bytes:
                line = read_line(stream, buffer)
                if line is None:
                    return
                bytes_scanned += len(line.encode("utf-8")) + 1
                if _SESSION_META_MARKER not in line:
                    continue
                envelope = parse_envelope(line, fallback_session_id)
                if envelope is None or envelope.type != SESSION_META or envelope.timestamp is None:
                    continue
                self.apply_session_meta(
                    envelope, str(path), envelope.timestamp, fallback_session_id, ignored_prefixes
                )
                return

    # -- event ingestion -----------------------------------------------------

    def read_events(
        self,
        stream: BinaryIO,
        file_path: str,
        cutoff: datetime,
        fallback_session_id: str,
        ignored_prefixes: Sequence[str],
    ) -> int:
        """Process every complete line; returns the count of unconsumed trailing bytes."""
        buffer = bytearray()
        for line in iter_lines(stream, buffer):
            self.process_line(line, file_path, cutoff, fallback_session_id, ignored_prefixes)
        return len(buffer)

    def process_line(
        self,
        line: str,
        file_path: str,
        cutoff: datetime,
        fallback_session_id: str,
        ignored_prefixes: Sequence[str],
    ) -> None:
        is_session_meta = _SESSION_META_MARKER in line
        is_response_item = _RESPONSE_ITEM_MARKER in line
        if not (is_session_meta or is_response_item):
            return
        if is_response_item and not _is_user_or_assistant_role_line(line):
            return

        envelope = parse_envelope(line, fallback_session_id)
        if envelope is None or envelope.timestamp is None:
            return

        if envelope.type == SESSION_META:
            self.apply_session_meta(
                envelope, file_path, envelope.timestamp, fallback_session_id, ignored_prefixes
            )
        elif envelope.type == RESPONSE_ITEM:
            if envelope.timestamp < cutoff:
                return
            self.apply_response_item(
                envelope, file_path, envelope.timestamp, fallback_session_id, ignored_prefixes
            )

    def apply_session_meta(
        self,
        envelope: JsonEnvelope,
        file_path: str,
        event_time: datetime,
        fallback_session_id: str,
        ignored_prefixes: Sequence[str],
    ) -> None:
        cwd = envelope.cwd
        if cwd is None or should_ignore(cwd, ignored_prefixes):
            return

        snapshot_id = envelope.session_id or fallback_session_id
        existing = self.session_snapshots.get(snapshot_id)
        if existing is None:
            existing = SessionSnapshot(
                session_id=snapshot_id,
                cwd=cwd,
                first_seen=event_time,
                latest_event=event_time,
                git_branch=envelope.git_branch,
                originator=envelope.originator,
                session_log_path=file_path,
                source=envelope.source,
            )

        updated = replace(
            existing,
            cwd=cwd,
            first_seen=min(existing.first_seen, event_time),
            latest_event=max(existing.latest_event, event_time),
            session_log_path=file_path,
        )
        self._merge_tags(updated, envelope)
        self.session_snapshots[snapshot_id] = updated

    def apply_response_item(
        self,
        envelope: JsonEnvelope,
        file_path: str,
        event_time: datetime,
        fallback_session_id: str,
        ignored_prefixes: Sequence[str],
    ) -> None:
        role = envelope.role
        if role not in ("user", "assistant"):
            return

        snapshot_id = envelope.session_id or fallback_session_id
        recovered_cwd = extract_environment_cwd(envelope.message_text)
        if recovered_cwd is not None and should_ignore(recovered_cwd, ignored_prefixes):
            recovered_cwd = None

        existing = self.session_snapshots.get(snapshot_id)
        if existing is None:
            if recovered_cwd is None:
                # No session_meta yet and nowhere to attribute the turn.
                return
            existing = SessionSnapshot(
                session_id=snapshot_id,
                cwd=recovered_cwd,
                first_seen=event_time,
                latest_event=event_time,
                git_branch=envelope.git_branch,
                originator=envelope.originator,
                session_log_path=file_path,
                source=envelope.source,
            )

        updated = replace(
            existing,
            latest_event=max(existing.latest_event, event_time),
            session_log_path=file_path,
        )
        if recovered_cwd is not None and (
            updated.cwd == "/" or should_ignore(updated.cwd, ignored_prefixes)
        ):
            updated.cwd = recovered_cwd
        self._merge_tags(updated, envelope)

        summary = summarize_message(envelope.message_text)
        if role == "user":
            updated.latest_user_event = _max_date(updated.latest_user_event, event_time)
            if summary:
                updated.latest_user_summary = summary
        else:
            updated.latest_assistant_event = _max_date(updated.latest_assistant_event, event_time)
            if summary:
                updated.latest_assistant_summary = summary

        self.session_snapshots[snapshot_id] = updated

    @staticmethod
    def _merge_tags(snapshot: SessionSnapshot, envelope: JsonEnvelope) -> None:
        if envelope.git_branch:
            snapshot.git_branch = envelope.git_branch
        if envelope.originator:
            snapshot.originator = envelope.originator
        if envelope.source:
            snapshot.source = envelope.source

    # -- maintenance ---------------------------------------------------------

    def cleanup_stale_file_cursors(self, discovered_file_paths: set[str]) -> None:
        self.file_cursors = {
            path: cursor for path, cursor in self.file_cursors.items() if path in discovered_file_paths
        }

    def cleanup_orphan_snapshots(self, discovered_file_paths: set[str]) -> None:
        self.session_snapshots = {
            session_id: snapshot
            for session_id, snapshot in self.session_snapshots.items()
            if snapshot.session_log_path is None or snapshot.session_log_path in discovered_file_paths
        }

    def cleanup_stale_snapshots(self, cutoff: datetime) -> None:
        stale_cutoff = cutoff - timedelta(hours=self.snapshot_retention_hours)
        self.session_snapshots = {
            session_id: snapshot
            for session_id, snapshot in self.session_snapshots.items()
            if snapshot.latest_event >= stale_cutoff
        }

    # -- grouping ------------------------------------------------------------

    def build_project_groups(
        self, recent_sessions: list[SessionSnapshot], use_repo_root: bool
    ) -> dict[str, ProjectGroup]:
        grouped: dict[str, list[SessionSnapshot]] = {}
        for snapshot in recent_sessions:
            project_path = normalize_project_path(snapshot.cwd, use_repo_root)
            grouped.setdefault(project_path, []).append(snapshot)

        all_project_paths = list(grouped)
        groups: dict[str, ProjectGroup] = {}
        for project_path, sessions in grouped.items():
            if not project_path or not sessions:
                continue
            # Newest first, ties by session id ascending.
            sessions.sort(key=lambda s: s.session_id)
            sessions.sort(key=lambda s: s.latest_event, reverse=True)
            groups[project_path] = ProjectGroup(
                id=project_path,
                display_name=display_name(project_path, all_project_paths),
                project_path=project_path,
                sessions=sessions,
            )
        return groups
