import os

from helpers import (
    NOW,
    ago,
    append_json_lines,
    iso,
    json_line,
    response_item,
    session_meta,
    write_json_lines,
)
from turnwatch.config import default_ignored_prefixes
from turnwatch.models import FileScanCursor, ProjectState
from turnwatch.scanner import CodexHistoryScanner, SessionScanWorker

CUTOFF = ago(3600)


def scan(scanner, cutoff=CUTOFF, use_repo_root=False, ignored_prefixes=()):
    return scanner.scan_recent_sessions(cutoff, use_repo_root, list(ignored_prefixes))


def test_uses_full_uuid_fallback_session_id(sessions_dir):
    path = sessions_dir / "2026-02-25T10-00-00-7e95fdcb-2f7a-4d66-85dd-dc15211a973a.jsonl"
    write_json_lines(
        [
            session_meta(ago(900), "/Users/me/work/app"),
            {"type": "response_item", "timestamp": iso(ago(600)), "payload": {"item": {"role": "user"}}},
        ],
        path,
    )

    result = scan(CodexHistoryScanner(sessions_dir))

    assert result.total_sessions == 1
    session = result.project_groups["/Users/me/work/app"].latest_session
    assert session.session_id == "7e95fdcb-2f7a-4d66-85dd-dc15211a973a"
    assert session.state is ProjectState.WAITING
    assert session.latest_user_event == ago(600)


def test_response_item_without_session_id_uses_meta_id_and_summary(sessions_dir):
    session_id = "7e95fdcb-2f7a-4d66-85dd-dc15211a973a"
    write_json_lines(
        [
            session_meta(ago(900), "/Users/me/work/app", id=session_id),
            response_item(ago(600), "user", "Please add a test case", id="msg_001"),
        ],
        sessions_dir / f"2026-02-25T10-00-00-{session_id}.jsonl",
    )

    result = scan(CodexHistoryScanner(sessions_dir))

    project = result.project_groups["/Users/me/work/app"]
    assert len(project.sessions) == 1
    session = project.latest_session
    assert session.session_id == session_id
    assert session.latest_user_summary == "Please add a test case"


def test_rehydrates_context_when_resuming_from_cursor(sessions_dir):
    path = sessions_dir / "prefix-5cb1c9dc-6f7a-48c6-8faa-29b31d27f5f1.jsonl"
    write_json_lines(
        [session_meta(ago(1200), "/Users/me/repo"), response_item(ago(1000), "user")],
        path,
    )
    first = CodexHistoryScanner(sessions_dir)
    scan(first, cutoff=ago(7200))

    append_json_lines([response_item(ago(300), "assistant")], path)

    second = CodexHistoryScanner(sessions_dir, first.current_file_cursors())
    result = scan(second, cutoff=ago(7200))

    session = result.project_groups["/Users/me/repo"].latest_session
    assert session.state is ProjectState.ACTIVE
    assert session.latest_assistant_event == ago(300)
    # Only the appended line was read; the user turn before the cursor is not re-derived.
    assert session.latest_user_event is None


def test_does_not_advance_cursor_past_partial_tail(sessions_dir):
    path = sessions_dir / "prefix-2a5790da-2ab6-4c9d-a4b7-312fb9687e22.jsonl"
    meta_line = json_line(session_meta(ago(1200), "/Users/me/repo"))
    user_line = json_line(response_item(ago(1000), "user"))
    prefix, suffix = user_line[:-4], user_line[-4:]
    path.write_text(f"{meta_line}\n{prefix}", encoding="utf-8")

    first = CodexHistoryScanner(sessions_dir)
    first_result = scan(first, cutoff=ago(7200))

    assert first_result.project_groups["/Users/me/repo"].latest_session.latest_user_event is None
    cursor = first.current_file_cursors()[str(path)]
    assert cursor.offset == len(f"{meta_line}\n".encode("utf-8"))
    assert cursor.offset < cursor.file_size

    with path.open("a", encoding="utf-8") as fh:
        fh.write(suffix + "\n")

    second = CodexHistoryScanner(sessions_dir, first.current_file_cursors())
    second_result = scan(second, cutoff=ago(7200))

    session = second_result.project_groups["/Users/me/repo"].latest_session
    assert session.latest_user_event == ago(1000)
    assert session.state is ProjectState.WAITING


def test_ignores_configured_prefixes(sessions_dir):
    write_json_lines(
        [session_meta(ago(600), "/tmp/scratch-project")],
        sessions_dir / "prefix-9f5a8e2a-7d47-4d63-9828-c7fc4a101a67.jsonl",
    )

    result = scan(CodexHistoryScanner(sessions_dir), ignored_prefixes=default_ignored_prefixes())

    assert result.project_groups == {}
    assert result.total_sessions == 0


def test_groups_by_repo_root_when_enabled(sessions_dir):
    repo_root = sessions_dir / "workspace" / "repo"
    nested = repo_root / "App" / "Feature"
    (repo_root / ".git").mkdir(parents=True)
    nested.mkdir(parents=True)
    write_json_lines(
        [session_meta(ago(600), str(nested))],
        sessions_dir / "prefix-01b81273-79cd-4275-b40d-2a968f8ea61f.jsonl",
    )
    scanner = CodexHistoryScanner(sessions_dir)

    assert str(repo_root) in scan(scanner, use_repo_root=True).project_groups
    assert str(nested) in scan(scanner, use_repo_root=False).project_groups


def test_groups_codex_worktree_by_linked_repo_root(sessions_dir):
    repo_root = sessions_dir / "repos" / "example-repo"
    worktree = sessions_dir / "workspaces" / "worktrees" / "40dc" / "example-repo"
    linked_git_dir = repo_root / ".git" / "worktrees" / "example-repo2"
    linked_git_dir.mkdir(parents=True)
    worktree.mkdir(parents=True)
    (worktree / ".git").write_text(f"gitdir: {linked_git_dir}\n", encoding="utf-8")

    write_json_lines(
        [session_meta(ago(600), str(repo_root))],
        sessions_dir / "main-a6d4eb18-c87c-4868-8078-d463bbf0f504.jsonl",
    )
    write_json_lines(
        [session_meta(ago(300), str(worktree))],
        sessions_dir / "worktree-2d9df89f-e14a-4348-a34a-985a7a5ec7e1.jsonl",
    )
    scanner = CodexHistoryScanner(sessions_dir)

    grouped = scan(scanner, use_repo_root=True)
    assert list(grouped.project_groups) == [str(repo_root)]
    assert len(grouped.project_groups[str(repo_root)].sessions) == 2

    ungrouped = scan(scanner, use_repo_root=False)
    assert len(ungrouped.project_groups) == 2
    names = sorted(g.display_name for g in ungrouped.project_groups.values())
    assert names == ["example-repo", "example-repo (40dc)"]


def test_includes_recent_file_in_older_date_directory(sessions_dir):
    write_json_lines(
        [session_meta(ago(180), "/Users/me/work/older-folder-project")],
        sessions_dir / "2024" / "01" / "01" / "older-folder-f0fe3f30-4f17-415f-a8c7-c6e13a424cf0.jsonl",
    )

    result = scan(CodexHistoryScanner(sessions_dir))

    assert list(result.project_groups) == ["/Users/me/work/older-folder-project"]


def test_extracts_git_branch_and_origin_metadata(sessions_dir):
    write_json_lines(
        [
            session_meta(
                ago(180),
                "/Users/me/work/project",
                git={"branch": "feature/thread-menu"},
                originator="Codex Desktop",
                source="vscode",
            )
        ],
        sessions_dir / "meta-9c0eec7e-835f-4a9f-8d91-57e9c63efcb8.jsonl",
    )

    session = scan(CodexHistoryScanner(sessions_dir)).project_groups["/Users/me/work/project"].latest_session

    assert session.git_branch == "feature/thread-menu"
    assert session.originator == "Codex Desktop"
    assert session.source == "vscode"


def test_removes_sessions_and_cursor_when_file_is_deleted(sessions_dir):
    path = sessions_dir / "deleted-3cf95e37-fb3a-45f0-99da-a8e7cf96f7e2.jsonl"
    write_json_lines([session_meta(ago(300), "/Users/me/work/project")], path)
    scanner = CodexHistoryScanner(sessions_dir)

    assert len(scan(scanner).project_groups) == 1
    assert str(path) in scanner.file_cursors

    path.unlink()
    after = scan(scanner)

    assert after.project_groups == {}
    assert after.total_sessions == 0
    assert scanner.file_cursors == {}


def test_rebuilds_events_after_restart_when_file_is_unchanged(sessions_dir):
    session_id = "019c9641-6eb7-7652-9f6d-45d514962eec"
    write_json_lines(
        [
            session_meta(ago(7200), "/Users/me/restart-check", id=session_id),
            response_item(ago(600), "user", "Need your review"),
        ],
        sessions_dir / f"rollout-2026-02-25T13-23-16-{session_id}.jsonl",
    )
    first = CodexHistoryScanner(sessions_dir)
    scan(first, cutoff=ago(10_800))

    second = CodexHistoryScanner(sessions_dir, first.current_file_cursors())
    result = scan(second, cutoff=ago(3600))

    session = result.project_groups["/Users/me/restart-check"].latest_session
    assert session.latest_user_event == ago(600)
    assert session.latest_user_summary == "Need your review"


def test_rescan_of_unchanged_file_is_idempotent(sessions_dir):
    write_json_lines(
        [
            session_meta(ago(900), "/Users/me/repo"),
            response_item(ago(600), "user", "hello"),
            response_item(ago(500), "assistant", "hi there"),
        ],
        sessions_dir / "idem-1c3c7f9e-3a55-4b8e-9d43-6f0f6f2e8a10.jsonl",
    )
    scanner = CodexHistoryScanner(sessions_dir)

    first = scan(scanner).project_groups["/Users/me/repo"].latest_session.to_dict()
    cursors = scanner.current_file_cursors()
    second = scan(scanner).project_groups["/Users/me/repo"].latest_session.to_dict()

    assert first == second
    assert scanner.current_file_cursors() == cursors


def test_recovers_workspace_root_when_meta_cwd_is_root(sessions_dir):
    session_id = "019c9641-6eb7-7652-9f6d-45d514962eec"
    write_json_lines(
        [
            session_meta(
                ago(600),
                "/",
                id=session_id,
                base_instructions={"text": "Workspace root: `/Users/me/Code/pickuphub.net`"},
            ),
            response_item(ago(120), "assistant", "Thanks!"),
        ],
        sessions_dir / f"rollout-2026-02-25T13-23-16-{session_id}.jsonl",
    )

    result = scan(CodexHistoryScanner(sessions_dir))

    session = result.project_groups["/Users/me/Code/pickuphub.net"].latest_session
    assert session.latest_user_summary is None
    assert session.latest_assistant_summary == "Thanks!"


def test_recovers_cwd_from_standalone_environment_context(sessions_dir):
    session_id = "019c9b64-dd67-7d32-820f-5c4e689e09c7"
    context = (
        "<environment_context>\n"
        "  <cwd>/Users/me/workspace/repo</cwd>\n"
        "  <shell>zsh</shell>\n"
        "</environment_context>"
    )
    write_json_lines(
        [
            session_meta(ago(600), "/", id=session_id),
            response_item(ago(300), "user", context),
            response_item(ago(120), "assistant"),
        ],
        sessions_dir / f"rollout-2026-02-26T13-20-04-{session_id}.jsonl",
    )

    result = scan(CodexHistoryScanner(sessions_dir))

    session = result.project_groups["/Users/me/workspace/repo"].latest_session
    assert session.latest_assistant_event == ago(120)


def test_ignores_environment_context_embedded_in_other_text(sessions_dir):
    session_id = "019c9b64-dd67-7d32-820f-5c4e689e09c7"
    text = (
        "<system message>\n"
        "This is a prompt template example:\n"
        "<environment_context>\n"
        "  <cwd>/Users/me/workspace/repo</cwd>\n"
        "</environment_context>\n"
        "</system message>"
    )
    write_json_lines(
        [
            session_meta(ago(600), "/", id=session_id),
            response_item(ago(300), "user", text),
            response_item(ago(120), "assistant"),
        ],
        sessions_dir / f"rollout-2026-02-26T13-20-04-{session_id}.jsonl",
    )

    assert scan(CodexHistoryScanner(sessions_dir)).project_groups == {}


def test_response_without_meta_or_recoverable_cwd_creates_no_session(sessions_dir):
    write_json_lines(
        [response_item(ago(300), "user", "ping")],
        sessions_dir / "orphan-6b0e2c1a-8d1f-4a59-9f0e-2b7c5d3e4f60.jsonl",
    )

    result = scan(CodexHistoryScanner(sessions_dir))

    assert result.total_sessions == 0


def test_skips_unchanged_stale_file_without_context(sessions_dir):
    path = sessions_dir / "stale-0d6f7b8e-5a4c-4e2b-9f1a-3c2d1e0f9a8b.jsonl"
    write_json_lines([session_meta(ago(600), "/Users/me/stale")], path)
    stale_mtime = ago(7200).timestamp()
    os.utime(path, (stale_mtime, stale_mtime))

    scanner = CodexHistoryScanner(sessions_dir)
    result = scan(scanner)

    assert result.total_sessions == 0
    assert scanner.file_cursors == {}


def test_sessions_sorted_newest_first_within_project(sessions_dir):
    write_json_lines(
        [session_meta(ago(900), "/Users/me/shared")],
        sessions_dir / "older-aaaaaaaa-1111-4111-8111-111111111111.jsonl",
    )
    write_json_lines(
        [session_meta(ago(100), "/Users/me/shared")],
        sessions_dir / "newer-bbbbbbbb-2222-4222-8222-222222222222.jsonl",
    )

    project = scan(CodexHistoryScanner(sessions_dir)).project_groups["/Users/me/shared"]

    assert [s.session_id for s in project.sessions] == [
        "bbbbbbbb-2222-4222-8222-222222222222",
        "aaaaaaaa-1111-4111-8111-111111111111",
    ]


def test_ignores_non_jsonl_and_hidden_files(sessions_dir):
    write_json_lines([session_meta(ago(300), "/Users/me/a")], sessions_dir / "notes-11111111-1111-4111-8111-111111111111.txt")
    write_json_lines([session_meta(ago(300), "/Users/me/b")], sessions_dir / ".hidden-22222222-2222-4222-8222-222222222222.jsonl")

    assert scan(CodexHistoryScanner(sessions_dir)).total_sessions == 0


def test_events_before_cutoff_do_not_count_as_turns(sessions_dir):
    write_json_lines(
        [
            session_meta(ago(300), "/Users/me/repo"),
            response_item(ago(5000), "user", "old question"),
        ],
        sessions_dir / "cut-33333333-3333-4333-8333-333333333333.jsonl",
    )

    session = scan(CodexHistoryScanner(sessions_dir)).project_groups["/Users/me/repo"].latest_session

    assert session.latest_user_event is None
    assert session.state is ProjectState.ACTIVE


def test_shrunk_file_is_rescanned_from_start(sessions_dir):
    path = sessions_dir / "shrink-44444444-4444-4444-8444-444444444444.jsonl"
    write_json_lines([session_meta(ago(300), "/Users/me/repo"), response_item(ago(200), "user", "x")], path)
    cursors = {str(path): FileScanCursor(offset=10_000, file_size=10_000, modified_at=None)}

    scanner = CodexHistoryScanner(sessions_dir, cursors)
    session = scan(scanner).project_groups["/Users/me/repo"].latest_session

    assert session.latest_user_event == ago(200)
    assert scanner.file_cursors[str(path)].offset == path.stat().st_size


def test_tail_cap_limits_first_read(sessions_dir):
    path = sessions_dir / "big-55555555-5555-4555-8555-555555555555.jsonl"
    filler = [response_item(ago(3000 - i), "user", "padding " * 20) for i in range(50)]
    write_json_lines([session_meta(ago(3500), "/Users/me/big"), *filler, response_item(ago(10), "assistant", "done")], path)

    scanner = CodexHistoryScanner(sessions_dir, max_scan_tail_bytes=512)
    result = scan(scanner)

    # session_meta lies outside the tail window and is recovered from the head.
    session = result.project_groups["/Users/me/big"].latest_session
    assert session.latest_assistant_event == ago(10)
    assert session.first_seen == ago(3500)
    assert scanner.file_cursors[str(path)].offset == path.stat().st_size


def test_set_sessions_directory_forgets_state(sessions_dir, tmp_path):
    write_json_lines([session_meta(ago(300), "/Users/me/repo")], sessions_dir / "x-66666666-6666-4666-8666-666666666666.jsonl")
    scanner = CodexHistoryScanner(sessions_dir)
    scan(scanner)

    assert scanner.set_sessions_directory(sessions_dir) is False
    assert scanner.session_snapshots

    other = tmp_path / "other"
    assert scanner.set_sessions_directory(other) is True
    assert scanner.file_cursors == {}
    assert scanner.session_snapshots == {}


def test_worker_returns_cursors_with_result(sessions_dir):
    path = sessions_dir / "w-77777777-7777-4777-8777-777777777777.jsonl"
    write_json_lines([session_meta(ago(300), "/Users/me/repo")], path)
    worker = SessionScanWorker(CodexHistoryScanner(sessions_dir))

    scanned = worker.scan(CUTOFF, False, [])

    assert scanned.result.total_sessions == 1
    assert scanned.file_cursors[str(path)].offset == path.stat().st_size
    assert worker.sessions_directory == sessions_dir
    assert NOW > CUTOFF
