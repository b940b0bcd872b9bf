"""Map a session's working directory onto a project identity and a display name.

With repo-root grouping enabled, every directory inside a git checkout maps
to the checkout root, and linked worktrees (``.git`` is a file pointing at
``<repo>/.git/worktrees/<name>``) collapse onto the repository they belong to.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional

_GITDIR_PREFIX = "gitdir:"


def _base_name(path: str) -> str:
    stripped = path.rstrip("/")
    return os.path.basename(stripped) if stripped else path


def normalize_project_path(cwd: str, use_repo_root: bool) -> str:
    canonical = os.path.abspath(os.path.expanduser(cwd))
    if not use_repo_root:
        return canonical
    return find_repo_root(canonical)


def find_repo_root(path: str) -> str:
    """Walk upward from ``path`` to the nearest ``.git``; ``path`` itself if there is none."""
    current = path
    while current != "/" and current != os.path.dirname(current):
        git_entry = os.path.join(current, ".git")
        if os.path.isdir(git_entry):
            return current
        if os.path.exists(git_entry):
            git_dir = read_git_dir(current)
            if git_dir is not None:
                linked_root = resolve_repo_root_from_git_dir(git_dir)
                if linked_root is not None:
                    return linked_root
            return current
        current = os.path.dirname(current)
    return path


def read_git_dir(project_path: str) -> Optional[str]:
    """Target of a ``gitdir: <path>`` file at ``<project_path>/.git``, if that is what it is."""
    git_file = os.path.join(project_path, ".git")
    if not os.path.isfile(git_file):
        return None
    try:
        contents = Path(git_file).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    lines = contents.splitlines()
    if not lines or not lines[0].startswith(_GITDIR_PREFIX):
        return None
    raw = lines[0][len(_GITDIR_PREFIX):].strip()
    if not raw:
        return None
    return os.path.normpath(os.path.join(project_path, raw))


def resolve_repo_root_from_git_dir(git_dir: str) -> Optional[str]:
    if os.path.basename(git_dir) == ".git":
        return os.path.dirname(git_dir)

    worktrees_container = os.path.dirname(git_dir)
    if os.path.basename(worktrees_container) != "worktrees":
        return None

    dot_git = os.path.dirname(worktrees_container)
    if os.path.basename(dot_git) != ".git":
        return None

    return os.path.dirname(dot_git)


def _managed_worktree_id(project_path: str) -> Optional[str]:
    # <anything>/worktrees/<id>/<repo>
    parts = Path(project_path).parts
    indexes = [i for i, part in enumerate(parts) if part == "worktrees"]
    if not indexes or indexes[-1] + 2 >= len(parts):
        return None
    index = indexes[-1]
    worktree_id, repo_name = parts[index + 1], parts[index + 2]
    if not worktree_id or not repo_name:
        return None
    return worktree_id


def _git_worktree_name(project_path: str) -> Optional[str]:
    git_dir = read_git_dir(project_path)
    if git_dir is None:
        return None
    parts = Path(git_dir).parts
    indexes = [i for i, part in enumerate(parts) if part == "worktrees"]
    if not indexes or indexes[-1] + 1 >= len(parts):
        return None
    return parts[indexes[-1] + 1]


def disambiguation_label(project_path: str) -> Optional[str]:
    return _managed_worktree_id(project_path) or _git_worktree_name(project_path)


def display_name(project_path: str, all_project_paths: Iterable[str] = ()) -> str:
    base = _base_name(project_path)

    same_base = [p for p in all_project_paths if _base_name(p) == base]
    if len(same_base) <= 1:
        return base

    labels: dict[str, str] = {}
    for candidate in same_base:
        label = disambiguation_label(candidate)
        if label:
            labels[candidate] = label

    if project_path in labels:
        return f"{base} ({labels[project_path]})"

    # A labelled sibling means this one is the main checkout.
    if any(candidate != project_path and candidate in labels for candidate in same_base):
        return base

    parent = _base_name(os.path.dirname(project_path.rstrip("/")))
    if not parent or parent == "/":
        return base
    return f"{base} ({parent})"
