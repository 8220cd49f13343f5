"""Git worktree inspection and session worktree management."""

import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from devprism.runner import Runner, default_runner

SESSION_DIR_PATTERN = re.compile(r"session-([0-9]+)")
BRANCH_PREFIX = "branch refs/heads/"


@dataclass(frozen=True)
class WorktreeRecord:
    path: str
    branch: str  # "" when detached
    commit: str


@dataclass(frozen=True)
class SessionWorktree:
    session_id: str
    path: str
    branch: str


def parse_worktree_output(output: str) -> list[WorktreeRecord]:
    """Parse `git worktree list --porcelain`.

    Unknown lines are skipped and a record without a branch line gets
    branch "". A block with no `worktree` line names no path and is dropped.
    """
    records = []
    block: Optional[dict] = None

    def flush():
        if block is not None:
            records.append(WorktreeRecord(**block))

    for line in output.splitlines():
        line = line.rstrip()
        if not line:
            flush()
            block = None
            continue
        if line.startswith("worktree "):
            flush()
            block = {"path": line[len("worktree "):], "branch": "", "commit": ""}
        elif block is None:
            continue
        elif line.startswith("HEAD "):
            block["commit"] = line[len("HEAD "):]
        elif line.startswith(BRANCH_PREFIX):
            block["branch"] = line[len(BRANCH_PREFIX):]
        elif line == "detached":
            block["branch"] = ""
    flush()
    return records


def filter_session_worktrees(records: list[WorktreeRecord]) -> list[SessionWorktree]:
    """Keep worktrees whose last path segment is exactly session-<digits>."""
    sessions = []
    for record in records:
        match = SESSION_DIR_PATTERN.fullmatch(Path(record.path).name)
        if match:
            sessions.append(
                SessionWorktree(session_id=match.group(1), path=record.path, branch=record.branch)
            )
    return sessions


def generate_default_branch_name(
    session_id: str, today: Callable[[], date] = date.today
) -> str:
    """Default branch: session/YYYY-MM-DD/<id>, using the local date."""
    return f"session/{today():%Y-%m-%d}/{session_id}"


def list_worktrees(repo: Path, runner: Runner = default_runner) -> list[WorktreeRecord]:
    result = runner.run("git", ["-C", str(repo), "worktree", "list", "--porcelain"])
    return parse_worktree_output(result.stdout)


def list_session_worktrees(repo: Path, runner: Runner = default_runner) -> list[SessionWorktree]:
    return filter_session_worktrees(list_worktrees(repo, runner))


def main_worktree(path: Path, runner: Runner = default_runner) -> Path:
    """Return the main checkout for any path inside a repo or one of its worktrees.

    Git always lists the main worktree first.
    """
    records = list_worktrees(path, runner)
    if not records:
        raise FileNotFoundError(f"No git worktrees found from {path}")
    return Path(records[0].path)


def branch_exists(repo: Path, branch: str, runner: Runner = default_runner) -> bool:
    result = runner.run(
        "git",
        ["-C", str(repo), "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
        check=False,
    )
    return result.ok


def add_worktree(repo: Path, path: Path, branch: str, runner: Runner = default_runner) -> None:
    """Add a worktree at path, creating branch from HEAD if it does not exist."""
    args = ["-C", str(repo), "worktree", "add"]
    if branch_exists(repo, branch, runner):
        args += [str(path), branch]
    else:
        args += ["-b", branch, str(path)]
    runner.run("git", args)


def remove_worktree(
    repo: Path, path: Path, runner: Runner = default_runner, force: bool = False
) -> None:
    args = ["-C", str(repo), "worktree", "remove"]
    if force:
        args.append("--force")
    args.append(str(path))
    runner.run("git", args)


def prune_worktrees(repo: Path, runner: Runner = default_runner) -> str:
    """Prune stale worktree metadata. Returns git's verbose output."""
    result = runner.run("git", ["-C", str(repo), "worktree", "prune", "-v"])
    return result.stdout + result.stderr
