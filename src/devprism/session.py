"""Session lifecycle: allocate, materialize, list and tear down sessions.

There is no session database. A session is a directory holding an
.env.session file: either a `session-<id>` git worktree under the sessions
dir, or the project checkout itself for in-place sessions.
"""

import os
import shlex
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

from devprism.compose import COMPOSE_FILE, ComposeOptions, down, is_running
from devprism.config import SessionConfig, get_session_dir, get_sessions_dir
from devprism.env import (
    ENV_FILE,
    generate_env_content,
    read_env_file,
    render_app_env,
    write_env_file,
)
from devprism.ports import calculate_ports
from devprism.runner import CommandError, Runner, default_runner
from devprism.worktree import (
    SESSION_DIR_PATTERN,
    add_worktree,
    generate_default_branch_name,
    list_session_worktrees,
    remove_worktree,
)

EVENTS_LOG = "events.log"


@dataclass
class Session:
    session_id: str
    path: Path
    branch: Optional[str]
    ports: dict[str, int]
    in_place: bool = False


def log_event(sessions_dir: Path, session_id: str, verb: str, details: str = "") -> None:
    """Append an event to <sessions_dir>/events.log.

    Format: <ISO-timestamp> session-<id> <verb> <details>
    """
    sessions_dir = Path(sessions_dir)
    sessions_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%dT%H:%M")
    line = f"{timestamp} session-{session_id} {verb}"
    if details:
        line += f" {details}"
    with open(sessions_dir / EVENTS_LOG, "a") as f:
        f.write(line + "\n")


def current_session(path: Path) -> Optional[str]:
    """Session ID recorded in <path>/.env.session, or None."""
    session_id = read_env_file(Path(path) / ENV_FILE).get("SESSION_ID")
    return session_id or None


def _used_session_numbers(
    config: SessionConfig, project_root: Path, runner: Runner
) -> set[int]:
    used = {int(wt.session_id) for wt in list_session_worktrees(project_root, runner)}

    # Leftover directories still block their port range
    sessions_dir = get_sessions_dir(config, project_root)
    if sessions_dir.exists():
        for d in sessions_dir.iterdir():
            match = SESSION_DIR_PATTERN.fullmatch(d.name)
            if match and d.is_dir():
                used.add(int(match.group(1)))

    in_place = current_session(project_root)
    if in_place and in_place.isdigit():
        used.add(int(in_place))
    return used


def next_session_id(
    config: SessionConfig, project_root: Path, runner: Runner = default_runner
) -> str:
    """Smallest free session number starting at 1, zero-padded to 3 digits."""
    used = _used_session_numbers(config, Path(project_root), runner)
    number = 1
    while number in used:
        number += 1
    return f"{number:03d}"


def run_setup(config: SessionConfig, path: Path, runner: Runner = default_runner) -> None:
    for step in config.setup:
        argv = shlex.split(step)
        if argv:
            runner.run(argv[0], argv[1:], cwd=path, capture=False)


def create_session(
    project_root: Path,
    config: SessionConfig,
    branch: Optional[str] = None,
    in_place: bool = False,
    runner: Runner = default_runner,
    today: Callable[[], date] = date.today,
) -> Session:
    """Allocate the next session, add its worktree and write .env.session.

    In-place sessions reuse the project checkout and ignore branch.
    """
    project_root = Path(project_root)
    if in_place:
        existing = current_session(project_root)
        if existing:
            raise FileExistsError(
                f"Session {existing} already lives in {project_root}. Run: dev-prism destroy"
            )

    session_id = next_session_id(config, project_root, runner)
    ports = calculate_ports(config, session_id)

    if in_place:
        path = project_root
        branch = None
    else:
        path = get_session_dir(config, project_root, session_id)
        branch = branch or generate_default_branch_name(session_id, today)
        path.parent.mkdir(parents=True, exist_ok=True)
        add_worktree(project_root, path, branch, runner)

    content = generate_env_content(session_id, ports, config.compose_project(project_root))
    write_env_file(path / ENV_FILE, content)

    details = f"path={path}"
    if branch:
        details += f" branch={branch}"
    log_event(get_sessions_dir(config, project_root), session_id, "create", details)

    try:
        run_setup(config, path, runner)
    except CommandError as e:
        raise CommandError(
            f"{e}. Session {session_id} was left at {path}. Run: dev-prism destroy", e.result
        ) from e
    return Session(
        session_id=session_id, path=path, branch=branch, ports=ports, in_place=in_place
    )


def _stop_services(path: Path, runner: Runner) -> None:
    if not (path / COMPOSE_FILE).exists():
        return
    options = ComposeOptions(cwd=path)
    if is_running(options, runner):
        down(options, runner)


def destroy_session(
    project_root: Path,
    config: SessionConfig,
    path: Path,
    runner: Runner = default_runner,
) -> str:
    """Tear down the session living at path. Returns its ID.

    Services are brought down (volumes included), then the worktree is
    removed. For an in-place session only .env.session is deleted.
    """
    project_root = Path(project_root)
    path = Path(path)
    session_id = current_session(path)
    if session_id is None:
        match = SESSION_DIR_PATTERN.fullmatch(path.name)
        if not match:
            raise FileNotFoundError(f"No session found in {path}")
        session_id = match.group(1)

    _stop_services(path, runner)

    worktree_paths = {
        Path(wt.path).resolve() for wt in list_session_worktrees(project_root, runner)
    }
    if path.resolve() in worktree_paths:
        remove_worktree(project_root, path, runner, force=True)
    else:
        (path / ENV_FILE).unlink(missing_ok=True)

    log_event(get_sessions_dir(config, project_root), session_id, "destroy", f"path={path}")
    return session_id


def destroy_all_sessions(
    project_root: Path, config: SessionConfig, runner: Runner = default_runner
) -> list[str]:
    destroyed = []
    for wt in list_session_worktrees(project_root, runner):
        destroyed.append(destroy_session(project_root, config, Path(wt.path), runner))
    if current_session(project_root):
        destroyed.append(destroy_session(project_root, config, project_root, runner))
    return destroyed


def _describe(
    config: SessionConfig,
    session_id: str,
    path: Path,
    branch: str,
    in_place: bool,
    runner: Runner,
) -> dict:
    running = False
    if (path / COMPOSE_FILE).exists():
        running = is_running(ComposeOptions(cwd=path), runner)
    return {
        "session_id": session_id,
        "path": str(path),
        "branch": branch,
        "in_place": in_place,
        "running": running,
        "ports": calculate_ports(config, session_id),
    }


def list_sessions(
    project_root: Path, config: SessionConfig, runner: Runner = default_runner
) -> list[dict]:
    """All sessions of a project: the in-place one first, then worktrees."""
    project_root = Path(project_root)
    sessions = []
    in_place = current_session(project_root)
    if in_place:
        sessions.append(_describe(config, in_place, project_root, "", True, runner))
    for wt in list_session_worktrees(project_root, runner):
        sessions.append(
            _describe(config, wt.session_id, Path(wt.path), wt.branch, False, runner)
        )
    return sessions


def app_env_for(config: SessionConfig, app: str, ports: dict[str, int]) -> dict:
    if app not in config.app_env:
        known = ", ".join(config.app_env) or "none"
        raise ValueError(f"Unknown app '{app}' (configured: {known})")
    return render_app_env(config.app_env[app], ports)


def session_env(path: Path, config: SessionConfig, app: Optional[str] = None) -> dict[str, str]:
    """Process environment for running a command inside a session."""
    path = Path(path)
    session_id = current_session(path)
    if session_id is None:
        raise FileNotFoundError(f"No {ENV_FILE} in {path}")
    env = dict(os.environ)
    env.update(read_env_file(path / ENV_FILE))
    if app:
        ports = calculate_ports(config, session_id)
        env.update({k: str(v) for k, v in app_env_for(config, app, ports).items()})
    return env
