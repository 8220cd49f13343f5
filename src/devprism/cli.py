"""CLI entry point."""

import sys
from pathlib import Path

import click
import yaml
from pydantic import ValidationError

from devprism import compose
from devprism.config import CONFIG_FILE, CONFIG_TEMPLATE, SessionConfig, get_sessions_dir, load_config
from devprism.env import format_env_lines, generate_env_content, write_env_file
from devprism.ports import calculate_ports, format_ports_table
from devprism.runner import CommandError, default_runner
from devprism.session import (
    app_env_for,
    create_session,
    current_session,
    destroy_all_sessions,
    destroy_session,
    list_sessions,
    log_event,
    session_env,
)
from devprism.worktree import main_worktree, prune_worktrees


def _project_root() -> Path:
    """Main checkout of the repo containing the current directory."""
    try:
        return main_worktree(Path.cwd())
    except (CommandError, FileNotFoundError) as e:
        click.echo(f"[dev-prism] Not inside a git repository: {e}", err=True)
        sys.exit(2)


def _load(project_root: Path) -> SessionConfig:
    try:
        return load_config(project_root)
    except FileNotFoundError as e:
        click.echo(f"[dev-prism] Error: {e}. Run: dev-prism init", err=True)
        sys.exit(2)
    except (ValidationError, yaml.YAMLError, TypeError) as e:
        click.echo(f"[dev-prism] Config validation error: {e}", err=True)
        sys.exit(2)


def _require_session(path: Path) -> str:
    session_id = current_session(path)
    if session_id is None:
        click.echo(f"[dev-prism] No session in {path}. Run: dev-prism create", err=True)
        sys.exit(1)
    return session_id


@click.group()
def main():
    """dev-prism: port allocator, env injector, and worktree manager for parallel development."""
    pass


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config.")
def init(force: bool):
    """Write a starter session.config.yml in the current directory."""
    path = Path.cwd() / CONFIG_FILE
    if path.exists() and not force:
        click.echo(f"[dev-prism] {CONFIG_FILE} already exists. Use --force to overwrite.", err=True)
        sys.exit(1)
    path.write_text(CONFIG_TEMPLATE.format(name=Path.cwd().name))
    click.echo(f"[dev-prism] Created: {path}")


@main.command()
@click.option("-b", "--branch", default=None, help="Git branch name (default: session/<date>/<id>).")
@click.option("--in-place", is_flag=True, help="Use the current checkout instead of a new worktree.")
def create(branch: str, in_place: bool):
    """Create a new session (allocate ports + optional worktree)."""
    project_root = _project_root()
    config = _load(project_root)

    try:
        session = create_session(project_root, config, branch=branch, in_place=in_place)
    except FileExistsError as e:
        click.echo(f"[dev-prism] {e}", err=True)
        sys.exit(1)
    except CommandError as e:
        click.echo(f"[dev-prism] Command failed: {e}", err=True)
        sys.exit(3)

    click.echo(f"[dev-prism] Created session {session.session_id}")
    click.echo(f"[dev-prism]   Path:   {session.path}")
    if session.branch:
        click.echo(f"[dev-prism]   Branch: {session.branch}")
    if session.ports:
        click.echo("Ports:")
        click.echo(format_ports_table(session.ports))
    if not session.in_place:
        click.echo(f"[dev-prism] Next: cd {session.path}")


@main.command()
@click.option("-a", "--all", "destroy_all", is_flag=True, help="Destroy all sessions.")
def destroy(destroy_all: bool):
    """Destroy the session in the current directory (services, volumes, worktree)."""
    project_root = _project_root()
    config = _load(project_root)

    try:
        if destroy_all:
            destroyed = destroy_all_sessions(project_root, config)
        else:
            destroyed = [destroy_session(project_root, config, Path.cwd())]
    except FileNotFoundError as e:
        click.echo(f"[dev-prism] {e}", err=True)
        sys.exit(1)
    except CommandError as e:
        click.echo(f"[dev-prism] Command failed: {e}", err=True)
        sys.exit(3)

    if not destroyed:
        click.echo("[dev-prism] No sessions to destroy.")
    for session_id in destroyed:
        click.echo(f"[dev-prism] Destroyed session {session_id}")


@main.command("list")
def list_cmd():
    """List all sessions."""
    project_root = _project_root()
    config = _load(project_root)

    try:
        sessions = list_sessions(project_root, config)
    except CommandError as e:
        click.echo(f"[dev-prism] Command failed: {e}", err=True)
        sys.exit(3)

    if not sessions:
        click.echo("[dev-prism] No sessions found.")
        return

    click.echo(f"{'SESSION':<9} {'BRANCH':<32} {'STATUS':<9} {'PATH'}")
    for s in sessions:
        branch = s["branch"] or ("(in-place)" if s["in_place"] else "(detached)")
        status = "running" if s["running"] else "-"
        click.echo(f"{s['session_id']:<9} {branch:<32} {status:<9} {s['path']}")


@main.command()
def info():
    """Show session ports and status for the current directory."""
    cwd = Path.cwd()
    session_id = _require_session(cwd)
    config = _load(_project_root())
    ports = calculate_ports(config, session_id)

    click.echo(f"Session:  {session_id}")
    click.echo(f"Path:     {cwd}")
    running = (cwd / compose.COMPOSE_FILE).exists() and compose.is_running(
        compose.ComposeOptions(cwd=cwd)
    )
    click.echo(f"Services: {'running' if running else 'stopped'}")
    if ports:
        click.echo("Ports:")
        click.echo(format_ports_table(ports))
    if config.app_env:
        click.echo(f"Apps:     {', '.join(config.app_env)}")


@main.command("env")
@click.option("-w", "--write", "write_path", type=click.Path(dir_okay=False), help="Write env to file instead of stdout.")
@click.option("-a", "--app", default=None, help="Include app-specific env vars.")
def env_cmd(write_path: str, app: str):
    """Print or write session env vars."""
    cwd = Path.cwd()
    session_id = _require_session(cwd)
    project_root = _project_root()
    config = _load(project_root)
    ports = calculate_ports(config, session_id)

    content = generate_env_content(session_id, ports, config.compose_project(project_root))
    if app:
        try:
            content += format_env_lines(app_env_for(config, app, ports))
        except ValueError as e:
            click.echo(f"[dev-prism] {e}", err=True)
            sys.exit(2)

    if write_path:
        write_env_file(Path(write_path), content)
        click.echo(f"[dev-prism] Wrote: {write_path}")
    else:
        click.echo(content, nl=False)


@main.command(
    "with-env",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("-a", "--app", default=None, help="Include app-specific env vars.")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
def with_env(app: str, command: tuple):
    """Run COMMAND with the session env vars injected.

    Example: dev-prism with-env --app web -- pnpm dev
    """
    cwd = Path.cwd()
    _require_session(cwd)
    config = _load(_project_root())

    try:
        env = session_env(cwd, config, app)
    except ValueError as e:
        click.echo(f"[dev-prism] {e}", err=True)
        sys.exit(2)

    try:
        result = default_runner.run(command[0], command[1:], capture=False, check=False, env=env)
    except CommandError as e:
        click.echo(f"[dev-prism] {e}", err=True)
        sys.exit(127)
    sys.exit(result.returncode)


@main.command()
def prune():
    """Remove stale worktree metadata for deleted session directories."""
    project_root = _project_root()
    try:
        output = prune_worktrees(project_root)
    except CommandError as e:
        click.echo(f"[dev-prism] Command failed: {e}", err=True)
        sys.exit(3)
    if output.strip():
        click.echo(output.rstrip())
    else:
        click.echo("[dev-prism] Nothing to prune.")


def _compose_session(profiles=(), detach=True):
    cwd = Path.cwd()
    session_id = _require_session(cwd)
    options = compose.ComposeOptions(cwd=cwd, profiles=list(profiles) or None, detach=detach)
    return session_id, options


@main.command("up")
@click.option("-p", "--profile", "profiles", multiple=True, help="Compose profile to enable (repeatable).")
@click.option("--attach", is_flag=True, help="Run in the foreground instead of detached.")
def up_cmd(profiles: tuple, attach: bool):
    """Build and start the session's services."""
    session_id, options = _compose_session(profiles, detach=not attach)
    project_root = _project_root()
    config = _load(project_root)

    if not compose.docker_available():
        click.echo("[dev-prism] Docker is not running.", err=True)
        sys.exit(3)
    try:
        compose.up(options)
    except CommandError as e:
        click.echo(f"[dev-prism] Docker error: {e}", err=True)
        sys.exit(3)
    details = f"profiles={','.join(profiles)}" if profiles else ""
    log_event(get_sessions_dir(config, project_root), session_id, "up", details)
    if options.detach:
        click.echo(f"[dev-prism] Services started for session {session_id}")


@main.command("logs")
def logs_cmd():
    """Follow logs from all services."""
    _, options = _compose_session()
    try:
        compose.logs(options)
    except KeyboardInterrupt:
        pass
    except CommandError as e:
        click.echo(f"[dev-prism] Docker error: {e}", err=True)
        sys.exit(3)


@main.command("down")
def down_cmd():
    """Stop services and delete their volumes."""
    session_id, options = _compose_session()
    project_root = _project_root()
    config = _load(project_root)
    try:
        compose.down(options)
    except CommandError as e:
        click.echo(f"[dev-prism] Docker error: {e}", err=True)
        sys.exit(3)
    log_event(get_sessions_dir(config, project_root), session_id, "down")
    click.echo(f"[dev-prism] Services stopped for session {session_id}")


@main.command("ps")
def ps_cmd():
    """Show service status as JSON lines."""
    _, options = _compose_session()
    output = compose.ps(options)
    if output.strip():
        click.echo(output.rstrip())
    else:
        click.echo("[dev-prism] No services running.")
