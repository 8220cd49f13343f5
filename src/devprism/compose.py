"""Docker compose lifecycle for a session directory."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import docker
from docker.errors import DockerException

from devprism.env import ENV_FILE
from devprism.runner import CommandError, Runner, default_runner

COMPOSE_FILE = "docker-compose.session.yml"


@dataclass
class ComposeOptions:
    cwd: Path
    profiles: Optional[list[str]] = None  # app profiles for docker mode, None runs apps natively
    detach: bool = True


def _compose_args(args: list[str], profiles: Optional[list[str]] = None) -> list[str]:
    profile_flags = []
    for profile in profiles or []:
        profile_flags += ["--profile", profile]
    return ["compose", "-f", COMPOSE_FILE, "--env-file", ENV_FILE, *profile_flags, *args]


def _compose(args: list[str], options: ComposeOptions, runner: Runner) -> None:
    runner.run("docker", _compose_args(args, options.profiles), cwd=options.cwd, capture=False)


def docker_available() -> bool:
    """Check that the Docker daemon answers."""
    try:
        client = docker.from_env()
        client.ping()
        return True
    except DockerException:
        return False


def up(options: ComposeOptions, runner: Runner = default_runner) -> None:
    """Start services, always rebuilding images. Raises CommandError on failure."""
    args = ["up", "-d", "--build"] if options.detach else ["up", "--build"]
    _compose(args, options, runner)


def logs(options: ComposeOptions, runner: Runner = default_runner) -> None:
    """Stream logs from all services. Blocks until interrupted."""
    _compose(["logs", "-f", "--tail=50"], options, runner)


def down(options: ComposeOptions, runner: Runner = default_runner) -> None:
    """Stop services and remove their volumes."""
    _compose(["down", "-v"], options, runner)


def ps(options: ComposeOptions, runner: Runner = default_runner) -> str:
    """Raw `ps --format json` output. Query failures yield whatever stdout there was."""
    try:
        result = runner.run(
            "docker", _compose_args(["ps", "--format", "json"]), cwd=options.cwd, check=False
        )
    except CommandError:
        return ""
    return result.stdout


def _parse_ps(output: str) -> list[dict]:
    output = output.strip()
    if not output:
        return []
    # Older compose releases print a single JSON array instead of one object per line
    if output.startswith("["):
        return json.loads(output)
    return [json.loads(line) for line in output.splitlines() if line.strip()]


def is_running(options: ComposeOptions, runner: Runner = default_runner) -> bool:
    """True if any service reports State == "running"."""
    try:
        services = _parse_ps(ps(options, runner))
        return any(service.get("State") == "running" for service in services)
    except (ValueError, AttributeError, CommandError):
        return False
