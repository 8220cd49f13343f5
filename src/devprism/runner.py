"""External command execution.

Everything that shells out (git, docker compose, setup steps) goes through a
Runner so tests can substitute a fake.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence


@dataclass
class CommandResult:
    """Outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when an external command fails or cannot be started."""

    def __init__(self, message: str, result: Optional[CommandResult] = None) -> None:
        super().__init__(message)
        self.result = result

    @classmethod
    def from_result(cls, result: CommandResult) -> "CommandError":
        detail = result.stderr.strip() or f"exit code {result.returncode}"
        return cls(f"`{' '.join(result.args)}` failed: {detail}", result)


class Runner(Protocol):
    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        capture: bool = True,
        check: bool = True,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult: ...


class SubprocessRunner:
    """Runner backed by subprocess.run.

    capture=False lets the child inherit stdio (compose up/logs, setup steps).
    """

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        capture: bool = True,
        check: bool = True,
        env: Optional[Mapping[str, str]] = None,
    ) -> CommandResult:
        argv = [command, *args]
        try:
            cp = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                capture_output=capture,
                text=True,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as e:
            if cwd and not Path(cwd).exists():
                raise CommandError(f"{command}: working directory {cwd} does not exist") from e
            raise CommandError(f"{command} not found on PATH.") from e
        except OSError as e:
            raise CommandError(f"{command}: {e}") from e
        result = CommandResult(
            args=tuple(argv),
            returncode=cp.returncode,
            stdout=cp.stdout or "",
            stderr=cp.stderr or "",
        )
        if check and not result.ok:
            raise CommandError.from_result(result)
        return result


default_runner = SubprocessRunner()
