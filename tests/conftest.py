"""Shared fixtures."""

import pytest

from devprism.runner import CommandError, CommandResult


class FakeRunner:
    """Records commands and answers them from canned responses.

    A response registered with on(*parts) applies to any command whose argv
    contains all of parts. First registration wins.
    """

    def __init__(self):
        self.calls = []
        self._responses = []

    def on(self, *parts, stdout="", stderr="", returncode=0, raises=None):
        self._responses.append((parts, stdout, stderr, returncode, raises))
        return self

    def run(self, command, args, *, cwd=None, capture=True, check=True, env=None):
        argv = (command, *args)
        self.calls.append(
            {"argv": argv, "cwd": cwd, "capture": capture, "check": check, "env": env}
        )
        for parts, stdout, stderr, returncode, raises in self._responses:
            if all(part in argv for part in parts):
                if raises is not None:
                    raise raises
                result = CommandResult(argv, returncode, stdout, stderr)
                break
        else:
            result = CommandResult(argv, 0)
        if check and not result.ok:
            raise CommandError.from_result(result)
        return result

    @property
    def argvs(self):
        return [call["argv"] for call in self.calls]

    def called_with(self, *parts):
        return [argv for argv in self.argvs if all(part in argv for part in parts)]


@pytest.fixture
def fake_runner():
    return FakeRunner()


def porcelain(*worktrees):
    """Build `git worktree list --porcelain` output from (path, branch) pairs."""
    blocks = []
    for i, (path, branch) in enumerate(worktrees):
        lines = [f"worktree {path}", f"HEAD {i:040d}"]
        lines.append(f"branch refs/heads/{branch}" if branch else "detached")
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)
