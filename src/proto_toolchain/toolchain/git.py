"""Shallow clone of a schema workspace repository."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from proto_toolchain.toolchain.commands import SubprocessRunner, run_checked

if TYPE_CHECKING:
    from proto_toolchain.toolchain.commands import CommandResult, CommandRunner

_LOGGER = structlog.get_logger(__name__)

_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_CONFIG_NOSYSTEM": "1"}


class GitCli:
    def __init__(self, executable: str = "git", runner: CommandRunner | None = None) -> None:
        self.executable = executable
        self._runner = runner if runner is not None else SubprocessRunner()

    def clone(self, repo: str, ref: str, destination: Path | str) -> CommandResult:
        """Clone a single ref of ``repo`` at depth 1 into ``destination``."""

        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        _LOGGER.info("git_clone_started", repo=repo, ref=ref, destination=target.as_posix())
        return run_checked(
            self._runner,
            [
                self.executable,
                "clone",
                "--depth",
                "1",
                "--branch",
                ref,
                "--single-branch",
                repo,
                str(target),
            ],
            cwd=target.parent,
            env=_GIT_ENV,
        )

    def version(self, *, cwd: Path | str) -> str:
        result = run_checked(self._runner, [self.executable, "--version"], cwd=cwd, env=_GIT_ENV)
        return result.stdout.strip()


__all__ = ["GitCli"]
