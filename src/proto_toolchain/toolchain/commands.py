"""External command execution for buf and git."""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_LOGGER = structlog.get_logger(__name__)


class ToolchainError(RuntimeError):
    """Base error for fetch, prepare, and generate failures."""


class ToolNotFoundError(ToolchainError):
    """Raised when a required executable cannot be located."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"executable not found: {tool} (install it or set its path in config)")


class ToolCommandError(ToolchainError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@runtime_checkable
class CommandRunner(Protocol):
    """Executes one command and returns its captured result."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | str,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult: ...


class SubprocessRunner:
    """``CommandRunner`` backed by ``subprocess.run`` (no shell, captured text output)."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | str,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        run_cwd = Path(cwd).resolve()
        run_env = os.environ.copy()
        if env is not None:
            run_env.update(env)
        try:
            completed = subprocess.run(
                list(command),
                cwd=run_cwd,
                env=run_env,
                text=True,
                capture_output=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ToolNotFoundError(command[0]) from exc
        return CommandResult(
            command=tuple(command),
            cwd=run_cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )


def run_checked(
    runner: CommandRunner,
    command: Sequence[str],
    *,
    cwd: Path | str,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> CommandResult:
    """Run ``command`` through ``runner``, logging it and raising on failure when ``check``."""

    _LOGGER.debug("command_started", argv=list(command), cwd=str(cwd))
    result = runner.run(command, cwd=cwd, env=env)
    _LOGGER.debug("command_finished", argv=list(command), returncode=result.returncode)
    if check and result.returncode != 0:
        raise ToolCommandError(
            command=result.command,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result


def resolve_executable(name_or_path: str) -> str:
    """Return an absolute executable path for a bare tool name or an explicit path.

    Bare names are looked up on ``PATH``. An explicit file missing its executable
    bit gets one, which downloaded plugin binaries often lack.
    """

    candidate = Path(name_or_path).expanduser()
    if "/" not in name_or_path and os.sep not in name_or_path:
        found = shutil.which(name_or_path)
        if found is None:
            raise ToolNotFoundError(name_or_path)
        return found

    if not candidate.is_file():
        raise ToolNotFoundError(name_or_path)
    if not os.access(candidate, os.X_OK):
        mode = candidate.stat().st_mode
        candidate.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        _LOGGER.info("executable_bit_set", path=candidate.as_posix())
    return candidate.resolve().as_posix()


__all__ = [
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "ToolCommandError",
    "ToolNotFoundError",
    "ToolchainError",
    "resolve_executable",
    "run_checked",
]
