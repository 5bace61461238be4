"""Thin wrapper over the ``buf`` CLI: export, generate, build and the quality checks."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from proto_toolchain.toolchain.commands import SubprocessRunner, run_checked

if TYPE_CHECKING:
    from collections.abc import Sequence

    from proto_toolchain.toolchain.commands import CommandResult, CommandRunner

_LOGGER = structlog.get_logger(__name__)


class BufCli:
    """Build and run ``buf`` command lines through a ``CommandRunner``."""

    def __init__(self, executable: str = "buf", runner: CommandRunner | None = None) -> None:
        self.executable = executable
        self._runner = runner if runner is not None else SubprocessRunner()

    def export(self, source: str, output_dir: Path | str, *, cwd: Path | str) -> CommandResult:
        """Export module sources (a BSR reference or a buf git input) into ``output_dir``."""

        output = Path(output_dir)
        output.mkdir(parents=True, exist_ok=True)
        _LOGGER.info("buf_export_started", source=source, output=output.as_posix())
        return run_checked(
            self._runner,
            [self.executable, "export", source, "--output", str(output)],
            cwd=cwd,
        )

    def generate(
        self,
        target: str,
        template: Path | str,
        *,
        cwd: Path | str,
        paths: Sequence[str] = (),
        extra_args: Sequence[str] = (),
    ) -> CommandResult:
        """Run ``buf generate`` on ``target``, restricted to ``paths`` when given."""

        command = [self.executable, "generate", target, "--template", str(template)]
        for path in paths:
            command.extend(["--path", path])
        command.extend(extra_args)
        _LOGGER.info("buf_generate_started", target=target, path_filters=len(paths))
        return run_checked(self._runner, command, cwd=cwd)

    def generate_workspace(
        self,
        workspace_root: Path | str,
        template: Path | str,
        proto_paths: Sequence[str],
        extra_args: Sequence[str] = (),
    ) -> CommandResult:
        """Generate from the workspace root so ``--path`` filters stay workspace-relative."""

        return self.generate(
            ".",
            template,
            cwd=workspace_root,
            paths=proto_paths,
            extra_args=extra_args,
        )

    def build(
        self,
        target: str,
        output: Path | str,
        *,
        cwd: Path | str,
        paths: Sequence[str] = (),
    ) -> CommandResult:
        """Write a FileDescriptorSet for ``target`` to ``output``."""

        destination = Path(output)
        destination.parent.mkdir(parents=True, exist_ok=True)
        command = [self.executable, "build", target, "-o", str(destination)]
        for path in paths:
            command.extend(["--path", path])
        _LOGGER.info("buf_build_started", target=target, output=destination.as_posix())
        return run_checked(self._runner, command, cwd=cwd)

    # lint, breaking and format never raise; the non-zero status goes back to the caller.
    def lint(
        self, target: str, *, cwd: Path | str, extra_args: Sequence[str] = ()
    ) -> CommandResult:
        command = [self.executable, "lint", target, *extra_args]
        return run_checked(self._runner, command, cwd=cwd, check=False)

    def breaking(
        self,
        target: str,
        against: str,
        *,
        cwd: Path | str,
        extra_args: Sequence[str] = (),
    ) -> CommandResult:
        command = [self.executable, "breaking", target, "--against", against, *extra_args]
        return run_checked(self._runner, command, cwd=cwd, check=False)

    def format(
        self,
        target: str,
        *,
        cwd: Path | str,
        write: bool,
        diff: bool,
        extra_args: Sequence[str] = (),
    ) -> CommandResult:
        command = [self.executable, "format", target]
        if write:
            command.append("--write")
        if diff:
            command.append("--diff")
        command.extend(extra_args)
        return run_checked(self._runner, command, cwd=cwd, check=False)

    def version(self, *, cwd: Path | str) -> str:
        result = run_checked(self._runner, [self.executable, "--version"], cwd=cwd)
        return (result.stdout or result.stderr).strip()


def git_export_source(repo: str, ref: str, subdir: str | None = None) -> str:
    """Build a buf git input: ``<repo>#ref=<ref>[,subdir=<subdir>]``."""

    source = f"{repo}#ref={ref}"
    if subdir and subdir not in {".", "./"}:
        source = f"{source},subdir={subdir.strip('/')}"
    return source


__all__ = ["BufCli", "git_export_source"]
