"""Process entrypoint: run the CLI and turn uncaught failures into exit codes."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit codes, stable across releases."""

    SUCCESS = 0
    TOOL_ERROR = 1
    CONFIG_ERROR = 2
    RESOLUTION_ERROR = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for ``python -m proto_toolchain`` and the ``proto-toolchain`` script."""

    try:
        from proto_toolchain.ui.cli import run_cli

        return _coerce_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _coerce_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - last-resort handler at the process edge.
        code = classify_exception(exc)
        _report(exc, code)
        return int(code)


def classify_exception(exc: BaseException) -> ExitCode:
    """Pick the exit code for ``exc`` by walking its cause/context chain."""

    from proto_toolchain.config.loader import ConfigLoadError
    from proto_toolchain.config.schema import ConfigValidationError
    from proto_toolchain.toolchain.commands import ToolchainError
    from proto_toolchain.workspace.models import WorkspaceResolutionError

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
        ((WorkspaceResolutionError,), ExitCode.RESOLUTION_ERROR),
        ((ToolchainError,), ExitCode.TOOL_ERROR),
        (
            (FileNotFoundError, NotADirectoryError, PermissionError, ValueError),
            ExitCode.CONFIG_ERROR,
        ),
    )
    for link in _causal_chain(exc):
        for types, code in routes:
            if isinstance(link, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causal_chain(exc: BaseException) -> Iterator[BaseException]:
    visited: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__


def _coerce_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in tuple(ExitCode):
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _report(exc: BaseException, code: ExitCode) -> None:
    if code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
        return
    message = str(exc).strip() or type(exc).__name__
    print(f"error: {message}", file=sys.stderr)


__all__ = ["ExitCode", "classify_exception", "cli_entrypoint"]
