"""Plain-text terminal output for the CLI; color only on a TTY without NO_COLOR."""

from __future__ import annotations

import os
import sys
from typing import IO, TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable

_STATUS_COLORS: Final[dict[str, str]] = {"OK": "32", "FAIL": "31"}
_INDENT: Final[str] = "  "


def color_enabled(*, no_color: bool, stream: IO[str]) -> bool:
    if no_color or os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class CLIRenderer:
    """Writes human-readable command output to one stream (stdout by default)."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: IO[str] | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = color_enabled(no_color=no_color, stream=self._stream)

    def heading(self, title: str) -> None:
        self._emit(title)

    def kv(self, key: str, value: object) -> None:
        self._emit(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._emit(line)

    def section(self, title: str) -> None:
        self._emit("")
        self._emit(title)

    def warning(self, message: str) -> None:
        self._emit(f"{_INDENT}Warning: {message}")

    def items(self, entries: Iterable[str], *, bullet: str = "- ") -> None:
        for entry in entries:
            self._emit(f"{_INDENT}{bullet}{entry}")

    def ok(self, label: str) -> None:
        self._status("OK", label)

    def fail(self, label: str) -> None:
        self._status("FAIL", label)

    def _status(self, status: str, label: str) -> None:
        marker = status
        if self._color:
            marker = f"\x1b[{_STATUS_COLORS[status]}m{status}\x1b[0m"
        self._emit(f"{_INDENT}{marker}  {label}")

    def _emit(self, line: str) -> None:
        self._stream.write(f"{line}\n")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "color_enabled", "create_renderer"]
