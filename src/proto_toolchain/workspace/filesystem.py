"""Read-only filesystem capability used by workspace resolution."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator


@runtime_checkable
class WorkspaceFilesystem(Protocol):
    """Queries resolution needs, all relative to a workspace root."""

    def is_dir(self, relative: str) -> bool: ...

    def is_file(self, relative: str) -> bool: ...

    def read_text(self, relative: str) -> str | None:
        """Return file contents, or ``None`` when the file does not exist."""
        ...

    def walk_files(self, relative: str) -> Iterator[str]:
        """Yield regular files below ``relative``, relative to it, in host separators."""
        ...

    def describe(self, relative: str) -> str:
        """Human-readable location used in diagnostics."""
        ...


class LocalFilesystem:
    """``WorkspaceFilesystem`` over a directory on local disk."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def is_dir(self, relative: str) -> bool:
        return self._path(relative).is_dir()

    def is_file(self, relative: str) -> bool:
        return self._path(relative).is_file()

    def read_text(self, relative: str) -> str | None:
        target = self._path(relative)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8-sig", errors="replace")

    def walk_files(self, relative: str) -> Iterator[str]:
        base = self._path(relative)
        if not base.is_dir():
            return
        for candidate in base.rglob("*"):
            if candidate.is_file():
                yield str(candidate.relative_to(base))

    def describe(self, relative: str) -> str:
        return self._path(relative).as_posix()

    def _path(self, relative: str) -> Path:
        if relative in {"", "."}:
            return self.root
        return self.root / relative


__all__ = ["LocalFilesystem", "WorkspaceFilesystem"]
