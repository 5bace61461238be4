"""
proto-toolchain — filesystem helpers for build outputs.

File: src/proto_toolchain/utils/fs.py

Purpose
- Write rendered files atomically and delete build directories without escaping the
  project root.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``data`` in one step; parents are created as needed.

    Text is written with ``\\n`` line endings.
    """

    target = Path(path)
    payload = data if isinstance(data, bytes) else data.encode(encoding)
    fd, scratch = tempfile.mkstemp(
        dir=ensure_directory(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(scratch, target)
    except BaseException:
        Path(scratch).unlink(missing_ok=True)
        raise


def ensure_directory(path: PathLike) -> Path:
    """Create ``path`` with its parents and return it resolved.

    An existing non-directory at ``path`` raises ``FileExistsError``.
    """

    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory.resolve(strict=True)


def is_within(child: PathLike, parent: PathLike) -> bool:
    return Path(child).resolve().is_relative_to(Path(parent).resolve())


def safe_delete(path: PathLike, project_root: PathLike) -> bool:
    """Remove ``path`` (file, tree or symlink) when it lies strictly inside ``project_root``.

    Relative paths are taken from ``project_root``. Returns ``False`` when nothing
    existed. Symlinks are unlinked, never followed.
    """

    root = Path(project_root).resolve(strict=True)
    if not root.is_dir():
        raise NotADirectoryError(f"{root} is not a directory")

    target = root / path
    # Only the parent is resolved; a symlink target is judged by where the link sits.
    located = Path(os.path.normpath(target.parent.resolve() / target.name))
    if located == root or not located.is_relative_to(root):
        raise ValueError(f"refusing to delete path outside project root: {target}")

    if target.is_symlink():
        target.unlink()
        return True
    if not target.exists():
        return False
    if not target.resolve().is_relative_to(root):
        raise ValueError(f"refusing to delete path outside project root: {target}")

    if target.is_dir():
        shutil.rmtree(target)
    else:
        target.unlink()
    return True


__all__ = ["atomic_write", "ensure_directory", "is_within", "safe_delete"]
