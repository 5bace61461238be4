"""Enumerate schema files beneath resolved module roots."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from proto_toolchain.constants import SCHEMA_FILE_EXTENSION
from proto_toolchain.workspace.models import ResolvedModuleRoot, normalize_relative_path

if TYPE_CHECKING:
    from collections.abc import Iterable

    from proto_toolchain.workspace.filesystem import WorkspaceFilesystem

_LOGGER = structlog.get_logger(__name__)


class ProtoFileEnumerator:
    """Collect workspace-relative schema paths for a set of module roots.

    Output is deduplicated and sorted by the normalized (forward-slash) path, so the
    resulting ``--path`` argument list is stable across platforms and runs.
    """

    def __init__(
        self,
        filesystem: WorkspaceFilesystem,
        *,
        extension: str = SCHEMA_FILE_EXTENSION,
    ) -> None:
        self._filesystem = filesystem
        self._extension = extension

    def enumerate(self, roots: Iterable[ResolvedModuleRoot | str]) -> list[str]:
        collected: dict[str, None] = {}
        for item in roots:
            if isinstance(item, ResolvedModuleRoot):
                root = item.root
            else:
                root = normalize_relative_path(item)
            if not self._filesystem.is_dir(root):
                # Vanished or never fetched; the caller checks the aggregate.
                _LOGGER.debug("workspace_root_missing", root=root)
                continue
            count = 0
            for relative in self._filesystem.walk_files(root):
                if not relative.endswith(self._extension):
                    continue
                collected.setdefault(join_workspace_path(root, relative), None)
                count += 1
            _LOGGER.debug("workspace_root_enumerated", root=root, files=count)
        return sorted(collected)


def join_workspace_path(root: str, relative: str) -> str:
    """Join a module root and a root-relative file path using ``/`` separators."""

    normalized_relative = normalize_relative_path(relative)
    if root in {"", "."}:
        return normalized_relative
    return f"{normalize_relative_path(root)}/{normalized_relative}"


__all__ = ["ProtoFileEnumerator", "join_workspace_path"]
