"""Map module registrations onto workspace-relative root directories."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from proto_toolchain.constants import SCHEMA_DIR_NAME
from proto_toolchain.workspace.models import ResolutionSource, ResolvedModuleRoot

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from proto_toolchain.workspace.filesystem import WorkspaceFilesystem
    from proto_toolchain.workspace.models import ModuleRegistration

_LOGGER = structlog.get_logger(__name__)


class ModulePathResolver:
    """Resolve registrations against a manifest index, then directory conventions.

    Lookup order per registration, first match wins:

    1. manifest id equal to the registration name;
    2. manifest id equal to the subdir override (or the name);
    3. ``{subdir or name}/proto`` directory;
    4. ``{name}/proto`` directory;
    5. ``{subdir or name}`` directory;
    6. ``{name}`` directory.

    Manifest hits are trusted without checking the disk. Convention hits must exist.
    """

    def __init__(
        self,
        filesystem: WorkspaceFilesystem,
        *,
        schema_dir: str = SCHEMA_DIR_NAME,
    ) -> None:
        self._filesystem = filesystem
        self._schema_dir = schema_dir

    def resolve(
        self,
        manifest_index: Mapping[str, str],
        registrations: Sequence[ModuleRegistration],
    ) -> tuple[ResolvedModuleRoot, ...]:
        """Resolve every registration, preserving input order; unresolved ones are omitted."""

        resolved: list[ResolvedModuleRoot] = []
        for registration in registrations:
            root = self.resolve_one(manifest_index, registration)
            if root is None:
                _LOGGER.debug(
                    "workspace_module_unresolved",
                    registration=registration.name,
                    subdir=registration.subdir,
                )
                continue
            _LOGGER.debug(
                "workspace_module_resolved",
                registration=root.registration,
                root=root.root,
                source=root.source.value,
            )
            resolved.append(root)
        return tuple(resolved)

    def resolve_one(
        self,
        manifest_index: Mapping[str, str],
        registration: ModuleRegistration,
    ) -> ResolvedModuleRoot | None:
        name = registration.name
        key = registration.lookup_key

        declared = manifest_index.get(name)
        if declared:
            return ResolvedModuleRoot(name, declared, ResolutionSource.MANIFEST_NAME)
        declared = manifest_index.get(key)
        if declared:
            return ResolvedModuleRoot(name, declared, ResolutionSource.MANIFEST_SUBDIR)

        candidates = (
            (f"{key}/{self._schema_dir}", ResolutionSource.SUBDIR_SCHEMA_DIR),
            (f"{name}/{self._schema_dir}", ResolutionSource.NAME_SCHEMA_DIR),
            (key, ResolutionSource.SUBDIR),
            (name, ResolutionSource.NAME),
        )
        for candidate, source in candidates:
            if self._filesystem.is_dir(candidate):
                return ResolvedModuleRoot(name, candidate, source)
        return None


__all__ = ["ModulePathResolver"]
