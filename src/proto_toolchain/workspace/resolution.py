"""Single-pass workspace resolution: manifest, module roots, then schema files."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from proto_toolchain.constants import MANIFEST_FILENAME, SCHEMA_DIR_NAME, SCHEMA_FILE_EXTENSION
from proto_toolchain.workspace.enumerator import ProtoFileEnumerator
from proto_toolchain.workspace.filesystem import LocalFilesystem
from proto_toolchain.workspace.manifest import build_manifest_index, read_manifest
from proto_toolchain.workspace.models import (
    NoModulePathsResolvedError,
    NoProtoFilesFoundError,
    WorkspaceResolution,
)
from proto_toolchain.workspace.resolver import ModulePathResolver

if TYPE_CHECKING:
    from collections.abc import Sequence

    from proto_toolchain.workspace.filesystem import WorkspaceFilesystem
    from proto_toolchain.workspace.models import ModuleRegistration

_LOGGER = structlog.get_logger(__name__)


def resolve_workspace(
    workspace_root: Path | str,
    registrations: Sequence[ModuleRegistration],
    *,
    filesystem: WorkspaceFilesystem | None = None,
    manifest_name: str = MANIFEST_FILENAME,
    schema_dir: str = SCHEMA_DIR_NAME,
    extension: str = SCHEMA_FILE_EXTENSION,
) -> WorkspaceResolution:
    """Resolve registrations to the sorted list of schema files to pass as path filters.

    Raises ``NoModulePathsResolvedError`` when no registration maps to a root and
    ``NoProtoFilesFoundError`` when the resolved roots hold no schema files.
    """

    fs = filesystem if filesystem is not None else LocalFilesystem(workspace_root)
    manifest_location = fs.describe(manifest_name)
    manifest_found = fs.is_file(manifest_name)

    entries = read_manifest(fs, manifest_name) if manifest_found else ()
    index = build_manifest_index(entries, schema_dir=schema_dir)

    roots = ModulePathResolver(fs, schema_dir=schema_dir).resolve(index, registrations)
    resolved_names = {item.registration for item in roots}
    unresolved = tuple(item.name for item in registrations if item.name not in resolved_names)

    if not roots:
        raise NoModulePathsResolvedError(
            manifest_path=manifest_location,
            manifest_found=manifest_found,
            registrations=[item.name for item in registrations],
        )
    for name in unresolved:
        _LOGGER.warning("workspace_module_skipped", registration=name, manifest=manifest_location)

    root_paths = tuple(dict.fromkeys(item.root for item in roots))
    proto_paths = ProtoFileEnumerator(fs, extension=extension).enumerate(root_paths)
    if not proto_paths:
        raise NoProtoFilesFoundError(roots=root_paths, extension=extension)

    _LOGGER.info(
        "workspace_resolved",
        roots=list(root_paths),
        files=len(proto_paths),
        unresolved=list(unresolved),
    )
    return WorkspaceResolution(
        workspace_root=Path(workspace_root).as_posix(),
        manifest_path=manifest_location,
        manifest_found=manifest_found,
        roots=roots,
        unresolved=unresolved,
        proto_paths=tuple(proto_paths),
    )


def resolve_workspace_proto_paths(
    workspace_root: Path | str,
    registrations: Sequence[ModuleRegistration],
    *,
    filesystem: WorkspaceFilesystem | None = None,
    manifest_name: str = MANIFEST_FILENAME,
    schema_dir: str = SCHEMA_DIR_NAME,
    extension: str = SCHEMA_FILE_EXTENSION,
) -> list[str]:
    """Return only the sorted schema path list from ``resolve_workspace``."""

    resolution = resolve_workspace(
        workspace_root,
        registrations,
        filesystem=filesystem,
        manifest_name=manifest_name,
        schema_dir=schema_dir,
        extension=extension,
    )
    return list(resolution.proto_paths)


__all__ = ["resolve_workspace", "resolve_workspace_proto_paths"]
