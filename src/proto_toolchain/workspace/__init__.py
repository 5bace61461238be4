"""
proto-toolchain workspace package public API.

File: src/proto_toolchain/workspace/__init__.py

Purpose
- Resolve registered modules inside a multi-module schema workspace to the exact,
  sorted list of schema files passed as path filters to ``buf generate``.

Functional requirements
- Pure over (manifest text, registrations, directory tree); no network access.
- Deterministic output: identical inputs give identical, sorted path lists.
- Fail with a descriptive error when nothing resolves or nothing is found.
"""

from proto_toolchain.workspace.enumerator import ProtoFileEnumerator, join_workspace_path
from proto_toolchain.workspace.filesystem import LocalFilesystem, WorkspaceFilesystem
from proto_toolchain.workspace.manifest import (
    LineKind,
    ManifestLine,
    build_manifest_index,
    classify_line,
    module_id_from_path,
    parse_manifest,
    read_manifest,
)
from proto_toolchain.workspace.models import (
    ManifestEntry,
    ModuleRegistration,
    NoModulePathsResolvedError,
    NoProtoFilesFoundError,
    ResolutionSource,
    ResolvedModuleRoot,
    WorkspaceResolution,
    WorkspaceResolutionError,
    normalize_relative_path,
)
from proto_toolchain.workspace.resolution import resolve_workspace, resolve_workspace_proto_paths
from proto_toolchain.workspace.resolver import ModulePathResolver

__all__ = [
    "LineKind",
    "LocalFilesystem",
    "ManifestEntry",
    "ManifestLine",
    "ModulePathResolver",
    "ModuleRegistration",
    "NoModulePathsResolvedError",
    "NoProtoFilesFoundError",
    "ProtoFileEnumerator",
    "ResolutionSource",
    "ResolvedModuleRoot",
    "WorkspaceFilesystem",
    "WorkspaceResolution",
    "WorkspaceResolutionError",
    "build_manifest_index",
    "classify_line",
    "join_workspace_path",
    "module_id_from_path",
    "normalize_relative_path",
    "parse_manifest",
    "read_manifest",
    "resolve_workspace",
    "resolve_workspace_proto_paths",
]
