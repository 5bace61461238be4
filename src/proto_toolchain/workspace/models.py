"""Value types and errors for workspace module resolution."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ResolutionSource(str, Enum):
    """Which lookup rule produced a resolved module root."""

    MANIFEST_NAME = "manifest-name"
    MANIFEST_SUBDIR = "manifest-subdir"
    SUBDIR_SCHEMA_DIR = "subdir-proto"
    NAME_SCHEMA_DIR = "name-proto"
    SUBDIR = "subdir"
    NAME = "name"

    @property
    def from_manifest(self) -> bool:
        return self in (ResolutionSource.MANIFEST_NAME, ResolutionSource.MANIFEST_SUBDIR)


@dataclass(frozen=True, slots=True)
class ModuleRegistration:
    """A module the build asked for, keyed by ``name``.

    ``subdir`` of ``""`` or ``"."`` is treated as absent: the per-module git subdir
    default is the repository root, which is never a workspace module directory.
    ``bsr``, ``git_repo`` and ``git_ref`` are only consulted when fetching.
    """

    name: str
    subdir: str | None = None
    bsr: str | None = None
    git_repo: str | None = None
    git_ref: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("ModuleRegistration.name must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())
        object.__setattr__(self, "subdir", _normalize_subdir(self.subdir))
        for field_name in ("bsr", "git_repo", "git_ref"):
            value = getattr(self, field_name)
            if value is not None:
                stripped = str(value).strip()
                object.__setattr__(self, field_name, stripped or None)

    @property
    def lookup_key(self) -> str:
        """The subdirectory override when present, otherwise the module name."""

        return self.subdir if self.subdir is not None else self.name


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """One ``modules:`` item of the workspace manifest."""

    path: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedModuleRoot:
    """Workspace-relative root directory chosen for one registration."""

    registration: str
    root: str
    source: ResolutionSource

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", normalize_relative_path(self.root))


@dataclass(frozen=True, slots=True)
class WorkspaceResolution:
    """Outcome of one resolution pass over a workspace."""

    workspace_root: str
    manifest_path: str
    manifest_found: bool
    roots: tuple[ResolvedModuleRoot, ...]
    unresolved: tuple[str, ...]
    proto_paths: tuple[str, ...]

    def path_arguments(self, flag: str = "--path") -> list[str]:
        """Flatten ``proto_paths`` into repeated ``flag value`` command arguments."""

        arguments: list[str] = []
        for proto_path in self.proto_paths:
            arguments.extend((flag, proto_path))
        return arguments


class WorkspaceResolutionError(RuntimeError):
    """Base error for fatal workspace resolution outcomes."""


class NoModulePathsResolvedError(WorkspaceResolutionError):
    """Raised when no registration maps to a module root."""

    def __init__(
        self,
        *,
        manifest_path: str,
        manifest_found: bool,
        registrations: Sequence[str],
    ) -> None:
        self.manifest_path = manifest_path
        self.manifest_found = manifest_found
        self.registrations = tuple(registrations)
        manifest_state = "found" if manifest_found else "not found"
        attempted = ", ".join(self.registrations) if self.registrations else "(none)"
        super().__init__(
            "no module paths resolved for registered modules: "
            f"{attempted} (manifest {manifest_path}: {manifest_state}). "
            "Declare the modules in the manifest modules: list, or set subdir per module."
        )


class NoProtoFilesFoundError(WorkspaceResolutionError):
    """Raised when resolved module roots contain no schema files."""

    def __init__(self, *, roots: Sequence[str], extension: str) -> None:
        self.roots = tuple(roots)
        self.extension = extension
        super().__init__(
            f"no {extension} files found under resolved module paths: {', '.join(self.roots)}"
        )


def normalize_relative_path(value: str) -> str:
    """Normalize a workspace-relative path to forward slashes without ``./`` or trailing ``/``."""

    normalized = value.replace("\\", "/")
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.rstrip("/")
    return normalized or "."


def _normalize_subdir(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = normalize_relative_path(str(value).strip())
    if normalized in {"", "."}:
        return None
    return normalized


__all__ = [
    "ManifestEntry",
    "ModuleRegistration",
    "NoModulePathsResolvedError",
    "NoProtoFilesFoundError",
    "ResolutionSource",
    "ResolvedModuleRoot",
    "WorkspaceResolution",
    "WorkspaceResolutionError",
    "normalize_relative_path",
]
