"""
proto-toolchain — workspace manifest parser.

File: src/proto_toolchain/workspace/manifest.py

Purpose
- Read the ``modules:`` list of a workspace ``buf.yaml`` without a YAML library.

Functional requirements
- Only a narrow subset is understood: a ``modules:`` key followed by ``- `` items
  carrying ``path:`` and optional ``name:`` keys.
- Parsing never raises. Lines that do not fit the subset are skipped and items
  without a ``path`` are dropped.
- The index maps both the directory-derived id and the declared-name id of every
  item to its path; later items win on collisions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

import structlog

from proto_toolchain.constants import MANIFEST_FILENAME, MANIFEST_MODULES_KEY, SCHEMA_DIR_NAME
from proto_toolchain.workspace.models import ManifestEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from proto_toolchain.workspace.filesystem import WorkspaceFilesystem

_LOGGER = structlog.get_logger(__name__)

_COMMENT_MARKER: Final[str] = "#"
_ITEM_MARKER: Final[str] = "- "
_FIELD_RE: Final[re.Pattern[str]] = re.compile(
    r"""^(?P<key>path|name):\s*
        (?:"(?P<double>[^"]+)"|'(?P<single>[^']+)'|(?P<bare>[^"'\s]+))
        (?:\s+\#.*)?\s*$""",
    re.VERBOSE,
)


class LineKind(str, Enum):
    BLANK = "blank"
    COMMENT = "comment"
    MODULE_LIST_START = "module-list-start"
    ENTRY_START = "entry-start"
    PATH_FIELD = "path"
    NAME_FIELD = "name"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True, slots=True)
class ManifestLine:
    """Classified manifest line.

    ``field`` is set for ``PATH_FIELD``/``NAME_FIELD`` lines and for an
    ``ENTRY_START`` that carries a key on the item line itself (``- path: a``).
    """

    kind: LineKind
    field: tuple[LineKind, str] | None = None


class _State(Enum):
    OUTSIDE = "outside"
    IN_MODULE_LIST = "in-module-list"


def classify_line(raw: str) -> ManifestLine:
    """Classify one raw manifest line."""

    stripped = raw.strip()
    if not stripped:
        return ManifestLine(LineKind.BLANK)
    if stripped.startswith(_COMMENT_MARKER):
        return ManifestLine(LineKind.COMMENT)
    if stripped.startswith(f"{MANIFEST_MODULES_KEY}:"):
        return ManifestLine(LineKind.MODULE_LIST_START)
    if stripped.startswith(_ITEM_MARKER) or stripped == _ITEM_MARKER.strip():
        remainder = stripped[len(_ITEM_MARKER) :].strip() if len(stripped) > 1 else ""
        return ManifestLine(LineKind.ENTRY_START, _match_field(remainder))

    field = _match_field(stripped)
    if field is None:
        return ManifestLine(LineKind.UNRECOGNIZED)
    return ManifestLine(field[0], field)


def parse_manifest(text: str) -> tuple[ManifestEntry, ...]:
    """Parse manifest text into entries, in declaration order."""

    entries: list[ManifestEntry] = []
    state = _State.OUTSIDE
    current: dict[LineKind, str] | None = None

    for raw in text.splitlines():
        line = classify_line(raw)
        if line.kind in (LineKind.BLANK, LineKind.COMMENT):
            continue
        if line.kind is LineKind.MODULE_LIST_START:
            state = _State.IN_MODULE_LIST
            continue
        if state is _State.OUTSIDE:
            continue

        if line.kind is LineKind.ENTRY_START:
            _flush(current, entries)
            current = {}
        if current is None or line.field is None:
            continue
        key, value = line.field
        current[key] = value

    _flush(current, entries)
    return tuple(entries)


def read_manifest(
    filesystem: WorkspaceFilesystem,
    manifest_name: str = MANIFEST_FILENAME,
) -> tuple[ManifestEntry, ...]:
    """Read and parse the workspace manifest; a missing manifest yields no entries."""

    text = filesystem.read_text(manifest_name)
    if text is None:
        _LOGGER.debug("workspace_manifest_missing", manifest=filesystem.describe(manifest_name))
        return ()
    entries = parse_manifest(text)
    _LOGGER.debug(
        "workspace_manifest_parsed",
        manifest=filesystem.describe(manifest_name),
        entries=len(entries),
    )
    return entries


def build_manifest_index(
    entries: Iterable[ManifestEntry],
    *,
    schema_dir: str = SCHEMA_DIR_NAME,
) -> dict[str, str]:
    """Map module ids to declared paths; later entries overwrite earlier ones."""

    index: dict[str, str] = {}
    for entry in entries:
        path_id = module_id_from_path(entry.path, schema_dir=schema_dir)
        if path_id:
            _record(index, path_id, entry.path)
        if entry.name:
            name_id = entry.name.rstrip("/").split("/")[-1]
            if name_id:
                _record(index, name_id, entry.path)
    return index


def module_id_from_path(path: str, *, schema_dir: str = SCHEMA_DIR_NAME) -> str | None:
    """Derive a module id from a declared path: ``common/proto`` -> ``common``."""

    if not path:
        return None
    normalized = path.replace("\\", "/").rstrip("/")
    suffix = f"/{schema_dir}"
    if schema_dir and normalized.endswith(suffix):
        normalized = normalized[: -len(suffix)]
    parts = [part for part in normalized.split("/") if part]
    if not parts:
        return None
    return parts[-1]


def _match_field(text: str) -> tuple[LineKind, str] | None:
    match = _FIELD_RE.match(text)
    if match is None:
        return None
    kind = LineKind.PATH_FIELD if match.group("key") == "path" else LineKind.NAME_FIELD
    value = match.group("double") or match.group("single") or match.group("bare")
    return kind, value.strip()


def _flush(current: Mapping[LineKind, str] | None, entries: list[ManifestEntry]) -> None:
    if current is None:
        return
    path = current.get(LineKind.PATH_FIELD)
    if not path:
        return
    entries.append(ManifestEntry(path=path, name=current.get(LineKind.NAME_FIELD)))


def _record(index: dict[str, str], key: str, path: str) -> None:
    previous = index.get(key)
    if previous is not None and previous != path:
        _LOGGER.debug("workspace_manifest_id_shadowed", module_id=key, previous=previous, path=path)
    index[key] = path


__all__ = [
    "LineKind",
    "ManifestLine",
    "build_manifest_index",
    "classify_line",
    "module_id_from_path",
    "parse_manifest",
    "read_manifest",
]
