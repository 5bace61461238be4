"""Render the ``buf.gen.yaml`` (v2) generator template."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import yaml

from proto_toolchain.constants import MUTINY_PLUGIN_OPTION
from proto_toolchain.utils.fs import atomic_write

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

TEMPLATE_HEADER: Final[str] = (
    "# Generated by proto-toolchain\n"
    "# DO NOT EDIT - regenerate with `proto-toolchain prepare`\n"
)

_LOCAL_PREFIXES: Final[tuple[str, ...]] = ("/", "./", "../")


def render_generate_template(
    *,
    language: str,
    output_dir: Path | str,
    project_root: Path | str,
    protoc_path: str | None = None,
    generate_grpc: bool = True,
    grpc_plugin_path: str | None = None,
    generate_mutiny: bool = False,
    mutiny_plugin_path: str | None = None,
    plugins: Sequence[Mapping[str, Any]] = (),
) -> str:
    """Return the YAML text of a v2 generate template.

    The builtin ``language`` generator always comes first. The gRPC plugin is added
    only when enabled and a local plugin path is known; the Quarkus Mutiny generator
    follows it under the same rule. Extra plugins referenced by a path run locally,
    everything else is treated as a remote plugin.
    """

    out = Path(output_dir).as_posix()
    builtin: dict[str, Any] = {"protoc_builtin": language, "out": out}
    if protoc_path:
        builtin["protoc_path"] = protoc_path
    entries: list[dict[str, Any]] = [builtin]

    if generate_grpc and grpc_plugin_path:
        entries.append({"local": grpc_plugin_path, "out": out})
    if generate_mutiny and mutiny_plugin_path:
        entries.append({"local": mutiny_plugin_path, "out": out, "opt": [MUTINY_PLUGIN_OPTION]})

    root = Path(project_root)
    for plugin in plugins:
        reference = str(plugin["plugin"])
        kind = "local" if reference.startswith(_LOCAL_PREFIXES) else "remote"
        plugin_out = Path(str(plugin["out"]))
        if not plugin_out.is_absolute():
            plugin_out = root / plugin_out
        entry: dict[str, Any] = {kind: reference, "out": plugin_out.as_posix()}
        opts = plugin.get("opt")
        if opts:
            entry["opt"] = [str(item) for item in opts]
        entries.append(entry)

    document = {"version": "v2", "plugins": entries}
    body = yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
    return TEMPLATE_HEADER + body


def write_generate_template(path: Path | str, text: str) -> Path:
    target = Path(path)
    atomic_write(target, text)
    return target


def load_generate_template(path: Path | str) -> dict[str, Any]:
    """Parse a template file, raising ``ValueError`` when it is not a mapping."""

    with Path(path).open(encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle)
    if not isinstance(loaded, dict):
        raise ValueError(f"generate template must be a mapping: {path}")
    return loaded


__all__ = [
    "TEMPLATE_HEADER",
    "load_generate_template",
    "render_generate_template",
    "write_generate_template",
]
