"""
proto-toolchain — runtime config loader.

File: src/proto_toolchain/config/loader.py

Purpose
- Build the effective config from four layers, lowest first: built-in defaults,
  ``proto-toolchain.toml``, ``PROTO_TOOLCHAIN_*`` environment variables, CLI overrides.

Functional requirements
- The file is read with ``tomllib``; an explicitly named file must exist.
- Environment variable names derive from the dotted key (``source.git_ref`` ->
  ``PROTO_TOOLCHAIN_SOURCE_GIT_REF``); values are coerced to the type of the default.
- Path fields are made absolute relative to the directory holding the config file;
  tool commands are too once they name a directory (`bin/buf`), bare names stay for PATH.
- Every layer is validated; nothing runs on an invalid config.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final, Literal

from proto_toolchain.config.schema import (
    COMMAND_FIELDS,
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "proto-toolchain.toml"
ENV_PREFIX: Final[str] = "PROTO_TOOLCHAIN_"

_ScalarKind = Literal["str", "int", "bool"]
_KeyPath = tuple[str, ...]

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# Optional keys have no default to infer a type from.
_OPTIONAL_STR_KEYS: Final[tuple[_KeyPath, ...]] = (
    ("source", "git_repo"),
    ("tools", "protoc_path"),
    ("tools", "grpc_plugin_path"),
    ("tools", "mutiny_plugin_path"),
    ("generate", "template"),
    ("quality", "breaking_against"),
)


class ConfigLoadError(ValueError):
    """The config file or an override could not be read or coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    project_root: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    Without ``config_path`` the loader looks for ``proto-toolchain.toml`` in
    ``project_root`` (or the working directory) and tolerates its absence. A relative
    ``config_path`` is taken relative to ``project_root`` when one is given.
    """

    location = _locate_config_file(config_path, project_root)
    from_file = _read_toml(location, must_exist=config_path is not None)
    config = assert_valid_config(merge_config(default_config(), from_file))

    env = os.environ if environ is None else environ
    for layer in (_env_layer(config, env), _cli_layer(cli_overrides or {})):
        config = merge_config(config, layer)
    config = assert_valid_config(config)

    return assert_valid_config(normalize_paths(config, base_dir=location.parent))


def load_config_file(path: str | Path) -> dict[str, Any]:
    return load_config(path)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy ``config`` with every configured path field made absolute against ``base_dir``."""

    out = merge_config({}, config)
    for key_path in PATH_FIELDS:
        value = _lookup(out, key_path)
        if isinstance(value, str):
            _assign(out, key_path, _absolute_posix(value, base_dir))
    for key_path in COMMAND_FIELDS:
        value = _lookup(out, key_path)
        if isinstance(value, str) and _has_directory_part(value):
            _assign(out, key_path, _absolute_posix(value, base_dir))
    return out


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact JSON with sorted keys, identical for identical configs."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def env_var_name(key_path: _KeyPath) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in key_path)


def _locate_config_file(config_path: str | Path | None, project_root: str | Path | None) -> Path:
    root = Path(project_root).expanduser() if project_root is not None else None
    if config_path is None:
        return ((root or Path.cwd()) / DEFAULT_CONFIG_FILE).resolve()
    path = Path(config_path).expanduser()
    if root is not None and not path.is_absolute():
        path = root / path
    return path.resolve()


def _read_toml(path: Path, *, must_exist: bool) -> dict[str, Any]:
    if not path.exists():
        if must_exist:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc
    return data


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    kinds = _scalar_kinds(config)
    for key_path in _OPTIONAL_STR_KEYS:
        kinds.setdefault(key_path, "str")

    layer: dict[str, Any] = {}
    for key_path in sorted(kinds):
        name = env_var_name(key_path)
        if name in environ:
            _assign(layer, key_path, _coerce(environ[name], kinds[key_path], name))
    return layer


def _scalar_kinds(
    payload: Mapping[str, object], prefix: _KeyPath = ()
) -> dict[_KeyPath, _ScalarKind]:
    # Lists (modules, plugins, extra_args) come from the file only.
    kinds: dict[_KeyPath, _ScalarKind] = {}
    for key, value in payload.items():
        key_path = (*prefix, key)
        if isinstance(value, Mapping):
            kinds.update(_scalar_kinds(value, key_path))
        elif isinstance(value, bool):
            kinds[key_path] = "bool"
        elif isinstance(value, int):
            kinds[key_path] = "int"
        elif isinstance(value, str):
            kinds[key_path] = "str"
    return kinds


def _coerce(raw: str, kind: _ScalarKind, env_name: str) -> object:
    text = raw.strip()
    if kind == "str":
        return text
    if kind == "int":
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} must be an integer, got {raw!r}") from exc
    lowered = text.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigLoadError(f"{env_name} must be a boolean (true/false/1/0/yes/no/on/off)")


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        key_path = tuple(part for part in dotted.split(".") if part)
        if not key_path:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        _assign(layer, key_path, value)
    return layer


def _lookup(payload: Mapping[str, object], key_path: _KeyPath) -> object | None:
    node: object = payload
    for part in key_path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _assign(payload: dict[str, Any], key_path: _KeyPath, value: object) -> None:
    *parents, leaf = key_path
    node = payload
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


def _has_directory_part(command: str) -> bool:
    return command.startswith("~") or any(sep in command for sep in {"/", os.sep})


def _absolute_posix(raw: str, base_dir: Path) -> str:
    path = Path(os.path.expandvars(raw)).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return Path(os.path.normpath(path)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "load_config_file",
    "normalize_paths",
]
