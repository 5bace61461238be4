"""
proto-toolchain — configuration schema and validation.

File: src/proto_toolchain/config/schema.py

Purpose
- Built-in defaults, the shape of ``proto-toolchain.toml``, and strict validation of it.

Functional requirements
- Every section is described by a table of field rules; one checker walks them all.
- Unknown keys are issues, so a typo never silently falls back to a default.
- Problems are reported together as ``path: message`` pairs, in a stable order.
- ``[[modules]]`` tables become ``ModuleRegistration`` values in declaration order.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from proto_toolchain.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_GIT_REF,
    DESCRIPTOR_PATH,
    DESCRIPTOR_RESOURCES_DIR,
    EXPORT_DIR,
    LOG_DIR,
    MANIFEST_FILENAME,
    OUTPUT_DIR,
    SCHEMA_DIR_NAME,
    SCHEMA_FILE_EXTENSION,
    SOURCE_MODE_BSR,
    SOURCE_MODES,
    TEMPLATE_PATH,
)
from proto_toolchain.workspace.models import ModuleRegistration

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

# Relative values of these keys are resolved against the config file's directory.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "export_dir"),
    ("paths", "output_dir"),
    ("paths", "template_path"),
    ("generate", "template"),
    ("tools", "protoc_path"),
    ("tools", "grpc_plugin_path"),
    ("tools", "mutiny_plugin_path"),
    ("descriptors", "path"),
    ("descriptors", "resources_dir"),
    ("observability", "log_dir"),
)

# Bare names are looked up on PATH; values with a directory part are treated like PATH_FIELDS.
COMMAND_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("tools", "buf"),
    ("tools", "git"),
)

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")


class MetaConfig(TypedDict):
    schema_version: int


class SourceConfig(TypedDict):
    mode: Literal["bsr", "git", "git-proto-workspace"]
    git_repo: NotRequired[str]
    git_ref: str


class ToolsConfig(TypedDict):
    buf: str
    git: str
    protoc_path: NotRequired[str]
    grpc_plugin_path: NotRequired[str]
    mutiny_plugin_path: NotRequired[str]


class PluginConfig(TypedDict):
    name: str
    plugin: str
    out: str
    opt: NotRequired[list[str]]


class GenerateConfig(TypedDict):
    language: str
    generate_grpc: bool
    generate_mutiny: bool
    extra_args: list[str]
    template: NotRequired[str]
    plugins: list[PluginConfig]


class WorkspaceConfig(TypedDict):
    manifest: str
    schema_dir: str
    extension: str


class PathsConfig(TypedDict):
    export_dir: str
    output_dir: str
    template_path: str


class QualityConfig(TypedDict):
    lint_args: list[str]
    breaking_against: NotRequired[str]
    breaking_args: list[str]
    format_args: list[str]


class DescriptorsConfig(TypedDict):
    enabled: bool
    path: str
    copy_to_resources: bool
    resources_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str
    log_to_file: bool


class ModuleConfig(TypedDict):
    name: str
    subdir: NotRequired[str]
    bsr: NotRequired[str]
    git_repo: NotRequired[str]
    git_ref: NotRequired[str]


class ToolchainConfig(TypedDict):
    meta: MetaConfig
    source: SourceConfig
    tools: ToolsConfig
    generate: GenerateConfig
    workspace: WorkspaceConfig
    paths: PathsConfig
    quality: QualityConfig
    descriptors: DescriptorsConfig
    observability: ObservabilityConfig
    modules: list[ModuleConfig]


DEFAULT_CONFIG: Final[ToolchainConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "source": {"mode": SOURCE_MODE_BSR, "git_ref": DEFAULT_GIT_REF},
    "tools": {"buf": "buf", "git": "git"},
    "generate": {
        "language": "java",
        "generate_grpc": True,
        "generate_mutiny": False,
        "extra_args": [],
        "plugins": [],
    },
    "workspace": {
        "manifest": MANIFEST_FILENAME,
        "schema_dir": SCHEMA_DIR_NAME,
        "extension": SCHEMA_FILE_EXTENSION,
    },
    "paths": {
        "export_dir": str(EXPORT_DIR),
        "output_dir": str(OUTPUT_DIR),
        "template_path": str(TEMPLATE_PATH),
    },
    "quality": {"lint_args": [], "breaking_args": [], "format_args": []},
    "descriptors": {
        "enabled": False,
        "path": str(DESCRIPTOR_PATH),
        "copy_to_resources": False,
        "resources_dir": str(DESCRIPTOR_RESOURCES_DIR),
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "text",
        "log_dir": f"{LOG_DIR}/",
        "log_to_file": False,
    },
    "modules": [],
}


_Kind = Literal["str", "path", "bool", "int", "str_list", "tables"]


@dataclass(frozen=True, slots=True)
class _Rule:
    kind: _Kind
    required: bool = True
    choices: tuple[str, ...] = ()
    allow_blank: bool = False


_PLUGIN_RULES: Final[dict[str, _Rule]] = {
    "name": _Rule("str"),
    "plugin": _Rule("str"),
    "out": _Rule("str"),
    "opt": _Rule("str_list", required=False),
}

_MODULE_RULES: Final[dict[str, _Rule]] = {
    "name": _Rule("str"),
    "subdir": _Rule("str", required=False, allow_blank=True),
    "bsr": _Rule("str", required=False),
    "git_repo": _Rule("str", required=False),
    "git_ref": _Rule("str", required=False),
}

_SECTION_RULES: Final[dict[str, dict[str, _Rule]]] = {
    "descriptors": {
        "enabled": _Rule("bool"),
        "path": _Rule("path"),
        "copy_to_resources": _Rule("bool"),
        "resources_dir": _Rule("path"),
    },
    "generate": {
        "language": _Rule("str"),
        "generate_grpc": _Rule("bool"),
        "generate_mutiny": _Rule("bool"),
        "extra_args": _Rule("str_list"),
        "template": _Rule("path", required=False),
        "plugins": _Rule("tables"),
    },
    "meta": {"schema_version": _Rule("int")},
    "observability": {
        "log_level": _Rule("str", choices=LOG_LEVELS),
        "log_format": _Rule("str", choices=LOG_FORMATS),
        "log_dir": _Rule("path"),
        "log_to_file": _Rule("bool"),
    },
    "paths": {
        "export_dir": _Rule("path"),
        "output_dir": _Rule("path"),
        "template_path": _Rule("path"),
    },
    "quality": {
        "lint_args": _Rule("str_list"),
        "breaking_against": _Rule("str", required=False),
        "breaking_args": _Rule("str_list"),
        "format_args": _Rule("str_list"),
    },
    "source": {
        "mode": _Rule("str", choices=SOURCE_MODES),
        "git_repo": _Rule("str", required=False),
        "git_ref": _Rule("str"),
    },
    "tools": {
        "buf": _Rule("path"),
        "git": _Rule("path"),
        "protoc_path": _Rule("path", required=False),
        "grpc_plugin_path": _Rule("path", required=False),
        "mutiny_plugin_path": _Rule("path", required=False),
    },
    "workspace": {
        "manifest": _Rule("path"),
        "schema_dir": _Rule("path"),
        "extension": _Rule("path"),
    },
}

_TABLE_RULES: Final[dict[str, dict[str, _Rule]]] = {
    "generate.plugins": _PLUGIN_RULES,
    "modules": _MODULE_RULES,
}

_MISSING: Final[object] = object()


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One failed check: dotted field path plus a human message."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Strict validation found at least one issue."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


def default_config() -> ToolchainConfig:
    """Fresh, independently mutable copy of ``DEFAULT_CONFIG``."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade proto-toolchain.toml to the current layout"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the proto-toolchain package"
        )
    return f"schema version {found_version} is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; tables merge, lists are replaced."""

    merged: dict[str, Any] = {key: _clone(value) for key, value in base.items()}
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = _clone(value)
    return merged


def validate_config(config: object) -> ConfigValidationResult:
    """Check ``config`` against the schema, collecting every issue."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(
            ConfigValidationIssue("<root>", f"expected table, got {type(config).__name__}")
        )
        return ConfigValidationResult(config=None, issues=tuple(issues))

    checked: dict[str, Any] = {}
    _unknown_and_missing(config, {*_SECTION_RULES, "modules"}, required=set(_SECTION_RULES),
                         prefix="", issues=issues)
    for section, rules in _SECTION_RULES.items():
        raw = config.get(section)
        if raw is None:
            continue
        if not isinstance(raw, Mapping):
            issues.append(ConfigValidationIssue(section, _type_message("table", raw)))
            continue
        checked[section] = _check_fields(raw, rules, section, issues)
    if "modules" in config:
        checked["modules"] = _check_tables(config["modules"], "modules", issues)

    _cross_field_checks(checked, issues)
    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=checked, issues=())


def assert_valid_config(config: object) -> dict[str, Any]:
    """Return the checked config or raise ``ConfigValidationError``."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def registrations_from_config(config: Mapping[str, object]) -> tuple[ModuleRegistration, ...]:
    """``[[modules]]`` tables as registrations, in declaration order."""

    tables = config.get("modules")
    if not isinstance(tables, Sequence):
        return ()
    return tuple(
        ModuleRegistration(
            name=str(table["name"]),
            subdir=table.get("subdir"),
            bsr=table.get("bsr"),
            git_repo=table.get("git_repo"),
            git_ref=table.get("git_ref"),
        )
        for table in tables
        if isinstance(table, Mapping) and "name" in table
    )


def _check_fields(
    table: Mapping[str, object],
    rules: Mapping[str, _Rule],
    prefix: str,
    issues: list[ConfigValidationIssue],
) -> dict[str, Any]:
    required = {name for name, rule in rules.items() if rule.required}
    _unknown_and_missing(table, set(rules), required=required, prefix=prefix, issues=issues)

    out: dict[str, Any] = {}
    for name, rule in rules.items():
        raw = table.get(name, _MISSING)
        if raw is _MISSING:
            continue
        path = f"{prefix}.{name}" if prefix else name
        if rule.kind == "tables":
            out[name] = _check_tables(raw, path, issues)
            continue
        value = _check_value(raw, rule, path, issues)
        if value is not _MISSING:
            out[name] = value
    return out


def _check_tables(raw: object, path: str, issues: list[ConfigValidationIssue]) -> list[Any]:
    if not _is_array(raw):
        issues.append(ConfigValidationIssue(path, _type_message("array", raw)))
        return []

    rules = _TABLE_RULES[path]
    out: list[dict[str, Any]] = []
    seen_names: set[str] = set()
    for index, item in enumerate(raw):
        item_path = f"{path}[{index}]"
        if not isinstance(item, Mapping):
            issues.append(ConfigValidationIssue(item_path, _type_message("table", item)))
            continue
        checked = _check_fields(item, rules, item_path, issues)
        name = checked.get("name")
        if name in seen_names:
            kind = "module" if path == "modules" else "plugin"
            issues.append(
                ConfigValidationIssue(f"{item_path}.name", f"duplicate {kind} name {name!r}")
            )
        elif name is not None:
            seen_names.add(name)
        out.append(checked)
    return out


def _check_value(
    raw: object, rule: _Rule, path: str, issues: list[ConfigValidationIssue]
) -> object:
    if rule.kind == "bool":
        if isinstance(raw, bool):
            return raw
        issues.append(ConfigValidationIssue(path, _type_message("boolean", raw)))
        return _MISSING

    if rule.kind == "int":
        if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 1:
            return raw
        issues.append(ConfigValidationIssue(path, "expected a positive integer"))
        return _MISSING

    if rule.kind == "str_list":
        if not _is_array(raw):
            issues.append(ConfigValidationIssue(path, _type_message("array", raw)))
            return _MISSING
        bad = [index for index, item in enumerate(raw) if not isinstance(item, str)]
        for index in bad:
            issues.append(
                ConfigValidationIssue(f"{path}[{index}]", _type_message("string", raw[index]))
            )
        return _MISSING if bad else list(raw)

    if not isinstance(raw, str):
        issues.append(ConfigValidationIssue(path, _type_message("string", raw)))
        return _MISSING
    text = raw.strip()
    if not text and not rule.allow_blank:
        issues.append(ConfigValidationIssue(path, "must not be empty"))
        return _MISSING
    if rule.kind == "path" and "\x00" in text:
        issues.append(ConfigValidationIssue(path, "must not contain NUL bytes"))
        return _MISSING
    if rule.choices and text not in rule.choices:
        allowed = ", ".join(sorted(rule.choices))
        issues.append(
            ConfigValidationIssue(path, f"invalid value {text!r}; expected one of: {allowed}")
        )
        return _MISSING
    return text


def _cross_field_checks(checked: Mapping[str, Any], issues: list[ConfigValidationIssue]) -> None:
    version = checked.get("meta", {}).get("schema_version")
    if version is not None and version != ConfigSchemaVersion:
        issues.append(ConfigValidationIssue("meta.schema_version", migration_guidance(version)))

    extension = checked.get("workspace", {}).get("extension")
    if extension is not None and (not extension.startswith(".") or len(extension) < 2):
        issues.append(
            ConfigValidationIssue("workspace.extension", "must start with '.' (example: .proto)")
        )


def _unknown_and_missing(
    table: Mapping[str, object],
    allowed: set[str],
    *,
    required: set[str],
    prefix: str,
    issues: list[ConfigValidationIssue],
) -> None:
    def field_path(key: object) -> str:
        return f"{prefix}.{key}" if prefix else str(key)

    for key in sorted(table, key=str):
        if key not in allowed:
            issues.append(ConfigValidationIssue(field_path(key), "unknown field"))
    for key in sorted(required - set(table)):
        issues.append(ConfigValidationIssue(field_path(key), "missing required field"))


def _is_array(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _type_message(expected: str, value: object) -> str:
    return f"expected {expected}, got {type(value).__name__}"


def _clone(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _clone(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clone(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "COMMAND_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ToolchainConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "registrations_from_config",
    "validate_config",
]
