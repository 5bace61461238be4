"""Configuration: defaults, proto-toolchain.toml, PROTO_TOOLCHAIN_* overrides, validation."""

from proto_toolchain.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    env_var_name,
    load_config,
    load_config_file,
    normalize_paths,
)
from proto_toolchain.config.schema import (
    COMMAND_FIELDS,
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    ToolchainConfig,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    registrations_from_config,
    validate_config,
)

__all__ = [
    "COMMAND_FIELDS",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PATH_FIELDS",
    "ToolchainConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "env_var_name",
    "load_config",
    "load_config_file",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "registrations_from_config",
    "validate_config",
]
