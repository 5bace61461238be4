"""Stable constants shared across the toolchain."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema version for the persisted config contract.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Workspace conventions.
MANIFEST_FILENAME: Final[str] = "buf.yaml"
MANIFEST_MODULES_KEY: Final[str] = "modules"
SCHEMA_DIR_NAME: Final[str] = "proto"
SCHEMA_FILE_EXTENSION: Final[str] = ".proto"

# Source modes.
SOURCE_MODE_BSR: Final[str] = "bsr"
SOURCE_MODE_GIT: Final[str] = "git"
SOURCE_MODE_WORKSPACE: Final[str] = "git-proto-workspace"
SOURCE_MODES: Final[tuple[str, ...]] = (SOURCE_MODE_BSR, SOURCE_MODE_GIT, SOURCE_MODE_WORKSPACE)

DEFAULT_GIT_REF: Final[str] = "main"

# Default build paths (relative to the project root unless overridden by config).
EXPORT_DIR: Final[PurePosixPath] = PurePosixPath("build/protos/export")
OUTPUT_DIR: Final[PurePosixPath] = PurePosixPath("build/generated/source/proto")
TEMPLATE_PATH: Final[PurePosixPath] = PurePosixPath("build/buf.gen.yaml")
LOG_DIR: Final[PurePosixPath] = PurePosixPath("build/logs")
DESCRIPTOR_PATH: Final[PurePosixPath] = PurePosixPath("build/descriptors/proto.desc")
DESCRIPTOR_RESOURCES_DIR: Final[PurePosixPath] = PurePosixPath("build/resources/test/grpc")

# Option passed to the Quarkus Mutiny gRPC generator.
MUTINY_PLUGIN_OPTION: Final[str] = "quarkus.generate-code.grpc.scan-for-imports=none"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_GIT_REF",
    "DESCRIPTOR_PATH",
    "DESCRIPTOR_RESOURCES_DIR",
    "EXPORT_DIR",
    "LOG_DIR",
    "MANIFEST_FILENAME",
    "MANIFEST_MODULES_KEY",
    "MUTINY_PLUGIN_OPTION",
    "OUTPUT_DIR",
    "SCHEMA_DIR_NAME",
    "SCHEMA_FILE_EXTENSION",
    "SOURCE_MODES",
    "SOURCE_MODE_BSR",
    "SOURCE_MODE_GIT",
    "SOURCE_MODE_WORKSPACE",
    "TEMPLATE_PATH",
]
