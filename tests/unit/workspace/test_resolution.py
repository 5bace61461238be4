"""
proto-toolchain — unit tests for single-pass workspace resolution

File: tests/unit/workspace/test_resolution.py

Purpose
- Validate the combined manifest -> roots -> files pass on real temporary trees.

What this test file should cover
- Manifest, convention, overlap, and unresolved-only workspaces.
- Both fatal outcomes and their diagnostics.
- Determinism: repeated and shuffled inputs give identical output.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from proto_toolchain.workspace import (
    ModuleRegistration,
    NoModulePathsResolvedError,
    NoProtoFilesFoundError,
    ResolutionSource,
    resolve_workspace,
    resolve_workspace_proto_paths,
)


def _write(path: Path, text: str = 'syntax = "proto3";\n') -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _seed_multi_module_workspace(root: Path) -> None:
    _write(
        root / "buf.yaml",
        "version: v2\nmodules:\n  - path: common/proto\n  - path: billing/proto\n"
        "    name: buf.build/acme/payments\n",
    )
    _write(root / "common" / "proto" / "acme" / "common" / "v1" / "money.proto")
    _write(root / "common" / "proto" / "acme" / "common" / "v1" / "ids.proto")
    _write(root / "billing" / "proto" / "acme" / "billing" / "v1" / "invoice.proto")
    _write(root / "search" / "proto" / "acme" / "search" / "v1" / "query.proto")
    _write(root / "cfg" / "proto" / "settings.proto")


@pytest.mark.unit
def test_manifest_entry_without_name_resolves_module(tmp_path: Path) -> None:
    _write(tmp_path / "buf.yaml", "version: v2\nmodules:\n  - path: common/proto\n")
    _write(tmp_path / "common" / "proto" / "a.proto")
    _write(tmp_path / "common" / "proto" / "sub" / "b.proto")

    resolution = resolve_workspace(tmp_path, [ModuleRegistration("common")])

    assert resolution.manifest_found
    assert [item.root for item in resolution.roots] == ["common/proto"]
    assert list(resolution.proto_paths) == ["common/proto/a.proto", "common/proto/sub/b.proto"]
    assert resolution.path_arguments() == [
        "--path",
        "common/proto/a.proto",
        "--path",
        "common/proto/sub/b.proto",
    ]


@pytest.mark.unit
def test_subdir_override_resolves_without_manifest(tmp_path: Path) -> None:
    _write(tmp_path / "cfg" / "proto" / "x.proto")

    resolution = resolve_workspace(tmp_path, [ModuleRegistration("config", subdir="cfg")])

    assert not resolution.manifest_found
    assert resolution.roots[0].root == "cfg/proto"
    assert resolution.roots[0].source is ResolutionSource.SUBDIR_SCHEMA_DIR
    assert resolution.proto_paths == ("cfg/proto/x.proto",)


@pytest.mark.unit
def test_overlapping_roots_list_shared_file_once(tmp_path: Path) -> None:
    _write(tmp_path / "shared" / "shared.proto")
    _write(tmp_path / "shared" / "proto" / "inner.proto")

    paths = resolve_workspace_proto_paths(
        tmp_path,
        [ModuleRegistration("shared"), ModuleRegistration("alias", subdir="shared")],
    )

    assert paths == ["shared/proto/inner.proto"]

    paths = resolve_workspace_proto_paths(
        tmp_path,
        [
            ModuleRegistration("shared", subdir="shared/proto"),
            ModuleRegistration("outer", subdir="shared"),
        ],
        schema_dir="missing",
    )

    assert paths == ["shared/proto/inner.proto", "shared/shared.proto"]
    assert paths.count("shared/proto/inner.proto") == 1


@pytest.mark.unit
def test_only_unresolved_registration_fails(tmp_path: Path) -> None:
    _write(tmp_path / "other" / "proto" / "o.proto")

    with pytest.raises(NoModulePathsResolvedError) as exc_info:
        resolve_workspace(tmp_path, [ModuleRegistration("ghost")])

    message = str(exc_info.value)
    assert "no module paths resolved" in message
    assert "ghost" in message
    assert "buf.yaml" in message
    assert "not found" in message
    assert exc_info.value.registrations == ("ghost",)


@pytest.mark.unit
def test_partial_resolution_skips_unresolved(tmp_path: Path) -> None:
    _seed_multi_module_workspace(tmp_path)

    resolution = resolve_workspace(
        tmp_path,
        [ModuleRegistration("ghost"), ModuleRegistration("common")],
    )

    assert resolution.unresolved == ("ghost",)
    assert [item.registration for item in resolution.roots] == ["common"]


@pytest.mark.unit
def test_resolved_roots_without_schema_files_fail(tmp_path: Path) -> None:
    _write(tmp_path / "empty" / "proto" / "README.md", "nothing here\n")

    with pytest.raises(NoProtoFilesFoundError) as exc_info:
        resolve_workspace(tmp_path, [ModuleRegistration("empty")])

    assert "no .proto files found" in str(exc_info.value)
    assert exc_info.value.roots == ("empty/proto",)


@pytest.mark.unit
def test_manifest_declared_but_unfetched_root_fails_as_empty(tmp_path: Path) -> None:
    _write(tmp_path / "buf.yaml", "modules:\n  - path: later/proto\n")

    with pytest.raises(NoProtoFilesFoundError, match="later/proto"):
        resolve_workspace(tmp_path, [ModuleRegistration("later")])


@pytest.mark.unit
def test_manifest_wins_over_convention_directory(tmp_path: Path) -> None:
    _write(tmp_path / "buf.yaml", "modules:\n  - path: vendor/acme/common/proto\n")
    _write(tmp_path / "vendor" / "acme" / "common" / "proto" / "declared.proto")
    _write(tmp_path / "common" / "proto" / "convention.proto")

    paths = resolve_workspace_proto_paths(tmp_path, [ModuleRegistration("common")])

    assert paths == ["vendor/acme/common/proto/declared.proto"]


@pytest.mark.unit
def test_declared_name_resolves_registration(tmp_path: Path) -> None:
    _seed_multi_module_workspace(tmp_path)

    resolution = resolve_workspace(tmp_path, [ModuleRegistration("payments")])

    assert resolution.roots[0].root == "billing/proto"
    assert resolution.roots[0].source is ResolutionSource.MANIFEST_NAME


@pytest.mark.unit
def test_custom_manifest_name_and_extension(tmp_path: Path) -> None:
    _write(tmp_path / "workspace.yaml", "modules:\n  - path: defs\n")
    _write(tmp_path / "defs" / "a.fbs")
    _write(tmp_path / "defs" / "b.proto")

    paths = resolve_workspace_proto_paths(
        tmp_path,
        [ModuleRegistration("defs")],
        manifest_name="workspace.yaml",
        extension=".fbs",
    )

    assert paths == ["defs/a.fbs"]


@pytest.mark.unit
def test_manifest_path_with_hash_resolves_to_declared_directory(tmp_path: Path) -> None:
    _write(
        tmp_path / "buf.yaml",
        'version: v2\nmodules:\n  - path: "team#1/proto"\n    name: buf.build/acme/team\n',
    )
    _write(tmp_path / "team#1" / "proto" / "t.proto")
    _write(tmp_path / "team" / "x.proto")

    resolution = resolve_workspace(tmp_path, [ModuleRegistration("team")])

    assert resolution.roots[0].source is ResolutionSource.MANIFEST_NAME
    assert resolution.proto_paths == ("team#1/proto/t.proto",)


@pytest.mark.unit
def test_repeated_resolution_is_identical(tmp_path: Path) -> None:
    _seed_multi_module_workspace(tmp_path)
    registrations = [
        ModuleRegistration("search"),
        ModuleRegistration("common"),
        ModuleRegistration("payments"),
    ]

    first = resolve_workspace(tmp_path, registrations)
    second = resolve_workspace(tmp_path, registrations)

    assert first == second
    assert list(first.proto_paths) == sorted(first.proto_paths)


_NAMES = ["common", "payments", "search", "ghost"]


@pytest.mark.unit
@settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(order=st.permutations(_NAMES))
def test_registration_order_does_not_change_output(tmp_path: Path, order: list[str]) -> None:
    workspace = tmp_path / "workspace"
    if not workspace.exists():
        _seed_multi_module_workspace(workspace)
    baseline = resolve_workspace_proto_paths(
        workspace, [ModuleRegistration(name) for name in _NAMES]
    )

    shuffled = resolve_workspace_proto_paths(
        workspace, [ModuleRegistration(name) for name in order]
    )

    assert shuffled == baseline
