"""
proto-toolchain — unit tests for filesystem helpers

File: tests/unit/utils/test_fs.py

Purpose
- Validate atomic writes and root-guarded deletion of build directories.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from proto_toolchain.utils.fs import atomic_write, ensure_directory, is_within, safe_delete


@pytest.mark.unit
def test_atomic_write_creates_parents_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "build" / "buf.gen.yaml"

    atomic_write(target, "version: v2\n")
    atomic_write(target, b"version: v2\nplugins: []\n")

    assert target.read_text(encoding="utf-8") == "version: v2\nplugins: []\n"
    assert sorted(item.name for item in target.parent.iterdir()) == ["buf.gen.yaml"]


@pytest.mark.unit
def test_ensure_directory_rejects_existing_file(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(FileExistsError):
        ensure_directory(blocker)


@pytest.mark.unit
def test_is_within(tmp_path: Path) -> None:
    assert is_within(tmp_path / "a" / "b", tmp_path)
    assert not is_within(tmp_path.parent, tmp_path)


@pytest.mark.unit
def test_safe_delete_removes_directory_tree(tmp_path: Path) -> None:
    export_dir = tmp_path / "build" / "proto-export"
    (export_dir / "common").mkdir(parents=True)
    (export_dir / "common" / "a.proto").write_text("", encoding="utf-8")

    assert safe_delete("build/proto-export", tmp_path) is True
    assert not export_dir.exists()
    assert (tmp_path / "build").is_dir()


@pytest.mark.unit
def test_safe_delete_missing_target_returns_false(tmp_path: Path) -> None:
    assert safe_delete(tmp_path / "never-created", tmp_path) is False


@pytest.mark.unit
@pytest.mark.parametrize("target", [".", "..", "../sibling"])
def test_safe_delete_refuses_root_and_outside_paths(tmp_path: Path, target: str) -> None:
    project = tmp_path / "project"
    project.mkdir()

    with pytest.raises(ValueError, match="refusing to delete"):
        safe_delete(target, project)

    assert project.is_dir()


@pytest.mark.unit
def test_safe_delete_unlinks_symlink_without_touching_target(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "keep.proto").write_text("", encoding="utf-8")
    link = project / "build"
    link.symlink_to(outside, target_is_directory=True)

    assert safe_delete(link, project) is True
    assert not link.exists()
    assert (outside / "keep.proto").is_file()
