"""
proto-toolchain — unit tests for the fetch/prepare/generate pipeline

File: tests/unit/toolchain/test_pipeline.py

Purpose
- Drive ``ToolchainPipeline`` with a fake runner that simulates buf and git on disk.

What this test file should cover
- Per-source-mode fetch commands and their config errors.
- Workspace generation with one ``--path`` per resolved schema file.
- Per-module generation that reports every failed module.
- Template preparation (including the Mutiny generator) and clean-up.
- lint, breaking and format outcomes, and their skip on an empty export directory.
- Descriptor builds: one module, merged modules, workspace filters, resources copy.
- Tool commands given as config-relative paths keep working from the workspace root.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest
import yaml

from proto_toolchain.config import assert_valid_config, default_config, load_config, merge_config
from proto_toolchain.toolchain.commands import CommandResult, ToolchainError
from proto_toolchain.toolchain.pipeline import ToolchainPipeline
from proto_toolchain.workspace import NoModulePathsResolvedError


class _FakeToolRunner:
    """Records argv and fakes the on-disk effects of export and clone."""

    def __init__(
        self,
        *,
        failing_targets: Sequence[str] = (),
        outputs: Mapping[str, tuple[int, str, str]] | None = None,
    ) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.cwds: list[str] = []
        self.build_inputs: list[dict[str, str]] = []
        self._failing = set(failing_targets)
        self._outputs = dict(outputs or {})

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | str,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        argv = tuple(command)
        self.calls.append(argv)
        self.cwds.append(Path(cwd).as_posix())
        returncode, stdout, stderr = self._outputs.get(argv[1], (0, "", ""))
        if argv[1] == "export":
            output = Path(argv[argv.index("--output") + 1])
            (output / "acme").mkdir(parents=True, exist_ok=True)
            (output / "acme" / "types.proto").write_text('syntax = "proto3";\n', encoding="utf-8")
        elif argv[1] == "clone":
            _seed_workspace(Path(argv[-1]))
        elif argv[1] == "build":
            self._record_build(argv, Path(cwd))
        elif argv[1] == "generate" and Path(argv[2]).name in self._failing:
            returncode, stderr = 1, "boom"
        return CommandResult(
            command=argv,
            cwd=Path(cwd).as_posix(),
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def commands(self, verb: str) -> list[tuple[str, ...]]:
        return [argv for argv in self.calls if argv[1] == verb]

    def _record_build(self, argv: tuple[str, ...], cwd: Path) -> None:
        source = cwd / argv[2]
        self.build_inputs.append(
            {
                path.relative_to(source).as_posix(): path.read_text(encoding="utf-8")
                for path in sorted(source.rglob("*.proto"))
            }
        )
        output = Path(argv[argv.index("-o") + 1])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"descriptor-set")


def _seed_workspace(root: Path) -> None:
    files = {
        "buf.yaml": "version: v2\nmodules:\n  - path: common/proto\n  - path: search/proto\n",
        "common/proto/acme/common/v1/ids.proto": 'syntax = "proto3";\n',
        "search/proto/acme/search/v1/query.proto": 'syntax = "proto3";\n',
        "cfg/proto/settings.proto": 'syntax = "proto3";\n',
    }
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


def _config(overlay: Mapping[str, Any]) -> dict[str, Any]:
    return assert_valid_config(merge_config(default_config(), overlay))


def _pipeline(
    tmp_path: Path, overlay: Mapping[str, Any], runner: _FakeToolRunner
) -> ToolchainPipeline:
    return ToolchainPipeline(_config(overlay), project_root=tmp_path, runner=runner)


_WORKSPACE_OVERLAY: dict[str, Any] = {
    "source": {
        "mode": "git-proto-workspace",
        "git_repo": "https://example.com/acme/schemas.git",
        "git_ref": "main",
    },
    "modules": [{"name": "search"}, {"name": "common"}, {"name": "config", "subdir": "cfg"}],
}


@pytest.mark.unit
def test_bsr_fetch_exports_each_module(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    stale = tmp_path / "build" / "protos" / "export" / "stale"
    stale.mkdir(parents=True)
    pipeline = _pipeline(
        tmp_path,
        {
            "modules": [
                {"name": "common", "bsr": "buf.build/acme/common"},
                {"name": "billing", "bsr": "buf.build/acme/billing"},
            ]
        },
        runner,
    )

    fetched = pipeline.fetch()

    assert [path.name for path in fetched] == ["common", "billing"]
    assert [argv[2] for argv in runner.commands("export")] == [
        "buf.build/acme/common",
        "buf.build/acme/billing",
    ]
    assert not stale.exists()


@pytest.mark.unit
def test_bsr_fetch_requires_reference_before_deleting(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    previous = tmp_path / "build" / "protos" / "export" / "common"
    previous.mkdir(parents=True)
    pipeline = _pipeline(tmp_path, {"modules": [{"name": "common"}]}, runner)

    with pytest.raises(ToolchainError, match="'common' has no bsr reference"):
        pipeline.fetch()

    assert previous.is_dir()
    assert runner.calls == []


@pytest.mark.unit
def test_git_fetch_uses_module_overrides(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    pipeline = _pipeline(
        tmp_path,
        {
            "source": {
                "mode": "git",
                "git_repo": "https://example.com/acme/schemas.git",
                "git_ref": "main",
            },
            "modules": [
                {"name": "common", "subdir": "common"},
                {
                    "name": "billing",
                    "git_repo": "https://example.com/acme/billing.git",
                    "git_ref": "v2",
                },
            ],
        },
        runner,
    )

    pipeline.fetch()

    assert [argv[2] for argv in runner.commands("export")] == [
        "https://example.com/acme/schemas.git#ref=main,subdir=common",
        "https://example.com/acme/billing.git#ref=v2",
    ]


@pytest.mark.unit
def test_fetch_without_modules_does_nothing(tmp_path: Path) -> None:
    runner = _FakeToolRunner()

    assert _pipeline(tmp_path, {}, runner).fetch() == ()
    assert runner.calls == []


@pytest.mark.unit
def test_workspace_fetch_requires_git_repo(tmp_path: Path) -> None:
    overlay = {
        "source": {"mode": "git-proto-workspace", "git_ref": "main"},
        "modules": [{"name": "common"}],
    }

    with pytest.raises(ToolchainError, match="source.git_repo is required"):
        _pipeline(tmp_path, overlay, _FakeToolRunner()).fetch()


@pytest.mark.unit
def test_workspace_run_generates_once_with_path_filters(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    pipeline = _pipeline(tmp_path, _WORKSPACE_OVERLAY, runner)

    result = pipeline.run()

    assert len(runner.commands("clone")) == 1
    generate_calls = runner.commands("generate")
    assert len(generate_calls) == 1
    argv = generate_calls[0]
    assert argv[2] == "."
    assert argv[argv.index("--template") + 1] == pipeline.template_path.as_posix()
    assert argv[5:] == (
        "--path",
        "cfg/proto/settings.proto",
        "--path",
        "common/proto/acme/common/v1/ids.proto",
        "--path",
        "search/proto/acme/search/v1/query.proto",
    )
    assert runner.cwds[-1] == pipeline.export_dir.as_posix()
    assert result.mode == "git-proto-workspace"
    assert result.proto_paths == tuple(argv[6::2])


@pytest.mark.unit
def test_workspace_generate_fails_when_nothing_resolves(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    overlay = dict(_WORKSPACE_OVERLAY, modules=[{"name": "ghost"}])
    pipeline = _pipeline(tmp_path, overlay, runner)
    pipeline.fetch()

    with pytest.raises(NoModulePathsResolvedError):
        pipeline.generate()

    assert runner.commands("generate") == []


@pytest.mark.unit
def test_explicit_workspace_root_forces_workspace_generation(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    _seed_workspace(tmp_path / "schemas")
    pipeline = _pipeline(tmp_path, {"modules": [{"name": "common"}]}, runner)

    result = pipeline.generate("schemas")

    assert result.proto_paths == ("common/proto/acme/common/v1/ids.proto",)
    assert runner.cwds[-1] == (tmp_path / "schemas").as_posix()


@pytest.mark.unit
def test_per_module_generate_reports_every_failure(tmp_path: Path) -> None:
    runner = _FakeToolRunner(failing_targets=["billing", "search"])
    for name in ("search", "billing", "common"):
        (tmp_path / "build" / "protos" / "export" / name).mkdir(parents=True)
    pipeline = _pipeline(tmp_path, {"modules": [{"name": "common"}]}, runner)

    with pytest.raises(ToolchainError, match=r"failed for 2 module\(s\): billing, search"):
        pipeline.generate()

    assert [Path(argv[2]).name for argv in runner.commands("generate")] == [
        "billing",
        "common",
        "search",
    ]


@pytest.mark.unit
def test_per_module_generate_without_exports_is_a_no_op(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    pipeline = _pipeline(tmp_path, {"modules": [{"name": "common"}]}, runner)

    result = pipeline.generate()

    assert result.targets == ()
    assert runner.commands("generate") == []


@pytest.mark.unit
def test_prepare_writes_rendered_template(tmp_path: Path) -> None:
    pipeline = _pipeline(
        tmp_path,
        {"generate": {"language": "kotlin"}, "tools": {"grpc_plugin_path": "/opt/grpc"}},
        _FakeToolRunner(),
    )

    path = pipeline.prepare()

    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert path == tmp_path / "build" / "buf.gen.yaml"
    assert document["plugins"][0]["protoc_builtin"] == "kotlin"
    assert document["plugins"][1]["local"] == "/opt/grpc"


@pytest.mark.unit
def test_prepare_with_missing_user_template_fails(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path, {"generate": {"template": "custom.gen.yaml"}}, _FakeToolRunner())

    with pytest.raises(ToolchainError, match="generate.template not found"):
        pipeline.prepare()


@pytest.mark.unit
def test_clean_keeps_user_template(tmp_path: Path) -> None:
    user_template = tmp_path / "custom.gen.yaml"
    user_template.write_text("version: v2\n", encoding="utf-8")
    (tmp_path / "build" / "protos" / "export" / "common").mkdir(parents=True)
    pipeline = _pipeline(tmp_path, {"generate": {"template": "custom.gen.yaml"}}, _FakeToolRunner())

    removed = pipeline.clean()

    assert removed == (tmp_path / "build" / "protos" / "export",)
    assert user_template.is_file()


def _seed_exports(tmp_path: Path, modules: Mapping[str, Mapping[str, str]]) -> Path:
    export_dir = tmp_path.resolve() / "build" / "protos" / "export"
    for module, files in modules.items():
        for relative, text in files.items():
            path = export_dir / module / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
    return export_dir


@pytest.mark.unit
def test_prepare_adds_mutiny_generator_when_configured(tmp_path: Path) -> None:
    pipeline = _pipeline(
        tmp_path,
        {
            "generate": {"generate_mutiny": True},
            "tools": {"grpc_plugin_path": "/opt/grpc", "mutiny_plugin_path": "/opt/mutiny"},
        },
        _FakeToolRunner(),
    )

    document = yaml.safe_load(pipeline.prepare().read_text(encoding="utf-8"))

    assert document["plugins"][2] == {
        "local": "/opt/mutiny",
        "out": pipeline.output_dir.as_posix(),
        "opt": ["quarkus.generate-code.grpc.scan-for-imports=none"],
    }


@pytest.mark.unit
@pytest.mark.parametrize("check", ["lint", "breaking", "format"])
def test_quality_checks_skip_without_schema_files(tmp_path: Path, check: str) -> None:
    runner = _FakeToolRunner()
    (tmp_path / "build" / "protos" / "export" / "common").mkdir(parents=True)
    pipeline = _pipeline(tmp_path, {"quality": {"breaking_against": ".git#branch=main"}}, runner)

    result = getattr(pipeline, check)()

    assert result.skipped
    assert runner.calls == []


@pytest.mark.unit
def test_lint_passes_export_dir_and_extra_args(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    export_dir = _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})
    pipeline = _pipeline(tmp_path, {"quality": {"lint_args": ["--error-format", "json"]}}, runner)

    result = pipeline.lint()

    assert not result.skipped
    assert runner.calls == [("buf", "lint", export_dir.as_posix(), "--error-format", "json")]
    assert runner.cwds == [tmp_path.resolve().as_posix()]


@pytest.mark.unit
def test_lint_findings_raise_with_tool_output(tmp_path: Path) -> None:
    runner = _FakeToolRunner(outputs={"lint": (100, "common/a.proto:3:1:Field name bad", "")})
    _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})
    pipeline = _pipeline(tmp_path, {}, runner)

    with pytest.raises(ToolchainError, match="exit code 100") as exc_info:
        pipeline.lint()

    assert "Field name bad" in str(exc_info.value)


@pytest.mark.unit
def test_breaking_uses_argument_over_configured_baseline(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    export_dir = _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})
    pipeline = _pipeline(
        tmp_path,
        {"quality": {"breaking_against": "baseline.binpb", "breaking_args": ["--exclude-imports"]}},
        runner,
    )

    pipeline.breaking()
    pipeline.breaking("https://example.com/acme/schemas.git#branch=main")

    against = [argv[argv.index("--against") + 1] for argv in runner.commands("breaking")]
    assert against == ["baseline.binpb", "https://example.com/acme/schemas.git#branch=main"]
    assert runner.calls[0][:3] == ("buf", "breaking", export_dir.as_posix())
    assert runner.calls[0][-1] == "--exclude-imports"


@pytest.mark.unit
def test_breaking_requires_a_baseline(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})

    with pytest.raises(ToolchainError, match="quality.breaking_against"):
        _pipeline(tmp_path, {}, runner).breaking()

    assert runner.calls == []


@pytest.mark.unit
def test_breaking_changes_raise(tmp_path: Path) -> None:
    runner = _FakeToolRunner(outputs={"breaking": (100, "a.proto:1:1:Field 1 deleted", "")})
    _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})

    with pytest.raises(ToolchainError, match="Field 1 deleted"):
        _pipeline(tmp_path, {}, runner).breaking("baseline.binpb")


@pytest.mark.unit
def test_format_writes_in_place_by_default(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    export_dir = _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})

    _pipeline(tmp_path, {}, runner).format()
    _pipeline(tmp_path, {}, runner).format(show_diff=True)

    assert runner.commands("format") == [
        ("buf", "format", export_dir.as_posix(), "--write"),
        ("buf", "format", export_dir.as_posix(), "--write", "--diff"),
    ]


@pytest.mark.unit
@pytest.mark.parametrize("returncode", [0, 100])
def test_format_check_fails_on_any_diff(tmp_path: Path, returncode: int) -> None:
    runner = _FakeToolRunner(outputs={"format": (returncode, "-message A{}\n+message A {}\n", "")})
    export_dir = _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})

    with pytest.raises(ToolchainError, match="not formatted"):
        _pipeline(tmp_path, {}, runner).format(check_only=True)

    assert runner.calls == [("buf", "format", export_dir.as_posix(), "--diff")]


@pytest.mark.unit
def test_format_check_passes_without_diff_and_reports_tool_errors(tmp_path: Path) -> None:
    _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})

    clean = _pipeline(tmp_path, {}, _FakeToolRunner()).format(check_only=True)
    broken = _pipeline(tmp_path, {}, _FakeToolRunner(outputs={"format": (1, "", "syntax error")}))

    assert clean.output == ""
    with pytest.raises(ToolchainError, match="syntax error"):
        broken.format(check_only=True)


@pytest.mark.unit
def test_descriptors_for_one_module_build_it_directly(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    export_dir = _seed_exports(tmp_path, {"common": {"a.proto": 'syntax = "proto3";\n'}})
    pipeline = _pipeline(tmp_path, {}, runner)

    descriptor = pipeline.build_descriptors()

    assert descriptor == tmp_path.resolve() / "build" / "descriptors" / "proto.desc"
    assert descriptor.read_bytes() == b"descriptor-set"
    assert runner.commands("build") == [
        ("buf", "build", (export_dir / "common").as_posix(), "-o", str(descriptor))
    ]


@pytest.mark.unit
def test_descriptors_merge_modules_with_last_module_winning(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    _seed_exports(
        tmp_path,
        {
            "billing": {"acme/shared.proto": "// billing\n", "acme/billing.proto": "// b\n"},
            "common": {"acme/shared.proto": "// common\n", "acme/ids.proto": "// c\n"},
        },
    )
    pipeline = _pipeline(tmp_path, {}, runner)

    descriptor = pipeline.build_descriptors()

    assert descriptor is not None
    flat = descriptor.parent / "flat-protos"
    assert runner.commands("build")[0][2] == flat.as_posix()
    assert runner.build_inputs == [
        {
            "acme/billing.proto": "// b\n",
            "acme/ids.proto": "// c\n",
            "acme/shared.proto": "// common\n",
        }
    ]
    assert not flat.exists()


@pytest.mark.unit
def test_workspace_descriptors_use_resolved_path_filters(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    pipeline = _pipeline(tmp_path, _WORKSPACE_OVERLAY, runner)
    pipeline.fetch()

    descriptor = pipeline.build_descriptors()

    argv = runner.commands("build")[0]
    assert argv[:5] == ("buf", "build", ".", "-o", str(descriptor))
    assert argv[5::2] == ("--path",) * 3
    assert "common/proto/acme/common/v1/ids.proto" in argv[6::2]
    assert runner.cwds[-1] == pipeline.export_dir.as_posix()


@pytest.mark.unit
def test_descriptors_skip_without_exports(tmp_path: Path) -> None:
    runner = _FakeToolRunner()

    assert _pipeline(tmp_path, {}, runner).build_descriptors() is None
    assert runner.calls == []


@pytest.mark.unit
def test_run_builds_and_copies_descriptors_when_enabled(tmp_path: Path) -> None:
    runner = _FakeToolRunner()
    pipeline = _pipeline(
        tmp_path,
        {
            "modules": [{"name": "common", "bsr": "buf.build/acme/common"}],
            "descriptors": {"enabled": True, "copy_to_resources": True},
        },
        runner,
    )

    result = pipeline.run()

    assert result.descriptor == pipeline.descriptor_path.as_posix()
    copied = tmp_path / "build" / "resources" / "test" / "grpc" / "proto.desc"
    assert copied.read_bytes() == b"descriptor-set"
    assert [argv[1] for argv in runner.calls] == ["export", "generate", "build"]


@pytest.mark.unit
def test_copy_descriptors_skips_missing_descriptor(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path, {}, _FakeToolRunner())

    assert pipeline.copy_descriptors_to_resources() is None
    assert not (tmp_path / "build" / "resources").exists()


@pytest.mark.unit
def test_clean_removes_descriptor_set(tmp_path: Path) -> None:
    descriptor = tmp_path / "build" / "descriptors" / "proto.desc"
    descriptor.parent.mkdir(parents=True)
    descriptor.write_bytes(b"descriptor-set")

    removed = _pipeline(tmp_path, {}, _FakeToolRunner()).clean()

    assert removed == (tmp_path / "build" / "descriptors" / "proto.desc",)
    assert not descriptor.exists()


@pytest.mark.unit
def test_config_relative_buf_path_survives_workspace_cwd(tmp_path: Path) -> None:
    config_path = tmp_path / "proto-toolchain.toml"
    config_path.write_text(
        """
[source]
mode = "git-proto-workspace"
git_repo = "https://example.com/acme/schemas.git"
git_ref = "main"

[tools]
buf = "bin/buf"
git = "git"

[[modules]]
name = "common"
""".strip(),
        encoding="utf-8",
    )
    runner = _FakeToolRunner()
    pipeline = ToolchainPipeline(
        load_config(config_path, environ={}), project_root=tmp_path, runner=runner
    )

    pipeline.run()

    argv = runner.commands("generate")[0]
    assert argv[0] == (tmp_path.resolve() / "bin" / "buf").as_posix()
    assert runner.cwds[-1] == pipeline.export_dir.as_posix()
