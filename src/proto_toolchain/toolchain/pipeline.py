"""
proto-toolchain — fetch, prepare, and generate pipeline.

File: src/proto_toolchain/toolchain/pipeline.py

Purpose
- Drive the external ``buf``/``git`` tools from a validated effective config.

Functional requirements
- Fetch sources per ``source.mode``: one ``buf export`` per module (bsr, git) or
  one shallow clone of a multi-module workspace (git-proto-workspace).
- Workspace generation runs once from the workspace root with one ``--path``
  filter per resolved schema file.
- Per-module generation keeps going after a failure and reports all failures at once.
- ``buf lint``, ``buf breaking`` and ``buf format`` run over the export directory and are
  skipped with a warning while it holds no schema files.
- Descriptor sets are built per workspace (``--path`` filters) or from the fetched
  modules, merged into one flat tree when there is more than one.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from proto_toolchain.config.schema import registrations_from_config
from proto_toolchain.constants import SOURCE_MODE_BSR, SOURCE_MODE_GIT, SOURCE_MODE_WORKSPACE
from proto_toolchain.observability.logging import correlation_scope
from proto_toolchain.toolchain.buf import BufCli, git_export_source
from proto_toolchain.toolchain.commands import SubprocessRunner, ToolchainError, ToolCommandError
from proto_toolchain.toolchain.git import GitCli
from proto_toolchain.toolchain.template import render_generate_template, write_generate_template
from proto_toolchain.utils.fs import atomic_write, safe_delete
from proto_toolchain.workspace.resolution import resolve_workspace

if TYPE_CHECKING:
    from collections.abc import Mapping

    from proto_toolchain.toolchain.commands import CommandResult, CommandRunner
    from proto_toolchain.workspace.models import ModuleRegistration, WorkspaceResolution

_LOGGER = structlog.get_logger(__name__)

_FLAT_TREE_NAME = "flat-protos"


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """What one ``generate`` call ran ``buf generate`` against."""

    mode: str
    targets: tuple[str, ...]
    proto_paths: tuple[str, ...] = ()
    descriptor: str | None = None


@dataclass(frozen=True, slots=True)
class QualityResult:
    check: str
    target: str | None
    output: str = ""

    @property
    def skipped(self) -> bool:
        return self.target is None


class ToolchainPipeline:
    """Fetch, template, resolve, and generate for one project."""

    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        project_root: Path | str,
        runner: CommandRunner | None = None,
    ) -> None:
        self.config = config
        self.project_root = Path(project_root).resolve()
        command_runner = runner if runner is not None else SubprocessRunner()
        tools = config["tools"]
        self.buf = BufCli(tools["buf"], command_runner)
        self.git = GitCli(tools["git"], command_runner)

    @property
    def mode(self) -> str:
        return str(self.config["source"]["mode"])

    @property
    def registrations(self) -> tuple[ModuleRegistration, ...]:
        return registrations_from_config(self.config)

    @property
    def export_dir(self) -> Path:
        return self._project_path(self.config["paths"]["export_dir"])

    @property
    def output_dir(self) -> Path:
        return self._project_path(self.config["paths"]["output_dir"])

    @property
    def template_path(self) -> Path:
        user_template = self.config["generate"].get("template")
        if user_template:
            return self._project_path(user_template)
        return self._project_path(self.config["paths"]["template_path"])

    @property
    def descriptor_path(self) -> Path:
        return self._project_path(self.config["descriptors"]["path"])

    def fetch(self) -> tuple[Path, ...]:
        """Replace the export directory with freshly fetched sources."""

        registrations = self.registrations
        if not registrations:
            _LOGGER.warning("fetch_skipped_no_modules")
            return ()

        source = self.config["source"]
        if self.mode == SOURCE_MODE_WORKSPACE:
            repo = source.get("git_repo")
            if not repo:
                raise ToolchainError(
                    "source.git_repo is required when source.mode = 'git-proto-workspace'"
                )
            safe_delete(self.export_dir, self.project_root)
            self.git.clone(repo, source["git_ref"], self.export_dir)
            _LOGGER.info("fetch_completed", mode=self.mode, targets=1)
            return (self.export_dir,)

        exports = [(item, self._export_source(item)) for item in registrations]
        safe_delete(self.export_dir, self.project_root)
        fetched: list[Path] = []
        for registration, export_source in exports:
            destination = self.export_dir / registration.name
            with correlation_scope(registration=registration.name):
                self.buf.export(export_source, destination, cwd=self.project_root)
            fetched.append(destination)
        _LOGGER.info("fetch_completed", mode=self.mode, targets=len(fetched))
        return tuple(fetched)

    def prepare(self) -> Path:
        """Write the generate template, or confirm a user-supplied one exists."""

        user_template = self.config["generate"].get("template")
        if user_template:
            path = self._project_path(user_template)
            if not path.is_file():
                raise ToolchainError(f"generate.template not found: {path.as_posix()}")
            _LOGGER.info("template_user_supplied", path=path.as_posix())
            return path

        generate = self.config["generate"]
        tools = self.config["tools"]
        text = render_generate_template(
            language=generate["language"],
            output_dir=self.output_dir,
            project_root=self.project_root,
            protoc_path=tools.get("protoc_path"),
            generate_grpc=generate["generate_grpc"],
            grpc_plugin_path=tools.get("grpc_plugin_path"),
            generate_mutiny=generate["generate_mutiny"],
            mutiny_plugin_path=tools.get("mutiny_plugin_path"),
            plugins=generate["plugins"],
        )
        if generate["generate_grpc"] and not tools.get("grpc_plugin_path"):
            _LOGGER.warning("grpc_plugin_path_unset")
        if generate["generate_mutiny"] and not tools.get("mutiny_plugin_path"):
            _LOGGER.warning("mutiny_plugin_path_unset")
        path = write_generate_template(self.template_path, text)
        _LOGGER.info("template_written", path=path.as_posix())
        return path

    def resolve(self, workspace_root: Path | str | None = None) -> WorkspaceResolution:
        """Resolve registered modules inside the fetched (or given) workspace."""

        root = self.export_dir if workspace_root is None else self._project_path(workspace_root)
        workspace = self.config["workspace"]
        return resolve_workspace(
            root,
            self.registrations,
            manifest_name=workspace["manifest"],
            schema_dir=workspace["schema_dir"],
            extension=workspace["extension"],
        )

    def generate(
        self,
        workspace_root: Path | str | None = None,
        *,
        template: Path | None = None,
    ) -> GenerateResult:
        """Run ``buf generate``; an explicit ``workspace_root`` forces workspace mode."""

        template_path = template if template is not None else self.prepare()
        extra_args = tuple(self.config["generate"]["extra_args"])
        self.output_dir.mkdir(parents=True, exist_ok=True)

        if workspace_root is not None or self.mode == SOURCE_MODE_WORKSPACE:
            resolution = self.resolve(workspace_root)
            self.buf.generate_workspace(
                resolution.workspace_root,
                template_path,
                resolution.proto_paths,
                extra_args,
            )
            _LOGGER.info(
                "generate_completed",
                mode=SOURCE_MODE_WORKSPACE,
                files=len(resolution.proto_paths),
            )
            return GenerateResult(
                mode=SOURCE_MODE_WORKSPACE,
                targets=(resolution.workspace_root,),
                proto_paths=resolution.proto_paths,
            )

        return self._generate_per_module(template_path, extra_args)

    def lint(self) -> QualityResult:
        """Run ``buf lint`` over the export directory; findings raise ``ToolchainError``."""

        target = self._quality_target("lint")
        if target is None:
            return QualityResult("lint", None)
        result = self.buf.lint(
            target, cwd=self.project_root, extra_args=self.config["quality"]["lint_args"]
        )
        output = _combined_output(result)
        if not result.ok:
            _LOGGER.error("lint_failed", returncode=result.returncode)
            raise ToolchainError(f"buf lint failed with exit code {result.returncode}:\n{output}")
        _LOGGER.info("lint_passed", target=target)
        return QualityResult("lint", target, output)

    def breaking(self, against: str | None = None) -> QualityResult:
        """Compare the export directory with ``against`` (or ``quality.breaking_against``)."""

        quality = self.config["quality"]
        target = self._quality_target("breaking")
        if target is None:
            return QualityResult("breaking", None)
        reference = against or quality.get("breaking_against")
        if not reference:
            raise ToolchainError(
                "buf breaking needs a baseline: set quality.breaking_against or pass --against"
            )
        result = self.buf.breaking(
            target, reference, cwd=self.project_root, extra_args=quality["breaking_args"]
        )
        output = _combined_output(result)
        if not result.ok:
            _LOGGER.error("breaking_changes_found", against=reference)
            raise ToolchainError(f"breaking changes detected against {reference}:\n{output}")
        _LOGGER.info("breaking_check_passed", against=reference)
        return QualityResult("breaking", target, output)

    def format(self, *, check_only: bool = False, show_diff: bool = False) -> QualityResult:
        """Rewrite schema files with ``buf format``, or only report when ``check_only``.

        A check fails when buf prints a diff, whatever its exit status; any other
        non-zero exit is a tool failure.
        """

        target = self._quality_target("format")
        if target is None:
            return QualityResult("format", None)
        result = self.buf.format(
            target,
            cwd=self.project_root,
            write=not check_only,
            diff=show_diff or check_only,
            extra_args=self.config["quality"]["format_args"],
        )
        diff = result.stdout.strip()
        if check_only and diff:
            _LOGGER.error("format_check_failed")
            raise ToolchainError(
                "schema files are not formatted; run `proto-toolchain format`:\n" + diff
            )
        if not result.ok:
            raise ToolchainError(
                f"buf format failed with exit code {result.returncode}:\n{result.stderr.strip()}"
            )
        _LOGGER.info("format_completed", check_only=check_only, changed=bool(diff))
        return QualityResult("format", target, diff)

    def build_descriptors(self) -> Path | None:
        """Write one descriptor set covering every fetched module.

        Several per-module exports are merged into one flat tree first; a file present
        in more than one module is taken from the last module in name order.
        """

        descriptor = self.descriptor_path
        if self.mode == SOURCE_MODE_WORKSPACE:
            if not self.export_dir.is_dir():
                _LOGGER.warning("descriptors_skipped_no_exports")
                return None
            resolution = self.resolve()
            if not resolution.proto_paths:
                _LOGGER.warning("descriptors_skipped_no_schema_files")
                return None
            self.buf.build(
                ".", descriptor, cwd=resolution.workspace_root, paths=resolution.proto_paths
            )
        else:
            module_dirs = self._module_dirs()
            if not module_dirs:
                _LOGGER.warning("descriptors_skipped_no_exports")
                return None
            if len(module_dirs) == 1:
                self.buf.build(module_dirs[0].as_posix(), descriptor, cwd=self.project_root)
            else:
                flat = descriptor.parent / _FLAT_TREE_NAME
                if flat.exists():
                    shutil.rmtree(flat)
                files = _flatten_modules(module_dirs, flat, self.config["workspace"]["extension"])
                _LOGGER.info("descriptor_sources_merged", modules=len(module_dirs), files=files)
                try:
                    self.buf.build(flat.as_posix(), descriptor, cwd=self.project_root)
                finally:
                    shutil.rmtree(flat, ignore_errors=True)

        _LOGGER.info("descriptors_written", path=descriptor.as_posix())
        return descriptor

    def copy_descriptors_to_resources(self) -> Path | None:
        descriptor = self.descriptor_path
        if not descriptor.is_file():
            _LOGGER.warning("descriptor_copy_skipped_missing", path=descriptor.as_posix())
            return None
        target = self._project_path(self.config["descriptors"]["resources_dir"]) / descriptor.name
        atomic_write(target, descriptor.read_bytes())
        _LOGGER.info("descriptor_copied", path=target.as_posix())
        return target

    def clean(self) -> tuple[Path, ...]:
        """Remove fetched sources, generated code, descriptors, and the rendered template."""

        targets = [self.export_dir, self.output_dir, self.descriptor_path]
        if not self.config["generate"].get("template"):
            targets.append(self.template_path)
        removed = tuple(path for path in targets if safe_delete(path, self.project_root))
        _LOGGER.info("clean_completed", removed=[path.as_posix() for path in removed])
        return removed

    def run(self, *, skip_fetch: bool = False) -> GenerateResult:
        if not skip_fetch:
            self.fetch()
        template = self.prepare()
        result = self.generate(template=template)

        descriptors = self.config["descriptors"]
        if not descriptors["enabled"]:
            return result
        descriptor = self.build_descriptors()
        if descriptor is not None and descriptors["copy_to_resources"]:
            self.copy_descriptors_to_resources()
        return replace(result, descriptor=None if descriptor is None else descriptor.as_posix())

    def _quality_target(self, check: str) -> str | None:
        export_dir = self.export_dir
        extension = self.config["workspace"]["extension"]
        if not export_dir.is_dir() or next(export_dir.rglob(f"*{extension}"), None) is None:
            _LOGGER.warning(
                "quality_check_skipped", check=check, export_dir=export_dir.as_posix()
            )
            return None
        return export_dir.as_posix()

    def _module_dirs(self) -> list[Path]:
        if not self.export_dir.is_dir():
            return []
        return sorted(item for item in self.export_dir.iterdir() if item.is_dir())

    def _generate_per_module(self, template: Path, extra_args: tuple[str, ...]) -> GenerateResult:
        export_dir = self.export_dir
        module_dirs = self._module_dirs()
        if not module_dirs:
            _LOGGER.warning("generate_skipped_no_exports", export_dir=export_dir.as_posix())
            return GenerateResult(mode=self.mode, targets=())

        failures: list[str] = []
        for module_dir in module_dirs:
            with correlation_scope(registration=module_dir.name):
                try:
                    self.buf.generate(
                        module_dir.as_posix(),
                        template,
                        cwd=self.project_root,
                        extra_args=extra_args,
                    )
                except ToolCommandError as exc:
                    _LOGGER.error(
                        "generate_module_failed", returncode=exc.returncode, detail=str(exc)
                    )
                    failures.append(module_dir.name)

        if failures:
            raise ToolchainError(
                f"buf generate failed for {len(failures)} module(s): {', '.join(failures)}"
            )
        _LOGGER.info("generate_completed", mode=self.mode, targets=len(module_dirs))
        return GenerateResult(
            mode=self.mode,
            targets=tuple(item.as_posix() for item in module_dirs),
        )

    def _export_source(self, registration: ModuleRegistration) -> str:
        if self.mode == SOURCE_MODE_BSR:
            if not registration.bsr:
                raise ToolchainError(
                    f"module {registration.name!r} has no bsr reference (source.mode = 'bsr')"
                )
            return registration.bsr

        if self.mode == SOURCE_MODE_GIT:
            source = self.config["source"]
            repo = registration.git_repo or source.get("git_repo")
            if not repo:
                raise ToolchainError(
                    f"module {registration.name!r} has no git_repo and source.git_repo is unset"
                )
            ref = registration.git_ref or source["git_ref"]
            return git_export_source(repo, ref, registration.subdir)

        raise ToolchainError(f"unsupported source.mode for per-module fetch: {self.mode!r}")

    def _project_path(self, value: Path | str) -> Path:
        path = Path(value)
        if not path.is_absolute():
            path = self.project_root / path
        return path


def _combined_output(result: CommandResult) -> str:
    return "\n".join(text.strip() for text in (result.stdout, result.stderr) if text.strip())


def _flatten_modules(module_dirs: list[Path], destination: Path, extension: str) -> int:
    """Copy every module tree into ``destination``; later modules overwrite earlier ones."""

    for module_dir in module_dirs:
        for source in sorted(module_dir.rglob("*")):
            if not source.is_file():
                continue
            target = destination / source.relative_to(module_dir)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
    return sum(1 for _ in destination.rglob(f"*{extension}"))


__all__ = ["GenerateResult", "QualityResult", "ToolchainPipeline"]
