"""
proto-toolchain — command-line interface.

File: src/proto_toolchain/ui/cli.py

Purpose
- ``argparse`` router for resolve, fetch, prepare, generate, lint, breaking, format,
  descriptors, clean, config and doctor.

Functional requirements
- Every subcommand shares the project/config/logging options and accepts ``--json``.
- JSON output is one compact, key-sorted object on stdout; human output goes through
  ``CLIRenderer``.
- Config problems and a missing project root exit with code 2 and an ``error:`` line;
  other failures propagate to ``proto_toolchain.main`` for classification.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from proto_toolchain.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from proto_toolchain.observability.logging import (
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from proto_toolchain.toolchain import ToolchainPipeline, ToolNotFoundError, resolve_executable
from proto_toolchain.ui.render import CLIRenderer, create_renderer

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from proto_toolchain.toolchain import QualityResult

USAGE_EXIT: Final[int] = 2

_DESCRIPTION: Final[str] = """\
Fetch protobuf schemas and drive `buf generate`.

Typical use:
  proto-toolchain generate              fetch sources, write buf.gen.yaml, generate
  proto-toolchain resolve --json        show the files generate would pass as --path
  proto-toolchain format --check        fail when fetched schema files need formatting
  proto-toolchain doctor                check config, tools and workspace
"""


class CLIError(RuntimeError):
    """A user-facing failure that maps straight to an exit code."""

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(frozen=True, slots=True)
class _Check:
    name: str
    passed: bool
    detail: str

    def as_json(self) -> dict[str, object]:
        return {"name": self.name, "status": "ok" if self.passed else "fail", "detail": self.detail}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="proto-toolchain",
        description=_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument("--project-root", default=".", help="project directory (default: .)")
    shared.add_argument(
        "--config",
        dest="config_path",
        help="TOML config file (default: <project-root>/proto-toolchain.toml when present)",
    )
    shared.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    shared.add_argument(
        "--no-color", action="store_true", help="plain output; NO_COLOR is honoured too"
    )
    shared.add_argument(
        "--log-format", choices=("json", "text"), help="override observability.log_format"
    )
    shared.add_argument("--json", action="store_true", help="print one JSON object")

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")
    handlers: tuple[tuple[str, Callable[[argparse.Namespace], int], str], ...] = (
        ("resolve", _cmd_resolve, "list the schema files registered modules resolve to"),
        ("fetch", _cmd_fetch, "fetch schema sources into the export directory"),
        ("prepare", _cmd_prepare, "write the buf.gen.yaml template"),
        ("generate", _cmd_generate, "fetch, write the template and run buf generate"),
        ("lint", _cmd_lint, "run buf lint over the fetched schema files"),
        ("breaking", _cmd_breaking, "compare fetched schema files with a baseline"),
        ("format", _cmd_format, "format fetched schema files with buf format"),
        ("descriptors", _cmd_descriptors, "build a descriptor set from fetched schema files"),
        ("clean", _cmd_clean, "remove fetched and generated outputs"),
        ("config", _cmd_config, "print the effective configuration"),
        ("doctor", _cmd_doctor, "check config, tools and workspace"),
    )
    sub: dict[str, argparse.ArgumentParser] = {}
    for name, handler, summary in handlers:
        sub[name] = commands.add_parser(name, parents=[shared], help=summary, description=summary)
        sub[name].set_defaults(handler=handler)

    sub["resolve"].add_argument(
        "--workspace", help="workspace root to resolve (default: the export directory)"
    )
    sub["generate"].add_argument(
        "--workspace", help="generate from this local workspace instead of fetched sources"
    )
    sub["generate"].add_argument(
        "--skip-fetch", action="store_true", help="reuse the current export directory"
    )
    sub["breaking"].add_argument(
        "--against", help="baseline input (default: quality.breaking_against)"
    )
    sub["format"].add_argument(
        "--check", action="store_true", help="report unformatted files instead of rewriting"
    )
    sub["format"].add_argument("--diff", action="store_true", help="show the changes made")
    sub["descriptors"].add_argument(
        "--copy-to-resources",
        action="store_true",
        help="also copy the descriptor set to descriptors.resources_dir",
    )
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse ``argv``, run the chosen command, and return its exit code."""

    args = build_parser().parse_args(None if argv is None else list(argv))
    try:
        with correlation_scope(command=args.command):
            return int(args.handler(args))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()


def _cmd_resolve(args: argparse.Namespace) -> int:
    resolution = _pipeline(args).resolve(_text_or_none(args.workspace))
    if args.json:
        return _print_json(
            command="resolve",
            workspace_root=resolution.workspace_root,
            manifest={"path": resolution.manifest_path, "found": resolution.manifest_found},
            roots=[
                {"registration": root.registration, "root": root.root, "source": root.source.value}
                for root in resolution.roots
            ],
            unresolved=list(resolution.unresolved),
            proto_paths=list(resolution.proto_paths),
        )

    out = _renderer(args)
    out.heading("proto-toolchain resolve")
    out.kv("Workspace", resolution.workspace_root)
    found = "found" if resolution.manifest_found else "not found"
    out.kv("Manifest", f"{resolution.manifest_path} ({found})")
    out.section("Module roots:")
    out.items(f"{r.registration} -> {r.root} [{r.source.value}]" for r in resolution.roots)
    for name in resolution.unresolved:
        out.warning(f"module {name!r} did not resolve and was skipped")
    out.section(f"Schema files ({len(resolution.proto_paths)}):")
    out.items(resolution.proto_paths)
    return 0


def _cmd_fetch(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args)
    fetched = [_relative(path, pipeline.project_root) for path in pipeline.fetch()]
    if args.json:
        return _print_json(command="fetch", mode=pipeline.mode, fetched=fetched)

    out = _renderer(args)
    out.heading(f"Fetched {len(fetched)} source(s) ({pipeline.mode})")
    if not fetched:
        out.warning("no modules configured; add [[modules]] tables to the config")
    out.items(fetched)
    return 0


def _cmd_prepare(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args)
    template = _relative(pipeline.prepare(), pipeline.project_root)
    if args.json:
        return _print_json(command="prepare", template=template)
    _renderer(args).kv("Template", template)
    return 0


def _cmd_generate(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args)
    workspace = _text_or_none(args.workspace)
    if workspace is None:
        result = pipeline.run(skip_fetch=args.skip_fetch)
    else:
        result = pipeline.generate(workspace, template=pipeline.prepare())
    output_dir = _relative(pipeline.output_dir, pipeline.project_root)
    descriptor = None
    if result.descriptor is not None:
        descriptor = _relative(Path(result.descriptor), pipeline.project_root)

    if args.json:
        return _print_json(
            command="generate",
            mode=result.mode,
            targets=list(result.targets),
            proto_paths=list(result.proto_paths),
            output_dir=output_dir,
            descriptor=descriptor,
        )

    out = _renderer(args)
    out.heading(f"Generated ({result.mode})")
    out.kv("Output", output_dir)
    if not result.targets:
        out.warning("nothing to generate; run `proto-toolchain fetch` first")
    out.items(result.targets)
    if result.proto_paths:
        out.kv("Schema files", len(result.proto_paths))
    if descriptor is not None:
        out.kv("Descriptor set", descriptor)
    return 0


def _cmd_lint(args: argparse.Namespace) -> int:
    return _report_quality(args, _pipeline(args).lint())


def _cmd_breaking(args: argparse.Namespace) -> int:
    return _report_quality(args, _pipeline(args).breaking(_text_or_none(args.against)))


def _cmd_format(args: argparse.Namespace) -> int:
    result = _pipeline(args).format(check_only=args.check, show_diff=args.diff)
    return _report_quality(args, result)


def _report_quality(args: argparse.Namespace, result: QualityResult) -> int:
    if args.json:
        return _print_json(
            command=result.check,
            skipped=result.skipped,
            target=result.target,
            output=result.output,
        )

    out = _renderer(args)
    if result.skipped:
        out.warning(f"{result.check}: no schema files; run `proto-toolchain fetch` first")
        return 0
    if result.output:
        out.text(result.output)
    out.ok(f"{result.check}: passed")
    return 0


def _cmd_descriptors(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args)
    descriptor = pipeline.build_descriptors()
    copied = None
    if descriptor is not None and (
        args.copy_to_resources or pipeline.config["descriptors"]["copy_to_resources"]
    ):
        copied = pipeline.copy_descriptors_to_resources()
    root = pipeline.project_root
    descriptor_text = None if descriptor is None else _relative(descriptor, root)
    copied_text = None if copied is None else _relative(copied, root)
    if args.json:
        return _print_json(command="descriptors", descriptor=descriptor_text, copied=copied_text)

    out = _renderer(args)
    if descriptor_text is None:
        out.warning("no fetched modules; run `proto-toolchain fetch` first")
        return 0
    out.kv("Descriptor set", descriptor_text)
    if copied_text is not None:
        out.kv("Copied to", copied_text)
    return 0


def _cmd_clean(args: argparse.Namespace) -> int:
    pipeline = _pipeline(args)
    removed = [_relative(path, pipeline.project_root) for path in pipeline.clean()]
    if args.json:
        return _print_json(command="clean", removed=removed)

    out = _renderer(args)
    if removed:
        out.heading("Removed:")
        out.items(removed)
    else:
        out.text("Nothing to clean.")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _effective_config(args)
    if args.json:
        return _print_json(command="config", config=json.loads(dump_effective_config(config)))
    _renderer(args).text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks = _doctor_checks(args)
    if args.json:
        return _print_json(command="doctor", checks=[check.as_json() for check in checks])

    out = _renderer(args)
    out.heading("proto-toolchain doctor")
    for check in checks:
        (out.ok if check.passed else out.fail)(f"{check.name}: {check.detail}")
    healthy = all(check.passed for check in checks)
    out.text("\nAll checks passed." if healthy else "\nSome checks failed.")
    return 0


def _doctor_checks(args: argparse.Namespace) -> list[_Check]:
    checks: list[_Check] = []
    try:
        config: dict[str, Any] | None = _effective_config(args)
    except CLIError as exc:
        config = None
        checks.append(_Check("config", False, str(exc)))
    else:
        checks.append(_Check("config", True, "loaded"))

    tools = config["tools"] if config is not None else {"buf": "buf", "git": "git"}
    for tool in ("buf", "git"):
        try:
            checks.append(_Check(tool, True, f"found at {resolve_executable(str(tools[tool]))}"))
        except ToolNotFoundError as exc:
            checks.append(_Check(tool, False, str(exc)))

    if config is None:
        return checks
    project_root = _project_root(args)
    pipeline = ToolchainPipeline(config, project_root=project_root)
    count = len(pipeline.registrations)
    checks.append(_Check("modules", count > 0, f"{count} registered"))
    manifest = pipeline.export_dir / str(config["workspace"]["manifest"])
    # Without a manifest resolution falls back to directory conventions.
    detail = (
        f"found at {_relative(manifest, project_root)}"
        if manifest.is_file()
        else "not present, directory conventions apply"
    )
    checks.append(_Check("manifest", True, detail))
    return checks


def _project_root(args: argparse.Namespace) -> Path:
    root = Path(args.project_root or ".").expanduser().resolve()
    if not root.is_dir():
        raise CLIError(f"project root is not a directory: {root}", exit_code=USAGE_EXIT)
    return root


def _effective_config(args: argparse.Namespace) -> dict[str, Any]:
    """Load config for ``args`` and start this run's logging from it."""

    overrides: dict[str, object] = {}
    if args.verbose:
        overrides["observability.log_level"] = "DEBUG"
    if args.log_format:
        overrides["observability.log_format"] = args.log_format
    try:
        config = load_config(
            _text_or_none(args.config_path),
            project_root=_project_root(args),
            cli_overrides=overrides,
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=USAGE_EXIT) from exc

    run_id = f"{time.strftime('%Y%m%dT%H%M%SZ', time.gmtime())}-{uuid.uuid4().hex[:8]}"
    setup_logging(config["observability"], run_id=run_id)
    return config


def _pipeline(args: argparse.Namespace) -> ToolchainPipeline:
    config = _effective_config(args)
    return ToolchainPipeline(config, project_root=_project_root(args))


def _renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


def _print_json(**payload: object) -> int:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    return 0


def _relative(path: Path, project_root: Path) -> str:
    resolved = path.resolve()
    if resolved.is_relative_to(project_root):
        return resolved.relative_to(project_root).as_posix()
    return resolved.as_posix()


def _text_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


__all__ = ["CLIError", "USAGE_EXIT", "build_parser", "run_cli"]
