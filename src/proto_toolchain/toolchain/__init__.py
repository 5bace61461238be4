"""External tool orchestration: buf/git command layer, generate template, and pipeline."""

from proto_toolchain.toolchain.buf import BufCli, git_export_source
from proto_toolchain.toolchain.commands import (
    CommandResult,
    CommandRunner,
    SubprocessRunner,
    ToolchainError,
    ToolCommandError,
    ToolNotFoundError,
    resolve_executable,
    run_checked,
)
from proto_toolchain.toolchain.git import GitCli
from proto_toolchain.toolchain.pipeline import GenerateResult, QualityResult, ToolchainPipeline
from proto_toolchain.toolchain.template import (
    TEMPLATE_HEADER,
    load_generate_template,
    render_generate_template,
    write_generate_template,
)

__all__ = [
    "BufCli",
    "CommandResult",
    "CommandRunner",
    "GenerateResult",
    "GitCli",
    "QualityResult",
    "SubprocessRunner",
    "TEMPLATE_HEADER",
    "ToolCommandError",
    "ToolNotFoundError",
    "ToolchainError",
    "ToolchainPipeline",
    "git_export_source",
    "load_generate_template",
    "render_generate_template",
    "resolve_executable",
    "run_checked",
    "write_generate_template",
]
