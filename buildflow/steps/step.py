"""Build steps.

This module handles:
- The ``BuildStep`` capability the workflow executes
- Step status transitions and failure wrapping
- Parsing step command text into shell segments and upload directives
- Running shell segments through the command runner
- Recording uploaded artifacts in upload order
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import string
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from buildflow.steps.artifacts import DEFAULT_ARTIFACT_TYPE, Artifact
from buildflow.steps.env import BuildStepEnv, freeze_env
from buildflow.steps.errors import ConfigurationError
from buildflow.steps.runner import (
    CommandExecutionError,
    build_process_env,
    run_command,
)
from buildflow.types import StepStatus

if TYPE_CHECKING:
    from buildflow.steps.context import WorkflowContext

logger = logging.getLogger(__name__)

UPLOAD_DIRECTIVE = "upload-artifact"


class StepExecutionError(Exception):
    """Raised when a step does not complete successfully."""

    def __init__(
        self,
        step_id: str,
        message: str,
        *,
        exit_code: int | None = None,
        code: str = "step_failed",
    ) -> None:
        super().__init__(f"Step '{step_id}' failed: {message}")
        self.step_id = step_id
        self.exit_code = exit_code
        self.code = code


class StepStateError(RuntimeError):
    """Raised when a step is executed more than once."""

    def __init__(self, step_id: str, status: StepStatus) -> None:
        super().__init__(
            f"Step '{step_id}' cannot be executed in state '{status.value}'"
        )
        self.step_id = step_id
        self.status = status
        self.code = "invalid_step_state"


class BuildStep(ABC):
    """A unit of work executed by a build workflow.

    Subclasses implement ``run``. ``execute`` wraps it with status
    tracking and turns unexpected exceptions into ``StepExecutionError``.
    """

    def __init__(
        self,
        id: str,
        *,
        name: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        if not id:
            raise ConfigurationError("Step id must be a non-empty string")
        self.id = id
        self.name = name
        self.env: BuildStepEnv = freeze_env(env)
        self.status = StepStatus.PENDING
        self.artifacts: list[Artifact] = []

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, status={self.status.value!r})"

    async def execute(self, env: BuildStepEnv) -> None:
        """Execute the step with the given effective environment.

        Raises:
            StepStateError: If the step has already been executed.
            StepExecutionError: If the step fails.
        """
        if self.status is not StepStatus.PENDING:
            raise StepStateError(self.id, self.status)

        self.status = StepStatus.RUNNING
        logger.info("Step started: %s", self.display_name)
        try:
            await self.run(env)
        except StepExecutionError:
            self.status = StepStatus.FAILED
            raise
        except asyncio.CancelledError:
            self.status = StepStatus.FAILED
            logger.error("Step cancelled: %s", self.display_name)
            raise
        except Exception as e:
            self.status = StepStatus.FAILED
            raise StepExecutionError(self.id, str(e) or type(e).__name__) from e

        self.status = StepStatus.SUCCEEDED
        logger.info("Step succeeded: %s", self.display_name)

    @abstractmethod
    async def run(self, env: BuildStepEnv) -> None:
        """Do the step's work. Artifacts go through ``record_artifact``."""

    def record_artifact(self, artifact_type: str, path: Path | str) -> Artifact:
        """Append an artifact record for an uploaded file.

        Args:
            artifact_type: Artifact type tag.
            path: File path; made absolute.

        Returns:
            The recorded artifact.
        """
        artifact = Artifact(
            type=artifact_type,
            path=str(Path(path).absolute()),
            step_id=self.id,
            upload_index=len(self.artifacts),
        )
        self.artifacts.append(artifact)
        logger.info(
            "Uploaded artifact: %s (type=%s, step=%s)",
            artifact.path,
            artifact.type,
            self.id,
        )
        return artifact


@dataclass(frozen=True)
class ShellSegment:
    """Command text delegated to the shell."""

    script: str


@dataclass(frozen=True)
class UploadDirective:
    """Built-in artifact upload handled without spawning a process."""

    artifact_type: str
    path: str


CommandSegment = ShellSegment | UploadDirective


def parse_upload_directive(line: str) -> UploadDirective | None:
    """Parse an ``upload-artifact`` line.

    Grammar: ``upload-artifact [--type TYPE | --type=TYPE] PATH``.

    Args:
        line: A single line of command text.

    Returns:
        UploadDirective, or None if the line is not an upload directive.

    Raises:
        ConfigurationError: If the directive is malformed.
    """
    try:
        words = shlex.split(line, comments=True)
    except ValueError as e:
        if line.strip().startswith(UPLOAD_DIRECTIVE):
            raise ConfigurationError(f"Malformed {UPLOAD_DIRECTIVE}: {e}") from e
        return None

    if not words or words[0] != UPLOAD_DIRECTIVE:
        return None

    artifact_type = DEFAULT_ARTIFACT_TYPE
    paths: list[str] = []
    args = iter(words[1:])
    for arg in args:
        if arg == "--type":
            artifact_type = next(args, "")
        elif arg.startswith("--type="):
            artifact_type = arg.split("=", 1)[1]
        elif arg.startswith("--"):
            raise ConfigurationError(f"Unknown {UPLOAD_DIRECTIVE} option: {arg}")
        else:
            paths.append(arg)

    if not artifact_type:
        raise ConfigurationError(f"{UPLOAD_DIRECTIVE} requires a non-empty --type")
    if len(paths) != 1:
        raise ConfigurationError(
            f"{UPLOAD_DIRECTIVE} expects exactly one path, got {len(paths)}"
        )
    return UploadDirective(artifact_type=artifact_type, path=paths[0])


def expand_env_references(text: str, env: Mapping[str, str]) -> str:
    """Expand ``$NAME`` and ``${NAME}`` references from ``env``.

    Unknown names are left as written.
    """
    return string.Template(text).safe_substitute(env)


def parse_command(command: str) -> list[CommandSegment]:
    """Split command text into shell segments and upload directives.

    Consecutive non-directive lines form a single shell segment so that
    multi-line shell constructs stay intact. Blank segments are dropped.
    """
    segments: list[CommandSegment] = []
    pending: list[str] = []

    def flush() -> None:
        script = "\n".join(pending)
        if script.strip():
            segments.append(ShellSegment(script=script))
        pending.clear()

    for line in command.splitlines():
        directive = parse_upload_directive(line)
        if directive is None:
            pending.append(line)
            continue
        flush()
        segments.append(directive)
    flush()
    return segments


class ShellBuildStep(BuildStep):
    """A build step whose command text runs in a shell.

    ``upload-artifact`` lines are handled in-process; everything else is
    handed to the command runner.
    """

    def __init__(
        self,
        ctx: WorkflowContext,
        *,
        id: str,
        command: str,
        name: str | None = None,
        working_directory: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        shell: str | None = None,
        timeout: int | None = None,
    ) -> None:
        super().__init__(id, name=name, env=env)
        self.ctx = ctx
        self.command = command
        self.working_directory = working_directory
        self.shell = shell or ctx.settings.shell
        self.timeout = timeout if timeout is not None else ctx.settings.step_timeout
        self.segments = parse_command(command)

    async def run(self, env: BuildStepEnv) -> None:
        cwd = self.ctx.resolve_step_directory(self)
        for segment in self.segments:
            if isinstance(segment, UploadDirective):
                self._upload(segment, cwd, env)
            else:
                await self._run_shell(segment, cwd, env)

    async def _run_shell(self, segment: ShellSegment, cwd: Path, env: BuildStepEnv) -> None:
        try:
            result = await run_command(
                segment.script,
                shell=self.shell,
                cwd=cwd,
                env=env,
                inherit_environ=self.ctx.settings.inherit_environ,
                timeout=self.timeout,
                log_path=self.ctx.step_log_path(self.id),
                log_prefix=self.id,
            )
        except CommandExecutionError as e:
            raise StepExecutionError(
                self.id, str(e), exit_code=e.exit_code, code=e.code
            ) from e

        if not result.success:
            logger.error("Step %s exited with code %d", self.id, result.exit_code)
            raise StepExecutionError(
                self.id,
                f"command exited with code {result.exit_code}",
                exit_code=result.exit_code,
                code="command_failed",
            )

    def _upload(
        self, directive: UploadDirective, cwd: Path, env: BuildStepEnv
    ) -> None:
        visible_env = build_process_env(env, self.ctx.settings.inherit_environ)
        path = Path(expand_env_references(directive.path, visible_env)).expanduser()
        if not path.is_absolute():
            path = cwd / path
        if not path.exists():
            logger.error("Artifact path does not exist: %s", path)
            raise StepExecutionError(
                self.id,
                f"artifact path does not exist: {path}",
                code="artifact_not_found",
            )
        self.record_artifact(directive.artifact_type, path.resolve())


__all__ = [
    "UPLOAD_DIRECTIVE",
    "BuildStep",
    "CommandSegment",
    "ShellBuildStep",
    "ShellSegment",
    "StepExecutionError",
    "StepStateError",
    "UploadDirective",
    "expand_env_references",
    "parse_command",
    "parse_upload_directive",
]
