"""Command runner for executing step shell commands.

This module handles:
- Spawning a shell for a step's command text with asyncio subprocesses
- Streaming combined stdout/stderr to the logger and an optional log file
- Enforcing command timeouts
- Killing the child process when the awaiting task is cancelled

A nonzero exit status is reported in the result, not raised. Deciding
whether that is a failure belongs to the step.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shlex
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

logger = logging.getLogger(__name__)

# Tail of the combined output kept on the result
OUTPUT_TAIL_CHARS = 4000
OUTPUT_TAIL_LINES = 200

# Output is read in chunks; lines longer than this are split when logged
READ_CHUNK_SIZE = 64 * 1024
MAX_LINE_CHARS = 64 * 1024


class CommandExecutionError(Exception):
    """Raised when a command cannot be run to completion."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "execution_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        exit_code: Process exit code.
        command: The shell invocation that was executed.
        started_at: Start time.
        finished_at: Finish time.
        output: Tail of the combined stdout/stderr.
    """

    exit_code: int
    command: str
    started_at: datetime
    finished_at: datetime
    output: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def compose_shell_command(shell: str, script: str) -> list[str]:
    """Compose the argv that runs ``script`` with ``shell``.

    Args:
        shell: Shell invocation, e.g. ``/bin/bash -eo pipefail``.
        script: Command text to run.

    Returns:
        Command as list of strings suitable for subprocess.

    Raises:
        CommandExecutionError: If the shell string is empty.
    """
    shell_argv = shlex.split(shell)
    if not shell_argv:
        raise CommandExecutionError("Shell command is empty", code="invalid_shell")
    return [*shell_argv, "-c", script]


def build_process_env(
    env: Mapping[str, str],
    inherit_environ: bool = True,
) -> dict[str, str]:
    """Compute the environment passed to the child process."""
    if not inherit_environ:
        return dict(env)
    process_env = dict(os.environ)
    process_env.update(env)
    return process_env


async def _pump_output(
    stream: asyncio.StreamReader,
    log_file: IO[str] | None,
    log_prefix: str | None,
    tail: deque[str],
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""

    def emit(line: str) -> None:
        tail.append(line)
        logger.info("[%s] %s", log_prefix or "cmd", line.rstrip("\n"))

    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        text = decoder.decode(chunk, final=not chunk)
        if text and log_file is not None:
            log_file.write(text)
            log_file.flush()
        pending += text
        *lines, pending = pending.split("\n")
        for line in lines:
            emit(line + "\n")
        while len(pending) >= MAX_LINE_CHARS:
            emit(pending[:MAX_LINE_CHARS])
            pending = pending[MAX_LINE_CHARS:]
        if not chunk:
            break
    if pending:
        emit(pending)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


async def run_command(
    script: str,
    *,
    shell: str,
    cwd: Path,
    env: Mapping[str, str],
    inherit_environ: bool = True,
    timeout: float | None = None,
    log_path: Path | None = None,
    log_prefix: str | None = None,
) -> CommandResult:
    """Run a command with a shell and wait for it to finish.

    Args:
        script: Command text passed to the shell with ``-c``.
        shell: Shell invocation.
        cwd: Working directory for the process.
        env: Effective step environment.
        inherit_environ: Layer ``env`` on top of ``os.environ``.
        timeout: Timeout in seconds (None = no timeout).
        log_path: Optional file the combined output is appended to.
        log_prefix: Label used for output lines in the logger.

    Returns:
        CommandResult with the exit code and output tail.

    Raises:
        CommandExecutionError: If the process cannot be spawned or times out.
    """
    argv = compose_shell_command(shell, script)
    cmd_str = shlex.join(argv)
    process_env = build_process_env(env, inherit_environ)

    logger.debug("Executing command: %s", cmd_str)
    logger.debug("Working directory: %s", cwd)
    logger.debug("Environment keys: %s", sorted(env))

    started_at = datetime.now(timezone.utc)
    tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
    log_file: IO[str] | None = None

    try:
        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = log_path.open("a", encoding="utf-8")
            log_file.write(f"# Command: {script}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {cwd}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=process_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            message = f"Failed to execute command: {e}"
            logger.error(message)
            raise CommandExecutionError(message, code="execution_error") from e

        assert proc.stdout is not None

        async def _communicate() -> int:
            await _pump_output(proc.stdout, log_file, log_prefix, tail)
            return await proc.wait()

        try:
            exit_code = await asyncio.wait_for(_communicate(), timeout=timeout)
        except asyncio.TimeoutError as e:
            await _kill(proc)
            message = f"Command timed out after {timeout} seconds"
            logger.error("%s: %s", message, script)
            if log_file is not None:
                log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
            raise CommandExecutionError(
                message, exit_code=-1, code="command_timeout"
            ) from e
        except BaseException:
            await _kill(proc)
            raise

        finished_at = datetime.now(timezone.utc)
        if log_file is not None:
            log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
            log_file.write(f"# Exit code: {exit_code}\n")
            duration = (finished_at - started_at).total_seconds()
            log_file.write(f"# Duration: {duration:.1f}s\n")
    finally:
        if log_file is not None:
            log_file.close()

    return CommandResult(
        exit_code=exit_code,
        command=cmd_str,
        started_at=started_at,
        finished_at=finished_at,
        output="".join(tail)[-OUTPUT_TAIL_CHARS:],
    )


__all__ = [
    "CommandExecutionError",
    "CommandResult",
    "OUTPUT_TAIL_CHARS",
    "build_process_env",
    "compose_shell_command",
    "run_command",
]
