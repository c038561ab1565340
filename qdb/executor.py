# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Executor - Runs external dump/restore tools.

Tools are executed directly (no shell) with asyncio subprocesses. The
executor captures output into bounded buffers, inspects the exit code
and classifies stderr so that expected tool chatter is not reported as
a problem. A non-zero exit is always a failure, whatever stderr says.
"""

import asyncio
import os
import re
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

import structlog

from qdb.exceptions import FailureReason, ToolExecutionError

logger = structlog.get_logger()

# Verbose tools on large databases can print a lot; keep at most this much per stream
DEFAULT_MAX_BUFFER = 50 * 1024 * 1024

DEFAULT_PROBE_TIMEOUT = 15.0

_READ_CHUNK = 64 * 1024

AUTH_FAILURE_MARKERS = (
    "Access denied",
    "authentication failed",
    "Authentication failed",
    "password authentication failed",
    "not authorized",
)

_PASSWORD_ARG_RE = re.compile(r"^(--password=)(.+)$")
_URI_CREDENTIALS_RE = re.compile(r"(://[^:/@\s]+:)([^@\s]+)(@)")


@dataclass
class ToolInvocation:
    """An external tool call built by a provider."""

    argv: List[str]

    # Extra environment variables for the child only (never os.environ)
    env: Dict[str, str] = field(default_factory=dict)

    # File fed to the child's stdin (shell "< file" redirection)
    stdin_path: Path | None = None


@dataclass
class ToolResult:
    """Result of a successful tool invocation."""

    command: str
    returncode: int
    stdout: str
    stderr: str
    truncated: bool = False
    duration_seconds: float = 0.0


def mask_secrets(arg: str) -> str:
    """Hide passwords in --password= flags and credentials embedded in URIs."""
    arg = _PASSWORD_ARG_RE.sub(r"\1****", arg)
    return _URI_CREDENTIALS_RE.sub(r"\1****\3", arg)


def render_command(argv: Sequence[str], stdin_path: Path | None = None) -> str:
    """
    Render the equivalent shell command line with secrets masked.

    Used for logs and error details only; nothing is ever run through a shell.
    """
    rendered = shlex.join(mask_secrets(str(a)) for a in argv)
    if stdin_path is not None:
        rendered += f" < {shlex.quote(str(stdin_path))}"
    return rendered


def classify_stderr(stderr: str, expected_markers: Iterable[str]) -> List[str]:
    """
    Split stderr into expected chatter and warnings.

    Lines containing any of the tool's known-good markers (progress output,
    the MySQL command-line password notice, ...) are dropped. Every other
    non-blank line is returned as a warning.

    Args:
        stderr: Captured standard error
        expected_markers: Substrings that identify known-good output

    Returns:
        Lines that should be surfaced as warnings
    """
    markers = tuple(expected_markers)
    warnings: List[str] = []
    for line in stderr.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if any(marker in stripped for marker in markers):
            continue
        warnings.append(stripped)
    return warnings


def summarize_stderr(stderr: str, max_lines: int = 3, max_chars: int = 500) -> str:
    """Short tail of stderr for error messages."""
    lines = [line.strip() for line in stderr.splitlines() if line.strip()]
    summary = " / ".join(lines[-max_lines:])
    if len(summary) > max_chars:
        summary = "..." + summary[-max_chars:]
    return summary


def classify_failure(returncode: int | None, stderr: str) -> FailureReason:
    """Map a failed exit to a FailureReason."""
    if returncode == 127:
        return FailureReason.TOOL_NOT_FOUND
    if any(marker in stderr for marker in AUTH_FAILURE_MARKERS):
        return FailureReason.AUTH_FAILURE
    return FailureReason.TOOL_FAILURE


async def _drain(stream: asyncio.StreamReader, limit: int) -> Tuple[bytes, bool]:
    """Read a stream to EOF keeping only the last ``limit`` bytes."""
    buf = bytearray()
    truncated = False
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > limit:
            del buf[: len(buf) - limit]
            truncated = True
    return bytes(buf), truncated


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def run_tool(
    argv: Sequence[str],
    *,
    env: Dict[str, str] | None = None,
    stdin_path: Path | None = None,
    max_buffer: int = DEFAULT_MAX_BUFFER,
    timeout: float | None = None,
) -> ToolResult:
    """
    Run an external tool and wait for it to exit.

    Args:
        argv: Program and arguments
        env: Extra environment variables layered over a copy of os.environ
        stdin_path: File to feed on stdin
        max_buffer: Maximum bytes kept per output stream
        timeout: Seconds before the child is killed (None waits forever)

    Returns:
        ToolResult for a zero exit

    Raises:
        ToolExecutionError: Missing executable, timeout or non-zero exit.
            Cancelling the calling task kills the child and re-raises
            CancelledError.
    """
    if max_buffer < 1:
        raise ValueError(f"max_buffer must be >= 1, got {max_buffer}")

    argv = [str(a) for a in argv]
    command = render_command(argv, stdin_path)
    child_env = {**os.environ, **env} if env else None
    start = time.monotonic()

    logger.debug("tool_started", command=command)

    stdin_file = None
    try:
        if stdin_path is not None:
            try:
                stdin_file = open(stdin_path, "rb")
            except OSError as e:
                raise ToolExecutionError(
                    f"Cannot open input file {stdin_path}: {e.strerror or e}",
                    reason=FailureReason.TOOL_FAILURE,
                    command=command,
                ) from e

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=stdin_file if stdin_file is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=child_env,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ToolExecutionError(
                f"{argv[0]}: command not found",
                reason=FailureReason.TOOL_NOT_FOUND,
                command=command,
            ) from e

        try:
            (out, out_truncated), (err, err_truncated), returncode = await asyncio.wait_for(
                asyncio.gather(
                    _drain(proc.stdout, max_buffer),
                    _drain(proc.stderr, max_buffer),
                    proc.wait(),
                ),
                timeout,
            )
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            raise ToolExecutionError(
                f"{argv[0]} timed out after {timeout}s",
                reason=FailureReason.TIMEOUT,
                command=command,
            )
        except asyncio.CancelledError:
            _kill(proc)
            # Reap the child before callers start removing its files
            await asyncio.shield(proc.wait())
            logger.warning("tool_cancelled", command=command)
            raise
    finally:
        if stdin_file is not None:
            stdin_file.close()

    duration = time.monotonic() - start
    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")
    truncated = out_truncated or err_truncated

    if truncated:
        logger.warning("tool_output_truncated", command=command, max_buffer=max_buffer)

    if returncode != 0:
        summary = summarize_stderr(stderr)
        raise ToolExecutionError(
            f"{argv[0]} exited with code {returncode}" + (f": {summary}" if summary else ""),
            reason=classify_failure(returncode, stderr),
            returncode=returncode,
            command=command,
            details={"returncode": returncode},
        )

    logger.debug(
        "tool_finished",
        command=command,
        returncode=returncode,
        duration=round(duration, 3),
    )

    return ToolResult(
        command=command,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        truncated=truncated,
        duration_seconds=duration,
    )


async def probe_tool(argv: Sequence[str], timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool:
    """
    Check whether a tool runs (typically ``<tool> --version``).

    Never raises: any failure means the tool is unavailable.
    """
    try:
        await run_tool(argv, timeout=timeout, max_buffer=64 * 1024)
        return True
    except (ToolExecutionError, OSError, ValueError) as e:
        logger.debug("tool_probe_failed", command=render_command(argv), error=str(e))
        return False
