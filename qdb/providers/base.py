# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Provider base class - the contract every database engine implements.

A provider turns a loosely-typed options bag into one external tool
invocation for dumping and one for restoring. The shared flow (option
checks, running the tool, stderr classification, output verification)
lives here; engine modules only describe their commands and rules.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, TypedDict

import structlog

from qdb.exceptions import (
    DumpError,
    FailureReason,
    ProviderOperationError,
    RestoreError,
    ToolExecutionError,
)
from qdb.executor import (
    DEFAULT_MAX_BUFFER,
    ToolInvocation,
    classify_stderr,
    probe_tool,
    run_tool,
)

logger = structlog.get_logger()


class ProviderOptions(TypedDict, total=False):
    """Connection parameters; each provider reads only what it understands."""

    host: str
    port: int
    user: str
    password: str
    uri: str
    database: str
    drop: bool
    clean: bool
    format: str


class ValidationResult(TypedDict):
    valid: bool
    errors: List[str]


@dataclass(frozen=True)
class ProviderDescriptor:
    """Identity of one database engine integration."""

    name: str
    display_name: str
    file_extension: str


class DatabaseProvider(ABC):
    """
    Base class for database providers.

    Subclasses set the identity attributes and implement the command
    builders and ``validate_config``.
    """

    name: str = ""
    display_name: str = ""
    file_extension: str = ""

    # Substrings of known-good stderr output (see executor.classify_stderr)
    dump_markers: Tuple[str, ...] = ()
    restore_markers: Tuple[str, ...] = ()

    def __init__(
        self,
        *,
        max_buffer: int = DEFAULT_MAX_BUFFER,
        timeout: float | None = None,
    ) -> None:
        """
        Args:
            max_buffer: Maximum captured bytes per output stream
            timeout: Seconds before a dump/restore tool is killed (None: no limit)
        """
        self.max_buffer = max_buffer
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(self.name, self.display_name, self.file_extension)

    def get_file_extension(self) -> str:
        return self.file_extension

    # ------------------------------------------------------------------
    # Engine-specific parts
    # ------------------------------------------------------------------

    @abstractmethod
    def version_command(self) -> List[str]:
        """Command used to probe whether the tool is installed."""

    @abstractmethod
    def validate_config(self, options: Dict[str, Any]) -> ValidationResult:
        """Pure pre-flight check of the options bag; no I/O."""

    @abstractmethod
    def build_dump_command(self, output_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        """Build the dump invocation writing to ``output_path``."""

    @abstractmethod
    def build_restore_command(self, dump_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        """Build the restore invocation reading ``dump_path``."""

    # ------------------------------------------------------------------
    # Shared flow
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        """Probe the external tool. Never raises."""
        return await probe_tool(self.version_command())

    async def create_dump(self, output_path: Path, options: Dict[str, Any] | None = None) -> None:
        """
        Dump the database into ``output_path``.

        The dump only counts as created when the tool exits with 0 and the
        output file exists afterwards. On failure any partial output is
        removed.

        Raises:
            DumpError: With reason tool_not_found, auth_failure,
                invalid_options, tool_failure, timeout or output_missing
        """
        options = dict(options or {})
        output_path = Path(output_path)
        self._check_options(options, DumpError)

        invocation = self.build_dump_command(output_path, options)
        try:
            result = await self._run(invocation)
        except ToolExecutionError as e:
            _remove_partial(output_path)
            raise DumpError(
                f"{self.display_name} dump failed: {e.message}",
                reason=e.reason,
                provider=self.name,
                details={"command": e.command},
            ) from e

        if not output_path.is_file():
            raise DumpError(
                f"{self.display_name} dump failed: tool exited successfully "
                f"but {output_path.name} was not created",
                reason=FailureReason.OUTPUT_MISSING,
                provider=self.name,
                details={"command": result.command},
            )

        self._report_warnings("dump", result.stderr, self.dump_markers)
        logger.info(
            "dump_created",
            provider=self.name,
            path=str(output_path),
            size=output_path.stat().st_size,
            duration=round(result.duration_seconds, 3),
        )

    async def restore_from_dump(self, dump_path: Path, options: Dict[str, Any] | None = None) -> None:
        """
        Restore the database from ``dump_path``.

        Required options are validated before the tool is invoked.

        Raises:
            RestoreError: With the same reasons as create_dump
        """
        options = dict(options or {})
        dump_path = Path(dump_path)
        self._check_options(options, RestoreError)

        if not dump_path.is_file():
            raise RestoreError(
                f"{self.display_name} restore failed: dump file not found: {dump_path}",
                reason=FailureReason.OUTPUT_MISSING,
                provider=self.name,
            )

        invocation = self.build_restore_command(dump_path, options)
        try:
            result = await self._run(invocation)
        except ToolExecutionError as e:
            raise RestoreError(
                f"{self.display_name} restore failed: {e.message}",
                reason=e.reason,
                provider=self.name,
                details={"command": e.command},
            ) from e

        self._report_warnings("restore", result.stderr, self.restore_markers)
        logger.info(
            "dump_restored",
            provider=self.name,
            path=str(dump_path),
            duration=round(result.duration_seconds, 3),
        )

    def _check_options(
        self,
        options: Dict[str, Any],
        error_cls: type[ProviderOperationError],
    ) -> None:
        validation = self.validate_config(options)
        if not validation["valid"]:
            raise error_cls(
                f"{self.display_name} options invalid: {'; '.join(validation['errors'])}",
                reason=FailureReason.INVALID_OPTIONS,
                provider=self.name,
                details={"errors": validation["errors"]},
            )

    async def _run(self, invocation: ToolInvocation):
        return await run_tool(
            invocation.argv,
            env=invocation.env or None,
            stdin_path=invocation.stdin_path,
            max_buffer=self.max_buffer,
            timeout=self.timeout,
        )

    def _report_warnings(self, operation: str, stderr: str, markers: Sequence[str]) -> None:
        warnings = classify_stderr(stderr, markers)
        if warnings:
            logger.warning(
                f"{operation}_tool_warnings",
                provider=self.name,
                warnings=warnings,
            )


def require_fields(options: Dict[str, Any], fields: Dict[str, str]) -> List[str]:
    """
    Error messages for required option fields that are absent or empty.

    Args:
        options: Options bag
        fields: Mapping of option key to the label used in the message

    Returns:
        One "<label> is required" message per missing field
    """
    return [
        f"{label} is required"
        for key, label in fields.items()
        if options.get(key) in (None, "")
    ]


def validate_port(options: Dict[str, Any], label: str) -> List[str]:
    """Error message for a present but out-of-range or non-numeric port."""
    port = options.get("port")
    if port in (None, ""):
        return []
    try:
        value = int(port)
    except (TypeError, ValueError):
        return [f"{label} port must be a number, got {port!r}"]
    if not 0 < value < 65536:
        return [f"{label} port must be 1-65535, got {value}"]
    return []


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("partial_output_cleanup_failed", path=str(path), error=str(e))
