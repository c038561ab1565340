# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Exceptions - Custom exceptions for the qdb package.
"""

from enum import Enum
from typing import List


class FailureReason(str, Enum):
    """Why an external tool invocation failed."""

    TOOL_NOT_FOUND = "tool_not_found"
    AUTH_FAILURE = "auth_failure"
    INVALID_OPTIONS = "invalid_options"
    TOOL_FAILURE = "tool_failure"
    TIMEOUT = "timeout"
    OUTPUT_MISSING = "output_missing"


class QDBError(Exception):
    """Base exception for all QDB errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(QDBError):
    """Raised when configuration is invalid."""

    pass


class KeysMissingFieldsError(ConfigurationError):
    """Raised when a key pair file lacks publicKey and/or privateKey."""

    def __init__(self, missing_fields: List[str], details: dict | None = None):
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Missing required keys: {', '.join(self.missing_fields)}",
            details=details,
        )


class ProviderNotFoundError(ConfigurationError):
    """Raised when a provider name is not registered."""

    pass


class RegistryError(QDBError):
    """Raised when provider registration fails."""

    pass


class ToolUnavailableError(QDBError):
    """Raised when a provider's external tool is not installed or reachable."""

    pass


class InvalidOptionsError(QDBError):
    """Raised when provider options fail pre-flight validation."""

    def __init__(self, message: str, errors: List[str], details: dict | None = None):
        self.errors = list(errors)
        super().__init__(message, details={"errors": self.errors, **(details or {})})


class ToolExecutionError(QDBError):
    """Raised by the executor when an external tool invocation fails."""

    def __init__(
        self,
        message: str,
        reason: FailureReason,
        returncode: int | None = None,
        command: str | None = None,
        details: dict | None = None,
    ):
        self.reason = reason
        self.returncode = returncode
        self.command = command
        super().__init__(message, details=details)


class ProviderOperationError(QDBError):
    """Base for provider dump/restore failures."""

    def __init__(
        self,
        message: str,
        reason: FailureReason,
        provider: str,
        details: dict | None = None,
    ):
        self.reason = reason
        self.provider = provider
        super().__init__(
            message,
            details={"provider": provider, "reason": reason.value, **(details or {})},
        )


class DumpError(ProviderOperationError):
    """Raised when a database dump fails."""

    pass


class RestoreError(ProviderOperationError):
    """Raised when restoring a database from a dump fails."""

    pass


class ArchiveError(QDBError):
    """Raised when compressing a dump into an archive fails."""

    pass


class ExtractError(QDBError):
    """Raised when extracting an archive fails."""

    pass


class NoDumpFileFoundError(ExtractError):
    """Raised when an archive holds no recognizable dump file."""

    pass


class CipherError(QDBError):
    """Raised when encryption or decryption fails, including key mismatch."""

    pass


class DeliveryError(QDBError):
    """Raised when emailing a backup fails."""

    pass


class PipelineError(QDBError):
    """
    Terminal failure of a backup or restore pipeline.

    Wraps the first stage failure with the stage and provider it happened in.
    The original error is available as ``cause`` (and ``__cause__``).
    """

    def __init__(
        self,
        pipeline: str,
        stage: str,
        provider: str | None,
        cause: QDBError,
    ):
        self.pipeline = pipeline
        self.stage = stage
        self.provider = provider
        self.cause = cause
        provider_part = f" (provider: {provider})" if provider else ""
        super().__init__(
            f"{pipeline.capitalize()} failed during {stage}{provider_part}: {cause.message}",
            details={"stage": stage, "provider": provider, **cause.details},
        )
