# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Backup Manager - Backup pipeline.

Runs one backup as a strict sequence of stages:

    dump -> archive -> encrypt -> (deliver) -> cleanup

Each stage starts only after the previous stage's artifact is confirmed
on disk. A failure before the encrypted artifact exists removes the dump
and archive created so far. Once created, the encrypted artifact is
never deleted by the pipeline: it is the user's recovery path even when
delivery fails.

Artifacts are prefixed with the provider name (``postgres-backup-...``).
Earlier releases named every artifact ``supabase-backup-...`` whatever the
engine; ``generate_backup_filename`` keeps that default for callers that
build names themselves.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, NoReturn

import structlog

from qdb.config import DEFAULT_WORK_DIR
from qdb.errors import explain_tool_unavailable
from qdb.exceptions import (
    ArchiveError,
    CipherError,
    ConfigurationError,
    DumpError,
    FailureReason,
    InvalidOptionsError,
    PipelineError,
    QDBError,
    ToolUnavailableError,
)
from qdb.providers import DatabaseProvider, get_provider
from qdb.vault.cipher import CipherCapability, encrypt_backup_file
from qdb.vault.compressor import compress_dump, format_bytes

logger = structlog.get_logger()

DEFAULT_FILENAME_PREFIX = "supabase"
ENCRYPTED_SUFFIX = ".encrypted"

# Receives the encrypted artifact; raises QDBError (DeliveryError) on failure
DeliverCallback = Callable[[Path], Awaitable[None]]


class BackupStage(str, Enum):
    """Stages a backup run has completed, in order."""

    DUMPED = "dumped"
    ARCHIVED = "archived"
    ENCRYPTED = "encrypted"
    DELIVERED = "delivered"
    CLEANED = "cleaned"


@dataclass
class BackupResult:
    """Result of a backup run."""

    run_id: str  # ULID
    provider: str
    db_name: str
    encrypted_path: Path
    dump_path: Path
    archive_path: Path
    files_kept: bool
    size_bytes: int
    stages: List[BackupStage] = field(default_factory=list)

    # None when delivery was not requested
    delivered: bool | None = None
    delivery_error: str | None = None

    duration_seconds: float = 0.0

    @property
    def partial(self) -> bool:
        """Backup created but the requested delivery failed."""
        return self.delivered is False


def generate_timestamp(now: datetime | None = None) -> str:
    """Local time as YYYYMMDD-HHMMSS."""
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


def generate_backup_filename(
    db_name: str,
    extension: str = "sql",
    prefix: str = DEFAULT_FILENAME_PREFIX,
    timestamp: str | None = None,
) -> str:
    """
    Build an artifact filename.

    Format: ``<prefix>-backup-YYYYMMDD-HHMMSS-<db_name>.<extension>``

    Args:
        db_name: Database name
        extension: File extension without the dot
        prefix: Filename prefix (the provider name in pipeline runs)
        timestamp: Precomputed timestamp so related artifacts share one

    Returns:
        Filename (no directory)
    """
    return f"{prefix}-backup-{timestamp or generate_timestamp()}-{db_name}.{extension.lstrip('.')}"


async def create_backup(
    provider: DatabaseProvider | str,
    db_name: str,
    public_key: str,
    work_dir: Path = DEFAULT_WORK_DIR,
    provider_options: Dict[str, Any] | None = None,
    keep_files: bool = False,
    deliver: DeliverCallback | None = None,
    cipher: CipherCapability | None = None,
) -> BackupResult:
    """
    Run the backup pipeline.

    Args:
        provider: Provider instance or registered name
        db_name: Database name used in artifact filenames
        public_key: Base64 public key for the cipher stage
        work_dir: Directory owning all artifacts of this run
        provider_options: Connection options for the provider
        keep_files: Keep the dump and archive after encryption
        deliver: Optional delivery step for the encrypted artifact
        cipher: Cipher capability (default: the bound capability)

    Returns:
        BackupResult; ``partial`` is set when delivery failed

    Raises:
        PipelineError: Wrapping the first stage failure
    """
    from ulid import ULID

    run_id = str(ULID())
    start = time.monotonic()
    options = dict(provider_options or {})
    work_dir = Path(work_dir)

    provider_label = provider if isinstance(provider, str) else provider.name
    logger.info("backup_started", run_id=run_id, provider=provider_label, db_name=db_name)

    resolved = await _preflight(run_id, provider, db_name, options)

    try:
        work_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        _fail(
            run_id,
            "preflight",
            resolved.name,
            ConfigurationError(
                f"Cannot create working directory {work_dir}: {e}",
                details={"work_dir": str(work_dir)},
            ),
        )

    # One timestamp per run so dump and archive names line up
    timestamp = generate_timestamp()
    dump_path = work_dir / generate_backup_filename(
        db_name, resolved.get_file_extension(), prefix=resolved.name, timestamp=timestamp
    )
    archive_path = work_dir / generate_backup_filename(
        db_name, "zip", prefix=resolved.name, timestamp=timestamp
    )
    encrypted_path = archive_path.with_name(archive_path.name + ENCRYPTED_SUFFIX)

    stages: List[BackupStage] = []
    stage = "dump"
    try:
        await resolved.create_dump(dump_path, options)
        _stage_completed(run_id, stages, BackupStage.DUMPED, path=dump_path)

        stage = "archive"
        await compress_dump(dump_path, archive_path)
        _stage_completed(run_id, stages, BackupStage.ARCHIVED, path=archive_path)

        stage = "encrypt"
        await encrypt_backup_file(archive_path, encrypted_path, public_key, cipher=cipher)
        _stage_completed(run_id, stages, BackupStage.ENCRYPTED, path=encrypted_path)
    except QDBError as e:
        _discard_artifacts(dump_path, archive_path)
        _fail(run_id, stage, resolved.name, e)
    except asyncio.CancelledError:
        _discard_artifacts(dump_path, archive_path)
        logger.warning("backup_cancelled", run_id=run_id, stage=stage)
        raise
    except Exception as e:
        _discard_artifacts(dump_path, archive_path)
        _fail(run_id, stage, resolved.name, _unexpected_error(stage, resolved.name, e))

    delivered: bool | None = None
    delivery_error: str | None = None
    if deliver is not None:
        try:
            await deliver(encrypted_path)
            delivered = True
            _stage_completed(run_id, stages, BackupStage.DELIVERED)
        except Exception as e:
            delivered = False
            delivery_error = e.message if isinstance(e, QDBError) else str(e)
            logger.warning(
                "backup_delivery_failed",
                run_id=run_id,
                encrypted_path=str(encrypted_path),
                error=e.message,
            )

    if not keep_files:
        _discard_artifacts(dump_path, archive_path)
    _stage_completed(run_id, stages, BackupStage.CLEANED, files_kept=keep_files)

    size = encrypted_path.stat().st_size
    duration = time.monotonic() - start

    result = BackupResult(
        run_id=run_id,
        provider=resolved.name,
        db_name=db_name,
        encrypted_path=encrypted_path,
        dump_path=dump_path,
        archive_path=archive_path,
        files_kept=keep_files,
        size_bytes=size,
        stages=stages,
        delivered=delivered,
        delivery_error=delivery_error,
        duration_seconds=duration,
    )

    logger.info(
        "backup_completed",
        run_id=run_id,
        provider=resolved.name,
        encrypted_path=str(encrypted_path),
        size=format_bytes(size),
        partial=result.partial,
        duration=round(duration, 3),
    )
    return result


async def _preflight(
    run_id: str,
    provider: DatabaseProvider | str,
    db_name: str,
    options: Dict[str, Any],
) -> DatabaseProvider:
    """Resolve and check the provider before any file is touched."""
    provider_label = provider if isinstance(provider, str) else provider.name

    if not db_name or not db_name.strip() or "/" in db_name or "\\" in db_name:
        _fail(
            run_id,
            "preflight",
            provider_label,
            ConfigurationError(f"Invalid database name: {db_name!r}"),
        )

    try:
        resolved = get_provider(provider) if isinstance(provider, str) else provider
    except QDBError as e:
        _fail(run_id, "preflight", provider_label, e)

    validation = resolved.validate_config(options)
    if not validation["valid"]:
        _fail(
            run_id,
            "preflight",
            resolved.name,
            InvalidOptionsError(
                f"Invalid {resolved.display_name} options: {'; '.join(validation['errors'])}",
                errors=validation["errors"],
            ),
        )

    if not await resolved.is_available():
        _fail(
            run_id,
            "preflight",
            resolved.name,
            ToolUnavailableError(explain_tool_unavailable(resolved.display_name)),
        )

    return resolved


def _stage_completed(
    run_id: str,
    stages: List[BackupStage],
    stage: BackupStage,
    path: Path | None = None,
    **context: Any,
) -> None:
    stages.append(stage)
    if path is not None:
        context["path"] = str(path)
    logger.info("backup_stage_completed", run_id=run_id, stage=stage.value, **context)


def _fail(run_id: str, stage: str, provider: str | None, error: QDBError) -> NoReturn:
    logger.error(
        "backup_failed",
        run_id=run_id,
        stage=stage,
        provider=provider,
        error=error.message,
    )
    raise PipelineError("backup", stage, provider, error) from error


def _unexpected_error(stage: str, provider: str, error: Exception) -> QDBError:
    """Translate a non-QDB error raised inside a stage into that stage's error."""
    message = f"Unexpected {type(error).__name__} during {stage}: {error}"
    if stage == "dump":
        wrapped: QDBError = DumpError(message, reason=FailureReason.TOOL_FAILURE, provider=provider)
    elif stage == "archive":
        wrapped = ArchiveError(message)
    else:
        wrapped = CipherError(message)
    wrapped.__cause__ = error
    return wrapped


def _discard_artifacts(*paths: Path) -> None:
    """Best-effort removal; failures are logged, never raised."""
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("artifact_cleanup_failed", path=str(path), error=str(e))
