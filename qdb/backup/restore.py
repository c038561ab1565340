# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Restore Manager - Restore pipeline.

Reverses a backup:

    decrypt -> extract -> restore

All intermediate files live in a working directory owned by the run and
removed recursively on every exit path. Restoring into the live database
is not transactional: a failure part-way through the provider's restore
tool leaves the target database in whatever state the tool left it.
"""

import asyncio
import shutil
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, NoReturn

import structlog

from qdb.config import DEFAULT_RESTORE_DIR
from qdb.errors import explain_tool_unavailable, explain_work_dir_not_empty
from qdb.exceptions import (
    CipherError,
    ConfigurationError,
    ExtractError,
    FailureReason,
    InvalidOptionsError,
    PipelineError,
    QDBError,
    RestoreError,
    ToolUnavailableError,
)
from qdb.providers import DatabaseProvider, get_provider
from qdb.vault.cipher import CipherCapability, decrypt_backup_file
from qdb.vault.compressor import extract_archive

logger = structlog.get_logger()

DECRYPTED_ARCHIVE_NAME = "decrypted-backup.zip"
EXTRACT_DIR_NAME = "extracted"


class RestoreStage(str, Enum):
    """Stages a restore run has completed, in order."""

    DECRYPTED = "decrypted"
    EXTRACTED = "extracted"
    RESTORED = "restored"


@dataclass
class RestoreResult:
    """Result of a restore run."""

    run_id: str  # ULID
    provider: str
    source_path: Path
    dump_filename: str
    stages: List[RestoreStage] = field(default_factory=list)
    duration_seconds: float = 0.0


@asynccontextmanager
async def scoped_work_dir(path: Path) -> AsyncIterator[Path]:
    """
    Own a working directory for the duration of the block.

    The directory is created on entry and removed recursively on exit,
    whatever the outcome. An existing non-empty directory is refused so
    that cleanup can never delete files the run did not create.

    Raises:
        ConfigurationError: If the path exists and is not an empty directory
    """
    path = Path(path)
    if path.exists() and (not path.is_dir() or any(path.iterdir())):
        raise ConfigurationError(
            explain_work_dir_not_empty(str(path)),
            details={"work_dir": str(path)},
        )

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot create working directory {path}: {e}",
            details={"work_dir": str(path)},
        ) from e

    try:
        yield path
    finally:
        _remove_tree(path)


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
        logger.debug("work_dir_removed", path=str(path))
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("work_dir_cleanup_failed", path=str(path), error=str(e))


async def restore_from_backup(
    source_path: Path,
    provider: DatabaseProvider | str,
    private_key: str,
    provider_options: Dict[str, Any] | None = None,
    work_dir: Path = DEFAULT_RESTORE_DIR,
    cipher: CipherCapability | None = None,
) -> RestoreResult:
    """
    Run the restore pipeline.

    Args:
        source_path: Encrypted backup artifact
        provider: Provider instance or registered name
        private_key: Base64 private key for the cipher stage
        provider_options: Connection options for the provider
        work_dir: Scratch directory (must be absent or empty)
        cipher: Cipher capability (default: the bound capability)

    Returns:
        RestoreResult

    Raises:
        PipelineError: Wrapping the first stage failure
    """
    from ulid import ULID

    run_id = str(ULID())
    start = time.monotonic()
    source_path = Path(source_path)
    options = dict(provider_options or {})

    provider_label = provider if isinstance(provider, str) else provider.name
    logger.info(
        "restore_started",
        run_id=run_id,
        provider=provider_label,
        source=str(source_path),
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

    stages: List[RestoreStage] = []
    stage = "preflight"
    try:
        async with scoped_work_dir(Path(work_dir)) as scope:
            stage = "decrypt"
            archive_path = scope / DECRYPTED_ARCHIVE_NAME
            await decrypt_backup_file(source_path, archive_path, private_key, cipher=cipher)
            _stage_completed(run_id, stages, RestoreStage.DECRYPTED)

            stage = "extract"
            dump_path = await extract_archive(archive_path, scope / EXTRACT_DIR_NAME)
            _stage_completed(run_id, stages, RestoreStage.EXTRACTED, dump=dump_path.name)

            stage = "restore"
            if not await resolved.is_available():
                raise ToolUnavailableError(explain_tool_unavailable(resolved.display_name))
            await resolved.restore_from_dump(dump_path, options)
            _stage_completed(run_id, stages, RestoreStage.RESTORED)
    except QDBError as e:
        _fail(run_id, stage, resolved.name, e)
    except asyncio.CancelledError:
        logger.warning("restore_cancelled", run_id=run_id, stage=stage)
        raise
    except Exception as e:
        _fail(run_id, stage, resolved.name, _unexpected_error(stage, resolved.name, e))

    duration = time.monotonic() - start
    logger.info(
        "restore_completed",
        run_id=run_id,
        provider=resolved.name,
        dump=dump_path.name,
        duration=round(duration, 3),
    )

    return RestoreResult(
        run_id=run_id,
        provider=resolved.name,
        source_path=source_path,
        dump_filename=dump_path.name,
        stages=stages,
        duration_seconds=duration,
    )


def _stage_completed(
    run_id: str,
    stages: List[RestoreStage],
    stage: RestoreStage,
    **context: Any,
) -> None:
    stages.append(stage)
    logger.info("restore_stage_completed", run_id=run_id, stage=stage.value, **context)


def _unexpected_error(stage: str, provider: str, error: Exception) -> QDBError:
    """Translate a non-QDB error raised inside a stage into that stage's error."""
    message = f"Unexpected {type(error).__name__} during {stage}: {error}"
    if stage == "decrypt":
        wrapped: QDBError = CipherError(message)
    elif stage == "extract":
        wrapped = ExtractError(message)
    elif stage == "restore":
        wrapped = RestoreError(message, reason=FailureReason.TOOL_FAILURE, provider=provider)
    else:
        wrapped = ConfigurationError(message)
    wrapped.__cause__ = error
    return wrapped


def _fail(run_id: str, stage: str, provider: str | None, error: QDBError) -> NoReturn:
    logger.error(
        "restore_failed",
        run_id=run_id,
        stage=stage,
        provider=provider,
        error=error.message,
    )
    raise PipelineError("restore", stage, provider, error) from error
