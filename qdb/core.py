# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Core - Top-level lifecycle entry points.

These functions turn a resolved QDBConfig into pipeline runs: they check
that the configuration is complete for the requested operation, load the
key pair, and wire email delivery into the backup pipeline. The CLI is a
thin layer over them; embedding applications can call them directly.
"""

from pathlib import Path
from typing import Any, Dict

import structlog

from qdb.backup.manager import BackupResult, create_backup
from qdb.backup.restore import RestoreResult, restore_from_backup
from qdb.config import DEFAULT_PROVIDER, DEFAULT_RESTORE_DIR, QDBConfig
from qdb.errors import (
    explain_missing_db_name,
    explain_missing_email,
    explain_missing_keys_path,
    explain_smtp_not_configured,
)
from qdb.exceptions import ConfigurationError, DeliveryError
from qdb.integrations.email import (
    generate_backup_email_content,
    is_smtp_configured,
    send_backup_email,
)
from qdb.vault.cipher import CipherCapability, decrypt_backup_file
from qdb.vault.compressor import format_bytes
from qdb.vault.keys import KeyPair, load_keys

logger = structlog.get_logger()


def check_backup_config(config: QDBConfig, send_email: bool = True) -> None:
    """
    Check that a config holds everything a backup run needs.

    Raises:
        ConfigurationError: With a message naming the missing setting
    """
    if config.keys_path is None:
        raise ConfigurationError(explain_missing_keys_path())
    if send_email and not config.email:
        raise ConfigurationError(explain_missing_email())
    if not config.db_name:
        raise ConfigurationError(explain_missing_db_name())
    if send_email and not is_smtp_configured(config.smtp):
        raise ConfigurationError(explain_smtp_not_configured())


async def run_backup(
    config: QDBConfig,
    provider_options: Dict[str, Any] | None = None,
    keep_files: bool = False,
    send_email: bool = True,
    cipher: CipherCapability | None = None,
) -> BackupResult:
    """
    Back up a database and optionally email the encrypted artifact.

    Args:
        config: Resolved configuration
        provider_options: Connection options for the provider
        keep_files: Keep the dump and archive after encryption
        send_email: Deliver the encrypted artifact to ``config.email``
        cipher: Cipher capability (default: the bound capability)

    Returns:
        BackupResult (check ``partial`` for a failed delivery)

    Raises:
        ConfigurationError: Incomplete configuration or unreadable keys
        PipelineError: A pipeline stage failed
    """
    check_backup_config(config, send_email)
    keys = await load_keys(config.keys_path)

    deliver = None
    if send_email:

        async def deliver(encrypted_path: Path) -> None:
            try:
                size = encrypted_path.stat().st_size
            except OSError as e:
                raise DeliveryError(
                    f"Cannot read encrypted backup for delivery: {e}",
                    details={"path": str(encrypted_path)},
                ) from e
            subject, text = generate_backup_email_content(
                config.db_name,
                encrypted_path.name,
                format_bytes(size),
            )
            await send_backup_email(config.smtp, config.email, subject, text, encrypted_path)

    return await create_backup(
        config.provider,
        config.db_name,
        keys.public_key,
        work_dir=config.work_dir,
        provider_options=provider_options,
        keep_files=keep_files,
        deliver=deliver,
        cipher=cipher,
    )


async def run_restore(
    source_path: Path,
    keys_path: Path,
    provider: str = DEFAULT_PROVIDER,
    provider_options: Dict[str, Any] | None = None,
    work_dir: Path = DEFAULT_RESTORE_DIR,
    cipher: CipherCapability | None = None,
) -> RestoreResult:
    """
    Decrypt, extract and restore an encrypted backup into a database.

    Raises:
        ConfigurationError: Unreadable or incomplete keys file
        PipelineError: A pipeline stage failed
    """
    keys = await load_keys(keys_path)
    return await restore_from_backup(
        source_path,
        provider,
        keys.private_key,
        provider_options=provider_options,
        work_dir=work_dir,
        cipher=cipher,
    )


async def decrypt_backup(
    input_path: Path,
    output_path: Path,
    keys: KeyPair | Path | str,
    cipher: CipherCapability | None = None,
) -> Path:
    """
    Decrypt an encrypted backup into its ZIP archive without restoring it.

    Args:
        input_path: Encrypted backup
        output_path: Where to write the decrypted archive
        keys: Loaded KeyPair or path to a keys.json file
        cipher: Cipher capability (default: the bound capability)

    Returns:
        Path to the decrypted file
    """
    if not isinstance(keys, KeyPair):
        keys = await load_keys(keys)

    path = await decrypt_backup_file(input_path, output_path, keys.private_key, cipher=cipher)
    logger.info("backup_decrypted", input=str(input_path), output=str(path))
    return path
