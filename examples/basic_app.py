# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example: nightly PostgreSQL backup from an application.

This example shows how to embed QDB without the CLI: build a config
with the functional builder, run a backup, and restore it into a
staging database.

Run with:
    python -m examples.basic_app

Environment variables:
    QDB_KEYS_PATH: Path to keys.json (publicKey/privateKey)
    PGHOST, PGPORT, PGUSER, PGPASSWORD, PGDATABASE: Source database
    STAGING_DATABASE: Database to restore into (optional)
    SMTP_USER, SMTP_PASS: Enable email delivery when both are set
"""

import asyncio
import os
import sys
from pathlib import Path

import structlog

from qdb.builder import (
    build_config,
    create_empty_config,
    pipe,
    with_db_name,
    with_email,
    with_keys,
    with_provider,
    with_smtp,
    with_work_dir,
)
from qdb.core import run_backup, run_restore
from qdb.exceptions import PipelineError, QDBError

logger = structlog.get_logger()


def create_qdb_config():
    """
    Create QDB configuration from environment variables.

    Email delivery is only configured when SMTP credentials are present.
    """
    steps = [
        lambda c: with_keys(c, os.getenv("QDB_KEYS_PATH", "./keys.json")),
        lambda c: with_db_name(c, os.getenv("PGDATABASE", "app")),
        lambda c: with_work_dir(c, os.getenv("QDB_WORK_DIR", "./backups")),
        lambda c: with_provider(c, "postgres"),
    ]

    if os.getenv("SMTP_USER") and os.getenv("SMTP_PASS"):
        steps += [
            lambda c: with_email(c, os.getenv("BACKUP_RECIPIENT", os.environ["SMTP_USER"])),
            lambda c: with_smtp(c, user=os.environ["SMTP_USER"], password=os.environ["SMTP_PASS"]),
        ]

    return build_config(pipe(*steps)(create_empty_config()))


def postgres_options(database: str) -> dict:
    options = {
        "host": os.getenv("PGHOST", "localhost"),
        "port": int(os.getenv("PGPORT", "5432")),
        "user": os.getenv("PGUSER", "postgres"),
        "database": database,
    }
    if os.getenv("PGPASSWORD"):
        options["password"] = os.environ["PGPASSWORD"]
    return options


async def nightly_backup() -> Path:
    config = create_qdb_config()

    result = await run_backup(
        config,
        postgres_options(config.db_name),
        send_email=config.email is not None,
    )

    if result.partial:
        logger.warning(
            "backup_not_delivered",
            path=str(result.encrypted_path),
            error=result.delivery_error,
        )
    else:
        logger.info("backup_ready", path=str(result.encrypted_path), size=result.size_bytes)

    return result.encrypted_path


async def restore_to_staging(encrypted_path: Path) -> None:
    staging = os.getenv("STAGING_DATABASE")
    if not staging:
        return

    await run_restore(
        encrypted_path,
        Path(os.getenv("QDB_KEYS_PATH", "./keys.json")),
        provider="postgres",
        provider_options={**postgres_options(staging), "clean": True},
    )
    logger.info("staging_restored", database=staging)


async def main() -> int:
    try:
        encrypted_path = await nightly_backup()
        await restore_to_staging(encrypted_path)
    except PipelineError as e:
        logger.error("pipeline_failed", stage=e.stage, provider=e.provider, error=e.message)
        return 1
    except QDBError as e:
        logger.error("qdb_error", error=e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
