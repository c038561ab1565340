# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Backup and restore pipelines.
"""

from qdb.backup.manager import (
    BackupResult,
    BackupStage,
    create_backup,
    generate_backup_filename,
    generate_timestamp,
)

from qdb.backup.restore import (
    RestoreResult,
    RestoreStage,
    restore_from_backup,
    scoped_work_dir,
)

__all__ = [
    # Manager
    "BackupResult",
    "BackupStage",
    "create_backup",
    "generate_backup_filename",
    "generate_timestamp",
    # Restore
    "RestoreResult",
    "RestoreStage",
    "restore_from_backup",
    "scoped_work_dir",
]
