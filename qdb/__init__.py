# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Quantum Database Backup - Encrypted database backups.

Dumps a database with its native tools, compresses the dump, encrypts it
with post-quantum cryptography, emails it, and reverses the process to
restore. Package name: qdb.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from qdb.builder import create_config

# Lifecycle entry points
from qdb.core import (
    run_backup,
    run_restore,
    decrypt_backup,
)

# Pipelines
from qdb.backup import (
    BackupResult,
    RestoreResult,
    create_backup,
    generate_backup_filename,
    restore_from_backup,
)

# Providers
from qdb.providers import (
    DatabaseProvider,
    get_provider,
    register_provider,
)

# Environment and saved configuration
from qdb.env import load_config

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "load_config",
    # Lifecycle
    "run_backup",
    "run_restore",
    "decrypt_backup",
    # Pipelines
    "BackupResult",
    "RestoreResult",
    "create_backup",
    "generate_backup_filename",
    "restore_from_backup",
    # Providers
    "DatabaseProvider",
    "get_provider",
    "register_provider",
]
