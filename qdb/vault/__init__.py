# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Vault - Archive, encryption and key handling for backup artifacts.
"""

from qdb.vault.compressor import (
    DUMP_EXTENSIONS,
    compress_dump,
    extract_archive,
    format_bytes,
    get_compression_stats,
    is_dump_file,
)

from qdb.vault.cipher import (
    CipherCapability,
    MLKEMCipher,
    bind_cipher,
    get_cipher,
    encrypt_backup_file,
    decrypt_backup_file,
)

from qdb.vault.keys import (
    KeyPair,
    load_keys,
    parse_keys,
)

__all__ = [
    # Compressor
    "DUMP_EXTENSIONS",
    "compress_dump",
    "extract_archive",
    "format_bytes",
    "get_compression_stats",
    "is_dump_file",
    # Cipher
    "CipherCapability",
    "MLKEMCipher",
    "bind_cipher",
    "get_cipher",
    "encrypt_backup_file",
    "decrypt_backup_file",
    # Keys
    "KeyPair",
    "load_keys",
    "parse_keys",
]
