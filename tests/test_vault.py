# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Vault tests: ZIP archive stage, cipher stage and key loading.
"""

import json
import os
import zipfile
from pathlib import Path

import pytest

from qdb.exceptions import (
    ArchiveError,
    CipherError,
    ConfigurationError,
    ExtractError,
    KeysMissingFieldsError,
    NoDumpFileFoundError,
)
from qdb.vault.cipher import (
    MAGIC,
    MLKEMCipher,
    bind_cipher,
    decrypt_backup_file,
    encrypt_backup_file,
    get_cipher,
)
from qdb.vault.compressor import (
    compress_dump,
    extract_archive,
    format_bytes,
    get_compression_stats,
    is_dump_file,
)
from qdb.vault.keys import KeyPair, load_keys


# ============================================================================
# Archive stage
# ============================================================================

@pytest.mark.asyncio
async def test_compress_then_extract_is_byte_identical(temp_dir: Path):
    dump = temp_dir / "supabase-backup-20260101-120000-orders_db.sql"
    content = b"INSERT INTO orders VALUES (1, 'widget');\n" * 2000 + os.urandom(512)
    dump.write_bytes(content)
    archive = temp_dir / "backup.zip"

    await compress_dump(dump, archive)
    extracted = await extract_archive(archive, temp_dir / "extracted")

    assert extracted.name == dump.name
    assert extracted.read_bytes() == content


@pytest.mark.asyncio
async def test_archive_holds_single_deflated_entry(temp_dir: Path):
    dump = temp_dir / "db.dump"
    dump.write_bytes(b"PGDMP" + b"\x00" * 4096)
    archive = temp_dir / "db.zip"

    await compress_dump(dump, archive)

    with zipfile.ZipFile(archive) as zf:
        infos = zf.infolist()
    assert [i.filename for i in infos] == ["db.dump"]
    assert infos[0].compress_type == zipfile.ZIP_DEFLATED
    assert not (temp_dir / "db.zip.tmp").exists()


@pytest.mark.asyncio
async def test_compress_missing_source(temp_dir: Path):
    with pytest.raises(ArchiveError):
        await compress_dump(temp_dir / "missing.sql", temp_dir / "out.zip")

    assert not (temp_dir / "out.zip").exists()


@pytest.mark.asyncio
async def test_compress_into_missing_directory_leaves_nothing(temp_dir: Path):
    dump = temp_dir / "db.sql"
    dump.write_text("SELECT 1;")

    with pytest.raises(ArchiveError):
        await compress_dump(dump, temp_dir / "nope" / "out.zip")


@pytest.mark.asyncio
async def test_extract_without_dump_file(temp_dir: Path):
    archive = temp_dir / "notes.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("README.txt", "no dump here")

    with pytest.raises(NoDumpFileFoundError):
        await extract_archive(archive, temp_dir / "out")


@pytest.mark.asyncio
async def test_extract_rejects_path_traversal(temp_dir: Path):
    archive = temp_dir / "evil.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("../escape.sql", "DROP TABLE users;")

    with pytest.raises(ExtractError) as exc_info:
        await extract_archive(archive, temp_dir / "out")

    assert not isinstance(exc_info.value, NoDumpFileFoundError)
    assert not (temp_dir / "escape.sql").exists()


@pytest.mark.asyncio
async def test_extract_not_a_zip(temp_dir: Path):
    bogus = temp_dir / "bogus.zip"
    bogus.write_bytes(b"definitely not a zip file")

    with pytest.raises(ExtractError):
        await extract_archive(bogus, temp_dir / "out")


def test_is_dump_file():
    assert is_dump_file("a.sql")
    assert is_dump_file("a.DUMP")
    assert is_dump_file("a.archive")
    assert is_dump_file("a.bson")
    assert not is_dump_file("a.zip")
    assert not is_dump_file("README.txt")


def test_format_bytes():
    assert format_bytes(0) == "0 Bytes"
    assert format_bytes(512) == "512 Bytes"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(2 * 1024 * 1024) == "2 MB"


def test_compression_stats():
    stats = get_compression_stats(1000, 250)

    assert stats["compression_ratio"] == 4.0
    assert stats["space_saved_percent"] == 75.0
    assert get_compression_stats(10, 0)["compression_ratio"] == 0


# ============================================================================
# Cipher stage
# ============================================================================

@pytest.fixture
def archive_file(temp_dir: Path) -> Path:
    path = temp_dir / "backup.zip"
    path.write_bytes(os.urandom(3000) + b"tail")
    return path


@pytest.mark.asyncio
async def test_encrypt_then_decrypt_round_trip(temp_dir: Path, archive_file: Path, key_pair: KeyPair):
    encrypted = temp_dir / "backup.zip.encrypted"
    decrypted = temp_dir / "decrypted.zip"

    await encrypt_backup_file(archive_file, encrypted, key_pair.public_key)
    await decrypt_backup_file(encrypted, decrypted, key_pair.private_key)

    assert encrypted.read_bytes().startswith(MAGIC)
    assert decrypted.read_bytes() == archive_file.read_bytes()


@pytest.mark.asyncio
async def test_round_trip_across_many_chunks(temp_dir: Path, archive_file: Path, key_pair: KeyPair):
    cipher = MLKEMCipher(chunk_size=256)
    encrypted = temp_dir / "e.bin"
    decrypted = temp_dir / "d.bin"

    await encrypt_backup_file(archive_file, encrypted, key_pair.public_key, cipher=cipher)
    await decrypt_backup_file(encrypted, decrypted, key_pair.private_key, cipher=cipher)

    assert decrypted.read_bytes() == archive_file.read_bytes()


@pytest.mark.asyncio
async def test_round_trip_empty_file(temp_dir: Path, key_pair: KeyPair):
    empty = temp_dir / "empty.zip"
    empty.write_bytes(b"")

    await encrypt_backup_file(empty, temp_dir / "e.bin", key_pair.public_key)
    await decrypt_backup_file(temp_dir / "e.bin", temp_dir / "d.bin", key_pair.private_key)

    assert (temp_dir / "d.bin").read_bytes() == b""


@pytest.mark.asyncio
async def test_decrypt_with_wrong_key_fails(
    temp_dir: Path,
    archive_file: Path,
    key_pair: KeyPair,
    other_key_pair: KeyPair,
):
    encrypted = temp_dir / "backup.zip.encrypted"
    decrypted = temp_dir / "decrypted.zip"
    await encrypt_backup_file(archive_file, encrypted, key_pair.public_key)

    with pytest.raises(CipherError):
        await decrypt_backup_file(encrypted, decrypted, other_key_pair.private_key)

    assert not decrypted.exists()
    assert not (temp_dir / "decrypted.zip.part").exists()


@pytest.mark.asyncio
async def test_decrypt_detects_bit_flip(temp_dir: Path, archive_file: Path, key_pair: KeyPair):
    encrypted = temp_dir / "backup.zip.encrypted"
    await encrypt_backup_file(archive_file, encrypted, key_pair.public_key)

    data = bytearray(encrypted.read_bytes())
    data[-10] ^= 0x01
    encrypted.write_bytes(bytes(data))

    with pytest.raises(CipherError):
        await decrypt_backup_file(encrypted, temp_dir / "out.zip", key_pair.private_key)


@pytest.mark.asyncio
async def test_decrypt_detects_truncation(temp_dir: Path, archive_file: Path, key_pair: KeyPair):
    cipher = MLKEMCipher(chunk_size=1024)
    encrypted = temp_dir / "backup.zip.encrypted"
    await encrypt_backup_file(archive_file, encrypted, key_pair.public_key, cipher=cipher)

    # Drop the final chunk entirely: 3004 bytes -> chunks of 1024, 1024, 956
    data = encrypted.read_bytes()
    encrypted.write_bytes(data[: len(data) - (4 + 956 + 16)])

    with pytest.raises(CipherError):
        await decrypt_backup_file(encrypted, temp_dir / "out.zip", key_pair.private_key, cipher=cipher)


@pytest.mark.asyncio
async def test_decrypt_rejects_foreign_file(temp_dir: Path, archive_file: Path, key_pair: KeyPair):
    with pytest.raises(CipherError):
        await decrypt_backup_file(archive_file, temp_dir / "out.zip", key_pair.private_key)


@pytest.mark.asyncio
async def test_encrypt_missing_input(temp_dir: Path, key_pair: KeyPair):
    with pytest.raises(CipherError):
        await encrypt_backup_file(temp_dir / "missing.zip", temp_dir / "out", key_pair.public_key)


@pytest.mark.asyncio
async def test_encrypt_rejects_malformed_key(temp_dir: Path, archive_file: Path):
    with pytest.raises(CipherError):
        await encrypt_backup_file(archive_file, temp_dir / "out", "not base64 at all!")

    assert not (temp_dir / "out").exists()


class SilentCipher:
    """Capability that reports success without writing anything."""

    def encrypt_file(self, input_path, output_path, public_key):
        return None

    def decrypt_file(self, input_path, output_path, private_key):
        return None


class ExplodingCipher:
    def encrypt_file(self, input_path, output_path, public_key):
        Path(output_path).write_bytes(b"half")
        raise RuntimeError("backend crashed")

    def decrypt_file(self, input_path, output_path, private_key):
        raise RuntimeError("backend crashed")


@pytest.mark.asyncio
async def test_missing_output_after_capability_is_failure(temp_dir: Path, archive_file: Path):
    with pytest.raises(CipherError):
        await encrypt_backup_file(archive_file, temp_dir / "out", "key", cipher=SilentCipher())


@pytest.mark.asyncio
async def test_capability_errors_become_cipher_errors(temp_dir: Path, archive_file: Path):
    with pytest.raises(CipherError) as exc_info:
        await encrypt_backup_file(archive_file, temp_dir / "out", "key", cipher=ExplodingCipher())

    assert "backend crashed" in exc_info.value.message
    assert not (temp_dir / "out").exists()
    assert not (temp_dir / "out.part").exists()


def test_bind_cipher_replaces_default(monkeypatch):
    import qdb.vault.cipher as cipher_module

    monkeypatch.setattr(cipher_module, "_bound_cipher", None)
    assert isinstance(get_cipher(), MLKEMCipher)

    silent = SilentCipher()
    bind_cipher(silent)
    assert get_cipher() is silent


# ============================================================================
# Key loading
# ============================================================================

@pytest.mark.asyncio
async def test_load_keys(keys_file: Path, key_pair: KeyPair):
    loaded = await load_keys(keys_file)

    assert loaded == key_pair


@pytest.mark.asyncio
async def test_load_keys_names_missing_field(temp_dir: Path):
    path = temp_dir / "keys.json"
    path.write_text(json.dumps({"publicKey": "abc"}))

    with pytest.raises(KeysMissingFieldsError) as exc_info:
        await load_keys(path)

    assert exc_info.value.missing_fields == ["privateKey"]
    assert "privateKey" in exc_info.value.message


@pytest.mark.asyncio
async def test_load_keys_names_both_missing_fields(temp_dir: Path):
    path = temp_dir / "keys.json"
    path.write_text("{}")

    with pytest.raises(KeysMissingFieldsError) as exc_info:
        await load_keys(path)

    assert exc_info.value.missing_fields == ["publicKey", "privateKey"]


@pytest.mark.asyncio
async def test_load_keys_missing_file(temp_dir: Path):
    with pytest.raises(ConfigurationError):
        await load_keys(temp_dir / "nope.json")


@pytest.mark.asyncio
async def test_load_keys_invalid_json(temp_dir: Path):
    path = temp_dir / "keys.json"
    path.write_text("{not json")

    with pytest.raises(ConfigurationError):
        await load_keys(path)


def test_key_pair_repr_hides_keys(key_pair: KeyPair):
    rendered = repr(key_pair)

    assert key_pair.public_key not in rendered
    assert key_pair.private_key not in rendered
