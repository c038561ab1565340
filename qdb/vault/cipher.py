# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Cipher - Post-quantum encryption of backup archives.

The pipelines only talk to a CipherCapability (encrypt_file/decrypt_file).
One capability is bound per process; the default is MLKEMCipher:

    ML-KEM-768 encapsulation -> shared secret -> HKDF-SHA256 -> AES-256-GCM

Encrypted file layout:

    magic "QDBPQ\\x01"
    u32 (big-endian) KEM ciphertext length, KEM ciphertext
    7-byte nonce prefix
    repeated: u32 chunk length, AES-GCM ciphertext of up to 1 MiB plaintext

Each chunk nonce is prefix || u32 counter || final flag, and the header is
authenticated as associated data on every chunk. Truncated, reordered or
modified files, and files decrypted with the wrong private key, fail
authentication.
"""

import asyncio
import base64
import binascii
import os
import struct
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import BinaryIO, Protocol

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from kyber_py.ml_kem import ML_KEM_768

from qdb.exceptions import CipherError

logger = structlog.get_logger()

# Thread pool for CPU-bound encryption
_executor = ThreadPoolExecutor(max_workers=4)

MAGIC = b"QDBPQ\x01"
CHUNK_SIZE = 1024 * 1024
NONCE_PREFIX_SIZE = 7
TAG_SIZE = 16

# ML-KEM-768 sizes in bytes
PUBLIC_KEY_SIZE = 1184
PRIVATE_KEY_SIZE = 2400
KEM_CIPHERTEXT_SIZE = 1088

_HKDF_INFO = b"qdb-archive-v1"
_U32 = struct.Struct(">I")


class CipherCapability(Protocol):
    """File-level encryption capability used by the cipher stage."""

    def encrypt_file(self, input_path: Path, output_path: Path, public_key: str) -> None:
        ...

    def decrypt_file(self, input_path: Path, output_path: Path, private_key: str) -> None:
        ...


def _decode_key(key: str, expected_size: int, kind: str) -> bytes:
    try:
        raw = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise CipherError(f"Invalid {kind} key: not valid base64") from e
    if len(raw) != expected_size:
        raise CipherError(
            f"Invalid {kind} key: expected {expected_size} bytes for ML-KEM-768, got {len(raw)}"
        )
    return raw


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_HKDF_INFO,
    ).derive(shared_secret)


def _nonce(prefix: bytes, counter: int, final: bool) -> bytes:
    return prefix + _U32.pack(counter) + (b"\x01" if final else b"\x00")


def _read_exact(src: BinaryIO, size: int, what: str) -> bytes:
    data = src.read(size)
    if len(data) != size:
        raise CipherError(f"Encrypted file is truncated ({what})")
    return data


class MLKEMCipher:
    """ML-KEM-768 + AES-256-GCM chunked file encryption."""

    def __init__(self, chunk_size: int = CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.chunk_size = chunk_size

    def encrypt_file(self, input_path: Path, output_path: Path, public_key: str) -> None:
        ek = _decode_key(public_key, PUBLIC_KEY_SIZE, "public")
        try:
            shared_secret, kem_ciphertext = ML_KEM_768.encaps(ek)
        except ValueError as e:
            raise CipherError(f"Invalid public key: {e}") from e

        prefix = os.urandom(NONCE_PREFIX_SIZE)
        header = MAGIC + _U32.pack(len(kem_ciphertext)) + kem_ciphertext + prefix
        aead = AESGCM(_derive_key(shared_secret))

        with open(input_path, "rb") as src, open(output_path, "wb") as dst:
            dst.write(header)
            counter = 0
            chunk = src.read(self.chunk_size)
            while True:
                following = src.read(self.chunk_size)
                final = not following
                sealed = aead.encrypt(_nonce(prefix, counter, final), chunk, header)
                dst.write(_U32.pack(len(sealed)))
                dst.write(sealed)
                if final:
                    break
                chunk = following
                counter += 1

    def decrypt_file(self, input_path: Path, output_path: Path, private_key: str) -> None:
        dk = _decode_key(private_key, PRIVATE_KEY_SIZE, "private")

        with open(input_path, "rb") as src:
            if src.read(len(MAGIC)) != MAGIC:
                raise CipherError("Not a QDB encrypted backup (bad header)")

            (kem_len,) = _U32.unpack(_read_exact(src, _U32.size, "header"))
            if kem_len != KEM_CIPHERTEXT_SIZE:
                raise CipherError(f"Unexpected KEM ciphertext length: {kem_len}")
            kem_ciphertext = _read_exact(src, kem_len, "header")
            prefix = _read_exact(src, NONCE_PREFIX_SIZE, "header")
            header = MAGIC + _U32.pack(kem_len) + kem_ciphertext + prefix

            try:
                shared_secret = ML_KEM_768.decaps(dk, kem_ciphertext)
            except ValueError as e:
                raise CipherError(f"Invalid private key: {e}") from e
            aead = AESGCM(_derive_key(shared_secret))

            with open(output_path, "wb") as dst:
                counter = 0
                sealed = self._read_chunk(src)
                if sealed is None:
                    raise CipherError("Encrypted file is truncated (no data)")
                while True:
                    following = self._read_chunk(src)
                    final = following is None
                    try:
                        plain = aead.decrypt(_nonce(prefix, counter, final), sealed, header)
                    except InvalidTag as e:
                        raise CipherError(
                            "Decryption failed: wrong private key or corrupted backup"
                        ) from e
                    dst.write(plain)
                    if final:
                        break
                    sealed = following
                    counter += 1

    def _read_chunk(self, src: BinaryIO) -> bytes | None:
        raw_len = src.read(_U32.size)
        if not raw_len:
            return None
        if len(raw_len) != _U32.size:
            raise CipherError("Encrypted file is truncated (chunk length)")
        (size,) = _U32.unpack(raw_len)
        if size < TAG_SIZE or size > self.chunk_size + TAG_SIZE:
            raise CipherError(f"Invalid chunk length in encrypted file: {size}")
        return _read_exact(src, size, "chunk")


_bound_cipher: CipherCapability | None = None


def bind_cipher(cipher: CipherCapability) -> None:
    """
    Bind the process-wide cipher capability.

    Call once at startup, before any pipeline runs.
    """
    global _bound_cipher
    _bound_cipher = cipher
    logger.debug("cipher_bound", cipher=type(cipher).__name__)


def get_cipher() -> CipherCapability:
    """The bound capability (binds MLKEMCipher on first use)."""
    global _bound_cipher
    if _bound_cipher is None:
        _bound_cipher = MLKEMCipher()
    return _bound_cipher


async def encrypt_backup_file(
    input_path: Path,
    output_path: Path,
    public_key: str,
    cipher: CipherCapability | None = None,
) -> Path:
    """
    Encrypt a file with a public key.

    The input must exist before the call and the output must exist after
    it; the capability's own error reporting is not relied upon.

    Args:
        input_path: File to encrypt
        output_path: Encrypted file to create
        public_key: Base64 public key
        cipher: Capability to use (default: the bound capability)

    Returns:
        Path to the encrypted file

    Raises:
        CipherError: On any encryption failure
    """
    return await _run_cipher("encrypt", input_path, output_path, public_key, cipher)


async def decrypt_backup_file(
    input_path: Path,
    output_path: Path,
    private_key: str,
    cipher: CipherCapability | None = None,
) -> Path:
    """
    Decrypt a file with a private key.

    Raises:
        CipherError: On any decryption failure, including a mismatched key
    """
    return await _run_cipher("decrypt", input_path, output_path, private_key, cipher)


async def _run_cipher(
    operation: str,
    input_path: Path,
    output_path: Path,
    key: str,
    cipher: CipherCapability | None,
) -> Path:
    input_path = Path(input_path)
    output_path = Path(output_path)
    capability = cipher or get_cipher()

    if not input_path.is_file():
        raise CipherError(
            f"Cannot {operation}: input file not found: {input_path}",
            details={"input": str(input_path)},
        )

    # Written under a temporary name so a failed run never leaves a
    # half-written file under the final name
    part_path = output_path.with_name(output_path.name + ".part")
    func = capability.encrypt_file if operation == "encrypt" else capability.decrypt_file

    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(_executor, func, input_path, part_path, key)
    except CipherError as e:
        _discard(part_path)
        raise CipherError(
            f"{operation.capitalize()}ion failed: {e.message}",
            details={"input": str(input_path), **e.details},
        ) from e
    except Exception as e:
        _discard(part_path)
        raise CipherError(
            f"{operation.capitalize()}ion failed: {e}",
            details={"input": str(input_path)},
        ) from e

    if not part_path.is_file():
        raise CipherError(
            f"{operation.capitalize()}ion produced no output file",
            details={"input": str(input_path), "output": str(output_path)},
        )

    try:
        os.replace(part_path, output_path)
    except OSError as e:
        _discard(part_path)
        raise CipherError(
            f"Failed to move {operation}ed file into place: {e}",
            details={"output": str(output_path)},
        ) from e

    logger.debug(
        f"file_{operation}ed",
        input=str(input_path),
        output=str(output_path),
        size=output_path.stat().st_size,
    )
    return output_path


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("partial_output_cleanup_failed", path=str(path), error=str(e))
