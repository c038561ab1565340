# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Compressor - ZIP archive stage for dump files.

Each archive wraps exactly one dump file, deflated at the maximum level.
Archives are written to a temporary name and renamed into place once the
ZIP central directory has been written, so a failed or interrupted
compression never leaves a truncated archive under the final name.
"""

import asyncio
import math
import os
import zipfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import List

import structlog

from qdb.exceptions import ArchiveError, ExtractError, NoDumpFileFoundError

logger = structlog.get_logger()

# Thread pool for CPU-bound deflate/inflate
_executor = ThreadPoolExecutor(max_workers=4)

# Extensions of files recognized as database dumps inside an archive
DUMP_EXTENSIONS = (".sql", ".dump", ".archive", ".bson")

ZIP_COMPRESSION_LEVEL = 9  # Maximum compression


def is_dump_file(filename: str) -> bool:
    """
    Check if a file is a database dump based on its extension.

    Args:
        filename: File name or path

    Returns:
        True if the extension is one of DUMP_EXTENSIONS
    """
    return filename.lower().endswith(DUMP_EXTENSIONS)


async def compress_dump(source_file: Path, output_archive: Path) -> Path:
    """
    Compress a single dump file into a ZIP archive.

    The call returns only after the archive has been finalized and closed.

    Args:
        source_file: Dump file to compress
        output_archive: Path of the archive to create

    Returns:
        Path to the archive

    Raises:
        ArchiveError: If the source is missing or compression fails
    """
    source_file = Path(source_file)
    output_archive = Path(output_archive)

    if not source_file.is_file():
        raise ArchiveError(
            f"ZIP creation failed: source file not found: {source_file}",
            details={"source": str(source_file)},
        )

    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(_executor, _compress_sync, source_file, output_archive)
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveError(
            f"ZIP creation failed: {e}",
            details={"source": str(source_file), "archive": str(output_archive)},
        ) from e

    stats = get_compression_stats(source_file.stat().st_size, output_archive.stat().st_size)
    logger.debug(
        "archive_created",
        archive=str(output_archive),
        original_size=stats["original_size"],
        compressed_size=stats["compressed_size"],
        compression_ratio=f"{stats['compression_ratio']:.2f}x",
    )
    return output_archive


def _compress_sync(source_file: Path, output_archive: Path) -> None:
    """Synchronous ZIP creation: write to a temp name, then rename."""
    temp_path = output_archive.with_name(output_archive.name + ".tmp")
    try:
        with zipfile.ZipFile(
            temp_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=ZIP_COMPRESSION_LEVEL,
        ) as zf:
            zf.write(source_file, arcname=source_file.name)
        os.replace(temp_path, output_archive)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


async def extract_archive(archive_path: Path, output_dir: Path) -> Path:
    """
    Extract an archive and locate the dump file inside.

    Args:
        archive_path: ZIP archive to extract
        output_dir: Directory to extract into (created if missing)

    Returns:
        Path to the extracted dump file

    Raises:
        ExtractError: If the archive is unreadable or unsafe
        NoDumpFileFoundError: If no entry has a dump extension
    """
    archive_path = Path(archive_path)
    output_dir = Path(output_dir)

    loop = asyncio.get_running_loop()
    try:
        dump_path = await loop.run_in_executor(
            _executor, _extract_sync, archive_path, output_dir
        )
    except ExtractError:
        raise
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ExtractError(
            f"Failed to extract archive: {e}",
            details={"archive": str(archive_path)},
        ) from e

    logger.debug("archive_extracted", archive=str(archive_path), dump=str(dump_path))
    return dump_path


def _extract_sync(archive_path: Path, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)

    with zipfile.ZipFile(archive_path) as zf:
        # Security: Check for path traversal
        for member in zf.infolist():
            parts = PurePosixPath(member.filename.replace("\\", "/")).parts
            if member.filename.startswith(("/", "\\")) or ".." in parts or ":" in member.filename:
                raise ExtractError(
                    f"Unsafe path in archive: {member.filename}",
                    details={"archive": str(archive_path)},
                )
        zf.extractall(output_dir)

    dump_files = find_dump_files(output_dir)
    if not dump_files:
        raise NoDumpFileFoundError(
            "No database dump file found in archive",
            details={"archive": str(archive_path), "expected": list(DUMP_EXTENSIONS)},
        )
    return dump_files[0]


def find_dump_files(directory: Path) -> List[Path]:
    """Dump files directly inside ``directory``, sorted by name."""
    return sorted(
        p for p in directory.iterdir() if p.is_file() and is_dump_file(p.name)
    )


def get_compression_stats(
    original_size: int,
    compressed_size: int,
) -> dict:
    """
    Calculate compression statistics.

    Args:
        original_size: Original data size in bytes
        compressed_size: Compressed data size in bytes

    Returns:
        Dict with compression statistics
    """
    if compressed_size == 0:
        return {
            "original_size": original_size,
            "compressed_size": compressed_size,
            "compression_ratio": 0,
            "space_saved_bytes": 0,
            "space_saved_percent": 0,
        }

    ratio = original_size / compressed_size
    saved_bytes = original_size - compressed_size
    saved_percent = (saved_bytes / original_size) * 100 if original_size > 0 else 0

    return {
        "original_size": original_size,
        "compressed_size": compressed_size,
        "compression_ratio": round(ratio, 2),
        "space_saved_bytes": saved_bytes,
        "space_saved_percent": round(saved_percent, 2),
    }


def format_bytes(size: int) -> str:
    """
    Format a byte count for humans ("0 Bytes", "1.5 KB", "2 MB").
    """
    if size <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB", "TB"]
    index = min(int(math.floor(math.log(size, 1024))), len(units) - 1)
    value = round(size / (1024 ** index), 2)
    return f"{value:g} {units[index]}"
