# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Key pair loading.

The key pair file is a JSON object with two string fields, publicKey and
privateKey. Keys are held in memory for one pipeline invocation only;
nothing in qdb writes, caches or sends them anywhere.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import aiofiles
import structlog

from qdb.exceptions import ConfigurationError, KeysMissingFieldsError

logger = structlog.get_logger()

REQUIRED_KEY_FIELDS = ("publicKey", "privateKey")


@dataclass(frozen=True)
class KeyPair:
    """Public/private key pair; both fields are hidden from repr."""

    public_key: str = field(repr=False)
    private_key: str = field(repr=False)


def parse_keys(data: Any, source: str | None = None) -> KeyPair:
    """
    Build a KeyPair from a parsed keys.json document.

    Raises:
        KeysMissingFieldsError: Naming every missing field
        ConfigurationError: If the document is not an object or a field is not a string
    """
    details = {"path": source} if source else None

    if not isinstance(data, dict):
        raise ConfigurationError("Keys file must contain a JSON object", details=details)

    missing: List[str] = [k for k in REQUIRED_KEY_FIELDS if data.get(k) in (None, "")]
    if missing:
        raise KeysMissingFieldsError(missing, details=details)

    wrong_type = [k for k in REQUIRED_KEY_FIELDS if not isinstance(data[k], str)]
    if wrong_type:
        raise ConfigurationError(
            f"Key fields must be strings: {', '.join(wrong_type)}",
            details=details,
        )

    return KeyPair(public_key=data["publicKey"], private_key=data["privateKey"])


async def load_keys(keys_path: Path | str) -> KeyPair:
    """
    Load and validate a key pair file.

    Args:
        keys_path: Path to keys.json

    Returns:
        KeyPair held in memory only
    """
    path = Path(keys_path)
    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        data = json.loads(content)
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Keys file not found: {path}",
            details={"path": str(path)},
        ) from e
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Failed to read JSON file {path}: {e}",
            details={"path": str(path)},
        ) from e

    keys = parse_keys(data, source=str(path))
    logger.debug("keys_loaded", path=str(path))
    return keys
