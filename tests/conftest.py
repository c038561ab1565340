# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for QDB tests.

Provides temporary directories, ML-KEM key pairs, key files and stub
providers that stand in for real database tools.
"""

import base64
import json
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List

import pytest
from kyber_py.ml_kem import ML_KEM_768

from qdb.exceptions import DumpError, FailureReason, RestoreError
from qdb.executor import ToolInvocation
from qdb.providers.base import DatabaseProvider, ValidationResult, require_fields
from qdb.vault.keys import KeyPair


def generate_key_pair() -> KeyPair:
    ek, dk = ML_KEM_768.keygen()
    return KeyPair(
        public_key=base64.b64encode(ek).decode("ascii"),
        private_key=base64.b64encode(dk).decode("ascii"),
    )


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory, monkeypatch):
    """Keep tests away from the real saved config and ambient SMTP settings."""
    monkeypatch.setenv("QDB_CONFIG_DIR", str(tmp_path_factory.mktemp("qdb-config")))
    for name in (
        "QDB_KEYS_PATH",
        "QDB_EMAIL",
        "QDB_DB_NAME",
        "QDB_WORK_DIR",
        "QDB_PROVIDER",
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_SECURE",
        "SMTP_USER",
        "SMTP_PASS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(scope="session")
def key_pair() -> KeyPair:
    """ML-KEM-768 key pair shared by the whole session."""
    return generate_key_pair()


@pytest.fixture(scope="session")
def other_key_pair() -> KeyPair:
    """A second, unrelated key pair."""
    return generate_key_pair()


@pytest.fixture
def keys_file(temp_dir: Path, key_pair: KeyPair) -> Path:
    """keys.json holding the session key pair."""
    path = temp_dir / "keys.json"
    path.write_text(
        json.dumps({"publicKey": key_pair.public_key, "privateKey": key_pair.private_key})
    )
    return path


class StubProvider(DatabaseProvider):
    """
    Provider that writes a fixed dump instead of calling a database tool.

    Records every restore so tests can inspect what reached the database.
    """

    name = "stub"
    display_name = "Stub"
    file_extension = "sql"

    def __init__(
        self,
        available: bool = True,
        dump_content: bytes = b"CREATE TABLE orders (id int);\nINSERT INTO orders VALUES (1);\n",
        fail_dump: bool = False,
        fail_restore: bool = False,
        required: Dict[str, str] | None = None,
    ) -> None:
        super().__init__()
        self.available = available
        self.dump_content = dump_content
        self.fail_dump = fail_dump
        self.fail_restore = fail_restore
        self.required = required or {}
        self.dump_calls: List[Path] = []
        self.restored: List[bytes] = []
        self.probe_count = 0

    def version_command(self) -> List[str]:
        return ["stub-dump", "--version"]

    def validate_config(self, options: Dict[str, Any]) -> ValidationResult:
        errors = require_fields(options, self.required)
        return {"valid": not errors, "errors": errors}

    def build_dump_command(self, output_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(argv=["stub-dump", str(output_path)])

    def build_restore_command(self, dump_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(argv=["stub-restore", str(dump_path)])

    async def is_available(self) -> bool:
        self.probe_count += 1
        return self.available

    async def create_dump(self, output_path: Path, options: Dict[str, Any] | None = None) -> None:
        self.dump_calls.append(Path(output_path))
        if self.fail_dump:
            # Leave a partial file behind like a tool that died mid-write
            Path(output_path).write_bytes(self.dump_content[:5])
            raise DumpError(
                "Stub dump failed: connection reset",
                reason=FailureReason.TOOL_FAILURE,
                provider=self.name,
            )
        Path(output_path).write_bytes(self.dump_content)

    async def restore_from_dump(self, dump_path: Path, options: Dict[str, Any] | None = None) -> None:
        if self.fail_restore:
            raise RestoreError(
                "Stub restore failed: relation already exists",
                reason=FailureReason.TOOL_FAILURE,
                provider=self.name,
            )
        self.restored.append(Path(dump_path).read_bytes())


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()
