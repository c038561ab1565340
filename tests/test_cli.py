# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
CLI tests using click's CliRunner with a stub provider registered.
"""

import json
from pathlib import Path

import aiosmtplib
import pytest
import structlog
from click.testing import CliRunner

import qdb.providers as providers_module
from qdb.cli import cli
from qdb.env import get_config_path, load_saved_config
from qdb.providers import register_provider

from conftest import StubProvider


@pytest.fixture(autouse=True)
def reset_logging():
    """The CLI binds structlog to the runner's stderr; undo that after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def stub_registered(monkeypatch) -> StubProvider:
    monkeypatch.setattr(providers_module, "_providers", dict(providers_module._providers))
    provider = StubProvider()
    register_provider("stub", provider)
    return provider


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def backup_args(keys_file: Path, work_dir: Path, *extra: str) -> list:
    return [
        "backup",
        "--keys", str(keys_file),
        "--db-name", "orders",
        "--work-dir", str(work_dir),
        "--provider", "stub",
        *extra,
    ]


# ============================================================================
# backup
# ============================================================================

def test_backup_without_email(runner, stub_registered, keys_file: Path, temp_dir: Path):
    work_dir = temp_dir / "backups"

    result = runner.invoke(cli, backup_args(keys_file, work_dir, "--no-email"))

    assert result.exit_code == 0, result.output
    assert "Backup process completed successfully!" in result.output
    produced = list(work_dir.iterdir())
    assert len(produced) == 1
    assert produced[0].name.endswith(".zip.encrypted")
    assert str(produced[0]) in result.output


def test_backup_keep_files(runner, stub_registered, keys_file: Path, temp_dir: Path):
    work_dir = temp_dir / "backups"

    result = runner.invoke(cli, backup_args(keys_file, work_dir, "--no-email", "--keep-files"))

    assert result.exit_code == 0, result.output
    assert len(list(work_dir.iterdir())) == 3


def test_backup_missing_keys_path(runner, stub_registered, temp_dir: Path):
    result = runner.invoke(
        cli,
        ["backup", "--db-name", "orders", "--provider", "stub", "--no-email", "--work-dir", str(temp_dir)],
    )

    assert result.exit_code == 1
    assert "Error: Keys path not specified" in result.output


def test_backup_requires_email_unless_disabled(runner, stub_registered, keys_file: Path, temp_dir: Path):
    result = runner.invoke(cli, backup_args(keys_file, temp_dir / "b"))

    assert result.exit_code == 1
    assert "Email not specified" in result.output


def test_backup_email_failure_is_partial_success(
    runner, stub_registered, keys_file: Path, temp_dir: Path, monkeypatch
):
    async def failing_send(message, **kwargs):
        raise aiosmtplib.SMTPException("connection refused")

    monkeypatch.setattr(aiosmtplib, "send", failing_send)
    monkeypatch.setenv("SMTP_USER", "ops@example.com")
    monkeypatch.setenv("SMTP_PASS", "pw")
    work_dir = temp_dir / "backups"

    result = runner.invoke(cli, backup_args(keys_file, work_dir, "--email", "dba@example.com"))

    assert result.exit_code == 0, result.output
    assert "email delivery failed" in result.output
    encrypted = list(work_dir.iterdir())
    assert len(encrypted) == 1
    assert str(encrypted[0]) in result.output


def test_backup_tool_unavailable(runner, monkeypatch, keys_file: Path, temp_dir: Path):
    monkeypatch.setattr(providers_module, "_providers", dict(providers_module._providers))
    register_provider("stub", StubProvider(available=False))

    result = runner.invoke(cli, backup_args(keys_file, temp_dir / "b", "--no-email"))

    assert result.exit_code == 1
    assert "Error: Backup failed during preflight (provider: stub)" in result.output
    assert "Stub is not available" in result.output


# ============================================================================
# decrypt / restore
# ============================================================================

def test_decrypt_command(runner, stub_registered, keys_file: Path, temp_dir: Path):
    work_dir = temp_dir / "backups"
    runner.invoke(cli, backup_args(keys_file, work_dir, "--no-email"))
    encrypted = next(work_dir.iterdir())
    output = temp_dir / "decrypted.zip"

    result = runner.invoke(
        cli, ["decrypt", "-i", str(encrypted), "-o", str(output), "-k", str(keys_file)]
    )

    assert result.exit_code == 0, result.output
    assert output.read_bytes().startswith(b"PK")


def test_restore_command(runner, stub_registered, keys_file: Path, temp_dir: Path):
    work_dir = temp_dir / "backups"
    runner.invoke(cli, backup_args(keys_file, work_dir, "--no-email"))
    encrypted = next(work_dir.iterdir())
    restore_dir = temp_dir / "restore-temp"

    result = runner.invoke(
        cli,
        [
            "restore",
            "-i", str(encrypted),
            "-k", str(keys_file),
            "--provider", "stub",
            "--work-dir", str(restore_dir),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Restore completed successfully!" in result.output
    assert stub_registered.restored == [stub_registered.dump_content]
    assert not restore_dir.exists()


def test_restore_unknown_provider(runner, keys_file: Path, temp_dir: Path):
    result = runner.invoke(
        cli,
        ["restore", "-i", str(temp_dir / "x.encrypted"), "-k", str(keys_file), "--provider", "oracle"],
    )

    assert result.exit_code == 1
    assert "Provider 'oracle' not found" in result.output


# ============================================================================
# init / providers
# ============================================================================

def test_init_wizard_saves_config(runner):
    answers = "\n".join(
        [
            "./keys.json",
            "ops@example.com",
            "orders",
            "./backups",
            "postgres",
            "smtp.example.com",
            "465",
            "y",
            "ops@example.com",
            "app-password",
        ]
    ) + "\n"

    result = runner.invoke(cli, ["init"], input=answers)

    assert result.exit_code == 0, result.output
    saved = load_saved_config(get_config_path())
    assert saved["defaultDbName"] == "orders"
    assert saved["provider"] == "postgres"
    assert saved["smtp"] == {
        "host": "smtp.example.com",
        "port": 465,
        "secure": True,
        "user": "ops@example.com",
        "pass": "app-password",
    }


def test_init_keeps_existing_config_unless_confirmed(runner):
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"defaultDbName": "original"}))

    result = runner.invoke(cli, ["init"], input="n\n")

    assert result.exit_code == 0
    assert "Setup cancelled." in result.output
    assert load_saved_config(path) == {"defaultDbName": "original"}


def test_providers_command(runner, monkeypatch):
    async def fake_probe(argv, timeout=15.0):
        return argv[0] == "pg_dump"

    monkeypatch.setattr("qdb.providers.base.probe_tool", fake_probe)

    result = runner.invoke(cli, ["providers"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert len(lines) == 4
    postgres_line = next(line for line in lines if line.startswith("postgres"))
    assert "available" in postgres_line
    assert "alias: postgresql" in postgres_line
    mysql_line = next(line for line in lines if line.startswith("mysql"))
    assert "not found" in mysql_line
