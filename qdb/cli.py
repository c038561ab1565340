# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Click-based command line for qdb.

    qdb init        interactive setup wizard
    qdb backup      dump, compress, encrypt and email a backup
    qdb decrypt     decrypt an encrypted backup into its ZIP archive
    qdb restore     decrypt, extract and restore a backup into a database
    qdb providers   list database providers and tool availability
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn

import click
import structlog

from qdb import __version__
from qdb.config import DEFAULT_PROVIDER, DEFAULT_RESTORE_DIR, DEFAULT_SMTP_HOST, DEFAULT_SMTP_PORT
from qdb.core import decrypt_backup, run_backup, run_restore
from qdb.env import (
    config_exists,
    get_config_path,
    load_config,
    save_config,
    validate_saved_config,
)
from qdb.exceptions import QDBError
from qdb.providers import get_all_providers, get_provider, get_provider_names
from qdb.vault.compressor import format_bytes

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def configure_logging(verbose: bool = False) -> None:
    """Route structlog output to stderr at INFO (DEBUG when verbose)."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _connection_options(**values: Any) -> Dict[str, Any]:
    """Provider options from CLI flags, dropping unset ones."""
    return {k: v for k, v in values.items() if v not in (None, False)}


def _fail(error: QDBError) -> NoReturn:
    raise click.ClickException(error.message)


def connection_options(func):
    """Shared database connection flags for backup and restore."""
    options = [
        click.option("--host", help="Database host."),
        click.option("--port", type=click.IntRange(1, 65535), help="Database port."),
        click.option("--user", help="Database user."),
        click.option("--password", help="Database password."),
        click.option("--database", help="Database to dump or restore into."),
        click.option("--uri", help="Database connection URI (MongoDB)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, prog_name="qdb")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Quantum Database Backup: encrypted database backups with post-quantum cryptography."""
    configure_logging(verbose)


@cli.command("init")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing configuration.")
def init(force: bool) -> None:
    """Interactive setup wizard for QDB configuration."""
    click.echo("QDB Configuration Setup\n")

    if config_exists() and not force:
        if not click.confirm("Configuration already exists. Overwrite?", default=False):
            click.echo("Setup cancelled.")
            return

    config = {
        "keysPath": click.prompt("Path to encryption keys file (keys.json)", default="./keys.json"),
        "defaultEmail": click.prompt("Default recipient email address"),
        "defaultDbName": click.prompt("Default database name"),
        "workDir": click.prompt("Working directory for backups", default="./backups"),
        "provider": click.prompt(
            "Database provider",
            default=DEFAULT_PROVIDER,
            type=click.Choice(get_provider_names(), case_sensitive=False),
        ),
        "smtp": {
            "host": click.prompt("SMTP server hostname", default=DEFAULT_SMTP_HOST),
            "port": click.prompt("SMTP server port", default=DEFAULT_SMTP_PORT, type=int),
            "secure": click.confirm("Use TLS/SSL?", default=False),
            "user": click.prompt("SMTP username (email)"),
            "pass": click.prompt(
                "SMTP password (app password recommended)", hide_input=True
            ),
        },
    }

    validation = validate_saved_config(config)
    if not validation["valid"]:
        click.echo("Configuration validation failed:", err=True)
        for error in validation["errors"]:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    try:
        path = save_config(config)
    except QDBError as e:
        _fail(e)

    click.echo("\nConfiguration saved successfully!")
    click.echo(f"Config location: {path}")
    click.echo("\nYou can now run backups without specifying options:")
    click.echo("   qdb backup")
    click.echo("\nOr override specific values:")
    click.echo("   qdb backup --email other@example.com --db-name staging")


@cli.command("backup")
@click.option("--email", "-e", help="Recipient email address.")
@click.option("--keys", "-k", type=click.Path(dir_okay=False, path_type=Path), help="Path to keys.json file.")
@click.option("--db-name", "-d", help="Database name used in backup filenames.")
@click.option("--work-dir", "-w", type=click.Path(file_okay=False, path_type=Path), help="Working directory for backups.")
@click.option("--provider", "-p", help="Database provider (see `qdb providers`).")
@connection_options
@click.option("--format", "dump_format", type=click.Choice(["custom", "tar"]), help="PostgreSQL dump format.")
@click.option("--keep-files", is_flag=True, help="Keep intermediate files (dump and ZIP).")
@click.option("--no-email", is_flag=True, help="Skip sending email (only create the encrypted backup).")
def backup(
    email: str | None,
    keys: Path | None,
    db_name: str | None,
    work_dir: Path | None,
    provider: str | None,
    host: str | None,
    port: int | None,
    user: str | None,
    password: str | None,
    database: str | None,
    uri: str | None,
    dump_format: str | None,
    keep_files: bool,
    no_email: bool,
) -> None:
    """Create an encrypted database backup and email it."""
    provider_options = _connection_options(
        host=host,
        port=port,
        user=user,
        password=password,
        database=database,
        uri=uri,
        format=dump_format,
    )

    try:
        config = load_config(
            {
                "email": email,
                "keys": keys,
                "db_name": db_name,
                "work_dir": work_dir,
                "provider": provider,
            }
        )
        click.echo(f"Starting quantum database backup ({config.provider})...")
        result = asyncio.run(
            run_backup(
                config,
                provider_options,
                keep_files=keep_files,
                send_email=not no_email,
            )
        )
    except QDBError as e:
        _fail(e)

    click.echo(f"Backup encrypted: {result.encrypted_path.name} ({format_bytes(result.size_bytes)})")
    if result.delivered:
        click.echo(f"Email sent to {config.email}")

    if result.partial:
        click.secho(
            f"Warning: backup created but email delivery failed: {result.delivery_error}",
            fg="yellow",
            err=True,
        )
    else:
        click.echo("Backup process completed successfully!")

    click.echo(f"Encrypted backup: {result.encrypted_path}")
    if result.files_kept:
        click.echo(f"Kept: {result.dump_path.name}, {result.archive_path.name}")
    click.echo("\nIMPORTANT: Keep your keys.json file safe! Without it, you cannot decrypt this backup.")

    if config_exists():
        click.echo(f"Using config from: {get_config_path()}")


@cli.command("decrypt")
@click.option("--input", "-i", "input_path", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Encrypted backup file.")
@click.option("--output", "-o", "output_path", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Decrypted output file.")
@click.option("--keys", "-k", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Path to keys.json file.")
def decrypt(input_path: Path, output_path: Path, keys: Path) -> None:
    """Decrypt an encrypted backup file."""
    click.echo("Starting decryption...")
    try:
        path = asyncio.run(decrypt_backup(input_path.resolve(), output_path.resolve(), keys))
    except QDBError as e:
        _fail(e)

    click.echo(f"File decrypted: {path.name} ({format_bytes(path.stat().st_size)})")
    click.echo("Decryption completed successfully!")
    click.echo(f"Decrypted file: {path}")


@cli.command("restore")
@click.option("--input", "-i", "input_path", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Encrypted backup file.")
@click.option("--keys", "-k", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Path to keys.json file.")
@click.option("--provider", "-p", default=DEFAULT_PROVIDER, show_default=True, help="Database provider.")
@connection_options
@click.option("--drop", is_flag=True, help="Drop existing data before restore (MongoDB/PostgreSQL).")
@click.option("--clean", is_flag=True, help="Clean database objects before restore (PostgreSQL).")
@click.option(
    "--work-dir",
    "-w",
    default=DEFAULT_RESTORE_DIR,
    show_default=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Scratch directory, removed after the restore.",
)
def restore(
    input_path: Path,
    keys: Path,
    provider: str,
    host: str | None,
    port: int | None,
    user: str | None,
    password: str | None,
    database: str | None,
    uri: str | None,
    drop: bool,
    clean: bool,
    work_dir: Path,
) -> None:
    """Decrypt and restore an encrypted backup into a database."""
    provider_options = _connection_options(
        host=host,
        port=port,
        user=user,
        password=password,
        database=database,
        uri=uri,
        drop=drop,
        clean=clean,
    )

    click.echo(f"Starting database restore ({provider})...")
    try:
        result = asyncio.run(
            run_restore(
                input_path.resolve(),
                keys,
                provider=provider,
                provider_options=provider_options,
                work_dir=work_dir,
            )
        )
    except QDBError as e:
        _fail(e)

    click.echo("Restore completed successfully!")
    click.echo(f"Database restored from: {input_path.name} ({result.dump_filename})")


@cli.command("providers")
def providers() -> None:
    """List database providers and whether their tools are installed."""
    instances = get_all_providers()

    async def probe_all():
        return await asyncio.gather(*(p.is_available() for p in instances))

    availability = asyncio.run(probe_all())
    names = get_provider_names()

    for provider, available in zip(instances, availability):
        aliases = [n for n in names if n != provider.name and get_provider(n) is provider]
        alias_note = f" (alias: {', '.join(aliases)})" if aliases else ""
        status = "available" if available else "not found"
        click.echo(
            f"{provider.name:<10} {provider.display_name:<12} .{provider.file_extension:<8} "
            f"{status}{alias_note}"
        )


def main() -> None:
    cli(prog_name="qdb")
