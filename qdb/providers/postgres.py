# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
PostgreSQL provider - pg_dump / pg_restore from the PostgreSQL client tools.

pg_dump has no password flag; the password travels in PGPASSWORD in the
environment of the child process only.

Dumps use the custom format by default: compressed, single file, and
restorable selectively with pg_restore.
"""

from pathlib import Path
from typing import Any, Dict, List

from qdb.executor import ToolInvocation
from qdb.providers.base import (
    DatabaseProvider,
    ValidationResult,
    require_fields,
    validate_port,
)

DEFAULT_POSTGRES_HOST = "localhost"
DEFAULT_POSTGRES_PORT = 5432
DEFAULT_DUMP_FORMAT = "custom"

# pg_restore reads custom and tar archives; directory output is not a single file
SUPPORTED_DUMP_FORMATS = ("custom", "tar")


class PostgreSQLProvider(DatabaseProvider):
    name = "postgres"
    display_name = "PostgreSQL"
    file_extension = "dump"

    dump_markers = ("pg_dump",)
    restore_markers = ("pg_restore",)

    def version_command(self) -> List[str]:
        return ["pg_dump", "--version"]

    def validate_config(self, options: Dict[str, Any]) -> ValidationResult:
        errors = require_fields(
            options,
            {"user": "PostgreSQL user", "database": "PostgreSQL database"},
        )
        errors += validate_port(options, "PostgreSQL")
        dump_format = options.get("format")
        if dump_format and dump_format not in SUPPORTED_DUMP_FORMATS:
            errors.append(
                f"PostgreSQL dump format must be one of {', '.join(SUPPORTED_DUMP_FORMATS)}, "
                f"got {dump_format!r}"
            )
        return {"valid": not errors, "errors": errors}

    def _connection_args(self, options: Dict[str, Any]) -> List[str]:
        return [
            f"--host={options.get('host') or DEFAULT_POSTGRES_HOST}",
            f"--port={options.get('port') or DEFAULT_POSTGRES_PORT}",
            f"--username={options['user']}",
        ]

    def _password_env(self, options: Dict[str, Any]) -> Dict[str, str]:
        if options.get("password"):
            return {"PGPASSWORD": str(options["password"])}
        return {}

    def build_dump_command(self, output_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(
            argv=[
                "pg_dump",
                *self._connection_args(options),
                f"--format={options.get('format') or DEFAULT_DUMP_FORMAT}",
                "--no-owner",
                "--no-acl",
                f"--file={output_path}",
                options["database"],
            ],
            env=self._password_env(options),
        )

    def build_restore_command(self, dump_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        argv = [
            "pg_restore",
            *self._connection_args(options),
            f"--dbname={options['database']}",
            "--no-owner",
            "--no-acl",
        ]
        # --drop on the command line means the same thing for PostgreSQL
        if options.get("clean") or options.get("drop"):
            argv += ["--clean", "--if-exists"]
        argv.append(str(dump_path))
        return ToolInvocation(argv=argv, env=self._password_env(options))
