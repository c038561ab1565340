# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MySQL provider - mysqldump / mysql client tools.

Restoring pipes the dump into ``mysql`` on stdin, the equivalent of
``mysql ... <database> < dump.sql`` without going through a shell.

mysqldump prints "[Warning] Using a password on the command line
interface can be insecure." whenever --password is passed; lines
containing "Warning" are treated as expected output.
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

DEFAULT_MYSQL_HOST = "localhost"
DEFAULT_MYSQL_PORT = 3306


class MySQLProvider(DatabaseProvider):
    name = "mysql"
    display_name = "MySQL"
    file_extension = "sql"

    dump_markers = ("Warning",)
    restore_markers = ("Warning",)

    def version_command(self) -> List[str]:
        return ["mysqldump", "--version"]

    def validate_config(self, options: Dict[str, Any]) -> ValidationResult:
        errors = require_fields(
            options,
            {"user": "MySQL user", "database": "MySQL database"},
        )
        errors += validate_port(options, "MySQL")
        return {"valid": not errors, "errors": errors}

    def _connection_args(self, options: Dict[str, Any]) -> List[str]:
        args = [
            f"--host={options.get('host') or DEFAULT_MYSQL_HOST}",
            f"--port={options.get('port') or DEFAULT_MYSQL_PORT}",
            f"--user={options['user']}",
        ]
        if options.get("password"):
            args.append(f"--password={options['password']}")
        return args

    def build_dump_command(self, output_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(
            argv=[
                "mysqldump",
                *self._connection_args(options),
                "--single-transaction",
                "--routines",
                "--triggers",
                "--events",
                f"--result-file={output_path}",
                options["database"],
            ]
        )

    def build_restore_command(self, dump_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(
            argv=["mysql", *self._connection_args(options), options["database"]],
            stdin_path=dump_path,
        )
