# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
MongoDB provider - mongodump / mongorestore from the MongoDB Database Tools.

Dumps are written as a single gzipped archive (--archive --gzip) rather
than mongodump's default directory tree, so the pipeline always handles
exactly one file.
"""

from pathlib import Path
from typing import Any, Dict, List

from qdb.executor import ToolInvocation
from qdb.providers.base import DatabaseProvider, ValidationResult, require_fields

MONGODB_URI_SCHEMES = ("mongodb://", "mongodb+srv://")


class MongoDBProvider(DatabaseProvider):
    name = "mongodb"
    display_name = "MongoDB"
    file_extension = "archive"

    dump_markers = ("done",)
    restore_markers = ("done",)

    def version_command(self) -> List[str]:
        return ["mongodump", "--version"]

    def validate_config(self, options: Dict[str, Any]) -> ValidationResult:
        errors = require_fields(options, {"uri": "MongoDB URI"})
        uri = options.get("uri")
        if uri and not str(uri).startswith(MONGODB_URI_SCHEMES):
            errors.append("MongoDB URI must start with mongodb:// or mongodb+srv://")
        return {"valid": not errors, "errors": errors}

    def _connection_args(self, options: Dict[str, Any]) -> List[str]:
        args = [f"--uri={options['uri']}"]
        if options.get("database"):
            args.append(f"--db={options['database']}")
        return args

    def build_dump_command(self, output_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(
            argv=[
                "mongodump",
                *self._connection_args(options),
                f"--archive={output_path}",
                "--gzip",
            ]
        )

    def build_restore_command(self, dump_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        argv = ["mongorestore", *self._connection_args(options)]
        if options.get("drop"):
            argv.append("--drop")
        argv += [f"--archive={dump_path}", "--gzip"]
        return ToolInvocation(argv=argv)
