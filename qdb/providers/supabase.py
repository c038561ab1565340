# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Supabase provider - dumps and resets through the Supabase CLI.

The CLI works against the linked project in the current directory, so
no connection options are needed.
"""

from pathlib import Path
from typing import Any, Dict, List, Sequence

from qdb.executor import ToolInvocation
from qdb.providers.base import DatabaseProvider, ValidationResult

DEFAULT_SUPABASE_CLI = ("pnpx", "supabase")


class SupabaseProvider(DatabaseProvider):
    name = "supabase"
    display_name = "Supabase"
    file_extension = "sql"

    dump_markers = ("Dumping",)
    restore_markers = ("Restoring",)

    def __init__(self, cli: Sequence[str] = DEFAULT_SUPABASE_CLI, **kwargs: Any) -> None:
        """
        Args:
            cli: Command prefix that runs the Supabase CLI
                (e.g. ``("supabase",)`` for a global install)
        """
        super().__init__(**kwargs)
        self.cli = list(cli)

    def version_command(self) -> List[str]:
        return [*self.cli, "--version"]

    def validate_config(self, options: Dict[str, Any]) -> ValidationResult:
        return {"valid": True, "errors": []}

    def build_dump_command(self, output_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(argv=[*self.cli, "db", "dump", "-f", str(output_path)])

    def build_restore_command(self, dump_path: Path, options: Dict[str, Any]) -> ToolInvocation:
        return ToolInvocation(
            argv=[*self.cli, "db", "reset", "--db-url", f"file://{dump_path}"]
        )
