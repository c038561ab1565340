# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for QDB.

These helpers centralize wording for common configuration errors so that
the CLI, the config loader and the pipelines present consistent,
actionable messages.
"""

from typing import Iterable


def explain_missing_keys_path() -> str:
    """
    Explain that no key pair file was configured.
    """

    return (
        "Keys path not specified. "
        'Run "qdb init", pass --keys, or set the QDB_KEYS_PATH environment variable.'
    )


def explain_missing_email() -> str:
    """
    Explain that no recipient address was configured.
    """

    return (
        "Email not specified. "
        'Run "qdb init", pass --email, or use --no-email to skip delivery.'
    )


def explain_missing_db_name() -> str:
    """
    Explain that no database name was configured.
    """

    return (
        "Database name not specified. "
        'Run "qdb init", pass --db-name, or set the QDB_DB_NAME environment variable.'
    )


def explain_smtp_not_configured() -> str:
    """
    Explain that SMTP credentials are missing while email delivery is enabled.
    """

    return (
        "SMTP not configured. "
        'Run "qdb init" or set the SMTP_USER and SMTP_PASS environment variables.'
    )


def explain_invalid_smtp_port_env(value: str | None) -> str:
    """
    Explain that SMTP_PORT is invalid.
    """

    return (
        f"Invalid SMTP_PORT value: {value!r}. "
        "It must be an integer between 1 and 65535."
    )


def explain_unknown_provider(name: str, available: Iterable[str]) -> str:
    """
    Explain that a provider name is not registered, listing the known names.
    """

    return f"Provider '{name}' not found. Available providers: {', '.join(available)}"


def explain_tool_unavailable(display_name: str) -> str:
    """
    Explain that a provider's external tool could not be probed.
    """

    return (
        f"{display_name} is not available. "
        "Please ensure it is installed and configured."
    )


def explain_work_dir_not_empty(path: str) -> str:
    """
    Explain that a restore working directory already holds files.
    """

    return (
        f"Restore working directory is not empty: {path}. "
        "The directory is removed after every restore, so it must not hold other files. "
        "Choose another --work-dir or remove it first."
    )
