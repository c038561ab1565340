# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Builder - Functional builder pattern for configuration.

This module provides pure functions for building QDBConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates). The config loader in
qdb.env layers CLI arguments, the saved config file and the
environment through these functions.
"""

from pathlib import Path
from typing import Any, Callable, Dict

from qdb.config import (
    DEFAULT_PROVIDER,
    DEFAULT_SMTP_HOST,
    DEFAULT_SMTP_PORT,
    DEFAULT_WORK_DIR,
    QDBConfig,
    SMTPConfig,
)


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary holding the built-in defaults.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "keys_path": None,
        "email": None,
        "db_name": None,
        "work_dir": DEFAULT_WORK_DIR,
        "provider": DEFAULT_PROVIDER,
        "smtp": {
            "host": DEFAULT_SMTP_HOST,
            "port": DEFAULT_SMTP_PORT,
            "secure": False,
            "user": None,
            "password": None,
        },
    }


def with_keys(config: ConfigDict, keys_path: Path | str) -> ConfigDict:
    """
    Set the path to the keys.json file.

    Args:
        config: Current configuration dictionary
        keys_path: Path to a JSON file with publicKey and privateKey

    Returns:
        New configuration dictionary with keys path set
    """
    return {**config, "keys_path": Path(keys_path)}


def with_email(config: ConfigDict, email: str) -> ConfigDict:
    """Set the recipient address for encrypted backups."""
    return {**config, "email": email}


def with_db_name(config: ConfigDict, db_name: str) -> ConfigDict:
    """Set the database name used in artifact filenames."""
    return {**config, "db_name": db_name}


def with_work_dir(config: ConfigDict, work_dir: Path | str) -> ConfigDict:
    """Set the working directory for backup artifacts."""
    return {**config, "work_dir": Path(work_dir)}


def with_provider(config: ConfigDict, provider: str) -> ConfigDict:
    """
    Set the database provider.

    Names are stored lower-cased; the registry lookup is case-insensitive.
    """
    return {**config, "provider": provider.lower()}


def with_smtp(config: ConfigDict, **smtp: Any) -> ConfigDict:
    """
    Update SMTP settings.

    Only keys that are passed are replaced:

        config = with_smtp(config, host="smtp.example.com", port=465, secure=True)

    Args:
        config: Current configuration dictionary
        **smtp: Any of host, port, secure, user, password

    Returns:
        New configuration dictionary with SMTP settings merged in
    """
    unknown = set(smtp) - {"host", "port", "secure", "user", "password"}
    if unknown:
        raise ValueError(f"Unknown SMTP settings: {', '.join(sorted(unknown))}")
    return {**config, "smtp": {**config["smtp"], **smtp}}


def without_email(config: ConfigDict) -> ConfigDict:
    """Disable delivery by clearing the recipient."""
    return {**config, "email": None}


def build_config(config_dict: ConfigDict) -> QDBConfig:
    """
    Validate and build an immutable QDBConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable QDBConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    values = dict(config_dict)
    smtp = values.pop("smtp", None) or {}
    return QDBConfig(smtp=SMTPConfig(**smtp), **values)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        config = pipe(
            lambda c: with_keys(c, "./keys.json"),
            lambda c: with_db_name(c, "orders"),
            without_email,
        )(create_empty_config())

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def create_config(
    *,
    keys_path: str | Path | None = None,
    email: str | None = None,
    db_name: str | None = None,
    work_dir: str | Path | None = None,
    provider: str | None = None,
    smtp: Dict[str, Any] | None = None,
) -> QDBConfig:
    """
    Create QDB configuration from simple parameters.

    This is the recommended API for embedding applications that do not
    use the saved config file.

    Example:
        config = create_config(
            keys_path="./keys.json",
            db_name="orders",
            provider="postgres",
            email="ops@example.com",
            smtp={"user": "ops@example.com", "password": "app-password"},
        )
    """
    config_dict = create_empty_config()

    if keys_path:
        config_dict = with_keys(config_dict, keys_path)
    if email:
        config_dict = with_email(config_dict, email)
    if db_name:
        config_dict = with_db_name(config_dict, db_name)
    if work_dir:
        config_dict = with_work_dir(config_dict, work_dir)
    if provider:
        config_dict = with_provider(config_dict, provider)
    if smtp:
        config_dict = with_smtp(config_dict, **smtp)

    return build_config(config_dict)
