# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Saved configuration file and environment-based configuration.

Resolves the options bag handed to the pipelines. Every field is taken
from the first source that sets it:

    CLI argument > saved config file > environment variable > built-in default

The saved file is JSON at ~/.config/quantum-database-backups/config.json
(override the directory with QDB_CONFIG_DIR) and keeps the field names
of the original tool so existing configs keep working.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, TypedDict

import structlog

from qdb.builder import (
    build_config,
    create_empty_config,
    with_db_name,
    with_email,
    with_keys,
    with_provider,
    with_smtp,
    with_work_dir,
)
from qdb.config import QDBConfig
from qdb.errors import explain_invalid_smtp_port_env
from qdb.exceptions import ConfigurationError

logger = structlog.get_logger()

CONFIG_DIR_NAME = "quantum-database-backups"
CONFIG_FILE_NAME = "config.json"


class ValidationResult(TypedDict):
    valid: bool
    errors: List[str]


def get_config_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Directory holding the saved configuration."""
    env = os.environ if environ is None else environ
    override = env.get("QDB_CONFIG_DIR")
    if override:
        return Path(override)
    return Path.home() / ".config" / CONFIG_DIR_NAME


def get_config_path(environ: Mapping[str, str] | None = None) -> Path:
    return get_config_dir(environ) / CONFIG_FILE_NAME


def config_exists(path: Path | None = None) -> bool:
    return (path or get_config_path()).is_file()


def load_saved_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load the saved configuration file.

    Args:
        path: Config file path (default: get_config_path())

    Returns:
        Parsed config dict

    Raises:
        ConfigurationError: If the file cannot be read or is not a JSON object
    """
    config_path = path or get_config_path()
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigurationError(
            f"Failed to load config: {e}",
            details={"path": str(config_path)},
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            "Failed to load config: expected a JSON object",
            details={"path": str(config_path)},
        )
    return data


def save_config(config: Dict[str, Any], path: Path | None = None) -> Path:
    """
    Write the configuration file with owner-only permissions (0600).

    Returns:
        Path of the written file
    """
    config_path = path or get_config_path()
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        os.chmod(config_path, 0o600)
    except OSError as e:
        raise ConfigurationError(
            f"Failed to save config: {e}",
            details={"path": str(config_path)},
        ) from e

    logger.info("config_saved", path=str(config_path))
    return config_path


def validate_saved_config(config: Dict[str, Any]) -> ValidationResult:
    """Check a config produced by the setup wizard."""
    errors: List[str] = []
    smtp = config.get("smtp") or {}

    if not config.get("keysPath"):
        errors.append("Keys path is required")
    if not config.get("defaultEmail"):
        errors.append("Default email is required")
    if not config.get("defaultDbName"):
        errors.append("Default database name is required")
    if not smtp.get("user"):
        errors.append("SMTP user is required")
    if not smtp.get("pass"):
        errors.append("SMTP password is required")

    return {"valid": not errors, "errors": errors}


def _parse_port(value: Any, explain=explain_invalid_smtp_port_env) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain(str(value))) from exc
    if not 0 < port < 65536:
        raise ConfigurationError(explain(str(value)))
    return port


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _first(*values: Any) -> Any:
    """Return the first value that is set (not None and not empty)."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def merge_config(
    cli_options: Mapping[str, Any] | None = None,
    saved: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> QDBConfig:
    """
    Merge CLI arguments, saved config and environment into a QDBConfig.

    Args:
        cli_options: Values from the command line. Recognized keys:
            email, keys, db_name, work_dir, provider
        saved: Parsed saved config file (see load_saved_config)
        environ: Environment mapping (default: os.environ)

    Optional environment variables:
        - QDB_KEYS_PATH, QDB_EMAIL, QDB_DB_NAME, QDB_WORK_DIR, QDB_PROVIDER
        - SMTP_HOST, SMTP_PORT, SMTP_SECURE ('true'/'false'), SMTP_USER, SMTP_PASS

    Returns:
        Validated, immutable QDBConfig
    """
    cli = dict(cli_options or {})
    file_cfg = dict(saved or {})
    file_smtp = dict(file_cfg.get("smtp") or {})
    env = os.environ if environ is None else environ

    config = create_empty_config()

    keys_path = _first(cli.get("keys"), file_cfg.get("keysPath"), env.get("QDB_KEYS_PATH"))
    if keys_path:
        config = with_keys(config, keys_path)

    email = _first(cli.get("email"), file_cfg.get("defaultEmail"), env.get("QDB_EMAIL"))
    if email:
        config = with_email(config, email)

    db_name = _first(cli.get("db_name"), file_cfg.get("defaultDbName"), env.get("QDB_DB_NAME"))
    if db_name:
        config = with_db_name(config, db_name)

    work_dir = _first(cli.get("work_dir"), file_cfg.get("workDir"), env.get("QDB_WORK_DIR"))
    if work_dir:
        config = with_work_dir(config, work_dir)

    provider = _first(cli.get("provider"), file_cfg.get("provider"), env.get("QDB_PROVIDER"))
    if provider:
        config = with_provider(config, provider)

    smtp: Dict[str, Any] = {}
    host = _first(file_smtp.get("host"), env.get("SMTP_HOST"))
    if host:
        smtp["host"] = host
    port = _first(file_smtp.get("port"), env.get("SMTP_PORT"))
    if port is not None:
        smtp["port"] = _parse_port(port)
    secure = _first(file_smtp.get("secure"), env.get("SMTP_SECURE"))
    if secure is not None:
        smtp["secure"] = _parse_bool(secure)
    user = _first(file_smtp.get("user"), env.get("SMTP_USER"))
    if user:
        smtp["user"] = user
    password = _first(file_smtp.get("pass"), env.get("SMTP_PASS"))
    if password:
        smtp["password"] = password
    if smtp:
        config = with_smtp(config, **smtp)

    return build_config(config)


def load_config(
    cli_options: Mapping[str, Any] | None = None,
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> QDBConfig:
    """
    Resolve configuration using the saved file when it exists.

    Convenience wrapper around load_saved_config() and merge_config().
    """
    config_path = path or get_config_path(environ)
    saved = load_saved_config(config_path) if config_exists(config_path) else None
    return merge_config(cli_options, saved, environ)
