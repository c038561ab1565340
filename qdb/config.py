# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
QDB Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so a resolved
configuration can be handed to concurrent pipeline runs by value.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List
import re


DEFAULT_PROVIDER = "supabase"
DEFAULT_WORK_DIR = Path("./backups")
DEFAULT_RESTORE_DIR = Path("./restore-temp")
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _validate_email(address: str) -> bool:
    """Validate the rough shape of an email address."""
    return bool(address) and _EMAIL_RE.match(address) is not None


def _validate_port(port: int) -> bool:
    return isinstance(port, int) and 0 < port < 65536


@dataclass(frozen=True)
class SMTPConfig:
    """SMTP settings handed by value to the email collaborator."""

    host: str = DEFAULT_SMTP_HOST
    port: int = DEFAULT_SMTP_PORT

    # Implicit TLS (usually port 465); STARTTLS is negotiated otherwise
    secure: bool = False

    user: str | None = None
    password: str | None = field(default=None, repr=False)

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password)


@dataclass(frozen=True)
class QDBConfig:
    """
    Immutable, fully merged configuration for one backup invocation.

    Produced by the config loader (CLI > saved config > environment >
    defaults); the pipelines only ever see this resolved bag.
    """

    # Path to the keys.json file holding publicKey/privateKey
    keys_path: Path | None = None

    # Recipient for the encrypted backup (None disables delivery)
    email: str | None = None

    # Database name used in artifact filenames
    db_name: str | None = None

    # Directory owning intermediate and final backup artifacts
    work_dir: Path = field(default_factory=lambda: DEFAULT_WORK_DIR)

    # Canonical provider name (see qdb.providers)
    provider: str = DEFAULT_PROVIDER

    smtp: SMTPConfig = field(default_factory=SMTPConfig)

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if self.email is not None and not _validate_email(self.email):
            errors.append(f"Invalid email address: {self.email}")

        if self.db_name is not None and not self.db_name.strip():
            errors.append("db_name must not be blank")

        if self.db_name and ("/" in self.db_name or "\\" in self.db_name):
            errors.append(f"db_name must not contain path separators: {self.db_name}")

        if not self.provider or not self.provider.strip():
            errors.append("provider must not be empty")

        if not _validate_port(self.smtp.port):
            errors.append(f"SMTP port must be 1-65535, got {self.smtp.port}")

        if errors:
            from qdb.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "QDBConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        return replace(self, **kwargs)
