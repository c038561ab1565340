# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Integrations - External collaborators used around the pipelines.
"""

from qdb.integrations.email import (
    generate_backup_email_content,
    is_smtp_configured,
    send_backup_email,
)

__all__ = [
    "generate_backup_email_content",
    "is_smtp_configured",
    "send_backup_email",
]
