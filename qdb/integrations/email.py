# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Email delivery of encrypted backups over SMTP.

SMTP settings arrive by value in an SMTPConfig; nothing here reads or
writes process environment variables. Delivery is attempted once; the
caller decides what a failure means.
"""

from datetime import datetime, UTC
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Tuple

import aiofiles
import aiosmtplib
import structlog

from qdb.config import SMTPConfig
from qdb.errors import explain_smtp_not_configured
from qdb.exceptions import DeliveryError

logger = structlog.get_logger()


def is_smtp_configured(smtp: SMTPConfig | None) -> bool:
    """True when SMTP user and password are both set."""
    return smtp is not None and smtp.is_configured


async def send_backup_email(
    smtp: SMTPConfig,
    to: str,
    subject: str,
    text: str,
    attachment_path: Path,
) -> None:
    """
    Send an email with a single file attached.

    Args:
        smtp: SMTP server settings and credentials
        to: Recipient address
        subject: Subject line
        text: Plain text body
        attachment_path: File to attach

    Raises:
        DeliveryError: If SMTP is not configured, the attachment cannot be
            read, or the server rejects the message
    """
    attachment_path = Path(attachment_path)

    if not is_smtp_configured(smtp):
        raise DeliveryError(explain_smtp_not_configured())

    try:
        async with aiofiles.open(attachment_path, "rb") as f:
            payload = await f.read()
    except OSError as e:
        raise DeliveryError(
            f"Cannot read attachment {attachment_path}: {e}",
            details={"attachment": str(attachment_path)},
        ) from e

    msg = MIMEMultipart()
    msg["From"] = smtp.user
    msg["To"] = to
    msg["Subject"] = subject
    msg.attach(MIMEText(text, "plain"))

    attachment = MIMEApplication(payload, Name=attachment_path.name)
    attachment["Content-Disposition"] = f'attachment; filename="{attachment_path.name}"'
    msg.attach(attachment)

    try:
        await aiosmtplib.send(
            msg,
            hostname=smtp.host,
            port=smtp.port,
            username=smtp.user,
            password=smtp.password,
            use_tls=smtp.secure,
        )
    except (aiosmtplib.SMTPException, OSError) as e:
        raise DeliveryError(
            f"Failed to send email: {e}",
            details={"to": to, "host": smtp.host, "port": smtp.port},
        ) from e

    logger.info(
        "backup_email_sent",
        to=to,
        attachment=attachment_path.name,
        size=len(payload),
    )


def generate_backup_email_content(
    db_name: str,
    filename: str,
    file_size: str,
    now: datetime | None = None,
) -> Tuple[str, str]:
    """
    Subject and body for a backup delivery email.

    Returns:
        (subject, text)
    """
    timestamp = (now or datetime.now(UTC)).isoformat()
    subject = f"Encrypted Database Backup - {db_name}"
    text = f"""Your encrypted database backup is ready.

Database: {db_name}
Filename: {filename}
File Size: {file_size}
Timestamp: {timestamp}

This backup has been encrypted using post-quantum cryptography.
Keep your decryption keys safe - they are required to restore this backup.

IMPORTANT SECURITY NOTES:
- Your encryption keys are NOT stored anywhere
- You are solely responsible for keeping your keys safe
- Without your keys, this backup cannot be decrypted
- Store your keys in a secure location separate from this backup

To decrypt this backup, you will need:
1. Your keys.json file
2. The qdb CLI tool
3. The command: qdb decrypt --input <encrypted-file> --output <output-file> --keys <keys.json>"""
    return subject, text
