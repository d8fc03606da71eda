# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Credential delivery by email using async SMTP.

Messages are sent with aiosmtplib and carry both a plain text and an HTML
part.

Configuration (via environment variables):
- SMTP_HOST: SMTP server hostname
- SMTP_PORT: SMTP server port (default: 587)
- SMTP_USERNAME: SMTP authentication username
- SMTP_PASSWORD: SMTP authentication password
- SMTP_USE_TLS: Use STARTTLS (default: true)
- SMTP_FROM_EMAIL: Sender email address
- SMTP_FROM_NAME: Sender display name
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib

from admissions.core.config.settings import SMTPSettings
from admissions.infrastructure.notifications.base import (
    CredentialNotice,
    DeliveryError,
    NoticeKind,
    NotificationDispatcher,
)
from admissions.models.admission import CREDENTIAL_NOTE


class EmailDispatcher(NotificationDispatcher):
    """Sends credential notices through an SMTP server.

    Attributes:
        _settings: SMTP configuration.
    """

    def __init__(self, settings: SMTPSettings) -> None:
        super().__init__()
        if not settings.is_configured:
            raise ValueError("SMTP host is not configured")
        self._settings = settings

    async def notify(self, notice: CredentialNotice) -> None:
        """Send the notice to the enrollee's personal address.

        Raises:
            DeliveryError: If the SMTP exchange fails.
        """
        message = self.build_message(notice)
        password = self._settings.password.get_secret_value() if self._settings.password else None

        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username,
                password=password,
                start_tls=self._settings.use_tls,
                timeout=self._settings.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP error for {notice.recipient_email}: {e}") from e

        self.logger.info("Credential email sent to %s: %s", notice.recipient_email, notice.subject)

    def build_message(self, notice: CredentialNotice) -> MIMEMultipart:
        """Build the MIME message for a notice."""
        message = MIMEMultipart("alternative")
        message["From"] = f"{self._settings.from_name} <{self._settings.from_email}>"
        message["To"] = notice.recipient_email
        message["Subject"] = notice.subject

        message.attach(MIMEText(self._build_plain_text(notice), "plain", "utf-8"))
        message.attach(MIMEText(self._build_html(notice), "html", "utf-8"))
        return message

    def _intro(self, notice: CredentialNotice) -> str:
        if notice.kind is NoticeKind.PASSWORD_RESET:
            return "Your password has been reset by the admissions office."
        if notice.course_name:
            return f"You have been admitted to {notice.course_name}."
        return "You have been admitted."

    def _build_plain_text(self, notice: CredentialNotice) -> str:
        lines = [
            f"Dear {notice.recipient_name},",
            "",
            self._intro(notice),
            "",
            f"Student ID: {notice.identifier}",
            f"Institutional email: {notice.institutional_address}",
            f"Temporary password: {notice.password}",
            "",
            f"Please {CREDENTIAL_NOTE}.",
            "",
            "---",
            f"This message was sent by {self._settings.from_name}.",
        ]
        return "\n".join(lines)

    def _build_html(self, notice: CredentialNotice) -> str:
        html = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1F2937;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <p>Dear {escape(notice.recipient_name)},</p>
        <p>{escape(self._intro(notice))}</p>
        <table style="border-collapse: collapse;">
            <tr><td><strong>Student ID</strong></td><td>{escape(notice.identifier)}</td></tr>
            <tr><td><strong>Institutional email</strong></td>
                <td>{escape(notice.institutional_address)}</td></tr>
            <tr><td><strong>Temporary password</strong></td>
                <td><code>{escape(notice.password)}</code></td></tr>
        </table>
        <p>Please {escape(CREDENTIAL_NOTE)}.</p>
        <p style="font-size: 12px; color: #9CA3AF;">
            This message was sent by {escape(self._settings.from_name)}.
        </p>
    </div>
</body>
</html>
        """
        return html.strip()
