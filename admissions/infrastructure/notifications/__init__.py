# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Credential notification delivery.

Exports:
    CredentialNotice: What is delivered to an enrollee.
    NotificationDispatcher: Dispatcher interface.
    LoggingDispatcher: Logs notices instead of sending them.
    EmailDispatcher: Sends notices over SMTP.
    PostCommitNotifier: Background queue used after commit.
    DeliveryError: Raised by dispatchers on failure.
"""

from admissions.core.config.settings import SMTPSettings
from admissions.infrastructure.notifications.base import (
    CredentialNotice,
    DeliveryError,
    LoggingDispatcher,
    NoticeKind,
    NotificationDispatcher,
)
from admissions.infrastructure.notifications.email import EmailDispatcher
from admissions.infrastructure.notifications.queue import PostCommitNotifier


def build_dispatcher(settings: SMTPSettings) -> NotificationDispatcher:
    """Pick the dispatcher matching the SMTP configuration."""
    if settings.is_configured:
        return EmailDispatcher(settings)
    return LoggingDispatcher()


__all__ = [
    "CredentialNotice",
    "DeliveryError",
    "EmailDispatcher",
    "LoggingDispatcher",
    "NoticeKind",
    "NotificationDispatcher",
    "PostCommitNotifier",
    "build_dispatcher",
]
