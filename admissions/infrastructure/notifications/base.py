# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base types for credential notifications.

A dispatcher delivers one notice through one medium. Dispatchers raise
DeliveryError on failure; callers on the post-commit path log the error and
move on, since delivery never affects a committed admission.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class NoticeKind(str, Enum):
    """Why the notice is being sent."""

    ADMISSION = "admission"
    PASSWORD_RESET = "password_reset"


class DeliveryError(Exception):
    """Raised when a notice could not be delivered."""


@dataclass(frozen=True)
class CredentialNotice:
    """Credentials to hand to a newly admitted or reset enrollee.

    Attributes:
        kind: Admission or password reset.
        recipient_email: Personal contact address of the enrollee.
        recipient_name: Display name.
        identifier: Enrollee identifier, also the login name.
        institutional_address: Institutional mail address.
        password: One-time plaintext password.
        course_name: Owning course, when known.
    """

    kind: NoticeKind
    recipient_email: str
    recipient_name: str
    identifier: str
    institutional_address: str
    password: str
    course_name: str | None = None

    def __repr__(self) -> str:
        return (
            f"CredentialNotice(kind={self.kind.value!r}, "
            f"recipient_email={self.recipient_email!r}, identifier={self.identifier!r})"
        )

    @property
    def subject(self) -> str:
        if self.kind is NoticeKind.PASSWORD_RESET:
            return "Your password has been reset"
        return "Welcome! Your student account is ready"


class NotificationDispatcher(ABC):
    """Delivers credential notices.

    Implementations must be async and raise DeliveryError on failure.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def notify(self, notice: CredentialNotice) -> None:
        """Deliver a notice.

        Args:
            notice: The notice to deliver.

        Raises:
            DeliveryError: If delivery failed.
        """
        ...

    async def close(self) -> None:
        """Release resources held by the dispatcher."""


class LoggingDispatcher(NotificationDispatcher):
    """Writes notices to the log instead of sending them.

    Used when no SMTP server is configured. The password is never logged.
    """

    async def notify(self, notice: CredentialNotice) -> None:
        self.logger.info(
            "Credential notice (%s) for %s: identifier=%s address=%s",
            notice.kind.value,
            notice.recipient_email,
            notice.identifier,
            notice.institutional_address,
        )
